import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {"create", "update", "delete", "bulk_upload"}
AUDIT_TABLES = {"reps", "assignments"}


def log_audit(
    db: Session,
    user: dict[str, str],
    action: str,
    table_name: str,
    description: str,
    record_id: Any = None,
) -> None:
    """Append one audit entry after the primary write has committed.

    Never raises: a failed audit write is rolled back and logged for operators.
    """
    if action not in AUDIT_ACTIONS or table_name not in AUDIT_TABLES:
        logger.error("Refusing audit entry with unsupported target %r on %r", action, table_name)
        return

    try:
        db.execute(
            text(
                """
                INSERT INTO audit_log
                  (user_id, username, user_full_name, action, table_name, record_id, description)
                VALUES
                  (:user_id, :username, :user_full_name, :action, :table_name, :record_id, :description)
                """
            ),
            {
                "user_id": user["user_id"],
                "username": user["username"],
                "user_full_name": user["full_name"],
                "action": action,
                "table_name": table_name,
                "record_id": None if record_id is None else str(record_id),
                "description": description,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write audit log entry (%s on %s)", action, table_name)


def list_audit_log(db: Session, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
    rows = db.execute(
        text(
            """
            SELECT id, user_id, username, user_full_name, action, table_name,
                   record_id, description, created_at
            FROM audit_log
            ORDER BY created_at DESC, id DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        {"limit": limit, "offset": offset},
    ).mappings().all()
    total = db.execute(text("SELECT COUNT(*) FROM audit_log")).scalar_one()
    return [dict(r) for r in rows], int(total)
