from __future__ import annotations

import csv
import logging
from io import BytesIO, StringIO
from typing import Any, Iterable, Mapping

from fastapi import HTTPException
from openpyxl import load_workbook
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from repfinder.validation import (
    CHANNEL_CHOICES,
    validate_channel,
    validate_email_shape,
    validate_zip_code,
)

logger = logging.getLogger(__name__)

# Marks an email claimed by an earlier row of the same upload that has not been inserted yet.
PENDING = "pending"

REP_REQUIRED_COLUMNS = ("first_name", "last_name", "email", "channel")
TERRITORY_REQUIRED_COLUMNS = ("zip", "rep_email")
CSV_EXTENSIONS = (".csv",)
WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm")

REP_TEMPLATE_CSV = (
    "first_name,last_name,email,phone,agency,channel\n"
    "Mary,Watson,mary.watson@example.com,555-123-4567,Schauben and Co.,Golf\n"
    "John,Smith,john.smith@example.com,555-234-5678,,Outdoor\n"
    "Bob,Wilson,bob.wilson@example.com,555-345-6789,ABC Agency,Gift\n"
    "Alice,Brown,alice.brown@example.com,,,Golf\n"
)
TERRITORY_TEMPLATE_CSV = (
    "zip,rep_email\n"
    "02134,mary.watson@example.com\n"
    "10001,john.smith@example.com\n"
    "60601,bob.wilson@example.com\n"
)


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).replace("\xa0", " ").strip()


def _error(errors: list[dict[str, Any]], row: int, message: str) -> None:
    errors.append({"row": row, "message": message})


def _read_csv_rows(content: bytes) -> tuple[list[str], list[dict[str, str]]]:
    try:
        decoded = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Could not read CSV file. Save it as UTF-8.") from exc

    reader = csv.DictReader(StringIO(decoded))
    headers = [_clean_text(name) for name in (reader.fieldnames or [])]
    reader.fieldnames = headers
    return headers, [dict(row) for row in reader]


def _read_workbook_rows(content: bytes) -> tuple[list[str], list[dict[str, str]]]:
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=f"Could not read workbook: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        values = sheet.iter_rows(values_only=True)
        header_row = next(values, None) or ()
        headers = [_clean_text(v) for v in header_row]
        rows = []
        for row in values:
            if not any(_clean_text(v) for v in row):
                continue
            rows.append(
                {
                    header: _clean_text(row[i] if i < len(row) else None)
                    for i, header in enumerate(headers)
                    if header
                }
            )
    finally:
        workbook.close()
    return headers, rows


def parse_upload(content: bytes, filename: str, required_columns: Iterable[str]) -> list[dict[str, str]]:
    """Turn an uploaded CSV or Excel file into header-keyed rows.

    The first line is the header. Every required column must be present;
    missing ones are reported together.
    """
    lowered = filename.lower()
    if not lowered.endswith(CSV_EXTENSIONS + WORKBOOK_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Upload a .csv, .xlsx or .xlsm file")
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    if lowered.endswith(CSV_EXTENSIONS):
        headers, rows = _read_csv_rows(content)
    else:
        headers, rows = _read_workbook_rows(content)

    missing = [f"Missing required column: '{col}'" for col in required_columns if col not in headers]
    if missing:
        raise HTTPException(status_code=400, detail=" ".join(missing))
    if not rows:
        raise HTTPException(status_code=400, detail="No data rows provided")
    return rows


def build_rep_index(db: Session, *, with_channel: bool = False) -> dict[str, Any]:
    """Map lower-cased rep email to its id (or id and channel).

    Rebuilt on every upload since the roster can change between requests.
    """
    reps = db.execute(text("SELECT id, email, channel FROM reps")).mappings().all()
    if with_channel:
        return {str(r["email"]).lower(): {"id": r["id"], "channel": r["channel"]} for r in reps}
    return {str(r["email"]).lower(): r["id"] for r in reps}


def clean_rep_row(row: Mapping[str, Any]) -> tuple[dict[str, Any] | None, str | None]:
    """Validate and normalize one rep record.

    Returns ``(rep_data, None)`` on success or ``(None, message)``.
    """
    for field in ("first_name", "last_name", "email", "channel"):
        if not _clean_text(row.get(field)):
            return None, f"Missing {field}"

    email = _clean_text(row.get("email")).lower()
    if not validate_email_shape(email):
        return None, f"Invalid email: {_clean_text(row.get('email'))}"

    channel = _clean_text(row.get("channel"))
    if not validate_channel(channel):
        return None, f"Invalid channel: {channel}. Must be {CHANNEL_CHOICES}."

    return {
        "first_name": _clean_text(row.get("first_name")),
        "last_name": _clean_text(row.get("last_name")),
        "email": email,
        "phone": _clean_text(row.get("phone")) or None,
        "agency": _clean_text(row.get("agency")) or None,
        "channel": channel,
    }, None


def reconcile_rep_rows(
    rows: Iterable[Mapping[str, Any]],
    email_index: dict[str, Any],
) -> tuple[list[tuple[int, dict[str, Any]]], list[tuple[int, Any, dict[str, Any]]], list[dict[str, Any]]]:
    """Classify uploaded rep rows as create, update or rejected.

    ``email_index`` is mutated: emails of new rows are claimed with ``PENDING``.
    """
    to_insert: list[tuple[int, dict[str, Any]]] = []
    to_update: list[tuple[int, Any, dict[str, Any]]] = []
    errors: list[dict[str, Any]] = []

    # Row 1 is the header.
    for row_num, row in enumerate(rows, start=2):
        rep_data, message = clean_rep_row(row)
        if rep_data is None:
            _error(errors, row_num, message)
            continue

        existing_id = email_index.get(rep_data["email"])
        if existing_id is not None:
            to_update.append((row_num, existing_id, rep_data))
        else:
            to_insert.append((row_num, rep_data))
            email_index[rep_data["email"]] = PENDING

    return to_insert, to_update, errors


def reconcile_territory_rows(
    rows: Iterable[Mapping[str, Any]],
    rep_index: dict[str, dict[str, Any]],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Resolve uploaded zip/rep_email rows into candidate assignments.

    The channel always comes from the matched rep.
    """
    assignments: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    claimed: dict[tuple[str, str], int] = {}

    for row_num, row in enumerate(rows, start=2):
        zip_code = _clean_text(row.get("zip"))
        raw_email = _clean_text(row.get("rep_email"))

        if not zip_code or not raw_email:
            _error(
                errors,
                row_num,
                f"Missing required fields (zip: {zip_code or 'missing'}, rep_email: {raw_email or 'missing'})",
            )
            continue

        if not validate_zip_code(zip_code):
            _error(errors, row_num, f'Invalid zip code format "{zip_code}" (must be 5 digits)')
            continue

        rep = rep_index.get(raw_email.lower())
        if rep is None:
            _error(errors, row_num, f'Rep not found with email "{raw_email}"')
            continue

        key = (zip_code, rep["channel"])
        first_row = claimed.get(key)
        if first_row is not None:
            _error(
                errors,
                row_num,
                f"Duplicate zip code {zip_code} for {rep['channel']} channel (first seen at row {first_row})",
            )
            continue
        claimed[key] = row_num

        assignments.append({"zip_code": zip_code, "channel": rep["channel"], "rep_id": rep["id"]})

    return assignments, errors


def persist_rep_upload(
    db: Session,
    to_insert: list[tuple[int, dict[str, Any]]],
    to_update: list[tuple[int, Any, dict[str, Any]]],
    errors: list[dict[str, Any]],
) -> dict[str, Any]:
    result: dict[str, Any] = {"created": 0, "updated": 0, "errors": errors}

    if to_insert:
        try:
            db.execute(
                text(
                    """
                    INSERT INTO reps (first_name, last_name, email, phone, agency, channel)
                    VALUES (:first_name, :last_name, :email, :phone, :agency, :channel)
                    """
                ),
                [rep_data for _, rep_data in to_insert],
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Bulk rep insert rejected by a uniqueness constraint (%d rows)", len(to_insert))
            _error(errors, 0, "Duplicate email found in upload")
        else:
            result["created"] = len(to_insert)

    # One statement per row so a single failure does not take the rest down.
    for row_num, rep_id, rep_data in to_update:
        email = rep_data["email"]
        if rep_id == PENDING:
            _error(errors, row_num, f"Duplicate email found in upload: {email}")
            continue

        try:
            stranded = db.execute(
                text("SELECT COUNT(*) FROM assignments WHERE rep_id = :rep_id AND channel <> :channel"),
                {"rep_id": rep_id, "channel": rep_data["channel"]},
            ).scalar_one()
            if stranded:
                _error(
                    errors,
                    row_num,
                    f"Failed to update {email}: rep still holds {stranded} assignment(s) in another channel",
                )
                continue

            db.execute(
                text(
                    """
                    UPDATE reps
                    SET first_name = :first_name,
                        last_name = :last_name,
                        email = :email,
                        phone = :phone,
                        agency = :agency,
                        channel = :channel
                    WHERE id = :rep_id
                    """
                ),
                {**rep_data, "rep_id": rep_id},
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to update rep %s during bulk upload", email)
            _error(errors, 0, f"Failed to update {email}")
        else:
            result["updated"] += 1

    return result


def persist_territory_upload(db: Session, assignments: list[dict[str, Any]]) -> int:
    """Write every assignment in one statement; all rows land or none do."""
    if not assignments:
        return 0
    db.execute(
        text(
            """
            INSERT INTO assignments (zip_code, channel, rep_id)
            VALUES (:zip_code, :channel, :rep_id)
            ON CONFLICT (zip_code, channel)
            DO UPDATE SET rep_id = EXCLUDED.rep_id
            """
        ),
        assignments,
    )
    db.commit()
    return len(assignments)


def import_reps(db: Session, rows: list[Mapping[str, Any]]) -> dict[str, Any]:
    email_index = build_rep_index(db)
    to_insert, to_update, errors = reconcile_rep_rows(rows, email_index)
    return persist_rep_upload(db, to_insert, to_update, errors)


def import_territories(db: Session, rows: list[Mapping[str, Any]]) -> dict[str, Any]:
    rep_index = build_rep_index(db, with_channel=True)
    assignments, errors = reconcile_territory_rows(rows, rep_index)
    return {"success": persist_territory_upload(db, assignments), "errors": errors}
