from sqlalchemy import text

from repfinder.config import settings
from repfinder.session import encode_session

ADMIN = {"user_id": "E100", "username": "jdoe", "full_name": "Jane Doe"}


def sign_in(client, user=None):
    client.cookies.set(settings.session_cookie_name, encode_session(user or ADMIN))


def seed_rep(
    engine,
    rep_id: int,
    first_name: str,
    last_name: str,
    email: str,
    channel: str,
    phone: str | None = None,
    agency: str | None = None,
):
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO reps (id, first_name, last_name, email, phone, agency, channel)
                VALUES (:id, :first_name, :last_name, :email, :phone, :agency, :channel)
                """
            ),
            {
                "id": rep_id,
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "phone": phone,
                "agency": agency,
                "channel": channel,
            },
        )


def seed_assignment(engine, zip_code: str, channel: str, rep_id: int):
    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO assignments (zip_code, channel, rep_id) VALUES (:zip_code, :channel, :rep_id)"),
            {"zip_code": zip_code, "channel": channel, "rep_id": rep_id},
        )


def fetch_audit(engine):
    with engine.begin() as conn:
        return conn.execute(
            text(
                """
                SELECT user_id, username, user_full_name, action, table_name, record_id, description
                FROM audit_log
                ORDER BY id
                """
            )
        ).mappings().all()
