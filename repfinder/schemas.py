"""Request bodies for the JSON API.

Every field is optional here; the endpoints report missing or malformed
values with the same messages the bulk uploads use.
"""
from typing import Any

from pydantic import BaseModel


class RepPayload(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    agency: str | None = None
    channel: str | None = None


class AssignmentPayload(BaseModel):
    zip_code: str | None = None
    channel: str | None = None
    rep_id: str | int | None = None


class UploadPayload(BaseModel):
    rows: list[dict[str, Any]] | None = None
