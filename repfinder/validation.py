import re

CHANNELS = ("Golf", "Outdoor", "Gift")
CHANNEL_CHOICES = f"{', '.join(CHANNELS[:-1])}, or {CHANNELS[-1]}"

_ZIP_PATTERN = re.compile(r"[0-9]{5}")
_NON_DIGITS = re.compile(r"[^0-9]")


def validate_zip_code(value) -> bool:
    """Exactly five ASCII digits. Callers trim first."""
    return isinstance(value, str) and _ZIP_PATTERN.fullmatch(value) is not None


def validate_channel(value) -> bool:
    return value in CHANNELS


def validate_email_shape(value) -> bool:
    # Intentionally permissive: only the "@" is required.
    return isinstance(value, str) and "@" in value


def format_phone(value: str | None) -> str:
    """Render 10-digit numbers as (AAA) BBB-CCCC; anything else is returned as given."""
    if not value:
        return ""
    digits = _NON_DIGITS.sub("", value)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return value
