import uuid
from datetime import date, datetime, timezone
from typing import Any

from pocketledger.core.errors import ValidationError

ENTRY_TYPES = ("income", "expense")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return now_utc().date()


def parse_uuid_value(value: Any, field_name: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError(f"{field_name} required")
    try:
        return str(uuid.UUID(raw))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid {field_name}")


def require_entry_type(value: Any, field_name: str = "type") -> str:
    if value not in ENTRY_TYPES:
        raise ValidationError(f"{field_name} must be one of: {', '.join(ENTRY_TYPES)}")
    return value
