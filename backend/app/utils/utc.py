"""
UTC time handling for the scheduling boundary.

All instants are stored and compared in UTC. Clients may send ISO-8601
strings with or without a zone marker; a missing marker means UTC, never
server-local time. Database columns hold naive UTC datetimes.
"""
import re
from datetime import datetime, timezone
from typing import Optional, Union

_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:\d{2})?$")
# fromisoformat before 3.11 only takes 3 or 6 fractional digits
_FRACTION_PATTERN = re.compile(r"\.(\d{1,6})(?=[+-]|$)")


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return an aware UTC datetime. Naive values are taken to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_utc(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp as a UTC instant.

    "2024-01-15T14:00:00"       -> 14:00 UTC (assumed)
    "2024-01-15T14:00:00Z"      -> 14:00 UTC
    "2024-01-15T14:00:00+02:00" -> 12:00 UTC

    Raises:
        ValueError: if the string is not a recognisable ISO timestamp
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1).ljust(6, "0"), text)
    parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    return ensure_utc(parsed)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to the naive-UTC form stored in the database."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def format_utc(value: Optional[datetime]) -> Optional[str]:
    """Format as ISO-8601 with a trailing 'Z', e.g. 2024-01-15T14:00:00Z."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def is_valid_time_string(value: Optional[str]) -> bool:
    """True for the ISO-8601 forms parse_utc accepts from clients."""
    if not value:
        return False
    return bool(_ISO_PATTERN.match(value.strip()))
