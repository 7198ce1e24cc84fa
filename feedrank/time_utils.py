"""Naive-UTC time helpers (stored DATETIME columns carry no timezone)."""
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 86400.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from `earlier` to `later`; negative when `earlier` is in the future."""
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 string → naive UTC datetime; None for empty or malformed values."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
