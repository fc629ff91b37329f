"""Time helpers - all persisted timestamps are naive UTC."""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as an ISO-8601 UTC string."""
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + "Z"
