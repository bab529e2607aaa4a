from __future__ import annotations

from datetime import datetime
from typing import Any


def has_time_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Return True when two reservation slots share at least one instant.

    Slots are closed ranges, so a trip ending at 18:00 and another
    starting at 18:00 on the same asset collide.
    """
    return start <= other_end and other_start <= end


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp; aware values are converted to naive local time."""
    if value is None or not str(value).strip():
        raise ValueError("timestamp is required")
    parsed = datetime.fromisoformat(str(value).strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
