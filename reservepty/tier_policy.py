from __future__ import annotations

import math
from datetime import datetime, timedelta

# Tier 1 is the most senior member and may book the furthest ahead.
TIER_MAX_DAYS_AHEAD: dict[int, int] = {1: 365, 2: 180, 3: 90, 4: 30}
DEFAULT_MAX_DAYS_AHEAD = 30
DEFAULT_TIER = 4


def max_days_ahead(tier: int | None) -> int:
    """Return the booking horizon in days for ``tier``; unknown tiers get the default."""
    return TIER_MAX_DAYS_AHEAD.get(tier, DEFAULT_MAX_DAYS_AHEAD)


def days_ahead(start: datetime, now: datetime) -> int:
    return math.ceil((start - now) / timedelta(days=1))


def is_within_horizon(tier: int | None, start: datetime, now: datetime) -> bool:
    return days_ahead(start, now) <= max_days_ahead(tier)
