"""
Shared utility functions.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any

MS_PER_DAY = 24 * 60 * 60 * 1000


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_ms() -> float:
    """Current time in epoch milliseconds, the unit token expiries are stored in."""
    return time.time() * 1000


def is_valid_expiry(value: Any) -> bool:
    """
    True if ``value`` is a usable expiry timestamp: a finite, positive number.
    None, NaN, infinities, strings and non-positive values are all invalid.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if math.isnan(value) or math.isinf(value):
        return False
    return value > 0


def ms_to_iso(value: float) -> str:
    """Render an epoch-ms timestamp for logs."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()

