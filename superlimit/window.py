"""
Window policy: how long a new bucket lives.

A bucket either lives for a fixed number of seconds (``ttl``) or until the
next occurrence of a wall-clock time of day (``expired_at``), which gives
daily quotas that reset at, say, midnight.
"""

import math
import re
from datetime import datetime, timedelta
from typing import Optional

from .models import LimiterConfig

SECONDS_OF_ONE_DAY = 24 * 3600

TIME_OF_DAY_PATTERN = re.compile(r"(\d\d):(\d\d)")


def parse_time_of_day(value: Optional[str]) -> Optional[timedelta]:
    """
    Parse an ``HH:MM`` string into an offset from midnight.

    Values that do not contain the pattern return None, meaning the fixed
    ttl applies. Out-of-range hours and minutes are kept as-is and roll
    forward, so "24:00" is the following midnight.

    Examples:
        >>> parse_time_of_day("14:30")
        datetime.timedelta(seconds=52200)
        >>> parse_time_of_day("soon") is None
        True
    """
    if not value:
        return None

    match = TIME_OF_DAY_PATTERN.search(value)
    if not match:
        return None

    return timedelta(hours=int(match.group(1)), minutes=int(match.group(2)))


def compute_ttl(config: LimiterConfig, now: datetime) -> int:
    """
    Compute the number of seconds a newly created bucket should live.

    Args:
        config: Limiter configuration
        now: Current wall-clock time (not modified)

    Returns:
        ``config.ttl`` when no daily reset time is configured, otherwise the
        seconds until the next occurrence of ``config.expired_at``. At the
        exact reset time this is 0, not a full day.

    Examples:
        >>> config = LimiterConfig(expired_at="14:00")
        >>> compute_ttl(config, datetime(2024, 1, 1, 13, 59, 59))
        1
        >>> compute_ttl(config, datetime(2024, 1, 1, 14, 0, 1))
        86399
    """
    time_of_day = parse_time_of_day(config.expired_at)
    if time_of_day is None:
        return config.ttl

    # Only seconds are reset; the sub-second part of now carries over so
    # offsets are whole seconds.
    target = now.replace(hour=0, minute=0, second=0) + time_of_day
    offset = math.floor((target - now).total_seconds())

    if offset >= 0:
        return offset

    return offset + SECONDS_OF_ONE_DAY
