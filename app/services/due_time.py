"""
Reflecta API - Coaching Due-Time Calculator.

Pure functions deciding when a user next becomes eligible for a
coaching message, and whether "now" falls inside the user's preferred
delivery window.

All instants are timezone-aware UTC datetimes. Civil-time adjustments
happen in the user's IANA zone and are converted back to UTC.
"""

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.models.coaching import CoachingFrequency, TimePreference, SchedulingMode
from settings import settings

logger = logging.getLogger(__name__)


# Normal cadence per frequency
NORMAL_OFFSETS = {
    CoachingFrequency.DAILY: timedelta(hours=24),
    CoachingFrequency.SEVERAL_PER_WEEK: timedelta(hours=48),
    CoachingFrequency.WEEKLY: timedelta(hours=168),
}

# Retry after a failed or rejected attempt
RETRY_OFFSETS = {
    CoachingFrequency.DAILY: timedelta(hours=2),
    CoachingFrequency.SEVERAL_PER_WEEK: timedelta(hours=4),
    CoachingFrequency.WEEKLY: timedelta(hours=8),
}

# Bootstrap offset is drawn uniformly from (low, high] hours
BOOTSTRAP_BOUNDS_HOURS = {
    CoachingFrequency.DAILY: (1.0, 7.0),
    CoachingFrequency.SEVERAL_PER_WEEK: (1.0, 13.0),
    CoachingFrequency.WEEKLY: (1.0, 25.0),
}

# Canonical local delivery hour per preference
TARGET_HOURS = {
    TimePreference.MORNING: 8,
    TimePreference.AFTERNOON: 14,
    TimePreference.EVENING: 19,
}

# Inclusive local-hour windows
TIME_WINDOWS = {
    TimePreference.MORNING: (6, 11),
    TimePreference.AFTERNOON: (12, 17),
    TimePreference.EVENING: (18, 21),
}


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA zone name, falling back to the configured default.

    Args:
        tz_name: Zone name from the user's profile (may be empty or invalid).

    Returns:
        ZoneInfo for the user.
    """
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{tz_name}', using {settings.DEFAULT_USER_TIMEZONE}")
    return ZoneInfo(settings.DEFAULT_USER_TIMEZONE)


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC (Mongo returns naive UTC unless tz_aware)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def offset_for(
    frequency: CoachingFrequency,
    mode: SchedulingMode,
    rng: Optional[random.Random] = None,
) -> timedelta:
    """
    Raw offset added to "now" before any time-of-day adjustment.

    Args:
        frequency: User's message frequency.
        mode: normal, bootstrap or retry.
        rng: Random source for bootstrap draws (module random if omitted).

    Returns:
        Offset as a timedelta.
    """
    frequency = CoachingFrequency(frequency)
    mode = SchedulingMode(mode)

    if mode == SchedulingMode.RETRY:
        return RETRY_OFFSETS[frequency]

    if mode == SchedulingMode.BOOTSTRAP:
        low, high = BOOTSTRAP_BOUNDS_HOURS[frequency]
        draw = (rng or random).uniform(low, high)
        return timedelta(hours=draw)

    return NORMAL_OFFSETS[frequency]


def _snap_to_target_hour(
    candidate: datetime,
    now: datetime,
    time_preference: TimePreference,
    tz: ZoneInfo,
) -> datetime:
    """Force the local hour of `candidate` to the canonical hour, keeping it after `now`."""
    target_hour = TARGET_HOURS[TimePreference(time_preference)]
    local = candidate.astimezone(tz).replace(hour=target_hour, minute=0, second=0, microsecond=0)

    # Aware arithmetic in the same zone is wall-clock arithmetic, so DST days keep 08:00
    while local.astimezone(timezone.utc) <= now:
        local = local + timedelta(days=1)

    return local.astimezone(timezone.utc)


def next_due(
    now: datetime,
    frequency: CoachingFrequency,
    time_preference: TimePreference,
    tz_name: Optional[str],
    mode: SchedulingMode = SchedulingMode.NORMAL,
    rng: Optional[random.Random] = None,
) -> datetime:
    """
    Compute the next instant at which a user becomes eligible.

    Normal and retry modes add the frequency offset and then move the
    result to the canonical local hour of the user's time preference
    (next day if that lands at or before `now`).

    Bootstrap mode returns `now` plus a random offset bounded by the
    frequency and is deliberately not snapped: the scheduler's window
    check applies the time preference when the user comes due, and new
    users stay staggered instead of clustering on one hour.

    Returns:
        UTC datetime strictly later than `now`.
    """
    now = ensure_utc(now)
    offset = offset_for(frequency, mode, rng)

    if SchedulingMode(mode) == SchedulingMode.BOOTSTRAP:
        return now + offset

    return _snap_to_target_hour(now + offset, now, time_preference, resolve_timezone(tz_name))


def local_hour(now: datetime, tz_name: Optional[str]) -> int:
    """Current hour (0-23) in the user's zone."""
    return ensure_utc(now).astimezone(resolve_timezone(tz_name)).hour


def time_window(time_preference: TimePreference) -> Tuple[int, int]:
    """Inclusive (first_hour, last_hour) window for a preference."""
    return TIME_WINDOWS[TimePreference(time_preference)]


def is_in_time_window(now: datetime, time_preference: TimePreference, tz_name: Optional[str]) -> bool:
    """
    Check whether the user's current local hour is inside their window.

    morning 06-11, afternoon 12-17, evening 18-21 (inclusive).
    """
    first, last = time_window(time_preference)
    return first <= local_hour(now, tz_name) <= last


def next_window_start(now: datetime, time_preference: TimePreference, tz_name: Optional[str]) -> datetime:
    """
    Next occurrence of the canonical hour for the user's window.

    Today if it is still ahead in the user's zone, otherwise tomorrow.
    """
    now = ensure_utc(now)
    return _snap_to_target_hour(now, now, time_preference, resolve_timezone(tz_name))
