"""
Daily dosing schedules derived from a doses-per-day frequency.
"""

from datetime import datetime
from typing import Optional, Sequence, Tuple

from errors import ValidationError

MIN_FREQUENCY = 1
MAX_FREQUENCY = 24
FIRST_DOSE_HOUR = 8

FIXED_SCHEDULES = {
    1: ("08:00",),
    2: ("08:00", "20:00"),
    3: ("08:00", "14:00", "20:00"),
    4: ("08:00", "12:00", "16:00", "20:00"),
}


def validate_frequency(frequency_per_day: int) -> None:
    if not isinstance(frequency_per_day, int) or isinstance(frequency_per_day, bool):
        raise ValidationError("Frequency must be an integer", details={"frequency_per_day": frequency_per_day})
    if not MIN_FREQUENCY <= frequency_per_day <= MAX_FREQUENCY:
        raise ValidationError(
            "Frequency must be between 1 and 24 times per day",
            details={"frequency_per_day": frequency_per_day},
        )


def dose_interval_hours(frequency_per_day: int) -> int:
    validate_frequency(frequency_per_day)
    return 24 // frequency_per_day


def schedule_times(frequency_per_day: int) -> Tuple[str, ...]:
    """
    Time-of-day strings (HH:MM) for each daily dose.

    One to four doses use fixed tables; higher frequencies are spaced evenly
    from 08:00, wrapping past midnight.
    """
    validate_frequency(frequency_per_day)
    if frequency_per_day in FIXED_SCHEDULES:
        return FIXED_SCHEDULES[frequency_per_day]

    interval = 24 // frequency_per_day
    return tuple(
        "%02d:00" % ((FIRST_DOSE_HOUR + i * interval) % 24)
        for i in range(frequency_per_day)
    )


def is_due_soon(frequency_per_day: int, last_taken: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Due when never taken, or when a full dose interval has elapsed since the last dose."""
    if last_taken is None:
        return True
    now = now or datetime.now()
    hours_since = int((now - last_taken).total_seconds() // 3600)
    return hours_since >= dose_interval_hours(frequency_per_day)


def next_scheduled_time(times: Sequence[str]) -> str:
    # First slot of the day, independent of the current time
    return times[0] if times else "Not scheduled"
