from __future__ import annotations

from typing import Iterator

STEP_MINUTES = 5
MINUTES_PER_DAY = 24 * 60


def time_to_minutes(time_str: str) -> int:
    """Minutes since 00:00. A bare ``00:00`` is midnight at the end of the day (1440)."""
    hours, minutes = (int(part) for part in time_str.strip().split(":"))
    if hours == 0 and minutes == 0:
        return MINUTES_PER_DAY
    return hours * 60 + minutes


def minutes_to_time(total: int) -> str:
    total = int(total) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(time_str: str, step: int = STEP_MINUTES) -> str:
    # Nearest rounding; plot events may shift by up to half a step.
    minutes = time_to_minutes(time_str)
    return minutes_to_time(round(minutes / step) * step)


def add_minutes(time_str: str, minutes: int) -> str:
    return minutes_to_time(time_to_minutes(time_str) + minutes)


def iter_times(start: str, end: str, step: int = STEP_MINUTES) -> Iterator[str]:
    current = time_to_minutes(start)
    stop = time_to_minutes(end)
    while current <= stop:
        yield minutes_to_time(current)
        current += step
