"""Analysis-day resolution.

An analysis day starts at `same_day_start_hour` local time instead of
midnight, so late-night activity (e.g. 01:30 with a 4h start) is counted
with the previous calendar day.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple

from tba.config import DayBoundaryConfig


def day_of(instant: datetime, config: DayBoundaryConfig) -> date:
    """Map an instant to its analysis day."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(config.zone)
    if local.hour >= config.same_day_start_hour:
        return local.date()
    return local.date() - timedelta(days=1)


def day_window(day: date, config: DayBoundaryConfig) -> Tuple[datetime, datetime]:
    """Half-open [start, end) window of `day` as UTC instants.

    Across a DST change the window is 23 or 25 hours long.
    """
    start_clock = time(hour=config.same_day_start_hour)
    start = datetime.combine(day, start_clock, tzinfo=config.zone)
    end = datetime.combine(day + timedelta(days=1), start_clock, tzinfo=config.zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
