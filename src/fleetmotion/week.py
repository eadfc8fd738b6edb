"""Synthetic week anchoring.

Waypoint timestamps are stored in a fixed reference week so a route
replays identically every calendar week.  Monday is day 0.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta

from fleetmotion.models.fleet import Waypoint

#: Monday 1 January 2024, the default reference week.
REFERENCE_MONDAY = date(2024, 1, 1)


def synthetic_weekday(moment: datetime | date) -> int:
    """Day of the synthetic week, Monday = 0 … Sunday = 6."""
    return moment.weekday()


def anchor_to_week(moment: datetime, reference_monday: date = REFERENCE_MONDAY) -> datetime:
    """Map *moment* onto the reference week, keeping weekday and time of day.

    Naive datetimes are taken as UTC.
    """
    if reference_monday.weekday() != 0:
        raise ValueError(f"reference_monday must be a Monday, got {reference_monday.isoformat()}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    day = reference_monday + timedelta(days=moment.weekday())
    return datetime.combine(day, time(0), tzinfo=moment.tzinfo) + (
        moment - moment.replace(hour=0, minute=0, second=0, microsecond=0)
    )


def waypoints_for_day(waypoints: Iterable[Waypoint], day_of_week: int) -> list[Waypoint]:
    """Waypoints scheduled on *day_of_week*, in sequence order."""
    return sorted(
        (w for w in waypoints if w.day_of_week == day_of_week),
        key=lambda w: w.sequence_number,
    )
