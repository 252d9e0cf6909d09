"""Next-departure arithmetic on minutes since local midnight."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .models import DirectionGroup, DirectionNextTrain, NextEvent

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def minutes_since_midnight(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def parse_time_of_day(value) -> Optional[int]:
    """
    Parse "HH:MM" or "HH:MM:SS" into minutes since midnight.

    Hours of 24 or more (service past midnight written as "24:05") wrap
    into the next civil day.

    Returns:
        Minutes in 0-1439, or None for blank or invalid input.
    """
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    hours, minutes = int(parts[0]), int(parts[1])
    if minutes >= 60 or hours >= 48:
        return None
    return (hours * 60 + minutes) % MINUTES_PER_DAY


def format_time_of_day(minutes: Optional[int]) -> str:
    if minutes is None:
        return "--"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def next_event(times: Iterable[int], now: int) -> Optional[NextEvent]:
    """
    Find the first event at or after ``now``.

    Args:
        times: Event times as minutes since midnight.
        now: Current time as minutes since midnight.

    Returns:
        NextEvent with minutes remaining; if every time has passed today, the
        first event of the next service day with ``minutes_remaining=None``;
        None when ``times`` is empty.
    """
    times = list(times)
    if not times:
        return None

    upcoming = [t for t in times if t >= now]
    if upcoming:
        time = min(upcoming)
        return NextEvent(time=time, minutes_remaining=time - now)
    return NextEvent(time=min(times), minutes_remaining=None)


def next_trains(groups: Iterable[DirectionGroup], now: int) -> List[DirectionNextTrain]:
    """
    Compute the next event independently for each direction group.

    Times live on a single civil day (0-1439). A late train written
    upstream as "24:05" has already wrapped to 00:05, so before midnight it
    is reported as tomorrow's first event rather than counted down.
    """
    results = []
    for group in groups:
        times = [t for entry in group.entries for t in entry.times]
        event = next_event(times, now)
        if event is None:
            logger.debug(f"No times for line {group.route_id} {group.direction}")
            continue
        results.append(DirectionNextTrain(line_id=group.route_id, headsign=group.direction, next_event=event))
    return results
