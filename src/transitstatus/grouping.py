"""Group arrival/timetable records by route and direction."""

from typing import Any, Dict, Hashable, Iterable, List

from .models import DirectionGroup


def _estimate_sort_key(estimate):
    # Unknown estimates sort after every known one
    return (estimate is None, estimate if estimate is not None else 0)


def group_entries(entries: Iterable[Any]) -> List[DirectionGroup]:
    """
    Group entries by ``entry.group_key`` and order them by ``entry.estimate``.

    Within a group entries sort ascending by estimate, unknown last. Groups
    sort by their earliest estimate, groups without any timed entry last.
    Both sorts are stable, so ties keep input order.

    Args:
        entries: RawArrivalEntry or RawTimetableEntry objects.

    Returns:
        Ordered list of DirectionGroup.
    """
    buckets: Dict[Hashable, List[Any]] = {}
    for entry in entries:
        buckets.setdefault(entry.group_key, []).append(entry)

    groups = []
    for (route_id, direction), members in buckets.items():
        members.sort(key=lambda e: _estimate_sort_key(e.estimate))
        groups.append(DirectionGroup(route_id=route_id, direction=direction, entries=tuple(members)))

    groups.sort(key=lambda g: _estimate_sort_key(g.earliest))
    return groups
