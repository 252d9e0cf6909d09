"""Drops timetable records claiming implausible directions for a station."""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .models import RawTimetableEntry, Station, StationClass

logger = logging.getLogger(__name__)

Rule = Callable[[Station, RawTimetableEntry], bool]


def _names_terminus(station: Station, entry: RawTimetableEntry) -> bool:
    text = f"{entry.headsign or ''} {entry.destination_name or ''}"
    return any(alias in text for aliases in station.termini for alias in aliases)


def _on_branch(station: Station, entry: RawTimetableEntry) -> bool:
    # Upstream sometimes omits the line; nothing to check against then
    if not entry.line_id or not station.branch_prefix:
        return True
    return str(entry.line_id).startswith(station.branch_prefix)


def _accept_all(station: Station, entry: RawTimetableEntry) -> bool:
    return True


RULES: Dict[StationClass, Rule] = {
    StationClass.TWO_TERMINUS: _names_terminus,
    StationClass.BRANCH: _on_branch,
    StationClass.TRANSFER: _accept_all,
    StationClass.UNRESTRICTED: _accept_all,
}


class DirectionDisambiguator:
    """
    Filters upstream records using the station's data-quality class.

    The same rule table is applied to first/last-train tables and live
    timetables. Stations not present in ``stations`` are not filtered.
    """

    def __init__(self, stations: Mapping[str, Station], rules: Optional[Dict[StationClass, Rule]] = None):
        self.stations = stations
        self.rules = rules if rules is not None else RULES

    def filter(self, station_id: str, entries: Iterable[RawTimetableEntry]) -> List[RawTimetableEntry]:
        """
        Drop entries whose direction/line cannot occur at this station.

        Args:
            station_id: Station the entries were requested for.
            entries: Raw timetable records.

        Returns:
            The accepted entries, in input order.
        """
        entries = list(entries)
        station = self.stations.get(station_id)
        if station is None:
            return entries

        rule = self.rules.get(station.station_class, _accept_all)
        kept = []
        for entry in entries:
            if rule(station, entry):
                kept.append(entry)
            else:
                logger.debug(
                    f"Dropping direction {entry.headsign!r} (line {entry.line_id}) at {station.name}"
                )
        return kept
