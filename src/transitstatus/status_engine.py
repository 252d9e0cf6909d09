"""Main transit status engine."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from .cache import CacheStore
from .clock import Clock
from .config import EngineConfig
from .disambiguator import DirectionDisambiguator
from .fetcher import FetchOrchestrator
from .grouping import group_entries
from .models import (
    BusRoute,
    BusStop,
    CacheKey,
    Direction,
    DirectionGroup,
    DirectionNextTrain,
    FetchResult,
    MetroExit,
    QueryKind,
    Station,
    StationStatus,
    StatusReport,
)
from .next_event import minutes_since_midnight, next_trains
from .station_registry import StationRegistry
from .tdx_client import TDXClient, entity_for_location, entity_for_name, entity_for_route

logger = logging.getLogger(__name__)


class TransitStatusEngine:
    """
    Real-time metro and bus status for the stations around campus.

    This class provides methods to:
    - Find stations by name or ID
    - Get first/last-train tables grouped by direction
    - Get the next train per direction, rolling over to tomorrow's first train
    - Get bus arrival estimates grouped by route and direction

    Upstream failures never raise: every query returns the best available
    data, possibly stale or empty, with a diagnostic reason.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client=None,
        clock: Optional[Clock] = None,
        load_stations: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration; defaults to EngineConfig().
            client: Upstream client; defaults to a TDXClient for ``config``.
            clock: Venue clock; defaults to one in ``config.timezone``.
            load_stations: If True, load station reference data on init. If
                False, populate ``station_registry`` manually.
        """
        self.config = config or EngineConfig()
        self.clock = clock or Clock(self.config.timezone)
        self.station_registry = StationRegistry()
        self.cache = CacheStore(self.clock)
        self.client = client or TDXClient(self.config)
        self.fetcher = FetchOrchestrator(self.client, self.cache, self.config)
        self.disambiguator = DirectionDisambiguator(self.station_registry.stations)

        if load_stations:
            if self.config.stations_file:
                self.station_registry.load_from_file(self.config.stations_file)
            else:
                self.station_registry.load_default()

    def get_station(self, station_input: str) -> Station:
        """
        Get a station by ID or name.

        Args:
            station_input: Either a station ID (e.g., "G05") or name (e.g., "公館").

        Returns:
            Station object.

        Raises:
            ValueError: If station not found.
        """
        try:
            return self.station_registry.get_station(station_input)
        except ValueError:
            pass

        stations = self.station_registry.find_stations_by_name(station_input)
        if not stations:
            raise ValueError(f"No station found matching '{station_input}'")

        return stations[0]

    def _report(self, result: FetchResult, data) -> StatusReport:
        last_updated = None
        if result.fetched_at is not None:
            last_updated = datetime.fromtimestamp(result.fetched_at, self.clock.tz)
        return StatusReport(data=data, stale=result.stale, reason=result.reason, last_updated=last_updated)

    def get_first_last_timetable(self, station: Station) -> StatusReport:
        """
        Get first/last-train times for a station, grouped by direction.

        Args:
            station: Station object (from get_station()).

        Returns:
            StatusReport whose data is a list of DirectionGroup of
            RawTimetableEntry.
        """
        result = self.fetcher.fetch(CacheKey(station.station_id, QueryKind.METRO_FIRST_LAST))
        entries = [e for e in result.payload if e.first_train is not None and e.last_train is not None]
        entries = self.disambiguator.filter(station.station_id, entries)
        return self._report(result, group_entries(entries))

    def get_next_trains(self, station: Station) -> StatusReport:
        """
        Get the next train per line and direction.

        Args:
            station: Station object (from get_station()).

        Returns:
            StatusReport whose data is a list of DirectionNextTrain. A
            direction whose service has ended today reports tomorrow's first
            train with ``minutes_remaining=None``.
        """
        result = self.fetcher.fetch(CacheKey(station.station_id, QueryKind.METRO_STATION_TIMETABLE))
        now = self.clock.now()

        weekday = now.weekday()
        entries = [e for e in result.payload if e.applies_on(weekday)]
        entries = self.disambiguator.filter(station.station_id, entries)
        groups = group_entries(entries)

        trains: List[DirectionNextTrain] = next_trains(groups, minutes_since_midnight(now))
        return self._report(result, trains)

    def get_bus_route(self, route_uid: str, direction: Optional[Direction] = None) -> StatusReport:
        """
        Get the terminal stops of a bus route.

        Args:
            route_uid: TDX RouteUID.
            direction: Travel direction; the upstream picks one if omitted.

        Returns:
            StatusReport whose data is a BusRoute, or None if unavailable.
        """
        result = self.fetcher.fetch(CacheKey(entity_for_route(route_uid, direction), QueryKind.BUS_ROUTE))
        route: Optional[BusRoute] = result.payload[0] if result.payload else None
        return self._report(result, route)

    def _with_destination(self, group: DirectionGroup) -> DirectionGroup:
        route = self.get_bus_route(group.route_id, group.direction).data
        if route is None or not route.destination_stop_name:
            return group
        return replace(group, destination=route.destination_stop_name)

    def get_bus_arrivals(
        self,
        stop_uid: Optional[str] = None,
        stop_name: Optional[str] = None,
        resolve_destinations: bool = True,
    ) -> StatusReport:
        """
        Get live bus arrivals at a stop, grouped by route and direction.

        Args:
            stop_uid: TDX StopUID (preferred).
            stop_name: Stop display name; all stops sharing it are merged upstream.
            resolve_destinations: If True, label each group with its route's
                terminal stop. A failed lookup leaves the label unset and does
                not affect the arrivals.

        Returns:
            StatusReport whose data is a list of DirectionGroup of
            RawArrivalEntry, soonest first.
        """
        if stop_uid:
            entity = stop_uid
        elif stop_name:
            entity = entity_for_name(stop_name)
        else:
            raise ValueError("Either stop_uid or stop_name is required")

        result = self.fetcher.fetch(CacheKey(entity, QueryKind.BUS_ARRIVALS))
        groups: List[DirectionGroup] = group_entries(result.payload)
        if resolve_destinations:
            groups = [self._with_destination(group) for group in groups]
        return self._report(result, groups)

    def get_station_exits(self, station: Station) -> StatusReport:
        result = self.fetcher.fetch(CacheKey(station.station_id, QueryKind.METRO_EXITS))
        exits: List[MetroExit] = list(result.payload)
        return self._report(result, exits)

    def get_nearby_bus_stops(
        self, lat: Optional[float] = None, lon: Optional[float] = None, radius: Optional[int] = None
    ) -> StatusReport:
        """Bus stops around a coordinate; defaults to the campus centre."""
        entity = entity_for_location(
            lat if lat is not None else self.config.campus_lat,
            lon if lon is not None else self.config.campus_lon,
            radius if radius is not None else self.config.bus_stop_radius,
        )
        result = self.fetcher.fetch(CacheKey(entity, QueryKind.BUS_STOPS_NEARBY))
        stops: List[BusStop] = list(result.payload)
        return self._report(result, stops)

    def get_station_data(self, station_input: str) -> StationStatus:
        """
        Get complete data for a station.

        Args:
            station_input: Station ID or name.

        Returns:
            StationStatus with first/last-train groups and next trains.
        """
        station = self.get_station(station_input)
        first_last = self.get_first_last_timetable(station)
        upcoming = self.get_next_trains(station)

        reasons = [r for r in (first_last.reason, upcoming.reason) if r]
        return StationStatus(
            station=station,
            first_last=first_last.data,
            next_trains=upcoming.data,
            last_updated=self.clock.now(),
            reasons=list(dict.fromkeys(reasons)),
        )

    def clear_cache(self) -> None:
        """Drop cached payloads and re-enable a latched upstream."""
        self.cache.clear()
        self.fetcher.reset_configuration()
        logger.info("Cleared transit status cache")
