"""TDX transit data fetcher and parser (via the same-origin proxy)."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .config import EngineConfig
from .errors import ConfigurationError, MalformedData, RateLimited, UpstreamUnavailable
from .models import (
    BusRoute,
    BusStop,
    CacheKey,
    Direction,
    MetroExit,
    QueryKind,
    RawArrivalEntry,
    RawTimetableEntry,
    ServiceDay,
    StopStatus,
    UNKNOWN_DIRECTION,
)
from .next_event import parse_time_of_day

logger = logging.getLogger(__name__)

NAME_PREFIX = "name:"

ROUTE_DIRECTION_SEPARATOR = "_"

# Proxy endpoint and response key per query kind; None means the body is the record
ENDPOINTS: Dict[QueryKind, Tuple[str, Optional[str]]] = {
    QueryKind.METRO_FIRST_LAST: ("/api/tdx/metro-timetable", "Timetable"),
    QueryKind.METRO_STATION_TIMETABLE: ("/api/tdx/metro-station-timetable", "Timetable"),
    QueryKind.BUS_ARRIVALS: ("/api/tdx/bus-realtime", "BusRealTimeInfos"),
    QueryKind.METRO_EXITS: ("/api/tdx/metro-exits", "Exits"),
    QueryKind.BUS_STOPS_NEARBY: ("/api/tdx/bus-stops", "Stops"),
    QueryKind.BUS_ROUTE: ("/api/tdx/bus-route", None),
}

# Error bodies the proxy returns when TDX credentials are absent
NOT_CONFIGURED_MARKERS = (
    "TDX API Key 未設定",
    "Valid API Key Required",
    "integration not configured",
)

SERVICE_DAY_FIELDS = {
    "Monday": ServiceDay.MONDAY,
    "Tuesday": ServiceDay.TUESDAY,
    "Wednesday": ServiceDay.WEDNESDAY,
    "Thursday": ServiceDay.THURSDAY,
    "Friday": ServiceDay.FRIDAY,
    "Saturday": ServiceDay.SATURDAY,
    "Sunday": ServiceDay.SUNDAY,
    "NationalHolidays": ServiceDay.NATIONAL_HOLIDAYS,
}


def _field(name: str) -> Callable[[Dict[str, Any]], Any]:
    return lambda record: record.get(name) or None


# Live timetables do not use a consistent name for the time field; tried in order
TIME_ACCESSORS: List[Tuple[str, Callable[[Dict[str, Any]], Any]]] = [
    (name, _field(name))
    for name in (
        "ArrivalTime",
        "arrivalTime",
        "ArrivalTime1",
        "ArrivalTime2",
        "Time",
        "DepartureTime",
        "departureTime",
    )
]


def entity_for_name(name: str) -> str:
    """Entity id that addresses a station or stop by display name."""
    return f"{NAME_PREFIX}{name}"


def entity_for_location(lat: float, lon: float, radius: int) -> str:
    return f"{lat},{lon},{radius}"


def entity_for_route(route_uid: str, direction: Optional[int] = None) -> str:
    """Entity id for one direction of a bus route, e.g. "TPE15680_0"."""
    if direction is None:
        return route_uid
    return f"{route_uid}{ROUTE_DIRECTION_SEPARATOR}{int(direction)}"


def _zh(value: Any) -> Optional[str]:
    """Chinese text of a TDX name object (or the value itself if a string)."""
    if isinstance(value, dict):
        return value.get("Zh_tw") or None
    if isinstance(value, str):
        return value or None
    return None


def _id(value: Any) -> Optional[str]:
    """Identifier as a string; upstream sometimes sends numbers."""
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value) or None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _stop_name(record: Dict[str, Any], prefix: str) -> Optional[str]:
    """Terminal stop name under any of the spellings the route payload uses."""
    camel = prefix[0].lower() + prefix[1:]
    return (
        _text(record.get(f"{camel}StopName"))
        or _text(record.get(f"{prefix}StopNameZh"))
        or _zh(record.get(f"{prefix}StopName"))
    )


def _en(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("En") or None
    return None


def _position(value: Any) -> Tuple[Optional[float], Optional[float]]:
    if not isinstance(value, dict):
        return None, None
    try:
        return float(value["PositionLat"]), float(value["PositionLon"])
    except (KeyError, TypeError, ValueError):
        return None, None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _service_days(value: Any) -> ServiceDay:
    days = ServiceDay(0)
    if isinstance(value, dict):
        for name, flag in SERVICE_DAY_FIELDS.items():
            if value.get(name):
                days |= flag
    return days


def probe_time(timetable: Dict[str, Any]) -> Optional[int]:
    """
    Extract a time of day from a nested timetable record.

    Tries each accessor in TIME_ACCESSORS; the first present value wins.

    Returns:
        Minutes since midnight, or None if no accessor yields a valid time.
    """
    for name, accessor in TIME_ACCESSORS:
        raw = accessor(timetable)
        if raw is None:
            continue
        minutes = parse_time_of_day(raw)
        if minutes is None:
            logger.debug(f"Time field {name} has unparseable value {raw!r}")
            return None
        logger.debug(f"Time field matched accessor {name}")
        return minutes
    return None


class TDXClient:
    """Fetches and parses TDX metro and bus data through the portal's proxy."""

    def __init__(self, config: Optional[EngineConfig] = None, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: Engine configuration (proxy URL, timeout).
            session: Optional requests session, e.g. for connection reuse.
        """
        self.config = config or EngineConfig()
        self.session = session or requests.Session()
        self._parsers = {
            QueryKind.METRO_FIRST_LAST: self._parse_first_last,
            QueryKind.METRO_STATION_TIMETABLE: self._parse_station_timetable,
            QueryKind.BUS_ARRIVALS: self._parse_bus_arrival,
            QueryKind.METRO_EXITS: self._parse_exit,
            QueryKind.BUS_STOPS_NEARBY: self._parse_bus_stop,
            QueryKind.BUS_ROUTE: self._parse_bus_route,
        }

    def fetch(self, key: CacheKey) -> List[Any]:
        """
        Run one logical upstream query.

        Args:
            key: Entity identifier and query kind.

        Returns:
            Parsed records; malformed records are skipped.

        Raises:
            ConfigurationError, RateLimited, UpstreamUnavailable, MalformedData
        """
        path, response_key = ENDPOINTS[key.kind]
        body = self._request(path, self._params_for(key))

        if response_key is None:
            return self._parse_records([body], key)

        records = body.get(response_key) or []
        if not isinstance(records, list):
            raise MalformedData(f"{response_key} is not a list in response from {path}")
        return self._parse_records(records, key)

    @staticmethod
    def _params_for(key: CacheKey) -> Dict[str, Any]:
        entity = key.entity_id
        by_name = entity.startswith(NAME_PREFIX)
        value = entity[len(NAME_PREFIX):] if by_name else entity

        if key.kind == QueryKind.BUS_ARRIVALS:
            return {"stopName": value} if by_name else {"stopUID": value}
        if key.kind == QueryKind.BUS_STOPS_NEARBY:
            try:
                lat, lon, radius = value.split(",")
            except ValueError:
                raise MalformedData(f"Bad location entity {entity!r}")
            return {"lat": lat, "lon": lon, "radius": radius}
        if key.kind == QueryKind.BUS_ROUTE:
            route_uid, separator, direction = value.rpartition(ROUTE_DIRECTION_SEPARATOR)
            if separator and direction.isdigit():
                return {"routeUID": route_uid, "direction": direction}
            return {"routeUID": value}
        return {"stationName": value} if by_name else {"stationId": value}

    def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.config.proxy_base_url}{path}"
        logger.debug(f"Fetching {url} {params}")
        try:
            response = self.session.get(url, params=params, timeout=self.config.http_timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Request to {path} failed: {e}")

        if response.status_code == 429:
            raise RateLimited(f"Rate limited by {path}")

        if not response.ok:
            error_body = self._json_or_empty(response)
            error = str(error_body.get("error") or "")
            if response.status_code == 500 and any(marker in error for marker in NOT_CONFIGURED_MARKERS):
                raise ConfigurationError(f"{path}: {error}")
            message = error_body.get("message") or error or response.reason
            raise UpstreamUnavailable(
                f"HTTP {response.status_code} from {path}: {message}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedData(f"Invalid JSON from {path}: {e}")
        if not isinstance(body, dict):
            raise MalformedData(f"Unexpected response type from {path}: {type(body).__name__}")
        return body

    @staticmethod
    def _json_or_empty(response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _parse_records(self, records: List[Any], key: CacheKey) -> List[Any]:
        parser = self._parsers[key.kind]
        parsed = []
        skipped = 0
        for record in records:
            try:
                if not isinstance(record, dict):
                    raise MalformedData(f"Record is {type(record).__name__}, not an object")
                parsed.append(parser(record))
            except MalformedData as e:
                skipped += 1
                logger.debug(f"Skipping record for {key}: {e}")
        if skipped:
            logger.warning(f"Skipped {skipped} malformed of {len(records)} records for {key}")
        return parsed

    @staticmethod
    def _parse_first_last(record: Dict[str, Any]) -> RawTimetableEntry:
        first_train = parse_time_of_day(record.get("FirstTrainTime"))
        last_train = parse_time_of_day(record.get("LastTrainTime"))
        if first_train is None or last_train is None:
            raise MalformedData("Missing FirstTrainTime/LastTrainTime")

        destination_name = _zh(record.get("DestinationStationName"))
        return RawTimetableEntry(
            line_id=_id(record.get("LineID")) or _id(record.get("LineNo")),
            station_id=_id(record.get("StationID")),
            headsign=_text(record.get("TripHeadSign")) or destination_name or UNKNOWN_DIRECTION,
            destination_station_id=_id(record.get("DestinationStaionID")) or _id(record.get("DestinationStationID")),
            destination_name=destination_name,
            first_train=first_train,
            last_train=last_train,
            service_days=_service_days(record.get("ServiceDay")),
            updated_at=_parse_timestamp(record.get("SrcUpdateTime") or record.get("UpdateTime")),
        )

    @staticmethod
    def _parse_station_timetable(record: Dict[str, Any]) -> RawTimetableEntry:
        nested = record.get("Timetables")
        if isinstance(nested, list) and nested:
            candidates = [t for t in nested if isinstance(t, dict)]
        else:
            candidates = [record]

        arrivals = []
        for timetable in candidates:
            minutes = probe_time(timetable)
            if minutes is None:
                logger.debug(f"No time field among {sorted(timetable.keys())}")
                continue
            arrivals.append(minutes)
        if not arrivals:
            raise MalformedData("No usable times in timetable record")

        destination_name = _zh(record.get("DestinationStationName"))
        direction = record.get("Direction")
        headsign = (
            destination_name
            or _text(direction)
            or _text(record.get("TripHeadSign"))
            or UNKNOWN_DIRECTION
        )
        return RawTimetableEntry(
            line_id=_id(record.get("LineID")) or _id(record.get("RouteID")) or _id(record.get("LineNo")),
            station_id=_id(record.get("StationID")),
            headsign=headsign,
            destination_station_id=_id(record.get("DestinationStaionID")) or _id(record.get("DestinationStationID")),
            destination_name=destination_name,
            arrivals=tuple(sorted(arrivals)),
            service_days=_service_days(record.get("ServiceDay")),
            updated_at=_parse_timestamp(record.get("SrcUpdateTime") or record.get("UpdateTime")),
        )

    @staticmethod
    def _parse_bus_arrival(record: Dict[str, Any]) -> RawArrivalEntry:
        route_id = _id(record.get("RouteUID")) or _id(record.get("RouteID"))
        if not route_id:
            raise MalformedData("Missing RouteUID")
        try:
            direction = Direction(int(record.get("Direction")))
            stop_status = StopStatus(int(record.get("StopStatus", StopStatus.APPROACHING)))
        except (TypeError, ValueError):
            raise MalformedData(
                f"Bad Direction/StopStatus {record.get('Direction')!r}/{record.get('StopStatus')!r}"
            )

        estimate = record.get("EstimateTime")
        try:
            estimate_seconds = int(estimate) if estimate is not None else None
        except (TypeError, ValueError):
            estimate_seconds = None

        return RawArrivalEntry(
            route_id=route_id,
            route_name=_zh(record.get("RouteName")) or route_id,
            direction=direction,
            stop_status=stop_status,
            estimate_seconds=estimate_seconds,
            plate=_id(record.get("PlateNumb")),
            stop_uid=_id(record.get("StopUID")),
            stop_name=_zh(record.get("StopName")),
        )

    @staticmethod
    def _parse_exit(record: Dict[str, Any]) -> MetroExit:
        exit_id = _id(record.get("ExitID"))
        if not exit_id:
            raise MalformedData("Missing ExitID")
        lat, lon = _position(record.get("ExitPosition"))
        description = record.get("ExitDescription")
        return MetroExit(
            station_id=_id(record.get("StationID")) or "",
            exit_id=exit_id,
            name=_zh(record.get("ExitName")) or exit_id,
            latitude=lat,
            longitude=lon,
            description=_zh(description),
        )

    @staticmethod
    def _parse_bus_route(record: Dict[str, Any]) -> BusRoute:
        route_uid = _id(record.get("routeUID")) or _id(record.get("RouteUID"))
        if not route_uid:
            raise MalformedData("Missing routeUID")

        raw_direction = record.get("direction", record.get("Direction"))
        try:
            direction = Direction(int(raw_direction)) if raw_direction is not None else None
        except (TypeError, ValueError):
            direction = None

        return BusRoute(
            route_uid=route_uid,
            direction=direction,
            route_name=_text(record.get("routeName")) or _zh(record.get("RouteName")),
            departure_stop_name=_stop_name(record, "Departure"),
            destination_stop_name=_stop_name(record, "Destination"),
        )

    @staticmethod
    def _parse_bus_stop(record: Dict[str, Any]) -> BusStop:
        stop_uid = _id(record.get("StopUID"))
        name = _zh(record.get("StopName"))
        lat, lon = _position(record.get("StopPosition"))
        if not stop_uid or not name or lat is None:
            raise MalformedData("Missing StopUID/StopName/StopPosition")
        return BusStop(
            stop_uid=stop_uid,
            name=name,
            latitude=lat,
            longitude=lon,
            stop_id=_id(record.get("StopID")),
            name_en=_en(record.get("StopName")),
            address=_text(record.get("StopAddress")),
            city=_text(record.get("City")),
        )
