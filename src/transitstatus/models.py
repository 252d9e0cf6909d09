"""Data models for the transit status engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum, IntFlag
from typing import Any, Generic, Hashable, List, Optional, Tuple, TypeVar

UNKNOWN_DIRECTION = "未知方向"
HEADSIGN_PREFIX = "往"

T = TypeVar("T")


class QueryKind(Enum):
    """Kinds of upstream query; each has its own TTL class."""
    METRO_FIRST_LAST = "metro_first_last"
    METRO_STATION_TIMETABLE = "metro_station_timetable"
    BUS_ARRIVALS = "bus_arrivals"
    METRO_EXITS = "metro_exits"
    BUS_STOPS_NEARBY = "bus_stops_nearby"
    BUS_ROUTE = "bus_route"


class StationClass(Enum):
    """Data-quality class of a station, selects its disambiguation rule."""
    TWO_TERMINUS = "two_terminus"
    BRANCH = "branch"
    TRANSFER = "transfer"
    UNRESTRICTED = "unrestricted"


class Direction(IntEnum):
    """Bus travel direction as reported upstream."""
    OUTBOUND = 0
    INBOUND = 1


class StopStatus(IntEnum):
    """Bus stop status codes as reported upstream."""
    APPROACHING = 0
    NOT_DISPATCHED = 1
    SKIPPED_TRAFFIC_CONTROL = 2
    LAST_BUS_DEPARTED = 3
    NOT_OPERATING_TODAY = 4


class ServiceDay(IntFlag):
    """Weekdays a scheduled time applies to."""
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 4
    THURSDAY = 8
    FRIDAY = 16
    SATURDAY = 32
    SUNDAY = 64
    NATIONAL_HOLIDAYS = 128

    @classmethod
    def for_weekday(cls, weekday: int) -> "ServiceDay":
        """Flag for a ``datetime.weekday()`` value (Monday == 0)."""
        return cls(1 << weekday)


def direction_label(headsign: Optional[str]) -> str:
    """Normalize a headsign to the "往X" form used as a direction key."""
    if not isinstance(headsign, str) or not headsign.strip():
        return UNKNOWN_DIRECTION
    headsign = headsign.strip()
    if headsign == UNKNOWN_DIRECTION or HEADSIGN_PREFIX in headsign:
        return headsign
    return f"{HEADSIGN_PREFIX}{headsign}"


@dataclass(frozen=True)
class Station:
    """A metro station from the reference data."""
    station_id: str
    name: str
    latitude: float
    longitude: float
    lines: Tuple[str, ...] = ()  # Line IDs served at this station
    name_en: Optional[str] = None
    is_transfer: bool = False
    station_class: StationClass = StationClass.UNRESTRICTED
    termini: Tuple[Tuple[str, ...], ...] = ()  # Aliases per terminus
    branch_prefix: Optional[str] = None


@dataclass(frozen=True)
class BusStop:
    """A bus stop as reported by the upstream stop query."""
    stop_uid: str
    name: str
    latitude: float
    longitude: float
    stop_id: Optional[str] = None
    name_en: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None


@dataclass(frozen=True)
class RawTimetableEntry:
    """A metro first/last-train or live timetable record.

    Times are minutes since midnight in the venue's local civil day.
    """
    line_id: Optional[str]
    station_id: Optional[str]
    headsign: str
    destination_station_id: Optional[str] = None
    destination_name: Optional[str] = None
    first_train: Optional[int] = None
    last_train: Optional[int] = None
    arrivals: Tuple[int, ...] = ()
    service_days: ServiceDay = ServiceDay(0)
    updated_at: Optional[datetime] = None

    @property
    def group_key(self) -> Tuple[Hashable, ...]:
        return (self.line_id, direction_label(self.headsign))

    @property
    def times(self) -> Tuple[int, ...]:
        """All time-of-day values carried by this entry."""
        if self.arrivals:
            return self.arrivals
        return tuple(t for t in (self.first_train, self.last_train) if t is not None)

    @property
    def estimate(self) -> Optional[int]:
        times = self.times
        return min(times) if times else None

    def applies_on(self, weekday: int) -> bool:
        """True if this entry runs on the given weekday, or has no mask."""
        if not self.service_days:
            return True
        return bool(self.service_days & ServiceDay.for_weekday(weekday))


@dataclass(frozen=True)
class RawArrivalEntry:
    """A live bus arrival estimate for one route/direction at a stop."""
    route_id: str
    route_name: str
    direction: Direction
    stop_status: StopStatus
    estimate_seconds: Optional[int] = None
    plate: Optional[str] = None
    stop_uid: Optional[str] = None
    stop_name: Optional[str] = None

    @property
    def group_key(self) -> Tuple[Hashable, ...]:
        return (self.route_id, self.direction)

    @property
    def estimate(self) -> Optional[int]:
        return self.estimate_seconds

    @property
    def estimate_minutes(self) -> Optional[int]:
        if self.estimate_seconds is None:
            return None
        return self.estimate_seconds // 60


@dataclass(frozen=True)
class MetroExit:
    """An exit of a metro station."""
    station_id: str
    exit_id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class BusRoute:
    """Terminal stops of a bus route in one direction."""
    route_uid: str
    direction: Optional[Direction] = None
    route_name: Optional[str] = None
    departure_stop_name: Optional[str] = None
    destination_stop_name: Optional[str] = None


@dataclass(frozen=True)
class DirectionGroup:
    """Entries sharing a route (or line) and a travel direction."""
    route_id: Optional[str]
    direction: Any  # headsign label for metro, Direction for bus
    entries: Tuple[Any, ...]
    destination: Optional[str] = None  # bus terminal stop, when resolved

    @property
    def earliest(self) -> Optional[int]:
        return self.entries[0].estimate if self.entries else None


@dataclass(frozen=True)
class NextEvent:
    """Next scheduled event; ``minutes_remaining`` is None when it is tomorrow."""
    time: int
    minutes_remaining: Optional[int]

    @property
    def is_next_day(self) -> bool:
        return self.minutes_remaining is None


@dataclass(frozen=True)
class DirectionNextTrain:
    """Next departure for one line/direction at a station."""
    line_id: Optional[str]
    headsign: str
    next_event: NextEvent


@dataclass(frozen=True)
class CacheKey:
    """Cache key: entity identifier plus query kind."""
    entity_id: str
    kind: QueryKind

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.entity_id}"


@dataclass(frozen=True)
class FetchResult:
    """Best available data for a cache key, possibly stale or empty."""
    payload: Tuple[Any, ...] = ()
    fetched_at: Optional[float] = None  # Unix timestamp of the upstream fetch
    stale: bool = False
    reason: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.payload


@dataclass
class StatusReport(Generic[T]):
    """Result handed to callers: data plus freshness diagnostics."""
    data: T
    stale: bool = False
    reason: Optional[str] = None
    last_updated: Optional[datetime] = None


@dataclass
class StationStatus:
    """Complete transit status for a metro station."""
    station: Station
    first_last: List[DirectionGroup]
    next_trains: List[DirectionNextTrain]
    last_updated: datetime
    reasons: List[str] = field(default_factory=list)
