"""Engine configuration loaded from the environment."""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv

from .clock import DEFAULT_TIMEZONE
from .models import QueryKind

logger = logging.getLogger(__name__)

# Campus centre used for the nearby bus stop query
CAMPUS_LAT = 25.0173405
CAMPUS_LON = 121.5397518


@dataclass(frozen=True)
class EngineConfig:
    proxy_base_url: str = "http://localhost:3000"
    http_timeout: float = 10.0
    timezone: str = DEFAULT_TIMEZONE

    # TTL classes: schedule-like data (long) vs live estimates (short)
    ttl_first_last: float = 300.0
    ttl_station_timetable: float = 60.0
    ttl_bus_arrivals: float = 30.0
    ttl_exits: float = 3600.0
    ttl_bus_stops: float = 60.0
    ttl_bus_route: float = 3600.0

    campus_lat: float = CAMPUS_LAT
    campus_lon: float = CAMPUS_LON
    bus_stop_radius: int = 1000  # meters

    stations_file: Optional[str] = None  # None means the packaged CSV

    def ttl_for(self, kind: QueryKind) -> float:
        ttls: Dict[QueryKind, float] = {
            QueryKind.METRO_FIRST_LAST: self.ttl_first_last,
            QueryKind.METRO_STATION_TIMETABLE: self.ttl_station_timetable,
            QueryKind.BUS_ARRIVALS: self.ttl_bus_arrivals,
            QueryKind.METRO_EXITS: self.ttl_exits,
            QueryKind.BUS_STOPS_NEARBY: self.ttl_bus_stops,
            QueryKind.BUS_ROUTE: self.ttl_bus_route,
        }
        return ttls[kind]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def load_config(env_file: Optional[str] = None) -> EngineConfig:
    """
    Build an EngineConfig from environment variables.

    Variables in a ``.env`` file are loaded first (without overriding ones
    already set in the process environment).

    Args:
        env_file: Optional path to a dotenv file. Defaults to ``.env`` lookup.

    Returns:
        EngineConfig instance.
    """
    load_dotenv(env_file)

    defaults = EngineConfig()
    return EngineConfig(
        proxy_base_url=os.getenv("TRANSIT_PROXY_BASE_URL", defaults.proxy_base_url).rstrip("/"),
        http_timeout=_env_float("TRANSIT_HTTP_TIMEOUT_SECONDS", defaults.http_timeout),
        timezone=os.getenv("TRANSIT_TIMEZONE", defaults.timezone),
        ttl_first_last=_env_float("TRANSIT_TTL_FIRST_LAST_SECONDS", defaults.ttl_first_last),
        ttl_station_timetable=_env_float(
            "TRANSIT_TTL_STATION_TIMETABLE_SECONDS", defaults.ttl_station_timetable
        ),
        ttl_bus_arrivals=_env_float("TRANSIT_TTL_BUS_ARRIVALS_SECONDS", defaults.ttl_bus_arrivals),
        ttl_exits=_env_float("TRANSIT_TTL_EXITS_SECONDS", defaults.ttl_exits),
        ttl_bus_stops=_env_float("TRANSIT_TTL_BUS_STOPS_SECONDS", defaults.ttl_bus_stops),
        ttl_bus_route=_env_float("TRANSIT_TTL_BUS_ROUTE_SECONDS", defaults.ttl_bus_route),
        campus_lat=_env_float("TRANSIT_CAMPUS_LAT", defaults.campus_lat),
        campus_lon=_env_float("TRANSIT_CAMPUS_LON", defaults.campus_lon),
        bus_stop_radius=_env_int("TRANSIT_BUS_STOP_RADIUS_M", defaults.bus_stop_radius),
        stations_file=os.getenv("TRANSIT_STATIONS_FILE") or None,
    )
