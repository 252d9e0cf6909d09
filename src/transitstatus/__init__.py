"""transitstatus - Real-time metro and bus status for a campus portal."""

__version__ = "0.1.0"

from .models import (
    Station,
    BusStop,
    BusRoute,
    RawTimetableEntry,
    RawArrivalEntry,
    MetroExit,
    DirectionGroup,
    NextEvent,
    DirectionNextTrain,
    StatusReport,
    StationStatus,
)
from .status_engine import TransitStatusEngine
from .station_registry import StationRegistry
from .tdx_client import TDXClient
from .config import EngineConfig, load_config

__all__ = [
    "TransitStatusEngine",
    "StationRegistry",
    "TDXClient",
    "EngineConfig",
    "load_config",
    "Station",
    "BusStop",
    "BusRoute",
    "RawTimetableEntry",
    "RawArrivalEntry",
    "MetroExit",
    "DirectionGroup",
    "NextEvent",
    "DirectionNextTrain",
    "StatusReport",
    "StationStatus",
]
