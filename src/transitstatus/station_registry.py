"""Reference data for metro stations, and bus stop lookup helpers."""

import io
import logging
import math
from importlib import resources
from typing import Dict, List, Tuple

import pandas as pd

from .models import BusStop, Station, StationClass

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"station_id", "name", "latitude", "longitude"}
LIST_SEPARATOR = "|"
ALIAS_SEPARATOR = "/"


def _split(value: str, separator: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(separator) if part.strip())


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y")


class StationRegistry:
    """Loads and indexes metro station reference data."""

    def __init__(self):
        """Initialize an empty registry."""
        self.stations: Dict[str, Station] = {}
        self.stations_by_name: Dict[str, List[str]] = {}  # name -> [station_ids]

    def load_default(self) -> None:
        """Load the station table shipped with the package."""
        source = resources.files("transitstatus").joinpath("data/metro_stations.csv")
        with resources.as_file(source) as path:
            self.load_from_file(str(path))

    def load_from_file(self, path: str) -> None:
        """Load stations from a local CSV file."""
        logger.info(f"Loading station data from {path}")
        self._load_stations(pd.read_csv(path, dtype=str, keep_default_na=False))

    def load_from_string(self, csv_content: str) -> None:
        self._load_stations(pd.read_csv(io.StringIO(csv_content), dtype=str, keep_default_na=False))

    def _load_stations(self, frame: pd.DataFrame) -> None:
        """Create Station objects from a reference table."""
        missing = REQUIRED_COLUMNS - set(frame.columns)
        if missing:
            raise ValueError(f"Station data missing columns: {sorted(missing)}")

        for row in frame.to_dict("records"):
            station_class = row.get("station_class", "").strip() or StationClass.UNRESTRICTED.value
            is_transfer = _truthy(row.get("is_transfer", ""))
            station = Station(
                station_id=row["station_id"].strip(),
                name=row["name"].strip(),
                name_en=row.get("name_en", "").strip() or None,
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                lines=_split(row.get("lines", ""), LIST_SEPARATOR),
                is_transfer=is_transfer,
                # Transfer stations carry every line legitimately
                station_class=StationClass.TRANSFER if is_transfer else StationClass(station_class),
                termini=tuple(
                    _split(terminus, ALIAS_SEPARATOR)
                    for terminus in _split(row.get("termini", ""), LIST_SEPARATOR)
                ),
                branch_prefix=row.get("branch_prefix", "").strip() or None,
            )
            self.stations[station.station_id] = station
            ids = self.stations_by_name.setdefault(station.name, [])
            if station.station_id not in ids:
                ids.append(station.station_id)

        logger.info(f"Loaded {len(self.stations)} stations")

    def get_station(self, station_id: str) -> Station:
        """Get station by station_id."""
        if station_id not in self.stations:
            raise ValueError(f"Station {station_id} not found")
        return self.stations[station_id]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """
        Find stations by Chinese or English name.

        An exact Chinese name wins over partial matches, so "大安" does not
        also return "大安森林公園".
        """
        name_lower = name.lower().strip()
        if name_lower.endswith("站"):
            name_lower = name_lower[:-1]

        exact = self.stations_by_name.get(name_lower)
        if exact:
            return [self.stations[station_id] for station_id in exact]

        return [
            station
            for station in self.stations.values()
            if name_lower in station.name.lower()
            or (station.name_en and name_lower in station.name_en.lower())
        ]

    def all_stations(self) -> List[Station]:
        return list(self.stations.values())

    def clear(self) -> None:
        self.stations.clear()
        self.stations_by_name.clear()


def find_stops_by_location(
    stops: List[BusStop], lat: float, lon: float, max_distance: float = 0.01
) -> List[BusStop]:
    """Stops within ``max_distance`` degrees (planar) of a coordinate."""
    return [
        stop
        for stop in stops
        if math.hypot(stop.latitude - lat, stop.longitude - lon) <= max_distance
    ]


def find_stops_by_name(stops: List[BusStop], name: str) -> List[BusStop]:
    """
    All stops with exactly this name.

    The same name can belong to several StopUIDs (one per direction or
    curb side).
    """
    return [stop for stop in stops if stop.name == name]


def stop_uids_by_name(stops: List[BusStop], name: str) -> List[str]:
    return [stop.stop_uid for stop in find_stops_by_name(stops, name)]
