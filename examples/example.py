"""Example usage of TransitStatusEngine."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import transitstatus
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitstatus.config import load_config
from transitstatus.models import StopStatus
from transitstatus.next_event import format_time_of_day
from transitstatus.status_engine import TransitStatusEngine

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

STOP_STATUS_TEXT = {
    StopStatus.APPROACHING: "approaching",
    StopStatus.NOT_DISPATCHED: "not yet departed",
    StopStatus.SKIPPED_TRAFFIC_CONTROL: "not stopping (traffic control)",
    StopStatus.LAST_BUS_DEPARTED: "last bus has left",
    StopStatus.NOT_OPERATING_TODAY: "not operating today",
}


def print_station_data(engine: TransitStatusEngine, station_input: str):
    """
    Fetch and display next trains and first/last trains for a station.

    Args:
        engine: Engine instance.
        station_input: Station name or ID (e.g., "公館" or "G05")
    """
    station_data = engine.get_station_data(station_input)
    station = station_data.station

    print(f"\nStation: {station.name} ({station.name_en}, ID: {station.station_id})")
    print(f"Lines: {', '.join(station.lines)}")
    print(f"Updated: {station_data.last_updated.strftime('%H:%M:%S')}\n")

    print("NEXT TRAINS:")
    if station_data.next_trains:
        for train in station_data.next_trains:
            event = train.next_event
            if event.is_next_day:
                remaining = "first train tomorrow"
            elif event.minutes_remaining == 0:
                remaining = "arriving"
            else:
                remaining = f"{event.minutes_remaining} min"
            print(f"  {train.line_id} {train.headsign}: {format_time_of_day(event.time)} ({remaining})")
    else:
        print("  No information available")

    print("\nFIRST / LAST TRAINS:")
    if station_data.first_last:
        for group in station_data.first_last:
            for entry in group.entries:
                print(
                    f"  {group.route_id} {group.direction}: "
                    f"{format_time_of_day(entry.first_train)} - {format_time_of_day(entry.last_train)}"
                )
    else:
        print("  No information available")

    for reason in station_data.reasons:
        print(f"\n(note: {reason})")


def print_bus_arrivals(engine: TransitStatusEngine, stop_name: str):
    report = engine.get_bus_arrivals(stop_name=stop_name)

    print(f"\nBUS ARRIVALS at {stop_name}:")
    if not report.data:
        print("  No information available")
    for group in report.data:
        first = group.entries[0]
        if first.estimate_minutes is not None:
            status = "arriving" if first.estimate_minutes == 0 else f"{first.estimate_minutes} min"
        else:
            status = STOP_STATUS_TEXT.get(first.stop_status, "unknown")
        extra = f" (+{len(group.entries) - 1} more)" if len(group.entries) > 1 else ""
        heading = f"往{group.destination}" if group.destination else group.direction.name.lower()
        print(f"  {first.route_name} [{heading}]: {status}{extra}")
    if report.stale:
        print(f"  (showing cached data: {report.reason})")


if __name__ == "__main__":
    engine = TransitStatusEngine(load_config())

    if len(sys.argv) > 2 and sys.argv[1] == "bus":
        print_bus_arrivals(engine, " ".join(sys.argv[2:]))
    elif len(sys.argv) > 1:
        try:
            print_station_data(engine, " ".join(sys.argv[1:]))
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        for station in engine.station_registry.all_stations():
            print_station_data(engine, station.station_id)
