"""Tests for TDXClient request classification and record parsing."""

import unittest
from unittest.mock import MagicMock

import requests

import fakes  # noqa: F401  (puts src on sys.path)

from transitstatus.config import EngineConfig
from transitstatus.errors import (
    ConfigurationError,
    MalformedData,
    RateLimited,
    UpstreamUnavailable,
)
from transitstatus.models import CacheKey, Direction, QueryKind, ServiceDay, StopStatus
from transitstatus.tdx_client import (
    TDXClient,
    entity_for_location,
    entity_for_name,
    entity_for_route,
    probe_time,
)


def make_response(status_code=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = "Reason"
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body if body is not None else {}
    return response


class TestTDXClientRequests(unittest.TestCase):
    """Test HTTP status classification."""

    def setUp(self):
        self.session = MagicMock()
        self.client = TDXClient(EngineConfig(proxy_base_url="http://proxy.test"), session=self.session)
        self.key = CacheKey("G05", QueryKind.METRO_FIRST_LAST)

    def test_request_url_and_params(self):
        self.session.get.return_value = make_response(body={"Timetable": []})

        self.assertEqual(self.client.fetch(self.key), [])
        self.session.get.assert_called_once_with(
            "http://proxy.test/api/tdx/metro-timetable",
            params={"stationId": "G05"},
            timeout=10.0,
        )

    def test_name_addressing(self):
        """Entities prefixed with name: are sent as display-name queries."""
        self.session.get.return_value = make_response(body={})

        self.client.fetch(CacheKey(entity_for_name("公館"), QueryKind.METRO_STATION_TIMETABLE))
        self.assertEqual(self.session.get.call_args.kwargs["params"], {"stationName": "公館"})

        self.client.fetch(CacheKey(entity_for_name("臺大"), QueryKind.BUS_ARRIVALS))
        self.assertEqual(self.session.get.call_args.kwargs["params"], {"stopName": "臺大"})

        self.client.fetch(CacheKey("TPE15438", QueryKind.BUS_ARRIVALS))
        self.assertEqual(self.session.get.call_args.kwargs["params"], {"stopUID": "TPE15438"})

    def test_location_addressing(self):
        self.session.get.return_value = make_response(body={"Stops": []})

        self.client.fetch(CacheKey(entity_for_location(25.01, 121.53, 500), QueryKind.BUS_STOPS_NEARBY))
        self.assertEqual(
            self.session.get.call_args.kwargs["params"],
            {"lat": "25.01", "lon": "121.53", "radius": "500"},
        )

    def test_missing_credentials(self):
        """HTTP 500 with the not-configured marker is a configuration error."""
        self.session.get.return_value = make_response(500, {"error": "TDX API Key 未設定"})
        with self.assertRaises(ConfigurationError):
            self.client.fetch(self.key)

    def test_rate_limited(self):
        self.session.get.return_value = make_response(429, {"error": "Too Many Requests"})
        with self.assertRaises(RateLimited):
            self.client.fetch(self.key)

    def test_other_server_error(self):
        self.session.get.return_value = make_response(500, {"error": "獲取 token 失敗", "message": "TDX 認證失敗: 401"})
        with self.assertRaises(UpstreamUnavailable) as ctx:
            self.client.fetch(self.key)
        self.assertEqual(ctx.exception.status_code, 500)

    def test_non_json_error_body(self):
        self.session.get.return_value = make_response(502, json_error=True)
        with self.assertRaises(UpstreamUnavailable) as ctx:
            self.client.fetch(self.key)
        self.assertEqual(ctx.exception.status_code, 502)

    def test_transport_failure(self):
        self.session.get.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(UpstreamUnavailable):
            self.client.fetch(self.key)

    def test_invalid_json_body(self):
        self.session.get.return_value = make_response(json_error=True)
        with self.assertRaises(MalformedData):
            self.client.fetch(self.key)

    def test_non_object_body(self):
        self.session.get.return_value = make_response(body=["not", "an", "object"])
        with self.assertRaises(MalformedData):
            self.client.fetch(self.key)


class TestTDXClientParsing(unittest.TestCase):
    """Test normalization of upstream records."""

    def setUp(self):
        self.session = MagicMock()
        self.client = TDXClient(EngineConfig(), session=self.session)

    def fetch(self, kind, body, entity="G05"):
        self.session.get.return_value = make_response(body=body)
        return self.client.fetch(CacheKey(entity, kind))

    def test_first_last_records(self):
        """Valid records parse; a record missing times is skipped."""
        body = {
            "Timetable": [
                {
                    "LineNo": "G",
                    "LineID": "G",
                    "StationID": "G05",
                    "StationName": {"Zh_tw": "公館", "En": "Gongguan"},
                    "TripHeadSign": "往新店",
                    "DestinationStaionID": "G01",
                    "DestinationStationName": {"Zh_tw": "新店", "En": "Xindian"},
                    "FirstTrainTime": "06:02",
                    "LastTrainTime": "00:31",
                    "ServiceDay": {"Monday": True, "Tuesday": True, "Sunday": False},
                    "SrcUpdateTime": "2025-03-01T03:00:00+08:00",
                },
                {"LineID": "G", "StationID": "G05", "TripHeadSign": "往松山", "FirstTrainTime": "06:00"},
            ]
        }

        entries = self.fetch(QueryKind.METRO_FIRST_LAST, body)

        self.assertEqual(len(entries), 1)
        entry = entries[0]
        self.assertEqual(entry.line_id, "G")
        self.assertEqual(entry.headsign, "往新店")
        self.assertEqual(entry.destination_station_id, "G01")
        self.assertEqual(entry.destination_name, "新店")
        self.assertEqual(entry.first_train, 362)
        self.assertEqual(entry.last_train, 31)
        self.assertEqual(entry.service_days, ServiceDay.MONDAY | ServiceDay.TUESDAY)
        self.assertEqual(entry.updated_at.year, 2025)

    def test_station_timetable_nested_times(self):
        """Nested timetables are probed across candidate field names."""
        body = {
            "Timetable": [
                {
                    "LineID": "G",
                    "StationID": "G05",
                    "DestinationStationName": {"Zh_tw": "新店"},
                    "TripHeadSign": "往新店",
                    "Timetables": [
                        {"Sequence": 1, "ArrivalTime": "06:10"},
                        {"Sequence": 2, "DepartureTime": "06:02"},
                        {"Sequence": 3, "Time": "06:20"},
                        {"Sequence": 4},
                    ],
                },
                {"LineID": "G", "StationID": "G05", "TripHeadSign": "往松山", "Timetables": [{"Sequence": 1}]},
                "not a record",
            ]
        }

        entries = self.fetch(QueryKind.METRO_STATION_TIMETABLE, body)

        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].headsign, "新店")
        self.assertEqual(entries[0].arrivals, (362, 370, 380))
        self.assertEqual(entries[0].estimate, 362)

    def test_station_timetable_top_level_time(self):
        body = {"Timetable": [{"LineID": "BR", "TripHeadSign": "往動物園", "ArrivalTime": "23:45"}]}

        entries = self.fetch(QueryKind.METRO_STATION_TIMETABLE, body, entity="BR08")
        self.assertEqual(entries[0].arrivals, (1425,))
        self.assertEqual(entries[0].headsign, "往動物園")

    def test_probe_time_order(self):
        """The first accessor with a value wins."""
        self.assertEqual(probe_time({"arrivalTime": "07:00", "Time": "08:00"}), 420)
        self.assertEqual(probe_time({"ArrivalTime2": "07:30"}), 450)
        self.assertIsNone(probe_time({"Sequence": 1}))
        self.assertIsNone(probe_time({"ArrivalTime": "later"}))

    def test_bus_arrivals(self):
        body = {
            "BusRealTimeInfos": [
                {
                    "StopUID": "TPE15438",
                    "StopName": {"Zh_tw": "臺大"},
                    "RouteUID": "TPE10132",
                    "RouteName": {"Zh_tw": "0南", "En": "0 South"},
                    "Direction": 1,
                    "EstimateTime": 185,
                    "StopStatus": 0,
                    "PlateNumb": "EAL-0123",
                },
                {
                    "RouteUID": "TPE10785",
                    "RouteName": {"Zh_tw": "252"},
                    "Direction": 0,
                    "StopStatus": 3,
                },
                {"RouteUID": "TPE1", "Direction": 7, "StopStatus": 0},
                {"Direction": 0, "StopStatus": 0},
            ]
        }

        entries = self.fetch(QueryKind.BUS_ARRIVALS, body, entity="TPE15438")

        self.assertEqual(len(entries), 2)
        self.assertEqual(entries[0].route_name, "0南")
        self.assertEqual(entries[0].direction, Direction.INBOUND)
        self.assertEqual(entries[0].estimate_seconds, 185)
        self.assertEqual(entries[0].estimate_minutes, 3)
        self.assertEqual(entries[0].plate, "EAL-0123")
        self.assertEqual(entries[0].stop_name, "臺大")
        self.assertIsNone(entries[1].estimate_seconds)
        self.assertEqual(entries[1].stop_status, StopStatus.LAST_BUS_DEPARTED)

    def test_metro_exits(self):
        body = {
            "Exits": [
                {
                    "StationID": "G05",
                    "ExitID": "G05-1",
                    "ExitName": {"Zh_tw": "出口1"},
                    "ExitPosition": {"PositionLat": 25.0149, "PositionLon": 121.5341},
                    "ExitDescription": {"Zh_tw": "羅斯福路四段"},
                },
                {"StationID": "G05", "ExitName": {"Zh_tw": "無編號"}},
            ]
        }

        exits = self.fetch(QueryKind.METRO_EXITS, body)

        self.assertEqual(len(exits), 1)
        self.assertEqual(exits[0].name, "出口1")
        self.assertAlmostEqual(exits[0].latitude, 25.0149)
        self.assertEqual(exits[0].description, "羅斯福路四段")

    def test_bus_stops(self):
        body = {
            "Stops": [
                {
                    "StopUID": "TPE15438",
                    "StopID": "15438",
                    "StopName": {"Zh_tw": "臺大", "En": "National Taiwan University"},
                    "StopPosition": {"PositionLat": 25.0173, "PositionLon": 121.5398},
                    "City": "Taipei",
                },
                {"StopUID": "TPE0", "StopName": {"Zh_tw": "無座標"}},
            ]
        }

        stops = self.fetch(QueryKind.BUS_STOPS_NEARBY, body, entity=entity_for_location(25.0, 121.5, 1000))

        self.assertEqual(len(stops), 1)
        self.assertEqual(stops[0].name_en, "National Taiwan University")
        self.assertEqual(stops[0].city, "Taipei")

    def test_non_string_ids_and_headsigns(self):
        """Numeric identifiers become strings; a non-text headsign counts as absent."""
        body = {
            "Timetable": [
                {"LineID": 5, "StationID": 8, "TripHeadSign": 42, "FirstTrainTime": "06:00", "LastTrainTime": "00:30"},
                {
                    "LineID": "BR",
                    "TripHeadSign": ["往動物園"],
                    "DestinationStationName": {"Zh_tw": "動物園"},
                    "FirstTrainTime": "06:00",
                    "LastTrainTime": "00:30",
                },
            ]
        }

        entries = self.fetch(QueryKind.METRO_FIRST_LAST, body, entity="BR08")

        self.assertEqual(entries[0].line_id, "5")
        self.assertEqual(entries[0].station_id, "8")
        self.assertEqual(entries[0].headsign, "未知方向")
        self.assertEqual(entries[1].headsign, "動物園")

    def test_station_timetable_non_string_headsign(self):
        body = {"Timetable": [{"RouteID": 3, "TripHeadSign": {"Zh_tw": "x"}, "ArrivalTime": "07:00"}]}

        entries = self.fetch(QueryKind.METRO_STATION_TIMETABLE, body)

        self.assertEqual(entries[0].line_id, "3")
        self.assertEqual(entries[0].headsign, "未知方向")

    def test_bus_route_addressing(self):
        """Route lookups send routeUID and direction; the body itself is the record."""
        body = {
            "routeUID": "TPE10132",
            "routeName": "0南",
            "direction": 1,
            "departureStopName": "捷運公館站",
            "destinationStopName": "臺北車站",
        }

        routes = self.fetch(QueryKind.BUS_ROUTE, body, entity=entity_for_route("TPE10132", Direction.INBOUND))

        self.assertEqual(
            self.session.get.call_args.kwargs["params"],
            {"routeUID": "TPE10132", "direction": "1"},
        )
        self.assertEqual(len(routes), 1)
        self.assertEqual(routes[0].route_uid, "TPE10132")
        self.assertEqual(routes[0].direction, Direction.INBOUND)
        self.assertEqual(routes[0].route_name, "0南")
        self.assertEqual(routes[0].departure_stop_name, "捷運公館站")
        self.assertEqual(routes[0].destination_stop_name, "臺北車站")

    def test_bus_route_stop_name_spellings(self):
        """Terminal names fall back through the raw TDX field spellings."""
        body = {
            "RouteUID": "TPE10785",
            "Direction": 0,
            "DepartureStopNameZh": "景美",
            "DestinationStopName": {"Zh_tw": "松山機場", "En": "Songshan Airport"},
        }

        route = self.fetch(QueryKind.BUS_ROUTE, body, entity=entity_for_route("TPE10785"))[0]

        self.assertEqual(self.session.get.call_args.kwargs["params"], {"routeUID": "TPE10785"})
        self.assertEqual(route.direction, Direction.OUTBOUND)
        self.assertEqual(route.departure_stop_name, "景美")
        self.assertEqual(route.destination_stop_name, "松山機場")

    def test_bus_route_without_uid_is_skipped(self):
        self.assertEqual(self.fetch(QueryKind.BUS_ROUTE, {"destinationStopName": "臺北車站"}), [])

    def test_response_key_not_list(self):
        with self.assertRaises(MalformedData):
            self.fetch(QueryKind.METRO_FIRST_LAST, {"Timetable": {"oops": 1}})


if __name__ == "__main__":
    unittest.main()
