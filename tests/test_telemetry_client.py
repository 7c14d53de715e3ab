"""Tests for TelemetryClient and telemetry helpers."""

import random
import unittest
from unittest.mock import MagicMock, patch
import sys
from pathlib import Path

import requests

# Add src to path so we can import fleetsched
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fleetsched.exceptions import InvalidTelemetryError, TelemetryFetchError
from fleetsched.telemetry_client import (
    TelemetryClient,
    generate_synthetic_data,
    parse_real_time_entry,
    parse_vehicle_positions,
)


def mock_response(json_data=None, content=b""):
    response = MagicMock()
    response.json.return_value = json_data
    response.content = content
    response.raise_for_status.return_value = None
    return response


class TestTelemetryClient(unittest.TestCase):
    """Test fetching telemetry from a JSON endpoint."""

    def setUp(self):
        self.session = MagicMock()
        self.client = TelemetryClient("http://test/real-time", session=self.session)

    def test_get_real_time_data_parses_camel_case(self):
        """Test parsing of the JSON telemetry payload."""
        self.session.get.return_value = mock_response([
            {
                "routeId": "route-1",
                "currentLoad": 0.42,
                "waitingPassengers": 12,
                "averageWaitTime": 7.5,
                "lastUpdated": "2024-03-04T08:15:00.000Z",
            },
            {"route_id": "route-2", "current_load": 0.1, "waiting_passengers": 0, "average_wait_time": 3},
        ])

        data = self.client.get_real_time_data()

        self.assertEqual([d.route_id for d in data], ["route-1", "route-2"])
        self.assertAlmostEqual(data[0].current_load, 0.42)
        self.assertEqual(data[0].waiting_passengers, 12)
        self.assertEqual(data[0].last_updated.hour, 8)
        self.assertIsNone(data[1].last_updated)
        self.session.get.assert_called_once_with("http://test/real-time", timeout=10)

    def test_get_real_time_data_filters_routes_and_skips_bad_entries(self):
        """Test route filtering and tolerance for malformed entries."""
        self.session.get.return_value = mock_response({"routes": [
            {"routeId": "a", "currentLoad": 0.5, "waitingPassengers": 1, "averageWaitTime": 1},
            {"routeId": "b", "currentLoad": "lots"},
            {"routeId": "c", "currentLoad": 0.5, "waitingPassengers": 1, "averageWaitTime": 1},
        ]})

        data = self.client.get_real_time_data(route_ids=["a"])
        self.assertEqual([d.route_id for d in data], ["a"])

    def test_responses_are_cached(self):
        """Test that a fresh response is reused within the TTL."""
        self.session.get.return_value = mock_response([])
        self.client.get_real_time_data()
        self.client.get_real_time_data()
        self.assertEqual(self.session.get.call_count, 1)

        self.client.clear_cache()
        self.client.get_real_time_data()
        self.assertEqual(self.session.get.call_count, 2)

    @patch("fleetsched.telemetry_client.time.time")
    def test_expired_cache_refetches(self, mock_time):
        """Test that responses older than the TTL are fetched again."""
        self.session.get.return_value = mock_response([])
        mock_time.return_value = 1000.0
        self.client.get_real_time_data()
        mock_time.return_value = 1031.0
        self.client.get_real_time_data()
        self.assertEqual(self.session.get.call_count, 2)

    def test_http_error_raises_fetch_error(self):
        """Test that transport failures become TelemetryFetchError."""
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TelemetryFetchError):
            self.client.get_real_time_data()

    def test_invalid_json_raises_fetch_error(self):
        """Test that an undecodable body becomes TelemetryFetchError."""
        response = mock_response()
        response.json.side_effect = ValueError("no json")
        self.session.get.return_value = response
        with self.assertRaises(TelemetryFetchError):
            self.client.get_real_time_data()

    def test_missing_feed_url(self):
        """Test that a client without a URL cannot fetch JSON telemetry."""
        with self.assertRaises(TelemetryFetchError):
            TelemetryClient(session=self.session).get_real_time_data()

    def test_get_vehicle_position_data(self):
        """Test fetching and parsing a GTFS-Realtime feed."""
        self.session.get.return_value = mock_response(content=TestVehiclePositions.create_feed())
        data = self.client.get_vehicle_position_data("http://test/vehicle-positions")
        self.assertEqual([d.route_id for d in data], ["1", "2"])


class TestParseRealTimeEntry(unittest.TestCase):
    """Test conversion of decoded JSON entries."""

    def test_missing_field(self):
        """Test that a missing field is reported."""
        with self.assertRaises(InvalidTelemetryError):
            parse_real_time_entry({"routeId": "a", "currentLoad": 0.5})

    def test_not_an_object(self):
        """Test that non-dict entries are rejected."""
        with self.assertRaises(InvalidTelemetryError):
            parse_real_time_entry(["a", 0.5])


class TestVehiclePositions(unittest.TestCase):
    """Test GTFS-Realtime occupancy aggregation."""

    @staticmethod
    def create_feed() -> bytes:
        """Create a small VehiclePositions feed."""
        from google.transit import gtfs_realtime_pb2

        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"

        def add_vehicle(entity_id, route_id, percentage=None, status=None, timestamp=0):
            entity = feed.entity.add()
            entity.id = entity_id
            vehicle = entity.vehicle
            vehicle.trip.route_id = route_id
            if percentage is not None:
                vehicle.occupancy_percentage = percentage
            if status is not None:
                vehicle.occupancy_status = status
            if timestamp:
                vehicle.timestamp = timestamp

        add_vehicle("v1", "1", percentage=40, timestamp=1700000000)
        add_vehicle("v2", "1", percentage=80, timestamp=1700000060)
        add_vehicle("v3", "2", status=gtfs_realtime_pb2.VehiclePosition.FULL)
        add_vehicle("v4", "3")  # No occupancy reported
        add_vehicle("v5", "", percentage=50)  # No route

        return feed.SerializeToString()

    def test_occupancy_averaged_per_route(self):
        """Test that vehicle loads are averaged per route."""
        data = {d.route_id: d for d in parse_vehicle_positions(self.create_feed())}

        self.assertEqual(set(data), {"1", "2"})
        self.assertAlmostEqual(data["1"].current_load, 0.6)
        self.assertEqual(data["1"].last_updated.timestamp(), 1700000060)
        self.assertAlmostEqual(data["2"].current_load, 1.0)
        self.assertIsNone(data["2"].last_updated)
        self.assertEqual(data["1"].waiting_passengers, 0)
        self.assertEqual(data["1"].average_wait_time, 0.0)

    def test_garbage_bytes_rejected(self):
        """Test that a corrupt feed raises TelemetryFetchError."""
        with self.assertRaises(TelemetryFetchError):
            parse_vehicle_positions(b"\xff\xff\xff\xff")


class TestSyntheticData(unittest.TestCase):
    """Test the synthetic telemetry generator."""

    def test_values_in_range(self):
        """Test that generated telemetry passes validation ranges at every hour."""
        rng = random.Random(42)
        for hour in range(24):
            for data in generate_synthetic_data(["a", "b", "c"], hour=hour, rng=rng):
                self.assertGreaterEqual(data.current_load, 0)
                self.assertLessEqual(data.current_load, 1)
                self.assertGreaterEqual(data.waiting_passengers, 0)
                self.assertGreaterEqual(data.average_wait_time, 2)
                self.assertLess(data.average_wait_time, 12)

    def test_reproducible_with_seed(self):
        """Test that a seeded generator gives the same batch."""
        first = generate_synthetic_data(["a", "b"], hour=8, rng=random.Random(7))
        second = generate_synthetic_data(["a", "b"], hour=8, rng=random.Random(7))
        self.assertEqual(
            [(d.route_id, d.current_load, d.waiting_passengers) for d in first],
            [(d.route_id, d.current_load, d.waiting_passengers) for d in second],
        )

    def test_late_night_has_few_waiting_passengers(self):
        """Test that late-night demand shaping caps the queue length."""
        for data in generate_synthetic_data([str(i) for i in range(50)], hour=3, rng=random.Random(1)):
            self.assertLess(data.waiting_passengers, 8)


if __name__ == "__main__":
    unittest.main()
