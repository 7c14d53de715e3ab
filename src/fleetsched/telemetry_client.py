"""Real-time route telemetry fetcher and parser."""

import logging
import random
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from .exceptions import InvalidTelemetryError, TelemetryFetchError
from .models import RouteRealTimeData

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 30  # Seconds
DEFAULT_TIMEOUT = 10  # Seconds

# Approximate load for GTFS-Realtime OccupancyStatus values
OCCUPANCY_STATUS_LOAD = {
    0: 0.0,   # EMPTY
    1: 0.25,  # MANY_SEATS_AVAILABLE
    2: 0.6,   # FEW_SEATS_AVAILABLE
    3: 0.85,  # STANDING_ROOM_ONLY
    4: 0.95,  # CRUSHED_STANDING_ROOM_ONLY
    5: 1.0,   # FULL
    6: 1.0,   # NOT_ACCEPTING_PASSENGERS
}


class TelemetryClient:
    """Fetches real-time route telemetry from a JSON endpoint or a GTFS-Realtime feed."""

    def __init__(
        self,
        feed_url: Optional[str] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the telemetry client.

        Args:
            feed_url: URL of the JSON telemetry endpoint.
            cache_ttl: Seconds a fetched feed is reused.
            timeout: Request timeout in seconds.
            session: Optional requests session to reuse.
        """
        self.feed_url = feed_url
        self._cache: Dict[str, Tuple[requests.Response, float]] = {}  # url -> (response, timestamp)
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._session = session or requests.Session()

    def get_real_time_data(self, route_ids: Optional[Iterable[str]] = None) -> List[RouteRealTimeData]:
        """
        Get the current telemetry batch from the JSON endpoint.

        The endpoint returns a list of objects with routeId, currentLoad,
        waitingPassengers, averageWaitTime and lastUpdated (snake_case keys
        are accepted too).

        Args:
            route_ids: Optional route IDs to keep. If None, returns all routes.

        Returns:
            List of RouteRealTimeData objects.

        Raises:
            TelemetryFetchError: If the feed cannot be fetched or decoded.
        """
        if not self.feed_url:
            raise TelemetryFetchError("No telemetry feed URL configured")

        response = self._fetch(self.feed_url)
        try:
            payload = response.json()
        except ValueError as e:
            raise TelemetryFetchError(f"Telemetry feed {self.feed_url} is not valid JSON") from e

        if isinstance(payload, dict):
            payload = payload.get("routes", [])
        if not isinstance(payload, list):
            raise TelemetryFetchError(f"Unexpected telemetry payload type {type(payload).__name__}")

        wanted = set(route_ids) if route_ids is not None else None
        result = []
        for item in payload:
            try:
                data = parse_real_time_entry(item)
            except InvalidTelemetryError as e:
                logger.warning(f"Skipping telemetry entry: {e}")
                continue
            if wanted is None or data.route_id in wanted:
                result.append(data)

        logger.debug(f"Fetched telemetry for {len(result)} routes")
        return result

    def get_vehicle_position_data(self, feed_url: str) -> List[RouteRealTimeData]:
        """
        Get per-route load from a GTFS-Realtime VehiclePositions feed.

        The feed only carries occupancy, so waiting passengers and wait time
        are reported as zero.

        Args:
            feed_url: Full URL of the protobuf feed.

        Returns:
            List of RouteRealTimeData objects, one per route with vehicles.
        """
        response = self._fetch(feed_url)
        return parse_vehicle_positions(response.content)

    def _fetch(self, url: str) -> requests.Response:
        """Fetch a URL, reusing a cached response while it is fresh."""
        now = time.time()
        if url in self._cache:
            response, timestamp = self._cache[url]
            if now - timestamp < self._cache_ttl:
                logger.debug(f"Using cached data for {url}")
                return response

        self._evict_expired_cache(now)

        logger.debug(f"Fetching {url}")
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise TelemetryFetchError(f"Failed to fetch {url}: {e}") from e

        self._cache[url] = (response, now)
        return response

    def _evict_expired_cache(self, current_time: float) -> None:
        """Remove expired cache entries."""
        expired_keys = [
            url for url, (_, timestamp) in self._cache.items()
            if current_time - timestamp >= self._cache_ttl
        ]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        self._cache.clear()


def parse_real_time_entry(item: dict) -> RouteRealTimeData:
    """
    Build a RouteRealTimeData from a decoded JSON object.

    Raises:
        InvalidTelemetryError: If a required field is missing or not numeric.
    """
    if not isinstance(item, dict):
        raise InvalidTelemetryError(f"Telemetry entry must be an object, got {type(item).__name__}")

    def pick(camel: str, snake: str):
        if camel in item:
            return item[camel]
        if snake in item:
            return item[snake]
        raise InvalidTelemetryError(f"Telemetry entry is missing {camel!r}")

    try:
        route_id = str(pick("routeId", "route_id"))
        current_load = float(pick("currentLoad", "current_load"))
        waiting_passengers = int(pick("waitingPassengers", "waiting_passengers"))
        average_wait_time = float(pick("averageWaitTime", "average_wait_time"))
    except (TypeError, ValueError) as e:
        raise InvalidTelemetryError(f"Malformed telemetry entry {item!r}: {e}") from e

    last_updated = item.get("lastUpdated", item.get("last_updated"))
    if isinstance(last_updated, str):
        try:
            last_updated = datetime.fromisoformat(last_updated.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Ignoring unparseable lastUpdated {last_updated!r}")
            last_updated = None

    return RouteRealTimeData(
        route_id=route_id,
        current_load=current_load,
        waiting_passengers=waiting_passengers,
        average_wait_time=average_wait_time,
        last_updated=last_updated,
    )


def parse_vehicle_positions(feed_data: bytes) -> List[RouteRealTimeData]:
    """
    Aggregate vehicle occupancy per route from a GTFS-Realtime feed.

    Args:
        feed_data: Raw protobuf bytes.

    Returns:
        List of RouteRealTimeData objects sorted by route ID.

    Raises:
        TelemetryFetchError: If the bytes are not a valid FeedMessage.
    """
    from google.protobuf.message import DecodeError
    from google.transit import gtfs_realtime_pb2

    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(feed_data)
    except DecodeError as e:
        raise TelemetryFetchError(f"Failed to parse vehicle positions: {e}") from e

    loads: Dict[str, List[float]] = defaultdict(list)
    latest: Dict[str, int] = {}

    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue

        vehicle = entity.vehicle
        route_id = vehicle.trip.route_id
        if not route_id:
            continue

        if vehicle.HasField("occupancy_percentage"):
            load = min(1.0, vehicle.occupancy_percentage / 100)
        elif vehicle.HasField("occupancy_status"):
            load = OCCUPANCY_STATUS_LOAD.get(vehicle.occupancy_status)
            if load is None:
                continue
        else:
            continue

        loads[route_id].append(load)
        if vehicle.timestamp:
            latest[route_id] = max(latest.get(route_id, 0), vehicle.timestamp)

    result = []
    for route_id in sorted(loads):
        route_loads = loads[route_id]
        timestamp = latest.get(route_id)
        result.append(
            RouteRealTimeData(
                route_id=route_id,
                current_load=sum(route_loads) / len(route_loads),
                waiting_passengers=0,
                average_wait_time=0.0,
                last_updated=datetime.fromtimestamp(timestamp, tz=timezone.utc) if timestamp else None,
            )
        )

    logger.debug(f"Parsed occupancy for {len(result)} routes")
    return result


def generate_synthetic_data(
    route_ids: Iterable[str],
    hour: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[RouteRealTimeData]:
    """
    Generate plausible telemetry for running without a backend.

    Demand is scaled up in the morning (7-10) and evening (16-19) rush and
    down late at night (22-5).

    Args:
        route_ids: Routes to generate data for.
        hour: Hour of day used for demand shaping. Defaults to the current hour.
        rng: Random generator, for reproducible output.
    """
    rng = rng or random.Random()
    now = datetime.now()
    if hour is None:
        hour = now.hour

    demand_multiplier = 1.0
    if 7 <= hour < 10:
        demand_multiplier = 1.8
    elif 16 <= hour < 19:
        demand_multiplier = 1.5
    elif hour >= 22 or hour < 5:
        demand_multiplier = 0.4

    result = []
    for route_id in route_ids:
        base_load = 0.3 + rng.random() * 0.5
        random_factor = 0.7 + rng.random() * 0.6
        result.append(
            RouteRealTimeData(
                route_id=route_id,
                current_load=min(1.0, base_load * random_factor * demand_multiplier),
                waiting_passengers=int(rng.random() * 20 * demand_multiplier),
                average_wait_time=2 + rng.random() * 10,
                last_updated=now,
            )
        )
    return result
