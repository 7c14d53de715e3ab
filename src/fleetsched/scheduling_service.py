"""Time-of-day demand model and vehicle allocation algorithms."""

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .exceptions import ConfigurationError, InvalidTelemetryError
from .models import (
    RouteRealTimeData,
    ScheduleConfig,
    SchedulingServiceConfig,
    TimeOfDay,
    VehicleAllocation,
)

logger = logging.getLogger(__name__)

# Real-time adjustment thresholds
WAITING_PASSENGERS_THRESHOLD = 10
WAIT_TIME_THRESHOLD_MINUTES = 10
LOW_LOAD_THRESHOLD = 0.3
WAITING_PASSENGERS_BOOST = 0.5
WAIT_TIME_BOOST = 0.3
LOW_LOAD_REDUCTION = 0.2
MIN_ADJUSTMENT_FACTOR = 0.5


class SchedulingService:
    """
    Computes vehicle allocations from demand statistics and live telemetry.

    The service holds no allocation state. It provides:
    - Classification of the current hour into a demand period
    - Required fleet size for a period
    - A full schedule split across routes by demand factor
    - Incremental adjustment of an existing schedule from telemetry
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        config: Optional[SchedulingServiceConfig] = None,
    ):
        """
        Initialize the service.

        Args:
            clock: Zero-argument callable returning the current datetime.
            config: Service settings. The period multipliers come from its time-based rules.
        """
        self.clock = clock
        self.config = config or SchedulingServiceConfig()
        self._multipliers = self.config.demand_multipliers()

    @staticmethod
    def classify_hour(hour: int) -> TimeOfDay:
        """
        Map an hour of the day (0-23) to its demand period.

        Intervals are half-open: morning [6, 12), afternoon [12, 17),
        evening [17, 22), night for everything else.
        """
        if 6 <= hour < 12:
            return TimeOfDay.MORNING
        if 12 <= hour < 17:
            return TimeOfDay.AFTERNOON
        if 17 <= hour < 22:
            return TimeOfDay.EVENING
        return TimeOfDay.NIGHT

    def get_current_time_of_day(self) -> TimeOfDay:
        """Get the demand period for the clock's current hour."""
        return self.classify_hour(self.clock().hour)

    def calculate_required_vehicles(
        self,
        time_of_day: TimeOfDay,
        average_riders: float,
        average_vehicle_capacity: float,
        historical_demand_factor: float,
    ) -> int:
        """
        Calculate the fleet size needed for a period.

        Args:
            time_of_day: Period whose multiplier is applied.
            average_riders: Average ridership.
            average_vehicle_capacity: Riders per vehicle. Must be positive.
            historical_demand_factor: Multiplier from historical data.

        Returns:
            Required number of vehicles.

        Raises:
            ConfigurationError: If the inputs are not usable numbers.
        """
        _check_finite("average_riders", average_riders)
        _check_finite("average_vehicle_capacity", average_vehicle_capacity)
        _check_finite("historical_demand_factor", historical_demand_factor)
        if average_vehicle_capacity <= 0:
            raise ConfigurationError(
                f"average_vehicle_capacity must be positive, got {average_vehicle_capacity}"
            )
        if average_riders < 0:
            raise ConfigurationError(f"average_riders must not be negative, got {average_riders}")
        if historical_demand_factor < 0:
            raise ConfigurationError(
                f"historical_demand_factor must not be negative, got {historical_demand_factor}"
            )

        multiplier = self._multipliers.get(time_of_day)
        if multiplier is None:
            raise ConfigurationError(f"No time-based rule for {time_of_day.value}")

        base_vehicles = math.ceil(
            (average_riders * historical_demand_factor) / average_vehicle_capacity
        )
        return math.ceil(base_vehicles * multiplier)

    def generate_schedule(self, config: ScheduleConfig) -> Dict[str, VehicleAllocation]:
        """
        Build a complete schedule for the current period.

        Each route gets max(1, floor(required * demand_factor)) vehicles. The
        result always replaces any earlier schedule; it is never merged.

        Args:
            config: Routes and ridership statistics.

        Returns:
            Dictionary of route_id -> VehicleAllocation, in route order.

        Raises:
            ConfigurationError: If the config is malformed.
        """
        self._validate_routes(config)

        time_of_day = self.get_current_time_of_day()
        required = self.calculate_required_vehicles(
            time_of_day,
            config.average_riders,
            config.average_vehicle_capacity,
            config.historical_demand_factor,
        )
        now = self.clock()

        schedule: Dict[str, VehicleAllocation] = {}
        for route in config.routes:
            demand_factor = route.demand_factor if route.demand_factor is not None else 1.0
            schedule[route.id] = VehicleAllocation(
                route_id=route.id,
                allocated_vehicles=max(1, math.floor(required * demand_factor)),
                time_of_day=time_of_day,
                last_updated=now,
            )

        logger.debug(
            f"Generated {time_of_day.value} schedule: {required} required vehicles "
            f"across {len(schedule)} routes"
        )
        return schedule

    def adjust_for_real_time_demand(
        self,
        allocations: Iterable[VehicleAllocation],
        real_time_data: Iterable[RouteRealTimeData],
    ) -> List[VehicleAllocation]:
        """
        Adjust allocations using live route telemetry.

        Allocations without telemetry are returned as the same objects,
        untouched. Adjusted allocations are new objects; inputs are not modified.
        No fleet-wide cap is applied.

        Args:
            allocations: Current allocations.
            real_time_data: Telemetry batch. For duplicate route IDs the first entry is used.

        Returns:
            List of allocations in the input order.

        Raises:
            InvalidTelemetryError: If a telemetry entry is out of range.
        """
        by_route: Dict[str, RouteRealTimeData] = {}
        for data in real_time_data:
            self._validate_telemetry(data)
            by_route.setdefault(data.route_id, data)

        now = None
        result: List[VehicleAllocation] = []
        for allocation in allocations:
            data = by_route.get(allocation.route_id)
            if data is None:
                result.append(allocation)
                continue

            if now is None:
                now = self.clock()

            factor = self._adjustment_factor(data)
            allocated = max(1, math.ceil(allocation.allocated_vehicles * factor))
            if allocated != allocation.allocated_vehicles:
                logger.debug(
                    f"Route {allocation.route_id}: {allocation.allocated_vehicles} -> "
                    f"{allocated} vehicles (factor {factor:.2f})"
                )
            result.append(replace(allocation, allocated_vehicles=allocated, last_updated=now))

        return result

    @staticmethod
    def _adjustment_factor(data: RouteRealTimeData) -> float:
        """Compute the multiplicative adjustment for one route's telemetry."""
        factor = 1.0
        if data.waiting_passengers > WAITING_PASSENGERS_THRESHOLD:
            factor += WAITING_PASSENGERS_BOOST
        if data.average_wait_time > WAIT_TIME_THRESHOLD_MINUTES:
            factor += WAIT_TIME_BOOST
        # Reduction applies after the boosts and never goes under the floor
        if data.current_load < LOW_LOAD_THRESHOLD:
            factor = max(MIN_ADJUSTMENT_FACTOR, factor - LOW_LOAD_REDUCTION)
        return factor

    @staticmethod
    def _validate_routes(config: ScheduleConfig) -> None:
        seen = set()
        for route in config.routes:
            if not route.id:
                raise ConfigurationError(f"Route {route.name!r} has an empty id")
            if route.id in seen:
                raise ConfigurationError(f"Duplicate route id {route.id!r}")
            if route.demand_factor is not None:
                _check_finite(f"demand_factor of route {route.id}", route.demand_factor)
            seen.add(route.id)

    @staticmethod
    def _validate_telemetry(data: RouteRealTimeData) -> None:
        if not data.route_id:
            raise InvalidTelemetryError("Telemetry entry has an empty route_id")
        for name in ("current_load", "waiting_passengers", "average_wait_time"):
            value = getattr(data, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidTelemetryError(
                    f"Route {data.route_id}: {name} must be a finite number, got {value!r}"
                )
        if not 0 <= data.current_load <= 1:
            raise InvalidTelemetryError(
                f"Route {data.route_id}: current_load must be within [0, 1], got {data.current_load}"
            )
        if data.waiting_passengers < 0:
            raise InvalidTelemetryError(
                f"Route {data.route_id}: waiting_passengers must not be negative"
            )
        if data.average_wait_time < 0:
            raise InvalidTelemetryError(
                f"Route {data.route_id}: average_wait_time must not be negative"
            )


def _check_finite(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")

