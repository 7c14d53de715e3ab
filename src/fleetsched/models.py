"""Data models for the fleet scheduler."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class TimeOfDay(str, Enum):
    """Demand period of the day."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


@dataclass
class RouteScheduleConfig:
    """Scheduling configuration for a single route."""
    id: str
    name: str
    demand_factor: Optional[float] = None  # Relative weight; None counts as 1.0
    base_vehicles: int = 1  # Informational minimum, not enforced


@dataclass
class ScheduleConfig:
    """Aggregate input to one allocation run."""
    routes: List[RouteScheduleConfig]
    average_riders: float
    average_vehicle_capacity: float
    historical_demand_factor: float = 1.0


@dataclass
class VehicleAllocation:
    """Number of vehicles assigned to a route."""
    route_id: str
    allocated_vehicles: int
    time_of_day: TimeOfDay
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "routeId": self.route_id,
            "allocatedVehicles": self.allocated_vehicles,
            "timeOfDay": self.time_of_day.value,
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass
class RouteRealTimeData:
    """Live telemetry for a route."""
    route_id: str
    current_load: float  # Capacity utilization, 0-1
    waiting_passengers: int
    average_wait_time: float  # Minutes
    last_updated: Optional[datetime] = None


@dataclass
class TimeBasedRule:
    """Per-period scheduling rule."""
    time_of_day: TimeOfDay
    min_vehicles: int
    max_vehicles: int
    demand_multiplier: float
    priority_routes: List[str] = field(default_factory=list)


DEFAULT_UPDATE_INTERVAL_MINUTES = 15

DEFAULT_TIME_BASED_RULES = [
    TimeBasedRule(TimeOfDay.MORNING, min_vehicles=5, max_vehicles=20, demand_multiplier=1.5),
    TimeBasedRule(TimeOfDay.AFTERNOON, min_vehicles=3, max_vehicles=15, demand_multiplier=1.0),
    TimeBasedRule(TimeOfDay.EVENING, min_vehicles=4, max_vehicles=18, demand_multiplier=1.3),
    TimeBasedRule(TimeOfDay.NIGHT, min_vehicles=2, max_vehicles=10, demand_multiplier=0.5),
]


@dataclass
class SchedulingServiceConfig:
    """Settings shared by the scheduling service and coordinator."""
    time_based_rules: List[TimeBasedRule] = field(
        default_factory=lambda: list(DEFAULT_TIME_BASED_RULES)
    )
    default_min_vehicles: int = 1
    default_max_vehicles: int = 30
    update_interval: float = DEFAULT_UPDATE_INTERVAL_MINUTES  # Minutes

    def demand_multipliers(self) -> dict:
        """Map each period to its demand multiplier."""
        return {rule.time_of_day: rule.demand_multiplier for rule in self.time_based_rules}
