"""fleetsched - Dynamic transit vehicle scheduling from demand and real-time load."""

__version__ = "0.1.0"

from .models import (
    TimeOfDay,
    RouteScheduleConfig,
    ScheduleConfig,
    VehicleAllocation,
    RouteRealTimeData,
    TimeBasedRule,
    SchedulingServiceConfig,
)
from .exceptions import (
    SchedulingError,
    ConfigurationError,
    InvalidTelemetryError,
    TelemetryFetchError,
)
from .scheduling_service import SchedulingService
from .coordinator import ScheduleCoordinator, CoordinatorState
from .telemetry_client import TelemetryClient, generate_synthetic_data
from .config_loader import load_route_configs, load_schedule_config, schedule_config_from_dict

__all__ = [
    "SchedulingService",
    "ScheduleCoordinator",
    "CoordinatorState",
    "TelemetryClient",
    "generate_synthetic_data",
    "load_route_configs",
    "load_schedule_config",
    "schedule_config_from_dict",
    "TimeOfDay",
    "RouteScheduleConfig",
    "ScheduleConfig",
    "VehicleAllocation",
    "RouteRealTimeData",
    "TimeBasedRule",
    "SchedulingServiceConfig",
    "SchedulingError",
    "ConfigurationError",
    "InvalidTelemetryError",
    "TelemetryFetchError",
]
