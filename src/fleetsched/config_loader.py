"""Loaders for route scheduling configuration."""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from .exceptions import ConfigurationError
from .models import RouteScheduleConfig, ScheduleConfig

logger = logging.getLogger(__name__)

# Accepted column names, in order of preference
ID_COLUMNS = ["id", "route_id"]
NAME_COLUMNS = ["name", "route_short_name", "route_long_name"]


def load_route_configs(path: str) -> List[RouteScheduleConfig]:
    """
    Load route configurations from a CSV file.

    Both a plain file with id, name, demand_factor, base_vehicles columns and
    a GTFS routes.txt are accepted. Routes without a demand factor get None.

    Args:
        path: Path to the CSV file.

    Returns:
        List of RouteScheduleConfig objects in file order.

    Raises:
        ConfigurationError: If the file has no route ID column.
    """
    logger.info(f"Loading route configuration from {path}")
    df = pd.read_csv(path, dtype=str)
    routes = routes_from_dataframe(df)
    logger.info(f"Loaded {len(routes)} routes")
    return routes


def routes_from_dataframe(df: pd.DataFrame) -> List[RouteScheduleConfig]:
    """Convert a routes table into RouteScheduleConfig objects."""
    id_column = _first_column(df, ID_COLUMNS)
    if id_column is None:
        raise ConfigurationError(f"Route table needs one of the columns {ID_COLUMNS}")

    routes = []
    for row in df.to_dict("records"):
        route_id = row[id_column]
        if pd.isna(route_id) or not str(route_id).strip():
            raise ConfigurationError("Route table contains a row without a route ID")
        route_id = str(route_id).strip()

        name = route_id
        for column in NAME_COLUMNS:
            value = row.get(column)
            if value is not None and not pd.isna(value) and str(value).strip():
                name = str(value).strip()
                break

        routes.append(
            RouteScheduleConfig(
                id=route_id,
                name=name,
                demand_factor=_optional_float(row.get("demand_factor")),
                base_vehicles=_optional_int(row.get("base_vehicles"), default=1),
            )
        )
    return routes


def load_schedule_config(
    routes_path: str,
    average_riders: float,
    average_vehicle_capacity: float,
    historical_demand_factor: float = 1.0,
) -> ScheduleConfig:
    """Build a ScheduleConfig from a routes file and ridership statistics."""
    return ScheduleConfig(
        routes=load_route_configs(routes_path),
        average_riders=average_riders,
        average_vehicle_capacity=average_vehicle_capacity,
        historical_demand_factor=historical_demand_factor,
    )


def schedule_config_from_dict(data: Dict[str, Any]) -> ScheduleConfig:
    """
    Build a ScheduleConfig from a decoded JSON/dict configuration.

    Keys may be camelCase (averageRiders, demandFactor) or snake_case.

    Raises:
        ConfigurationError: If a required key is missing or not numeric.
    """
    try:
        routes = [
            RouteScheduleConfig(
                id=str(_pick(route, "id", "id")),
                name=str(route.get("name", route.get("id"))),
                demand_factor=_optional_float(_get(route, "demandFactor", "demand_factor")),
                base_vehicles=_optional_int(_get(route, "baseVehicles", "base_vehicles"), default=1),
            )
            for route in data.get("routes", [])
        ]
        return ScheduleConfig(
            routes=routes,
            average_riders=float(_pick(data, "averageRiders", "average_riders")),
            average_vehicle_capacity=float(
                _pick(data, "averageVehicleCapacity", "average_vehicle_capacity")
            ),
            historical_demand_factor=float(
                _get(data, "historicalDemandFactor", "historical_demand_factor", 1.0)
            ),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigurationError(f"Invalid schedule configuration: {e}") from e


def _first_column(df: pd.DataFrame, candidates: List[str]) -> Optional[str]:
    for column in candidates:
        if column in df.columns:
            return column
    return None


def _get(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _pick(data: Dict[str, Any], camel: str, snake: str) -> Any:
    value = _get(data, camel, snake)
    if value is None:
        raise ConfigurationError(f"Missing required key {camel!r}")
    return value


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _optional_int(value: Any, default: int) -> int:
    if value is None or pd.isna(value):
        return default
    return int(float(value))
