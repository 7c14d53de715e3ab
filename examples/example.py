"""Example usage of ScheduleCoordinator."""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add src to path so we can import fleetsched
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fleetsched import (
    RouteScheduleConfig,
    ScheduleConfig,
    ScheduleCoordinator,
    TelemetryClient,
    generate_synthetic_data,
    load_schedule_config,
)

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

DEMO_ROUTES = [
    RouteScheduleConfig(id="route-1", name="Bole - Piassa", demand_factor=0.9, base_vehicles=3),
    RouteScheduleConfig(id="route-2", name="Megenagna - Mexico", demand_factor=0.7, base_vehicles=2),
    RouteScheduleConfig(id="route-3", name="Ayat - Stadium", demand_factor=0.5, base_vehicles=2),
    RouteScheduleConfig(id="route-4", name="Kality - Merkato", demand_factor=0.3, base_vehicles=1),
    RouteScheduleConfig(id="route-5", name="Airport Shuttle", demand_factor=0.2, base_vehicles=1),
]


def print_schedule(coordinator: ScheduleCoordinator):
    """
    Display the coordinator's current schedule.

    Args:
        coordinator: Running coordinator.
    """
    print(f"\n{'='*70}")
    print(f"Period: {coordinator.time_of_day.capitalize() or '-'}    "
          f"Last updated: {coordinator.last_updated.strftime('%H:%M:%S')}")
    if coordinator.error:
        print(f"Error: {coordinator.error}")
    print("-" * 70)

    allocations = coordinator.current_allocations
    if not allocations:
        print("  No schedule data available")
    for allocation in allocations:
        print(f"  {allocation.route_id:<12} {allocation.allocated_vehicles:>3} vehicles")
    print(f"{'='*70}\n")


def main():
    parser = argparse.ArgumentParser(description="Run the vehicle scheduler")
    parser.add_argument("--routes", help="CSV or GTFS routes.txt file (defaults to demo routes)")
    parser.add_argument("--riders", type=float, default=1200, help="Average riders")
    parser.add_argument("--capacity", type=float, default=60, help="Average vehicle capacity")
    parser.add_argument("--demand-factor", type=float, default=1.0, help="Historical demand factor")
    parser.add_argument("--telemetry-url", help="JSON telemetry endpoint (defaults to synthetic data)")
    parser.add_argument("--poll", type=float, default=5, help="Seconds between telemetry polls")
    parser.add_argument("--cycles", type=int, default=3, help="Number of schedules to print")
    args = parser.parse_args()

    try:
        if args.routes:
            config = load_schedule_config(args.routes, args.riders, args.capacity, args.demand_factor)
        else:
            config = ScheduleConfig(
                routes=DEMO_ROUTES,
                average_riders=args.riders,
                average_vehicle_capacity=args.capacity,
                historical_demand_factor=args.demand_factor,
            )
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}", exc_info=True)
        sys.exit(1)

    route_ids = [route.id for route in config.routes]
    if args.telemetry_url:
        telemetry_source = TelemetryClient(args.telemetry_url).get_real_time_data
    else:
        telemetry_source = lambda: generate_synthetic_data(route_ids)

    with ScheduleCoordinator(config) as coordinator:
        print_schedule(coordinator)
        coordinator.start(telemetry_source=telemetry_source, telemetry_interval=args.poll)
        try:
            for _ in range(args.cycles):
                time.sleep(args.poll + 0.5)
                print_schedule(coordinator)
        except KeyboardInterrupt:
            print("\nStopping...")


if __name__ == "__main__":
    main()
