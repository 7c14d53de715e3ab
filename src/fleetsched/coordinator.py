"""Coordinator that owns the live vehicle schedule."""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .models import (
    RouteRealTimeData,
    ScheduleConfig,
    SchedulingServiceConfig,
    TimeOfDay,
    VehicleAllocation,
)
from .scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

DEFAULT_TELEMETRY_INTERVAL_SECONDS = 30


class CoordinatorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    COMPUTING = "computing"
    READY = "ready"
    ERROR = "error"


class ScheduleCoordinator:
    """
    Keeps the current vehicle schedule up to date.

    The schedule is recomputed from scratch on a timer and on demand, and
    adjusted in between whenever real-time telemetry arrives. Every state
    change goes through one lock, so recomputes and telemetry adjustments are
    serialized and readers always see a complete schedule.

    Failures are logged and stored in ``error``; the last good schedule is kept.
    """

    def __init__(
        self,
        initial_config: ScheduleConfig,
        service: Optional[SchedulingService] = None,
        scheduling_config: Optional[SchedulingServiceConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the coordinator and compute the first schedule.

        Args:
            initial_config: Schedule configuration used by periodic recomputes.
            service: Scheduling service. Built from scheduling_config and clock if omitted.
            scheduling_config: Service settings, including the recompute interval in minutes.
            clock: Zero-argument callable returning the current datetime.
        """
        if service is None:
            service = SchedulingService(clock=clock, config=scheduling_config)
        self.service = service
        self.scheduling_config = scheduling_config or service.config
        self.clock = service.clock

        self._config = initial_config
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._workers: List[threading.Thread] = []

        self._allocations: Dict[str, VehicleAllocation] = {}
        self._state = CoordinatorState.UNINITIALIZED
        self._error: Optional[Exception] = None
        self._time_of_day: Optional[TimeOfDay] = None
        self._last_updated: datetime = self.clock()

        self.update_schedule()

    # Read accessors

    @property
    def config(self) -> ScheduleConfig:
        return self._config

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def current_allocations(self) -> List[VehicleAllocation]:
        """Snapshot of the current allocations in route order."""
        return list(self._allocations.values())

    @property
    def allocations_by_route(self) -> Dict[str, VehicleAllocation]:
        """Snapshot of the current allocations keyed by route ID."""
        return dict(self._allocations)

    @property
    def is_loading(self) -> bool:
        return self._state == CoordinatorState.COMPUTING

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def time_of_day(self) -> str:
        return self._time_of_day.value if self._time_of_day else ""

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    @property
    def is_running(self) -> bool:
        return any(worker.is_alive() for worker in self._workers)

    def get_route_allocation(self, route_id: str) -> Optional[VehicleAllocation]:
        """
        Get the current allocation for a route.

        Returns:
            VehicleAllocation, or None if the route is not scheduled.
        """
        return self._allocations.get(route_id)

    # Mutations

    def update_schedule(self, config: Optional[ScheduleConfig] = None, raise_errors: bool = False) -> bool:
        """
        Recompute the full schedule now.

        The new schedule replaces the current one, including any real-time
        adjustments applied to it since the last recompute.

        Args:
            config: Configuration for this run. Defaults to the coordinator's config.
            raise_errors: Re-raise a failure after recording it.

        Returns:
            True if the new schedule was committed.
        """
        with self._lock:
            config = config if config is not None else self._config
            previous_state = self._state
            self._state = CoordinatorState.COMPUTING
            try:
                allocations = self.service.generate_schedule(config)
                if allocations:
                    time_of_day = next(iter(allocations.values())).time_of_day
                else:
                    time_of_day = self.service.get_current_time_of_day()
            except Exception as e:
                self._error = e
                self._state = CoordinatorState.ERROR
                logger.error(
                    f"Failed to update schedule (was {previous_state.value}): {e}", exc_info=True
                )
                if raise_errors:
                    raise
                return False

            self._allocations = allocations
            self._time_of_day = time_of_day
            self._last_updated = self.clock()
            self._error = None
            self._state = CoordinatorState.READY

        total = sum(a.allocated_vehicles for a in allocations.values())
        logger.info(
            f"Scheduled {total} vehicles across {len(allocations)} routes ({time_of_day.value})"
        )
        return True

    def reconfigure(self, config: ScheduleConfig, raise_errors: bool = False) -> bool:
        """Replace the configuration used by periodic recomputes and recompute now."""
        with self._lock:
            self._config = config
            return self.update_schedule(raise_errors=raise_errors)

    def update_real_time_data(self, data: Iterable[RouteRealTimeData]) -> bool:
        """
        Adjust the current schedule with a telemetry batch.

        The adjustment is applied to whichever schedule is current when this
        method runs. It is skipped unless the coordinator is ready with a
        non-empty schedule.

        Returns:
            True if an adjusted schedule was committed.
        """
        data = list(data)
        with self._lock:
            if self._state != CoordinatorState.READY or not self._allocations:
                logger.debug(f"Skipping telemetry for {len(data)} routes in state {self._state.value}")
                return False
            try:
                adjusted = self.service.adjust_for_real_time_demand(
                    self._allocations.values(), data
                )
            except Exception as e:
                self._error = e
                logger.error(f"Failed to apply real-time data: {e}", exc_info=True)
                return False

            self._allocations = {allocation.route_id: allocation for allocation in adjusted}
            self._last_updated = self.clock()

        logger.debug(f"Applied real-time data for {len(data)} routes")
        return True

    # Lifecycle

    def start(
        self,
        telemetry_source: Optional[Callable[[], Iterable[RouteRealTimeData]]] = None,
        telemetry_interval: float = DEFAULT_TELEMETRY_INTERVAL_SECONDS,
        update_interval: Optional[float] = None,
    ) -> None:
        """
        Start the periodic recompute and, optionally, telemetry polling.

        Args:
            telemetry_source: Callable returning a telemetry batch, polled every telemetry_interval.
            telemetry_interval: Seconds between telemetry polls.
            update_interval: Seconds between recomputes. Defaults to the configured interval.
        """
        if self.is_running:
            raise RuntimeError("Coordinator is already running")

        if update_interval is None:
            update_interval = self.scheduling_config.update_interval * 60

        self._stop_event.clear()
        self._workers = [
            threading.Thread(
                target=self._run_every,
                args=(update_interval, self.update_schedule),
                name="schedule-recompute",
                daemon=True,
            )
        ]
        if telemetry_source is not None:
            self._workers.append(
                threading.Thread(
                    target=self._run_every,
                    args=(telemetry_interval, lambda: self._poll_telemetry(telemetry_source)),
                    name="schedule-telemetry",
                    daemon=True,
                )
            )
        for worker in self._workers:
            worker.start()
        logger.info(f"Started schedule coordinator (recompute every {update_interval:.0f}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel the periodic workers and wait for them to finish."""
        self._stop_event.set()
        for worker in self._workers:
            if worker is not threading.current_thread():
                worker.join(timeout)
        self._workers = [worker for worker in self._workers if worker.is_alive()]
        for worker in self._workers:
            logger.warning(f"Worker {worker.name} still running after stop()")
        logger.info("Stopped schedule coordinator")

    def __enter__(self) -> "ScheduleCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run_every(self, interval: float, task: Callable[[], object]) -> None:
        while not self._stop_event.wait(interval):
            try:
                task()
            except Exception as e:
                logger.error(f"Periodic task failed: {e}", exc_info=True)

    def _poll_telemetry(self, source: Callable[[], Iterable[RouteRealTimeData]]) -> None:
        # Fetch outside the lock; the result is applied to the schedule current at that point
        try:
            data = list(source())
        except Exception as e:
            with self._lock:
                self._error = e
            logger.warning(f"Failed to fetch real-time data: {e}")
            return
        if self._stop_event.is_set():
            return
        self.update_real_time_data(data)
