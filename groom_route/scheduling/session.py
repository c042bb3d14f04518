"""Explicit scheduling session state for one agenda view."""

import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from groom_route.config import get_settings
from groom_route.scheduling.grid import CalendarGrid
from groom_route.scheduling.interaction import GestureOutcome, InteractionController
from groom_route.scheduling.models import (
    Appointment,
    RescheduleResult,
    RouteOptimizationResult,
    Stop,
)
from groom_route.scheduling.optimizer import RouteOptimizer, create_optimizer_from_settings
from groom_route.scheduling.persistence import AppointmentStore
from groom_route.scheduling.route import sort_chronologically, stops_from_appointments
from groom_route.scheduling.scheduler import AutoScheduler
from groom_route.scheduling.travel import (
    DistanceMatrixClient,
    TravelTimeCache,
    TravelTimeProvider,
)

logger = logging.getLogger(__name__)


class RequestGeneration:
    """Monotonic tokens; only the latest request's result may be applied."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def next(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current


@dataclass(frozen=True)
class SchedulingSession:
    """One day's appointments plus the state the agenda view works from.

    Operations return new sessions instead of mutating this one. The travel
    cache, gesture controller and generation counter are shared by every
    session derived from the same ``create`` call.
    """

    base_location: str
    provider: TravelTimeProvider
    optimizer: RouteOptimizer
    scheduler: AutoScheduler
    controller: InteractionController
    generation: RequestGeneration
    day: Optional[dt.date] = None
    appointments: tuple[Appointment, ...] = ()
    store: Optional[AppointmentStore] = None
    optimization: Optional[RouteOptimizationResult] = None
    last_schedule: Optional[RescheduleResult] = None
    notes: tuple[str, ...] = field(default=())

    @classmethod
    def create(
        cls,
        base_location: str,
        day: Optional[dt.date] = None,
        appointments: Iterable[Appointment] = (),
        client: Optional[DistanceMatrixClient] = None,
        store: Optional[AppointmentStore] = None,
        grid: Optional[CalendarGrid] = None,
        threshold_minutes: Optional[int] = None,
    ) -> "SchedulingSession":
        """Build a fresh session with its own travel cache.

        Fallback bounds, the fuel model, the optimization threshold, the grid
        and the minimum gesture duration default to the configured ones.
        """
        settings = get_settings()
        grid = grid or CalendarGrid.from_settings()
        provider = TravelTimeProvider(
            client=client,
            cache=TravelTimeCache(),
            fallback_min_minutes=settings.fallback_min_minutes,
            fallback_max_minutes=settings.fallback_max_minutes,
        )
        optimizer = create_optimizer_from_settings(provider, threshold_minutes)
        return cls(
            base_location=base_location,
            provider=provider,
            optimizer=optimizer,
            scheduler=AutoScheduler(provider, optimizer, day_end_minutes=grid.day_end_minutes),
            controller=InteractionController(
                grid, store, min_duration_minutes=settings.min_appointment_minutes
            ),
            generation=RequestGeneration(),
            day=day,
            appointments=tuple(sort_chronologically(list(appointments))),
            store=store,
        )

    @property
    def travel_cache(self) -> TravelTimeCache:
        return self.provider.cache

    def stops(self) -> list[Stop]:
        return stops_from_appointments(self.appointments)

    def with_appointments(self, appointments: Iterable[Appointment]) -> "SchedulingSession":
        """Same day with a new appointment list; derived results are dropped."""
        return replace(
            self,
            appointments=tuple(appointments),
            optimization=None,
            last_schedule=None,
            notes=(),
        )

    def with_results(
        self,
        optimization: Optional[RouteOptimizationResult] = None,
        schedule: Optional[RescheduleResult] = None,
    ) -> "SchedulingSession":
        changes: dict = {}
        if optimization is not None:
            changes["optimization"] = optimization
        if schedule is not None:
            changes["last_schedule"] = schedule
            changes["appointments"] = tuple(schedule.appointments)
            changes["notes"] = tuple(schedule.notes)
            # new times invalidate an earlier evaluation
            changes.setdefault("optimization", None)
        return replace(self, **changes)

    def open_day(
        self,
        day: dt.date,
        appointments: Iterable[Appointment],
    ) -> "SchedulingSession":
        """Switch the agenda to another day; in-flight work for the old day goes stale."""
        self.generation.next()
        return replace(
            self.with_appointments(sort_chronologically(list(appointments))),
            day=day,
        )

    def apply_gesture(self, outcome: GestureOutcome) -> "SchedulingSession":
        """Re-render from a finished gesture (stored or reverted appointment)."""
        updated = [
            outcome.appointment if appt.id == outcome.appointment_id else appt
            for appt in self.appointments
        ]
        return self.with_appointments(sort_chronologically(updated))

    async def evaluate_route(self) -> Optional["SchedulingSession"]:
        """Evaluate the current order; None if a newer request superseded it."""
        token = self.generation.next()
        result = await self.optimizer.evaluate(self.stops(), self.base_location)
        if not self.generation.is_current(token):
            logger.info(f"Discarding stale route evaluation (generation {token})")
            return None
        return self.with_results(optimization=result)

    async def auto_schedule(self, optimized: bool = False) -> Optional["SchedulingSession"]:
        """Recompute times (optionally in optimized order) and write them to the store."""
        token = self.generation.next()
        if optimized:
            result = await self.scheduler.apply_optimized_order(
                self.appointments, self.base_location, self.store
            )
        else:
            result = await self.scheduler.auto_schedule(
                self.appointments, self.base_location, self.store
            )
        if not self.generation.is_current(token):
            logger.info(f"Discarding stale schedule result (generation {token})")
            return None
        return self.with_results(schedule=result)
