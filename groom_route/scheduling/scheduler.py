"""Sequential auto-scheduling of a groomer's day."""

import logging
from typing import Optional, Sequence

from groom_route.observability import get_observability_logger
from groom_route.scheduling.models import (
    Appointment,
    AppointmentUpdate,
    RescheduleResult,
    ScheduleChange,
)
from groom_route.scheduling.optimizer import RouteOptimizer
from groom_route.scheduling.persistence import AppointmentStore
from groom_route.scheduling.route import sort_chronologically, stops_from_appointments
from groom_route.scheduling.timeutils import (
    MINUTES_PER_DAY,
    appointment_duration,
    format_minutes,
    parse_time_or_default,
)
from groom_route.scheduling.travel import TravelTimeProvider

logger = logging.getLogger(__name__)


def _same_time(old: Optional[str], new_minutes: int) -> bool:
    minutes, ok = parse_time_or_default(old) if old else (0, False)
    return ok and minutes == new_minutes


class AutoScheduler:
    """Recomputes start and end times from durations plus travel.

    ``start[i] = end[i-1] + travel(i-1, i)`` and ``end[i] = start[i] +
    duration[i]``, with the first start kept as the anchor. Only the order
    fed in differs between auto-scheduling and applying an optimized route.
    """

    def __init__(
        self,
        provider: TravelTimeProvider,
        optimizer: Optional[RouteOptimizer] = None,
        day_end_minutes: int = 22 * 60,
    ) -> None:
        self.provider = provider
        self.optimizer = optimizer or RouteOptimizer(provider)
        self.day_end_minutes = day_end_minutes

    async def reschedule(
        self,
        ordered_appointments: Sequence[Appointment],
        base_location: str,
        store: Optional[AppointmentStore] = None,
        mode: str = "reschedule",
        anchor_minutes: Optional[int] = None,
    ) -> RescheduleResult:
        """Assign sequential times to *ordered_appointments*.

        Args:
            ordered_appointments: Appointments in visiting order
            base_location: Start of the day's route; the drive to the first
                stop is reported but never moves the anchor
            store: When given, each changed appointment is written to it
            mode: Label recorded with the schedule event
            anchor_minutes: Start of the first appointment; defaults to the
                first appointment's own start time

        Returns:
            RescheduleResult with the intended (``proposed``) and actual
            post-write (``appointments``) state plus per-item failures
        """
        appointments = list(ordered_appointments)
        obs = get_observability_logger()

        with obs.schedule_run(mode, len(appointments)) as event:
            result = await self._compute(appointments, base_location, anchor_minutes)
            if store is not None:
                await self._persist(result, appointments, store)
            else:
                result.appointments = list(result.proposed)

            event.changed_count = len(result.changes)
            event.failed_ids = list(result.failures)
            event.best_effort = result.best_effort

        if result.failures:
            logger.warning(
                f"{len(result.failures)} of {len(result.changes)} appointment updates failed: "
                f"{', '.join(result.failures)}"
            )
        return result

    async def _compute(
        self,
        appointments: list[Appointment],
        base_location: str,
        anchor_minutes: Optional[int],
    ) -> RescheduleResult:
        result = RescheduleResult()
        if not appointments:
            return result

        first = appointments[0]
        if anchor_minutes is None:
            anchor_minutes, ok = parse_time_or_default(first.time)
            if not ok:
                result.best_effort = True
                result.notes.append(
                    f"Start time {first.time!r} of appointment {first.id} is unreadable; "
                    f"day anchored at {format_minutes(anchor_minutes)}"
                )

        prev_end: Optional[int] = None
        prev_address: Optional[str] = None
        for appt in appointments:
            duration = appointment_duration(appt)
            address = appt.address

            if prev_end is None:
                start = anchor_minutes
                travel = (
                    await self.provider.estimate(base_location, address) if address else 0
                )
            else:
                travel = 0
                if address and prev_address:
                    travel = await self.provider.estimate(prev_address, address)
                start = prev_end + travel
            end = start + duration
            if end >= MINUTES_PER_DAY:
                self._keep_after_midnight(result, appointments[len(result.proposed):])
                break

            update = AppointmentUpdate(
                time=format_minutes(start),
                end_time=format_minutes(end),
                duration=duration,
            )
            result.proposed.append(update.apply_to(appt))

            changed = not (
                _same_time(appt.time, start)
                and _same_time(appt.end_time, end)
                and appt.duration == duration
            )
            if changed:
                result.changes.append(
                    ScheduleChange(
                        appointment_id=appt.id,
                        old_time=appt.time,
                        new_time=update.time,
                        old_end_time=appt.end_time,
                        new_end_time=update.end_time,
                        old_duration=appt.duration,
                        new_duration=duration,
                        travel_minutes_before=travel,
                    )
                )

            prev_end = end
            if address:
                prev_address = address

        if prev_end is not None and prev_end > self.day_end_minutes:
            result.notes.append(
                f"Schedule runs past the end of the day ({format_minutes(prev_end)} "
                f"after {format_minutes(self.day_end_minutes)})"
            )
        return result

    @staticmethod
    def _keep_after_midnight(result: RescheduleResult, remaining: list[Appointment]) -> None:
        """Leave appointments that would end at or past midnight untouched."""
        result.proposed.extend(remaining)
        result.best_effort = True
        result.notes.append(
            f"{len(remaining)} appointment(s) would end after midnight and keep their "
            f"current times: {', '.join(appt.id for appt in remaining)}"
        )

    @staticmethod
    async def _persist(
        result: RescheduleResult,
        originals: list[Appointment],
        store: AppointmentStore,
    ) -> None:
        """Write each change independently; failures keep the old values."""
        changed_ids = {change.appointment_id for change in result.changes}
        actual: list[Appointment] = []

        for original, proposed in zip(originals, result.proposed):
            if original.id not in changed_ids:
                actual.append(proposed)
                continue

            update = AppointmentUpdate(
                time=proposed.time,
                end_time=proposed.end_time,
                duration=proposed.duration,
            )
            try:
                stored = await store.update_appointment(original.id, update)
            except Exception as e:
                logger.warning(f"Could not save appointment {original.id}: {e!r}")
                result.failures[original.id] = str(e) or type(e).__name__
                actual.append(original)
                continue
            actual.append(stored)

        result.appointments = actual

    async def auto_schedule(
        self,
        appointments: Sequence[Appointment],
        base_location: str,
        store: Optional[AppointmentStore] = None,
    ) -> RescheduleResult:
        """Keep the chronological visiting order and recompute the times."""
        ordered = sort_chronologically(appointments)
        return await self.reschedule(ordered, base_location, store, mode="chronological")

    async def apply_optimized_order(
        self,
        appointments: Sequence[Appointment],
        base_location: str,
        store: Optional[AppointmentStore] = None,
    ) -> RescheduleResult:
        """Reorder by the optimizer, then recompute the times.

        The day still starts when it did before: the anchor is the earliest
        start among *appointments*.
        """
        chronological = sort_chronologically(appointments)
        if not chronological:
            return await self.reschedule([], base_location, store, mode="optimized")

        stops = stops_from_appointments(chronological)
        ordered_stops, _ = await self.optimizer.optimize(stops, base_location)

        by_stop = {id(stop): appt for stop, appt in zip(stops, chronological)}
        ordered = [by_stop[id(stop)] for stop in ordered_stops]

        anchor, ok = parse_time_or_default(chronological[0].time)
        result = await self.reschedule(
            ordered, base_location, store, mode="optimized", anchor_minutes=anchor
        )
        if not ok:
            result.best_effort = True
            result.notes.append(
                f"Earliest start {chronological[0].time!r} is unreadable; "
                f"day anchored at {format_minutes(anchor)}"
            )
        return result
