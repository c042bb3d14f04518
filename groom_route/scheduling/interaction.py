"""Drag and resize gestures on the calendar grid, as a state machine.

Device-independent: callers translate pointer events into ``begin_drag`` /
``begin_resize`` / ``move`` / ``end`` / ``cancel`` with positions in grid
pixels. Only one gesture is active at a time.
"""

import datetime as dt
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from groom_route.observability import EventType, get_observability_logger
from groom_route.scheduling.grid import CalendarGrid
from groom_route.scheduling.models import Appointment, AppointmentUpdate
from groom_route.scheduling.persistence import AppointmentStore
from groom_route.scheduling.timeutils import (
    appointment_duration,
    format_minutes,
    parse_time_or_default,
)

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class ResizeEdge(str, Enum):
    START = "start"
    END = "end"


class PointerPosition(BaseModel):
    """Pointer location in grid pixels (x across day columns, y down the day)."""

    x: float = 0.0
    y: float


class GesturePreview(BaseModel):
    """Optimistic placement shown while a gesture is in progress."""

    appointment_id: str
    date: Optional[dt.date] = None
    start_minutes: int
    end_minutes: int

    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes


class GestureOutcome(BaseModel):
    """Result of ending a gesture.

    ``appointment`` is what should be rendered: the stored appointment on
    success, the pre-gesture one when the write failed.
    """

    appointment_id: str
    gesture: str
    committed: bool
    update: Optional[AppointmentUpdate] = None
    appointment: Appointment
    error: Optional[str] = None


class InteractionError(Exception):
    """Controller misuse, such as ending a gesture that never started."""

    pass


class InteractionController:
    """Idle / Dragging / Resizing state machine for appointment blocks.

    Never triggers routing or auto-scheduling; it only writes the one
    appointment under the pointer.
    """

    def __init__(
        self,
        grid: CalendarGrid,
        store: Optional[AppointmentStore] = None,
        min_duration_minutes: int = 15,
        week_start: Optional[dt.date] = None,
        column_width: Optional[float] = None,
        days: int = 7,
    ):
        """Initialize the controller.

        Args:
            grid: Grid geometry used to convert and snap pointer positions
            store: Where committed gestures are written (None: local only)
            min_duration_minutes: Floor for resized durations
            week_start: First day column in a multi-day view; with
                ``column_width`` it lets a drag move an appointment across days
            column_width: Width of one day column in pixels
            days: Number of day columns
        """
        self.grid = grid
        self.store = store
        self.min_duration_minutes = min_duration_minutes
        self.week_start = week_start
        self.column_width = column_width
        self.days = days

        self.state = InteractionState.IDLE
        self.edge: Optional[ResizeEdge] = None
        self.preview: Optional[GesturePreview] = None
        self._appointment: Optional[Appointment] = None
        self._origin: Optional[GesturePreview] = None
        self._grab_offset = 0.0

    @property
    def active_appointment_id(self) -> Optional[str]:
        return self._appointment.id if self._appointment else None

    @property
    def is_idle(self) -> bool:
        return self.state == InteractionState.IDLE

    def _pointer_minutes(self, pointer: PointerPosition) -> float:
        return self.grid.day_start_minutes + self.grid.pixels_to_minutes(pointer.y)

    def _start(self, appointment: Appointment) -> GesturePreview:
        start, ok = parse_time_or_default(appointment.time)
        if not ok:
            logger.warning(f"Appointment {appointment.id} has an unreadable start time")
        origin = GesturePreview(
            appointment_id=appointment.id,
            date=appointment.date,
            start_minutes=start,
            end_minutes=start + appointment_duration(appointment),
        )
        self._appointment = appointment
        self._origin = origin
        self.preview = origin.model_copy()
        return origin

    def begin_drag(self, appointment: Appointment, pointer: PointerPosition) -> bool:
        """Start dragging *appointment*. Refused unless idle."""
        if not self.is_idle:
            logger.debug(
                f"Drag on {appointment.id} ignored while {self.state.value} "
                f"{self.active_appointment_id}"
            )
            return False
        origin = self._start(appointment)
        self._grab_offset = self._pointer_minutes(pointer) - origin.start_minutes
        self.state = InteractionState.DRAGGING
        return True

    def begin_resize(
        self,
        appointment: Appointment,
        edge: ResizeEdge,
        pointer: Optional[PointerPosition] = None,
    ) -> bool:
        """Start resizing one edge of *appointment*. Refused unless idle."""
        if not self.is_idle:
            logger.debug(f"Resize on {appointment.id} ignored while {self.state.value}")
            return False
        self._start(appointment)
        self.edge = ResizeEdge(edge)
        self.state = InteractionState.RESIZING
        if pointer is not None:
            self.move(pointer)
        return True

    def move(self, pointer: PointerPosition) -> Optional[GesturePreview]:
        """Update the optimistic preview; None when no gesture is active."""
        if self.is_idle:
            return None

        origin = self._origin
        pointer_minutes = self._pointer_minutes(pointer)

        if self.state == InteractionState.DRAGGING:
            start = self.grid.snap_to_grid(pointer_minutes - self._grab_offset)
            # the whole block stays inside the day window
            latest = self.grid.day_end_minutes - origin.duration
            start = max(self.grid.day_start_minutes, min(start, latest))
            day = origin.date
            if self.week_start is not None and self.column_width:
                day = self.grid.date_for_offset(
                    pointer.x, self.week_start, self.column_width, self.days
                )
            self.preview = GesturePreview(
                appointment_id=origin.appointment_id,
                date=day,
                start_minutes=start,
                end_minutes=start + origin.duration,
            )
        elif self.edge == ResizeEdge.START:
            start = min(
                self.grid.snap_to_grid(pointer_minutes),
                origin.end_minutes - self.min_duration_minutes,
            )
            self.preview = origin.model_copy(update={"start_minutes": start})
        else:
            end = max(
                self.grid.snap_to_grid(pointer_minutes),
                origin.start_minutes + self.min_duration_minutes,
            )
            self.preview = origin.model_copy(update={"end_minutes": end})

        return self.preview

    def _build_update(self) -> Optional[AppointmentUpdate]:
        origin, preview = self._origin, self.preview
        if preview == origin:
            return None

        if self.state == InteractionState.DRAGGING:
            return AppointmentUpdate(
                date=preview.date,
                time=format_minutes(preview.start_minutes),
                end_time=format_minutes(preview.end_minutes),
            )
        if self.edge == ResizeEdge.START:
            return AppointmentUpdate(
                time=format_minutes(preview.start_minutes),
                end_time=format_minutes(preview.end_minutes),
                duration=preview.duration,
            )
        return AppointmentUpdate(
            end_time=format_minutes(preview.end_minutes),
            duration=preview.duration,
        )

    def _gesture_name(self) -> str:
        if self.state == InteractionState.DRAGGING:
            return "drag"
        return f"resize-{self.edge.value}"

    def _reset(self) -> None:
        self.state = InteractionState.IDLE
        self.edge = None
        self.preview = None
        self._appointment = None
        self._origin = None
        self._grab_offset = 0.0

    async def end(self, pointer: Optional[PointerPosition] = None) -> GestureOutcome:
        """Finish the gesture and write the new placement to the store.

        On a failed write the outcome carries the error and the
        pre-gesture appointment.

        Raises:
            InteractionError: if no gesture is in progress
        """
        if self.is_idle:
            raise InteractionError("No drag or resize gesture in progress")
        if pointer is not None:
            self.move(pointer)

        appointment = self._appointment
        gesture = self._gesture_name()
        update = self._build_update()
        self._reset()

        if update is None:
            return GestureOutcome(
                appointment_id=appointment.id,
                gesture=gesture,
                committed=True,
                appointment=appointment,
            )

        obs = get_observability_logger()
        if self.store is None:
            stored = update.apply_to(appointment)
        else:
            try:
                stored = await self.store.update_appointment(appointment.id, update)
            except Exception as e:
                logger.warning(f"{gesture} of {appointment.id} not saved, reverting: {e}")
                obs.log_gesture(
                    EventType.GESTURE_REVERTED,
                    appointment.id,
                    gesture,
                    new_time=update.time,
                    new_end_time=update.end_time,
                    error_message=str(e)[:200],
                )
                return GestureOutcome(
                    appointment_id=appointment.id,
                    gesture=gesture,
                    committed=False,
                    update=update,
                    appointment=appointment,
                    error=str(e) or type(e).__name__,
                )

        obs.log_gesture(
            EventType.GESTURE_COMMITTED,
            appointment.id,
            gesture,
            new_time=update.time,
            new_end_time=update.end_time,
        )
        return GestureOutcome(
            appointment_id=appointment.id,
            gesture=gesture,
            committed=True,
            update=update,
            appointment=stored,
        )

    def cancel(self) -> Optional[Appointment]:
        """Abandon the gesture without writing; returns the appointment to re-render."""
        if self.is_idle:
            return None
        appointment = self._appointment
        get_observability_logger().log_gesture(
            EventType.GESTURE_CANCELLED, appointment.id, self._gesture_name()
        )
        self._reset()
        return appointment
