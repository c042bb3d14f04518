"""JSON Lines telemetry for travel estimates, route runs, schedules and gestures."""

import json
import logging
import time
import uuid
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from groom_route.observability.events import (
    EventType,
    GestureEvent,
    ObservabilityEvent,
    RouteEvent,
    ScheduleEvent,
    TravelEstimateEvent,
)

logger = logging.getLogger(__name__)

# One file per event family, relative to the log directory.
LOG_FILES = {
    "travel": "travel.jsonl",
    "routes": "routes.jsonl",
    "schedule": "schedule.jsonl",
    "gestures": "gestures.jsonl",
}

MAX_MESSAGE_LENGTH = 200


def _count(events: list[dict], event_type: EventType) -> int:
    return sum(1 for e in events if e.get("event_type") == event_type.value)


# Extra per-family aggregates reported by get_stats.
_EXTRA_STATS: dict[str, Callable[[list[dict]], dict[str, Any]]] = {
    "travel": lambda events: {
        "pairs": len({(e.get("origin"), e.get("destination")) for e in events}),
    },
    "routes": lambda events: {
        "optimizations_offered": sum(1 for e in events if e.get("optimization_available")),
        "minutes_saved": sum(e.get("time_saved_minutes") or 0 for e in events),
    },
    "schedule": lambda events: {
        "appointments_changed": sum(e.get("changed_count") or 0 for e in events),
        "failed_writes": sum(len(e.get("failed_ids") or []) for e in events),
    },
    "gestures": lambda events: {
        "committed": _count(events, EventType.GESTURE_COMMITTED),
        "reverted": _count(events, EventType.GESTURE_REVERTED),
        "cancelled": _count(events, EventType.GESTURE_CANCELLED),
    },
}


class ObservabilityLogger:
    """Appends routing and scheduling events to per-family JSONL files.

    A process-wide instance is available through ``get_observability_logger``;
    tests install their own with ``set_instance``.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: When False, events are built but never written
        """
        self.enabled = enabled
        self.log_dir = Path(log_dir) if log_dir is not None else Path("data/logs")
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []
        self._session_id: Optional[str] = None

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Return the shared instance, building it from settings on first use."""
        if cls._instance is None:
            from groom_route.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.observability_log_dir,
                enabled=settings.observability_enabled,
            )
        return cls._instance

    @classmethod
    def set_instance(cls, instance: Optional["ObservabilityLogger"]) -> None:
        """Replace (or reset with None) the shared instance."""
        cls._instance = instance

    def log_path(self, log_type: str) -> Optional[Path]:
        name = LOG_FILES.get(log_type)
        return self.log_dir / name if name else None

    def set_session_id(self, session_id: str) -> None:
        """Tag subsequent events with an agenda session id."""
        self._session_id = session_id

    def generate_request_id(self) -> str:
        return uuid.uuid4().hex[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Register a listener called with every written event."""
        self._callbacks.append(callback)

    def _emit(self, event: ObservabilityEvent, log_type: str) -> None:
        if not self.enabled:
            return
        if self._session_id and not event.session_id:
            event.session_id = self._session_id

        path = self.log_path(log_type)
        if path is not None:
            try:
                with open(path, "a") as f:
                    f.write(event.model_dump_json() + "\n")
            except OSError as e:
                logger.warning(f"Could not append to {path}: {e}")

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Observability callback failed: {e}")

    @contextmanager
    def _timed(
        self,
        event: ObservabilityEvent,
        log_type: str,
        success: EventType,
        failure: EventType,
    ) -> Iterator[ObservabilityEvent]:
        """Yield *event* for the caller to fill in; stamp outcome and duration on exit."""
        started = time.perf_counter()
        try:
            yield event
            event.event_type = success
        except Exception as e:
            event.event_type = failure
            event.error_type = type(e).__name__
            event.error_message = str(e)[:MAX_MESSAGE_LENGTH]
            raise
        finally:
            event.duration_ms = (time.perf_counter() - started) * 1000
            self._emit(event, log_type)

    # Travel

    def log_travel_fallback(
        self,
        origin: str,
        destination: str,
        minutes: int,
        reason: str,
    ) -> None:
        """Record an estimate answered by the fallback estimator."""
        self._emit(
            TravelEstimateEvent(
                origin=origin,
                destination=destination,
                minutes=minutes,
                reason=reason[:MAX_MESSAGE_LENGTH],
            ),
            "travel",
        )

    # Route and schedule runs

    def route_run(
        self,
        operation: str,
        stop_count: int,
        request_id: Optional[str] = None,
    ):
        """Time a route build or evaluation.

        Usage:
            with obs.route_run("evaluate", len(stops)) as event:
                ...
                event.time_saved_minutes = saved
        """
        event = RouteEvent(
            event_type=EventType.ROUTE_START,
            operation=operation,
            stop_count=stop_count,
            request_id=request_id or self.generate_request_id(),
        )
        return self._timed(event, "routes", EventType.ROUTE_SUCCESS, EventType.ROUTE_ERROR)

    def schedule_run(
        self,
        mode: str,
        appointment_count: int,
        request_id: Optional[str] = None,
    ):
        """Time a reschedule run ("chronological", "optimized", ...)."""
        event = ScheduleEvent(
            event_type=EventType.SCHEDULE_START,
            mode=mode,
            appointment_count=appointment_count,
            request_id=request_id or self.generate_request_id(),
        )
        return self._timed(
            event, "schedule", EventType.SCHEDULE_SUCCESS, EventType.SCHEDULE_ERROR
        )

    # Gestures

    def log_gesture(
        self,
        event_type: EventType,
        appointment_id: str,
        gesture: str,
        new_time: Optional[str] = None,
        new_end_time: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self._emit(
            GestureEvent(
                event_type=event_type,
                appointment_id=appointment_id,
                gesture=gesture,
                new_time=new_time,
                new_end_time=new_end_time,
                error_message=error_message,
            ),
            "gestures",
        )

    # Reading back

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Last *limit* readable events of a family; corrupt lines are skipped."""
        path = self.log_path(log_type)
        if path is None or not path.exists():
            return []

        recent: deque[dict[str, Any]] = deque(maxlen=limit)
        with open(path) as f:
            for line in f:
                try:
                    recent.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return list(recent)

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Counts, error rate and mean duration, plus family-specific totals."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if str(e.get("event_type", "")).endswith("_error"))
        stats = {
            "total": total,
            "errors": errors,
            "error_rate": errors / total,
            "avg_duration_ms": sum(e.get("duration_ms") or 0 for e in events) / total,
        }
        extra = _EXTRA_STATS.get(log_type)
        if extra is not None:
            stats.update(extra(events))
        return stats


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
