"""Structured observability events for routing and scheduling telemetry."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    TRAVEL_FALLBACK = "travel_fallback"
    ROUTE_START = "route_start"
    ROUTE_SUCCESS = "route_success"
    ROUTE_ERROR = "route_error"
    SCHEDULE_START = "schedule_start"
    SCHEDULE_SUCCESS = "schedule_success"
    SCHEDULE_ERROR = "schedule_error"
    GESTURE_COMMITTED = "gesture_committed"
    GESTURE_REVERTED = "gesture_reverted"
    GESTURE_CANCELLED = "gesture_cancelled"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TravelEstimateEvent(ObservabilityEvent):
    """Event for a travel estimate that had to use the fallback estimator."""

    event_type: EventType = EventType.TRAVEL_FALLBACK
    origin: str
    destination: str
    minutes: int
    reason: str


class RouteEvent(ObservabilityEvent):
    """Event for route build / optimization runs."""

    operation: str
    stop_count: int = 0

    # Results
    total_travel_minutes: Optional[int] = None
    optimized_travel_minutes: Optional[int] = None
    time_saved_minutes: Optional[int] = None
    optimization_available: Optional[bool] = None
    best_effort: bool = False

    # Error fields
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class ScheduleEvent(ObservabilityEvent):
    """Event for reschedule runs."""

    mode: str
    appointment_count: int = 0
    changed_count: int = 0
    failed_ids: list[str] = Field(default_factory=list)
    best_effort: bool = False

    # Error fields
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class GestureEvent(ObservabilityEvent):
    """Event for a finished drag or resize gesture."""

    appointment_id: str
    gesture: str
    new_time: Optional[str] = None
    new_end_time: Optional[str] = None
    error_message: Optional[str] = None
