"""Observability module for routing and scheduling telemetry."""

from groom_route.observability.events import (
    EventType,
    GestureEvent,
    ObservabilityEvent,
    RouteEvent,
    ScheduleEvent,
    TravelEstimateEvent,
)
from groom_route.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "EventType",
    "GestureEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "RouteEvent",
    "ScheduleEvent",
    "TravelEstimateEvent",
    "get_observability_logger",
]
