"""Scheduling and route-optimization engine for GroomRoute."""

from groom_route.scheduling.models import (
    Appointment,
    AppointmentUpdate,
    ClientInfo,
    RescheduleResult,
    Route,
    RouteOptimizationResult,
    ServiceEntry,
    Stop,
)
from groom_route.scheduling.grid import CalendarGrid
from groom_route.scheduling.interaction import InteractionController
from groom_route.scheduling.optimizer import RouteOptimizer
from groom_route.scheduling.persistence import (
    AppointmentStore,
    AppointmentStoreError,
    InMemoryAppointmentStore,
)
from groom_route.scheduling.route import RouteModel
from groom_route.scheduling.scheduler import AutoScheduler
from groom_route.scheduling.session import SchedulingSession
from groom_route.scheduling.travel import TravelTimeProvider

__all__ = [
    "Appointment",
    "AppointmentStore",
    "AppointmentStoreError",
    "AppointmentUpdate",
    "AutoScheduler",
    "CalendarGrid",
    "ClientInfo",
    "InMemoryAppointmentStore",
    "InteractionController",
    "RescheduleResult",
    "Route",
    "RouteModel",
    "RouteOptimizationResult",
    "RouteOptimizer",
    "SchedulingSession",
    "ServiceEntry",
    "Stop",
    "TravelTimeProvider",
]
