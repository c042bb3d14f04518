"""Routing and scheduling endpoints."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from groom_route.api.dependencies import get_appointment_store, get_travel_provider
from groom_route.config import get_settings
from groom_route.scheduling.models import (
    Appointment,
    RescheduleResult,
    Route,
    RouteOptimizationResult,
    TravelSource,
)
from groom_route.scheduling.optimizer import RouteOptimizer, create_optimizer_from_settings
from groom_route.scheduling.persistence import AppointmentStore
from groom_route.scheduling.route import (
    create_route_model_from_settings,
    route_summary,
    sort_chronologically,
    stops_from_appointments,
)
from groom_route.scheduling.scheduler import AutoScheduler
from groom_route.scheduling.travel import TravelTimeProvider, describe_travel_minutes

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/response schemas
# ---------------------------------------------------------------------------

class DayRequest(BaseModel):
    """A day's appointments; the base location defaults to the configured one."""

    appointments: list[Appointment] = Field(default_factory=list)
    base_location: Optional[str] = None


class ScheduleRequest(DayRequest):
    mode: Literal["chronological", "optimized"] = "chronological"
    persist: bool = False


class TravelTimeResponse(BaseModel):
    origin: str
    destination: str
    minutes: int
    source: TravelSource
    display: str


class BuildRouteResponse(BaseModel):
    route: Route
    summary: dict
    warnings: list[str] = []


class OptimizeRouteResponse(BaseModel):
    optimized_order: list[str]
    total_travel_minutes: int
    evaluation: RouteOptimizationResult


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _base(request: DayRequest) -> str:
    return request.base_location or get_settings().base_location


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/travel-time", response_model=TravelTimeResponse)
async def travel_time(
    origin: str = Query(..., min_length=1),
    destination: str = Query(..., min_length=1),
    provider: TravelTimeProvider = Depends(get_travel_provider),
):
    """Driving minutes between two addresses (live or fallback)."""
    estimate = await provider.estimate_detailed(origin, destination)
    return TravelTimeResponse(
        origin=estimate.origin,
        destination=estimate.destination,
        minutes=estimate.minutes,
        source=estimate.source,
        display=describe_travel_minutes(estimate.minutes),
    )


@router.post("/routes/build", response_model=BuildRouteResponse)
async def build_route(
    req: DayRequest,
    provider: TravelTimeProvider = Depends(get_travel_provider),
):
    """Route through the day's appointments in chronological order."""
    route_model = create_route_model_from_settings(provider)
    route = await route_model.build_day(req.appointments, _base(req))
    return BuildRouteResponse(
        route=route,
        summary=route_summary(route),
        warnings=RouteOptimizer.flag_long_legs(route),
    )


@router.post("/routes/evaluate", response_model=RouteOptimizationResult)
async def evaluate_route(
    req: DayRequest,
    provider: TravelTimeProvider = Depends(get_travel_provider),
):
    """Compare the chronological order with the nearest-neighbour order."""
    stops = stops_from_appointments(sort_chronologically(req.appointments))
    return await create_optimizer_from_settings(provider).evaluate(stops, _base(req))


@router.post("/routes/optimize", response_model=OptimizeRouteResponse)
async def optimize_route(
    req: DayRequest,
    provider: TravelTimeProvider = Depends(get_travel_provider),
):
    """Suggested visiting order. Advisory only: nothing is written."""
    optimizer = create_optimizer_from_settings(provider)
    stops = stops_from_appointments(sort_chronologically(req.appointments))
    ordered, total = await optimizer.optimize(stops, _base(req))
    evaluation = await optimizer.evaluate(stops, _base(req))
    return OptimizeRouteResponse(
        optimized_order=[stop.appointment_id for stop in ordered],
        total_travel_minutes=total,
        evaluation=evaluation,
    )


@router.post("/schedule/auto", response_model=RescheduleResult)
async def auto_schedule(
    req: ScheduleRequest,
    provider: TravelTimeProvider = Depends(get_travel_provider),
    store: AppointmentStore = Depends(get_appointment_store),
):
    """Recompute start/end times from durations plus travel.

    With ``persist`` each changed appointment is written to the store;
    failures are reported per appointment and never roll back other writes.
    """
    settings = get_settings()
    scheduler = AutoScheduler(
        provider,
        optimizer=create_optimizer_from_settings(provider),
        day_end_minutes=settings.day_end_minutes,
    )
    target = store if req.persist else None

    if req.mode == "optimized":
        result = await scheduler.apply_optimized_order(req.appointments, _base(req), target)
    else:
        result = await scheduler.auto_schedule(req.appointments, _base(req), target)

    logger.info(
        f"Auto-schedule ({req.mode}) changed {len(result.changes)} of "
        f"{len(req.appointments)} appointments"
    )
    return result
