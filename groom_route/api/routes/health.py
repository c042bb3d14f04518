"""Health check endpoints."""

from fastapi import APIRouter, Depends

from groom_route import __version__
from groom_route.api.dependencies import get_travel_provider
from groom_route.scheduling.travel import TravelTimeProvider

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "groom-route",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(
    provider: TravelTimeProvider = Depends(get_travel_provider),
) -> dict:
    """Readiness: the engine can always answer, live travel times are optional."""
    sources = await provider.health_check()
    return {
        "status": "ready",
        "travel": sources,
        "degraded": not sources["live"],
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
