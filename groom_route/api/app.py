"""FastAPI application for GroomRoute."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groom_route import __version__
from groom_route.api.middleware import RequestLoggingMiddleware
from groom_route.api.routes import health, scheduling
from groom_route.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the travel provider and appointment store for the app's lifetime."""
    logger.info("Starting GroomRoute API")

    from groom_route.scheduling.persistence import create_store_from_settings
    from groom_route.scheduling.travel import create_travel_provider_from_settings

    travel_provider = create_travel_provider_from_settings()
    appointment_store = create_store_from_settings()

    app.state.travel_provider = travel_provider
    app.state.appointment_store = appointment_store

    logger.info(f"GroomRoute API started (travel source: {travel_provider.active_source.value})")

    yield

    logger.info("Shutting down GroomRoute API")
    if travel_provider.client is not None:
        await travel_provider.client.aclose()
    await appointment_store.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="GroomRoute API",
        description="Route optimization and auto-scheduling for mobile pet grooming",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(scheduling.router, prefix="/api/v1", tags=["scheduling"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.exception(f"[{request_id}] Unhandled exception on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "request_id": request_id,
                "detail": str(exc) if settings.log_level == "DEBUG" else None,
            },
        )

    return app
