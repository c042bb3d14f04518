"""FastAPI dependencies resolving engine components from application state."""

from fastapi import HTTPException, Request

from groom_route.scheduling.persistence import AppointmentStore
from groom_route.scheduling.travel import TravelTimeProvider


def get_travel_provider(request: Request) -> TravelTimeProvider:
    provider = getattr(request.app.state, "travel_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="Travel-time provider not initialized")
    return provider


def get_appointment_store(request: Request) -> AppointmentStore:
    store = getattr(request.app.state, "appointment_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Appointment store not initialized")
    return store
