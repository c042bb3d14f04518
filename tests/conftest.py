"""Pytest configuration and fixtures."""

from typing import Optional

import pytest

from groom_route.config import get_settings
from groom_route.observability.logger import ObservabilityLogger
from groom_route.scheduling.models import Appointment, ClientInfo
from groom_route.scheduling.travel import (
    DistanceMatrixClient,
    DistanceMatrixResponseError,
    DistanceMatrixUnavailableError,
    TravelTimeProvider,
)

BASE = "L"

# Driving minutes between the base L and stops A, B, C. Pairs not listed
# are the reverse of a listed pair.
MATRIX_MINUTES: dict[tuple[str, str], int] = {
    ("L", "A"): 10,
    ("A", "B"): 5,
    ("B", "C"): 40,
    ("L", "B"): 8,
    ("B", "A"): 5,
    ("A", "C"): 20,
    ("L", "C"): 25,
    ("C", "L"): 15,
}


class StubDistanceMatrixClient(DistanceMatrixClient):
    """Distance matrix with fixed durations; records every request."""

    def __init__(self, minutes: Optional[dict[tuple[str, str], int]] = None):
        self.minutes = dict(MATRIX_MINUTES if minutes is None else minutes)
        self.calls: list[tuple[str, str]] = []

    @property
    def provider(self) -> str:
        return "stub"

    async def duration_seconds(self, origin: str, destination: str) -> float:
        self.calls.append((origin, destination))
        if (origin, destination) in self.minutes:
            return self.minutes[(origin, destination)] * 60.0
        if (destination, origin) in self.minutes:
            return self.minutes[(destination, origin)] * 60.0
        raise DistanceMatrixResponseError(f"No route between {origin} and {destination}")


class FailingDistanceMatrixClient(DistanceMatrixClient):
    """Distance matrix that is always down."""

    def __init__(self):
        self.calls = 0

    @property
    def provider(self) -> str:
        return "failing"

    async def duration_seconds(self, origin: str, destination: str) -> float:
        self.calls += 1
        raise DistanceMatrixUnavailableError("service unavailable")

    async def health_check(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Settings without live services, rebuilt for every test."""
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "")
    monkeypatch.setenv("APPOINTMENTS_API_URL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def obs_logger(tmp_path):
    """Route observability events to a per-test directory."""
    logger = ObservabilityLogger(log_dir=tmp_path / "obs", enabled=True)
    ObservabilityLogger.set_instance(logger)
    yield logger
    ObservabilityLogger.set_instance(None)


# ---------------------------------------------------------------------------
# Travel
# ---------------------------------------------------------------------------

@pytest.fixture
def stub_client():
    return StubDistanceMatrixClient()


@pytest.fixture
def provider(stub_client):
    """Provider answering from the fixed L/A/B/C matrix."""
    return TravelTimeProvider(client=stub_client)


@pytest.fixture
def failing_client():
    return FailingDistanceMatrixClient()


@pytest.fixture
def fallback_provider():
    """Provider with no live client: every estimate is the deterministic fallback."""
    return TravelTimeProvider()


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------

def make_appointment(
    appt_id: str,
    time: str,
    address: Optional[str],
    duration: Optional[int] = None,
    services: Optional[list] = None,
    end_time: Optional[str] = None,
    pet_count: int = 1,
) -> Appointment:
    return Appointment(
        id=appt_id,
        client=ClientInfo(name=f"Client {appt_id}", address=address),
        services=services or [],
        time=time,
        end_time=end_time,
        duration=duration,
        pet_count=pet_count,
    )


@pytest.fixture
def make_appt():
    """Factory for appointments (id, time, address, duration=..., services=...)."""
    return make_appointment


@pytest.fixture
def day_appointments():
    """Three appointments visiting A, B, C in that (chronological) order."""
    return [
        make_appointment("a", "9:00 AM", "A", duration=60),
        make_appointment("b", "11:00 AM", "B", duration=60),
        make_appointment("c", "1:00 PM", "C", duration=60),
    ]
