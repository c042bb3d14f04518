"""Pydantic models for the routing and scheduling engine."""

import datetime as dt
import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Sentinel for "no usable travel estimate" - shown to users, never scheduled with.
UNKNOWN_TRAVEL_MINUTES = -1

SERVICE_NAMES: dict[str, str] = {
    "full-groom": "Full Service Grooming",
    "bath-brush": "Bath & Brush",
    "nail-trim": "Nail Trim",
    "teeth-cleaning": "Teeth Cleaning",
    "flea-treatment": "Flea Treatment",
    "de-shedding": "De-Shedding Treatment",
    "ear-cleaning": "Ear Cleaning",
    "anal-glands": "Anal Gland Expression",
}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def service_code(text: str) -> str:
    """Slugify a service identifier or display name ('Nail Trim' -> 'nail-trim')."""
    return _SLUG_RE.sub("-", text.strip().lower()).strip("-")


class ServiceEntry(BaseModel):
    """A grooming service, normalized to a code plus display name."""

    code: str
    name: str

    @classmethod
    def from_raw(cls, raw: Any) -> "ServiceEntry":
        """Normalize a raw service value (string or mapping with id/code/name)."""
        if isinstance(raw, ServiceEntry):
            return raw
        if isinstance(raw, str):
            code = service_code(raw)
            if not code:
                raise ValueError("Service identifier is empty")
            return cls(code=code, name=SERVICE_NAMES.get(code, raw.strip()))
        if isinstance(raw, dict):
            ident = raw.get("code") or raw.get("id") or raw.get("name")
            if ident is None or not str(ident).strip():
                raise ValueError(f"Service entry has no id, code or name: {raw!r}")
            code = service_code(str(ident))
            name = raw.get("name") or SERVICE_NAMES.get(code, str(ident))
            return cls(code=code, name=str(name))
        raise ValueError(f"Unsupported service entry: {raw!r}")


class ClientInfo(BaseModel):
    """Client details attached to an appointment (read-only for routing)."""

    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None


class Appointment(BaseModel):
    """A booked grooming appointment."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    client: ClientInfo = Field(default_factory=ClientInfo)
    services: list[ServiceEntry] = Field(default_factory=list)
    date: Optional[dt.date] = None
    time: str
    end_time: Optional[str] = Field(default=None, alias="endTime")
    duration: Optional[int] = Field(default=None, ge=0)
    pet_count: int = Field(default=1, ge=1, alias="petCount")
    status: str = "pending"
    payment_status: Optional[str] = Field(default=None, alias="paymentStatus")

    @field_validator("services", mode="before")
    @classmethod
    def _normalize_services(cls, value: Any) -> list[ServiceEntry]:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        return [ServiceEntry.from_raw(item) for item in value]

    @property
    def address(self) -> Optional[str]:
        """Client address, or None when blank."""
        address = (self.client.address or "").strip()
        return address or None


class Stop(BaseModel):
    """Routing view of an appointment."""

    appointment_id: str
    address: Optional[str] = None
    estimated_duration_minutes: int = Field(default=60, ge=0)

    @field_validator("address", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def has_address(self) -> bool:
        return self.address is not None


class TravelSource(str, Enum):
    """Where a travel estimate came from."""

    LIVE = "live"
    FALLBACK = "fallback"
    CACHE = "cache"
    SAME_LOCATION = "same_location"
    UNKNOWN = "unknown"


class TravelEstimate(BaseModel):
    """Driving minutes for an ordered (origin, destination) pair."""

    origin: str
    destination: str
    minutes: int
    source: TravelSource

    @property
    def is_unknown(self) -> bool:
        return self.minutes == UNKNOWN_TRAVEL_MINUTES


class RouteLeg(BaseModel):
    """One driving leg of a route. Stop ids are None for the base location."""

    origin: str
    destination: str
    from_stop_id: Optional[str] = None
    to_stop_id: Optional[str] = None
    travel_minutes: int = Field(ge=0)
    source: TravelSource = TravelSource.FALLBACK


class Route(BaseModel):
    """Ordered stops anchored at the base location, with travel totals."""

    base_location: str
    stops: list[Stop] = Field(default_factory=list)
    unrouted_stops: list[Stop] = Field(default_factory=list)
    display_order: list[str] = Field(default_factory=list)
    legs: list[RouteLeg] = Field(default_factory=list)
    total_travel_minutes: int = 0
    total_distance_miles: float = 0.0
    estimated_fuel_cost: float = 0.0
    best_effort: bool = False

    @property
    def stop_ids(self) -> list[str]:
        return [stop.appointment_id for stop in self.stops]


class RouteOptimizationResult(BaseModel):
    """Comparison of the current visiting order with the optimized one."""

    available: bool
    is_optimal: bool
    original_route: Route
    optimized_route: Route
    time_saved_minutes: int = Field(default=0, ge=0)
    distance_saved_miles: float = Field(default=0.0, ge=0.0)
    threshold_minutes: int = 10


class GridPosition(BaseModel):
    """Minute offset from the grid's day start and its pixel offset."""

    minutes_from_day_start: int
    pixels: float


class AppointmentUpdate(BaseModel):
    """Partial appointment write sent to the appointment store."""

    model_config = ConfigDict(populate_by_name=True)

    time: Optional[str] = None
    end_time: Optional[str] = Field(default=None, alias="endTime")
    duration: Optional[int] = Field(default=None, ge=0)
    date: Optional[dt.date] = None

    def to_payload(self) -> dict[str, Any]:
        """Wire representation with unset fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def apply_to(self, appointment: Appointment) -> Appointment:
        """Return a copy of *appointment* with this update applied."""
        changes = self.model_dump(exclude_none=True)
        return appointment.model_copy(update=changes)


class ScheduleChange(BaseModel):
    """Old and new timing for one rescheduled appointment."""

    appointment_id: str
    old_time: str
    new_time: str
    old_end_time: Optional[str] = None
    new_end_time: str
    old_duration: Optional[int] = None
    new_duration: int
    travel_minutes_before: int = 0


class RescheduleResult(BaseModel):
    """Outcome of a reschedule run.

    ``proposed`` holds the intended timings; ``appointments`` holds what
    actually stands after the store writes (failed writes keep old values).
    """

    proposed: list[Appointment] = Field(default_factory=list)
    appointments: list[Appointment] = Field(default_factory=list)
    changes: list[ScheduleChange] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict)
    best_effort: bool = False
    notes: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures
