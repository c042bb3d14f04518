"""Time-of-day arithmetic and service duration lookup."""

import logging
import re
from typing import Any, Iterable

from groom_route.scheduling.models import Appointment, ServiceEntry

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
NOON = 12 * 60

# Per-service durations in minutes, keyed by normalized service code.
SERVICE_DURATIONS: dict[str, int] = {
    "full-groom": 90,
    "bath-brush": 60,
    "teeth-cleaning": 20,
    "flea-treatment": 20,
    "de-shedding": 30,
    "nail-trim": 15,
    "ear-cleaning": 10,
    "anal-glands": 10,
}
DEFAULT_SERVICE_MINUTES = 30
BASELINE_APPOINTMENT_MINUTES = 60
EXTRA_PET_MINUTES = 15

_TWELVE_HOUR_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp])\.?\s*[Mm]\.?\s*$")
_TWENTY_FOUR_HOUR_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class TimeParseError(ValueError):
    """Raised when a time-of-day string cannot be parsed."""


def parse_time_of_day(text: str) -> int:
    """Convert ``"H:MM AM/PM"`` (or 24-hour ``"HH:MM"``) to minutes from midnight.

    12 AM is 0 and 12 PM is 720. Raises TimeParseError instead of guessing.
    """
    if not isinstance(text, str):
        raise TimeParseError(f"Time of day must be a string, got {type(text).__name__}")

    m = _TWELVE_HOUR_RE.match(text)
    if m:
        hours, minutes, period = int(m.group(1)), int(m.group(2)), m.group(3).upper()
        if not 1 <= hours <= 12 or minutes > 59:
            raise TimeParseError(f"Invalid 12-hour time: {text!r}")
        hours = hours % 12
        if period == "P":
            hours += 12
        return hours * 60 + minutes

    m = _TWENTY_FOUR_HOUR_RE.match(text)
    if m:
        hours, minutes = int(m.group(1)), int(m.group(2))
        if hours > 23 or minutes > 59:
            raise TimeParseError(f"Invalid 24-hour time: {text!r}")
        return hours * 60 + minutes

    raise TimeParseError(f"Cannot parse time of day: {text!r}")


def format_minutes(minutes: int) -> str:
    """Render minutes from midnight as ``"H:MM AM/PM"`` (wraps past midnight)."""
    minutes = int(minutes) % MINUTES_PER_DAY
    hours, mins = divmod(minutes, 60)
    period = "AM" if hours < 12 else "PM"
    display_hour = hours % 12 or 12
    return f"{display_hour}:{mins:02d} {period}"


def normalize_time(text: str) -> str:
    """Canonical ``"H:MM AM/PM"`` form of a parseable time string."""
    return format_minutes(parse_time_of_day(text))


def parse_time_or_default(text: str | None, default: int = NOON) -> tuple[int, bool]:
    """Lenient parse used by routing and scheduling.

    Returns ``(minutes, ok)``. Unparseable or missing input yields *default*
    with ``ok=False`` so callers can flag the result as best-effort.
    """
    if text is None:
        return default, False
    try:
        return parse_time_of_day(text), True
    except TimeParseError:
        logger.warning(f"Unparseable time {text!r}; using {format_minutes(default)}")
        return default, False


def format_duration(minutes: int) -> str:
    """Render a duration as ``"1h 30m"``."""
    hours, mins = divmod(max(int(minutes), 0), 60)
    if not hours:
        return f"{mins}m"
    return f"{hours}h {mins}m"


def normalize_service(raw: Any) -> ServiceEntry:
    """Normalize a raw service value into a ServiceEntry."""
    return ServiceEntry.from_raw(raw)


def is_full_groom(code: str) -> bool:
    """Whether a service code is one of the full-grooming variants."""
    return code == "full-groom" or code.startswith("full-")


def duration_for_services(services: Iterable[Any], pet_count: int = 1) -> int:
    """Total appointment minutes for a list of services and a pet count.

    Full-grooming variants count once; unknown services take the default
    duration; no services at all falls back to the baseline. Every pet
    beyond the first adds a fixed surcharge.
    """
    entries = [normalize_service(s) for s in services]

    total = 0
    full_groom_counted = False
    for entry in entries:
        if is_full_groom(entry.code):
            if full_groom_counted:
                continue
            full_groom_counted = True
            total += SERVICE_DURATIONS["full-groom"]
        else:
            total += SERVICE_DURATIONS.get(entry.code, DEFAULT_SERVICE_MINUTES)

    if not entries:
        total = BASELINE_APPOINTMENT_MINUTES

    extra_pets = max(int(pet_count) - 1, 0)
    return total + extra_pets * EXTRA_PET_MINUTES


def appointment_duration(appointment: Appointment) -> int:
    """Stored duration when present, otherwise derived from services and pets."""
    if appointment.duration is not None:
        return appointment.duration
    return duration_for_services(appointment.services, appointment.pet_count)
