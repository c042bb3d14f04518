"""Appointment store adapters.

The engine never owns appointments: it proposes ``AppointmentUpdate`` writes
and hands them to an ``AppointmentStore``. Writes are idempotent for
identical input, so transient HTTP failures are retried.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from groom_route.scheduling.models import Appointment, AppointmentUpdate

logger = logging.getLogger(__name__)


class AppointmentStoreError(Exception):
    """A single appointment write failed."""

    def __init__(self, message: str, appointment_id: Optional[str] = None):
        super().__init__(message)
        self.appointment_id = appointment_id


class AppointmentNotFoundError(AppointmentStoreError):
    """The store has no appointment with the given id."""

    pass


class AppointmentStore(ABC):
    """Persistence collaborator consumed by the scheduler and gestures."""

    @abstractmethod
    async def update_appointment(
        self,
        appointment_id: str,
        update: AppointmentUpdate,
    ) -> Appointment:
        """Apply *update* and return the stored appointment.

        Raises:
            AppointmentStoreError: if the write did not happen
        """

    async def aclose(self) -> None:
        return None


class InMemoryAppointmentStore(AppointmentStore):
    """Dict-backed store for demos and tests.

    Failures can be injected per appointment id with ``fail_on``.
    """

    def __init__(self, appointments: Optional[Iterable[Appointment]] = None):
        self._appointments: dict[str, Appointment] = {
            appt.id: appt for appt in (appointments or [])
        }
        self._failures: dict[str, str] = {}
        self.writes: list[tuple[str, AppointmentUpdate]] = []

    def add(self, appointment: Appointment) -> None:
        self._appointments[appointment.id] = appointment

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def list_appointments(self) -> list[Appointment]:
        return list(self._appointments.values())

    def fail_on(self, appointment_id: str, message: str = "simulated store failure") -> None:
        """Make every write to *appointment_id* fail until ``clear_failures``."""
        self._failures[appointment_id] = message

    def clear_failures(self) -> None:
        self._failures.clear()

    async def update_appointment(
        self,
        appointment_id: str,
        update: AppointmentUpdate,
    ) -> Appointment:
        if appointment_id in self._failures:
            raise AppointmentStoreError(self._failures[appointment_id], appointment_id)

        current = self._appointments.get(appointment_id)
        if current is None:
            raise AppointmentNotFoundError(
                f"Appointment {appointment_id} not found", appointment_id
            )

        updated = update.apply_to(current)
        self._appointments[appointment_id] = updated
        self.writes.append((appointment_id, update))
        return updated


class _TransientStoreError(AppointmentStoreError):
    """Timeout or connection failure worth retrying."""

    pass


class HttpAppointmentStore(AppointmentStore):
    """Appointment store behind the booking app's REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the store.

        Args:
            base_url: API root; writes go to ``{base_url}/appointments/{id}``
            token: Bearer token, if the API requires one
            timeout: Request timeout in seconds
            client: Pre-built AsyncClient (tests inject a MockTransport here)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        if client is not None and token:
            self._client.headers.update(headers)

    async def update_appointment(
        self,
        appointment_id: str,
        update: AppointmentUpdate,
    ) -> Appointment:
        try:
            data = await self._put_with_retry(appointment_id, update.to_payload())
        except _TransientStoreError as e:
            raise AppointmentStoreError(
                f"Appointment {appointment_id} not saved after retries: {e}", appointment_id
            ) from e

        if isinstance(data, dict) and isinstance(data.get("appointment"), dict):
            data = data["appointment"]
        try:
            return Appointment.model_validate(data)
        except ValidationError as e:
            raise AppointmentStoreError(
                f"Store returned an invalid appointment for {appointment_id}", appointment_id
            ) from e

    @retry(
        retry=retry_if_exception_type(_TransientStoreError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.25, min=0.25, max=2),
        reraise=True,
    )
    async def _put_with_retry(self, appointment_id: str, payload: dict) -> object:
        url = f"{self.base_url}/appointments/{appointment_id}"
        try:
            response = await self._client.put(url, json=payload)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.warning(f"Appointment write {appointment_id} failed transiently: {e}")
            raise _TransientStoreError(str(e) or type(e).__name__, appointment_id) from e
        except httpx.HTTPError as e:
            raise AppointmentStoreError(f"Appointment write failed: {e}", appointment_id) from e

        if response.status_code == 404:
            raise AppointmentNotFoundError(
                f"Appointment {appointment_id} not found", appointment_id
            )
        if response.is_error:
            raise AppointmentStoreError(
                f"Appointment write returned HTTP {response.status_code}", appointment_id
            )
        try:
            return response.json()
        except ValueError as e:
            raise AppointmentStoreError("Appointment write response is not JSON", appointment_id) from e

    async def aclose(self) -> None:
        await self._client.aclose()


def create_store_from_settings(
    seed: Optional[Iterable[Appointment]] = None,
) -> AppointmentStore:
    """HTTP store when an appointments API is configured, else in-memory."""
    from groom_route.config import get_settings

    settings = get_settings()
    if settings.has_appointments_api:
        return HttpAppointmentStore(
            base_url=settings.appointments_api_url,
            token=settings.appointments_api_token,
            timeout=settings.appointments_api_timeout,
        )
    logger.info("No appointments API configured; using the in-memory store")
    return InMemoryAppointmentStore(seed)
