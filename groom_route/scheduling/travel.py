"""Travel-time estimation with a live distance matrix and deterministic fallback."""

import hashlib
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from groom_route.observability import get_observability_logger
from groom_route.scheduling.models import (
    UNKNOWN_TRAVEL_MINUTES,
    TravelEstimate,
    TravelSource,
)

logger = logging.getLogger(__name__)

GOOGLE_DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
CANNOT_CALCULATE_MESSAGE = "cannot calculate route time"


class DistanceMatrixError(Exception):
    """Base exception for distance-matrix failures."""

    pass


class DistanceMatrixUnavailableError(DistanceMatrixError):
    """The distance-matrix service could not be reached or refused the request."""

    pass


class DistanceMatrixTimeoutError(DistanceMatrixError):
    """The distance-matrix request timed out."""

    pass


class DistanceMatrixResponseError(DistanceMatrixError):
    """The distance-matrix response was malformed or had no route."""

    pass


class DistanceMatrixClient(ABC):
    """Abstract live travel-time capability (driving mode)."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Short provider name for logs."""

    @abstractmethod
    async def duration_seconds(self, origin: str, destination: str) -> float:
        """Driving duration in seconds, or raise a DistanceMatrixError."""

    async def health_check(self) -> bool:
        """Check if the capability answers at all."""
        return True

    async def aclose(self) -> None:
        """Release network resources."""
        return None


class GoogleDistanceMatrixClient(DistanceMatrixClient):
    """Google Distance Matrix API over httpx. One attempt per request."""

    def __init__(
        self,
        api_key: str,
        base_url: str = GOOGLE_DISTANCE_MATRIX_URL,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Google Maps API key
            base_url: Distance Matrix JSON endpoint
            timeout: Request timeout in seconds
            client: Pre-built AsyncClient (tests inject a MockTransport here)
        """
        if not api_key:
            raise ValueError("Google Maps API key is not configured.")
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0))
        )

    @property
    def provider(self) -> str:
        return "google"

    async def duration_seconds(self, origin: str, destination: str) -> float:
        params = {
            "origins": origin,
            "destinations": destination,
            "mode": "driving",
            "units": "imperial",
            "key": self._api_key,
        }
        try:
            response = await self._client.get(self._base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise DistanceMatrixTimeoutError(
                f"Distance Matrix request timed out after {self._timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise DistanceMatrixUnavailableError(
                f"Distance Matrix returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DistanceMatrixUnavailableError(f"Distance Matrix request failed: {e}") from e
        except ValueError as e:
            raise DistanceMatrixResponseError("Distance Matrix response is not JSON") from e

        return self._parse_duration(data)

    @staticmethod
    def _parse_duration(data: Any) -> float:
        """Extract the single element's duration (seconds) from a response."""
        if not isinstance(data, dict):
            raise DistanceMatrixResponseError("Distance Matrix response is not an object")
        status = data.get("status")
        if status != "OK":
            raise DistanceMatrixResponseError(f"Distance Matrix status: {status}")
        try:
            row = data["rows"][0]
            element = row["elements"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise DistanceMatrixResponseError("Distance Matrix response has no elements") from e
        if not isinstance(row, dict) or not isinstance(element, dict):
            raise DistanceMatrixResponseError("Distance Matrix element is not an object")

        element_status = element.get("status")
        if element_status != "OK":
            raise DistanceMatrixResponseError(f"Distance Matrix element status: {element_status}")

        duration = element.get("duration")
        if not isinstance(duration, dict):
            raise DistanceMatrixResponseError(f"Invalid duration: {duration!r}")
        seconds = duration.get("value")
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds < 0:
            raise DistanceMatrixResponseError(f"Invalid duration value: {seconds!r}")
        return float(seconds)

    async def health_check(self) -> bool:
        """Check Distance Matrix availability with a trivial request."""
        try:
            await self.duration_seconds("Miami, FL", "Coral Gables, FL")
            return True
        except DistanceMatrixError as e:
            logger.debug(f"Distance Matrix health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self._client.aclose()


def normalize_address(address: str) -> str:
    """Case- and whitespace-insensitive form of an address."""
    return " ".join(address.casefold().split())


def fallback_travel_minutes(
    origin: str,
    destination: str,
    low: int = 8,
    high: int = 35,
) -> int:
    """Deterministic offline travel estimate in ``[low, high]`` minutes.

    The normalized pair is sorted before hashing, so A->B and B->A agree.
    Identical addresses are 0 minutes apart. No accuracy is claimed; the
    only guarantee is that identical inputs give identical outputs.
    """
    a, b = sorted((normalize_address(origin), normalize_address(destination)))
    if a == b:
        return 0
    digest = hashlib.sha256(f"{a}\n{b}".encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], "big")
    return low + value % (high - low + 1)


def seconds_to_minutes(seconds: float) -> int:
    """Whole minutes, rounded up."""
    return max(0, math.ceil(seconds / 60))


def describe_travel_minutes(minutes: int) -> str:
    """User-facing text; the unknown sentinel is never shown as a number."""
    if minutes == UNKNOWN_TRAVEL_MINUTES:
        return CANNOT_CALCULATE_MESSAGE
    return f"{minutes} min"


class TravelTimeCache:
    """Live travel estimates keyed by normalized (origin, destination)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], TravelEstimate] = {}

    @staticmethod
    def _key(origin: str, destination: str) -> tuple[str, str]:
        return normalize_address(origin), normalize_address(destination)

    def get(self, origin: str, destination: str) -> Optional[TravelEstimate]:
        return self._entries.get(self._key(origin, destination))

    def put(self, estimate: TravelEstimate) -> None:
        self._entries[self._key(estimate.origin, estimate.destination)] = estimate

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pair: tuple[str, str]) -> bool:
        return self._key(*pair) in self._entries


class TravelTimeProvider:
    """Travel minutes between addresses with live-first, fallback-second routing.

    Live failures never reach callers: they are absorbed into the
    deterministic fallback. After ``failure_threshold`` consecutive live
    failures the live client is skipped until ``reset_health`` is called
    (unless ``always_try_live`` is set).
    """

    def __init__(
        self,
        client: Optional[DistanceMatrixClient] = None,
        cache: Optional[TravelTimeCache] = None,
        fallback_min_minutes: int = 8,
        fallback_max_minutes: int = 35,
        failure_threshold: int = 3,
        always_try_live: bool = False,
    ):
        if fallback_min_minutes > fallback_max_minutes:
            raise ValueError("fallback_min_minutes must not exceed fallback_max_minutes")
        self.client = client
        self.cache = cache if cache is not None else TravelTimeCache()
        self.fallback_min_minutes = fallback_min_minutes
        self.fallback_max_minutes = fallback_max_minutes
        self.always_try_live = always_try_live

        self._live_healthy = True
        self._consecutive_failures = 0
        self._failure_threshold = failure_threshold

    async def estimate(self, origin: str, destination: str) -> int:
        """Driving minutes from *origin* to *destination*; never negative."""
        return (await self.estimate_detailed(origin, destination)).minutes

    async def estimate_detailed(self, origin: str, destination: str) -> TravelEstimate:
        """Like estimate, but reports where the number came from."""
        if normalize_address(origin) == normalize_address(destination):
            return TravelEstimate(
                origin=origin, destination=destination, minutes=0,
                source=TravelSource.SAME_LOCATION,
            )

        cached = self.cache.get(origin, destination)
        if cached is not None:
            return cached.model_copy(update={"source": TravelSource.CACHE})

        if self.client is None:
            reason = "no live distance-matrix client configured"
        elif not self._should_try_live():
            reason = f"{self.client.provider} marked unhealthy"
        else:
            try:
                return await self._live_estimate(origin, destination)
            except Exception as e:
                self._record_failure()
                reason = str(e) or type(e).__name__
                logger.warning(
                    f"Live travel estimate {origin!r} -> {destination!r} failed: {reason}. "
                    "Using fallback estimate."
                )

        minutes = fallback_travel_minutes(
            origin, destination, self.fallback_min_minutes, self.fallback_max_minutes
        )
        get_observability_logger().log_travel_fallback(origin, destination, minutes, reason)
        return TravelEstimate(
            origin=origin, destination=destination, minutes=minutes,
            source=TravelSource.FALLBACK,
        )

    async def estimate_live_or_unknown(self, origin: str, destination: str) -> int:
        """Live-only estimate for display: UNKNOWN_TRAVEL_MINUTES when unavailable."""
        if normalize_address(origin) == normalize_address(destination):
            return 0
        cached = self.cache.get(origin, destination)
        if cached is not None:
            return cached.minutes
        if self.client is None:
            return UNKNOWN_TRAVEL_MINUTES
        try:
            return (await self._live_estimate(origin, destination)).minutes
        except Exception as e:
            self._record_failure()
            logger.warning(f"Live travel estimate unavailable: {e!r}")
            return UNKNOWN_TRAVEL_MINUTES

    async def _live_estimate(self, origin: str, destination: str) -> TravelEstimate:
        seconds = await self.client.duration_seconds(origin, destination)
        self._record_success()
        estimate = TravelEstimate(
            origin=origin,
            destination=destination,
            minutes=seconds_to_minutes(seconds),
            source=TravelSource.LIVE,
        )
        self.cache.put(estimate)
        return estimate

    def _should_try_live(self) -> bool:
        if self.always_try_live:
            return True
        return self._live_healthy

    def _record_success(self) -> None:
        self._live_healthy = True
        self._consecutive_failures = 0

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self._failure_threshold and self._live_healthy:
            self._live_healthy = False
            logger.warning(
                f"Live travel estimates disabled after {self._consecutive_failures} failures"
            )

    def reset_health(self) -> None:
        """Allow live estimates again after they were marked unhealthy."""
        self._record_success()

    @property
    def active_source(self) -> TravelSource:
        """The source the next uncached estimate will try first."""
        if self.client is not None and self._should_try_live():
            return TravelSource.LIVE
        return TravelSource.FALLBACK

    async def health_check(self) -> dict[str, bool]:
        """Check health of the live capability (fallback is always available)."""
        live = await self.client.health_check() if self.client is not None else False
        return {"live": live, "fallback": True}


def create_travel_provider_from_settings(
    cache: Optional[TravelTimeCache] = None,
) -> TravelTimeProvider:
    """Create a travel-time provider from application settings."""
    from groom_route.config import get_settings

    settings = get_settings()

    client = None
    if settings.has_maps_key:
        client = GoogleDistanceMatrixClient(
            api_key=settings.google_maps_api_key,
            base_url=settings.distance_matrix_url,
            timeout=settings.distance_matrix_timeout,
        )
    else:
        logger.info("No Google Maps API key configured; travel times use the fallback estimator")

    return TravelTimeProvider(
        client=client,
        cache=cache,
        fallback_min_minutes=settings.fallback_min_minutes,
        fallback_max_minutes=settings.fallback_max_minutes,
    )
