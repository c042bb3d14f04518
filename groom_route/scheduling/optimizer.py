"""Route optimization for a groomer's daily visits."""

import logging
from typing import Optional, Sequence

from groom_route.observability import get_observability_logger
from groom_route.scheduling.models import Route, RouteOptimizationResult, Stop
from groom_route.scheduling.route import RouteModel, create_route_model_from_settings
from groom_route.scheduling.travel import TravelTimeProvider

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_MINUTES = 10


class RouteOptimizer:
    """Nearest-neighbour route optimizer anchored at the base location.

    A cheap heuristic meant for a single day's route (about 20 stops):
    it costs O(n^2) travel estimates, issued sequentially.
    """

    def __init__(
        self,
        provider: TravelTimeProvider,
        route_model: Optional[RouteModel] = None,
        threshold_minutes: int = DEFAULT_THRESHOLD_MINUTES,
    ) -> None:
        self.provider = provider
        self.route_model = route_model or RouteModel(provider)
        self.threshold_minutes = threshold_minutes

    async def optimize(
        self,
        stops: Sequence[Stop],
        base_location: str,
    ) -> tuple[list[Stop], int]:
        """Reorder stops to minimise travel (nearest-neighbour from the base).

        Returns the new order and its anchored travel total (including the
        drive back to base). Stops without an address are not candidates;
        they keep their original index in the returned order.
        """
        stops = list(stops)
        remaining = [s for s in stops if s.has_address]
        ordered: list[Stop] = []
        current_location = base_location
        total = 0

        while remaining:
            best_idx = 0
            best_time = await self.provider.estimate(current_location, remaining[0].address)
            for i, stop in enumerate(remaining[1:], 1):
                t = await self.provider.estimate(current_location, stop.address)
                if t < best_time:
                    best_time = t
                    best_idx = i

            chosen = remaining.pop(best_idx)
            ordered.append(chosen)
            total += best_time
            current_location = chosen.address

        if ordered:
            total += await self.provider.estimate(current_location, base_location)

        return self._restore_fixed_positions(stops, ordered), total

    @staticmethod
    def _restore_fixed_positions(original: list[Stop], ordered: list[Stop]) -> list[Stop]:
        """Interleave optimized stops around the address-less ones."""
        routed = iter(ordered)
        return [next(routed) if stop.has_address else stop for stop in original]

    async def evaluate(
        self,
        current_stops: Sequence[Stop],
        base_location: str,
    ) -> RouteOptimizationResult:
        """Compare the current order with the optimized one.

        Advisory only: nothing is written. Re-ordering is offered when it
        saves strictly more than ``threshold_minutes``; reported savings are
        never negative.
        """
        current_stops = list(current_stops)
        obs = get_observability_logger()

        with obs.route_run("evaluate", len(current_stops)) as event:
            original_route = await self.route_model.build(current_stops, base_location)
            ordered, _ = await self.optimize(current_stops, base_location)
            optimized_route = await self.route_model.build(ordered, base_location)

            saved_minutes = original_route.total_travel_minutes - optimized_route.total_travel_minutes
            saved_miles = original_route.total_distance_miles - optimized_route.total_distance_miles
            available = saved_minutes > self.threshold_minutes

            result = RouteOptimizationResult(
                available=available,
                is_optimal=not available,
                original_route=original_route,
                optimized_route=optimized_route,
                time_saved_minutes=max(saved_minutes, 0),
                distance_saved_miles=max(round(saved_miles, 2), 0.0),
                threshold_minutes=self.threshold_minutes,
            )

            event.total_travel_minutes = original_route.total_travel_minutes
            event.optimized_travel_minutes = optimized_route.total_travel_minutes
            event.time_saved_minutes = result.time_saved_minutes
            event.optimization_available = available

        if available:
            logger.info(
                f"Optimized route saves {saved_minutes} min "
                f"({original_route.total_travel_minutes} -> {optimized_route.total_travel_minutes})"
            )
        return result

    @staticmethod
    def flag_long_legs(route: Route, max_travel_minutes: int = 45) -> list[str]:
        """Flag legs whose estimated travel exceeds a threshold."""
        warnings: list[str] = []
        for leg in route.legs:
            if leg.travel_minutes > max_travel_minutes:
                warnings.append(
                    f"Travel from '{leg.origin}' to '{leg.destination}' estimated at "
                    f"{leg.travel_minutes} min (exceeds {max_travel_minutes} min threshold)"
                )
        return warnings


def create_optimizer_from_settings(
    provider: TravelTimeProvider,
    threshold_minutes: Optional[int] = None,
) -> RouteOptimizer:
    """Create an optimizer whose routes and threshold follow application settings."""
    from groom_route.config import get_settings

    if threshold_minutes is None:
        threshold_minutes = get_settings().optimization_threshold_minutes
    return RouteOptimizer(
        provider,
        route_model=create_route_model_from_settings(provider),
        threshold_minutes=threshold_minutes,
    )
