"""Route construction: base -> stops -> base with travel totals."""

import logging
from typing import Any, Iterable, Sequence
from urllib.parse import quote_plus

from groom_route.scheduling.models import Appointment, Route, RouteLeg, Stop
from groom_route.scheduling.timeutils import appointment_duration, parse_time_or_default
from groom_route.scheduling.travel import TravelTimeProvider

logger = logging.getLogger(__name__)

GOOGLE_MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"


def sort_chronologically(appointments: Iterable[Appointment]) -> list[Appointment]:
    """Order by start time; unreadable times sort at noon, ties keep input order."""
    return sorted(appointments, key=lambda a: parse_time_or_default(a.time)[0])


def stops_from_appointments(appointments: Iterable[Appointment]) -> list[Stop]:
    """Project appointments onto routing stops, keeping their order."""
    return [
        Stop(
            appointment_id=appt.id,
            address=appt.address,
            estimated_duration_minutes=appointment_duration(appt),
        )
        for appt in appointments
    ]


class RouteModel:
    """Builds anchored routes from an ordered list of stops.

    Distance is not requested from any API: miles are derived from the
    summed travel minutes at a fixed average speed.
    """

    def __init__(
        self,
        provider: TravelTimeProvider,
        average_speed_mph: float = 24.0,
        fuel_mpg: float = 25.0,
        gas_price_per_gallon: float = 3.50,
    ) -> None:
        self.provider = provider
        self.average_speed_mph = average_speed_mph
        self.fuel_mpg = fuel_mpg
        self.gas_price_per_gallon = gas_price_per_gallon

    def miles_for_minutes(self, minutes: float) -> float:
        """Estimated miles driven in *minutes* at the average speed."""
        return round(max(minutes, 0) / 60 * self.average_speed_mph, 2)

    def fuel_cost(self, miles: float) -> float:
        """Estimated fuel cost in dollars for *miles*."""
        return round(miles / self.fuel_mpg * self.gas_price_per_gallon, 2)

    async def build(self, stops: Sequence[Stop], base_location: str) -> Route:
        """Build a route visiting *stops* in the given order.

        Stops without an address get no legs but stay in ``display_order``.
        Provider calls are awaited one at a time, in route order.
        """
        stops = list(stops)
        routed = [s for s in stops if s.has_address]
        unrouted = [s for s in stops if not s.has_address]

        legs: list[RouteLeg] = []
        prev_address, prev_id = base_location, None
        for stop in routed:
            estimate = await self.provider.estimate_detailed(prev_address, stop.address)
            legs.append(
                RouteLeg(
                    origin=prev_address,
                    destination=stop.address,
                    from_stop_id=prev_id,
                    to_stop_id=stop.appointment_id,
                    travel_minutes=estimate.minutes,
                    source=estimate.source,
                )
            )
            prev_address, prev_id = stop.address, stop.appointment_id

        if routed:
            estimate = await self.provider.estimate_detailed(prev_address, base_location)
            legs.append(
                RouteLeg(
                    origin=prev_address,
                    destination=base_location,
                    from_stop_id=prev_id,
                    to_stop_id=None,
                    travel_minutes=estimate.minutes,
                    source=estimate.source,
                )
            )

        total_minutes = sum(leg.travel_minutes for leg in legs)
        miles = self.miles_for_minutes(total_minutes)

        if unrouted:
            logger.info(f"{len(unrouted)} stop(s) without an address left out of travel totals")

        return Route(
            base_location=base_location,
            stops=routed,
            unrouted_stops=unrouted,
            display_order=[s.appointment_id for s in stops],
            legs=legs,
            total_travel_minutes=total_minutes,
            total_distance_miles=miles,
            estimated_fuel_cost=self.fuel_cost(miles),
        )

    async def build_day(
        self,
        appointments: Sequence[Appointment],
        base_location: str,
    ) -> Route:
        """Route through a day's appointments in chronological order.

        Appointments with unreadable start times sort at noon and mark the
        route as best-effort.
        """
        best_effort = any(not parse_time_or_default(a.time)[1] for a in appointments)
        route = await self.build(
            stops_from_appointments(sort_chronologically(appointments)), base_location
        )
        if best_effort:
            route.best_effort = True
        return route


def directions_url(route: Route) -> str:
    """Google Maps directions link from the base through every routed stop."""
    waypoints = [route.base_location, *(stop.address for stop in route.stops)]
    return GOOGLE_MAPS_DIRECTIONS_URL + "/".join(quote_plus(w) for w in waypoints)


def route_summary(route: Route) -> dict[str, Any]:
    """JSON-safe export of a route for sharing or download."""
    arrivals = {leg.to_stop_id: leg.travel_minutes for leg in route.legs if leg.to_stop_id}
    service_minutes = sum(stop.estimated_duration_minutes for stop in route.stops)
    return {
        "base_location": route.base_location,
        "stops": [
            {
                "sequence": index,
                "appointment_id": stop.appointment_id,
                "address": stop.address,
                "travel_minutes_from_previous": arrivals.get(stop.appointment_id, 0),
                "estimated_duration_minutes": stop.estimated_duration_minutes,
            }
            for index, stop in enumerate(route.stops, 1)
        ],
        "unrouted_appointment_ids": [stop.appointment_id for stop in route.unrouted_stops],
        "total_travel_minutes": route.total_travel_minutes,
        "total_day_minutes": route.total_travel_minutes + service_minutes,
        "total_distance_miles": route.total_distance_miles,
        "estimated_fuel_cost": route.estimated_fuel_cost,
        "directions_url": directions_url(route) if route.stops else None,
        "best_effort": route.best_effort,
    }


def create_route_model_from_settings(provider: TravelTimeProvider) -> RouteModel:
    """Create a route model using the configured speed and fuel model."""
    from groom_route.config import get_settings

    settings = get_settings()
    return RouteModel(
        provider,
        average_speed_mph=settings.average_speed_mph,
        fuel_mpg=settings.fuel_mpg,
        gas_price_per_gallon=settings.gas_price_per_gallon,
    )
