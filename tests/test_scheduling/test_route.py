"""Tests for route construction."""

import pytest

from groom_route.scheduling.models import Stop, TravelSource
from groom_route.scheduling.route import (
    RouteModel,
    directions_url,
    route_summary,
    sort_chronologically,
    stops_from_appointments,
)

BASE = "L"


@pytest.fixture
def model(provider):
    return RouteModel(provider)


def _stops(*addresses):
    return [
        Stop(appointment_id=f"s{i}", address=addr, estimated_duration_minutes=60)
        for i, addr in enumerate(addresses)
    ]


class TestBuild:
    @pytest.mark.asyncio
    async def test_anchored_legs(self, model):
        route = await model.build(_stops("A", "B", "C"), BASE)

        assert [(leg.origin, leg.destination) for leg in route.legs] == [
            ("L", "A"), ("A", "B"), ("B", "C"), ("C", "L"),
        ]
        assert [leg.travel_minutes for leg in route.legs] == [10, 5, 40, 15]
        assert route.total_travel_minutes == 70
        assert route.legs[0].from_stop_id is None
        assert route.legs[-1].to_stop_id is None
        assert all(leg.source == TravelSource.LIVE for leg in route.legs)

    @pytest.mark.asyncio
    async def test_distance_and_fuel_from_minutes(self, model):
        route = await model.build(_stops("A", "B", "C"), BASE)
        # 70 min at 24 mph
        assert route.total_distance_miles == 28.0
        # 28 mi / 25 mpg * $3.50
        assert route.estimated_fuel_cost == 3.92

    @pytest.mark.asyncio
    async def test_stop_without_address_kept_for_display(self, model):
        stops = _stops("A", None, "C")
        route = await model.build(stops, BASE)

        assert route.stop_ids == ["s0", "s2"]
        assert [s.appointment_id for s in route.unrouted_stops] == ["s1"]
        assert route.display_order == ["s0", "s1", "s2"]
        assert route.total_travel_minutes == 10 + 20 + 15

    @pytest.mark.asyncio
    async def test_blank_address_treated_as_missing(self, model):
        route = await model.build(_stops("A", "   "), BASE)
        assert route.stop_ids == ["s0"]
        assert len(route.unrouted_stops) == 1

    @pytest.mark.asyncio
    async def test_empty_route(self, model, stub_client):
        route = await model.build([], BASE)
        assert route.legs == []
        assert route.total_travel_minutes == 0
        assert route.total_distance_miles == 0.0
        assert stub_client.calls == []

    @pytest.mark.asyncio
    async def test_does_not_mutate_input(self, model):
        stops = _stops("C", "A")
        snapshot = [s.model_copy() for s in stops]
        await model.build(stops, BASE)
        assert stops == snapshot

    @pytest.mark.asyncio
    async def test_provider_calls_in_route_order(self, model, stub_client):
        await model.build(_stops("B", "A"), BASE)
        assert stub_client.calls == [("L", "B"), ("B", "A"), ("A", "L")]


class TestBuildDay:
    @pytest.mark.asyncio
    async def test_sorts_chronologically(self, model, make_appt):
        appts = [
            make_appt("late", "1:00 PM", "C"),
            make_appt("early", "9:00 AM", "A"),
        ]
        route = await model.build_day(appts, BASE)
        assert route.stop_ids == ["early", "late"]
        assert route.best_effort is False

    @pytest.mark.asyncio
    async def test_unreadable_time_is_best_effort(self, model, make_appt):
        appts = [
            make_appt("x", "sometime", "B"),
            make_appt("a", "9:00 AM", "A"),
            make_appt("c", "1:00 PM", "C"),
        ]
        route = await model.build_day(appts, BASE)
        # unreadable sorts at noon
        assert route.stop_ids == ["a", "x", "c"]
        assert route.best_effort is True


class TestHelpers:
    def test_stops_from_appointments(self, make_appt):
        appts = [
            make_appt("a", "9:00 AM", "A", duration=45),
            make_appt("b", "10:00 AM", None, services=["full-groom", "nail-trim"]),
        ]
        stops = stops_from_appointments(appts)
        assert [(s.appointment_id, s.address, s.estimated_duration_minutes) for s in stops] == [
            ("a", "A", 45),
            ("b", None, 105),
        ]

    def test_sort_is_stable(self, make_appt):
        appts = [make_appt("first", "9:00 AM", "A"), make_appt("second", "9:00 AM", "B")]
        assert [a.id for a in sort_chronologically(appts)] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_directions_url(self, model):
        route = await model.build(
            [Stop(appointment_id="s", address="77 Ocean Dr, Miami Beach")], "8401 Coral Way"
        )
        assert directions_url(route) == (
            "https://www.google.com/maps/dir/8401+Coral+Way/77+Ocean+Dr%2C+Miami+Beach"
        )

    @pytest.mark.asyncio
    async def test_route_summary(self, model):
        route = await model.build(_stops("A", None, "C"), BASE)
        summary = route_summary(route)

        assert [s["appointment_id"] for s in summary["stops"]] == ["s0", "s2"]
        assert summary["stops"][1]["travel_minutes_from_previous"] == 20
        assert summary["unrouted_appointment_ids"] == ["s1"]
        assert summary["total_travel_minutes"] == 45
        assert summary["total_day_minutes"] == 45 + 120
        assert summary["directions_url"].startswith("https://www.google.com/maps/dir/")

    @pytest.mark.asyncio
    async def test_summary_of_empty_route_has_no_link(self, model):
        summary = route_summary(await model.build([], BASE))
        assert summary["directions_url"] is None
