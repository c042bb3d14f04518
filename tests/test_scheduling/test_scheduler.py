"""Tests for sequential auto-scheduling."""

import pytest

from groom_route.scheduling.persistence import InMemoryAppointmentStore
from groom_route.scheduling.scheduler import AutoScheduler
from groom_route.scheduling.timeutils import parse_time_of_day

BASE = "L"


class CrashingStore(InMemoryAppointmentStore):
    """Store whose driver fails with a non-store error for one appointment."""

    def __init__(self, appointments, crash_on: str):
        super().__init__(appointments)
        self.crash_on = crash_on

    async def update_appointment(self, appointment_id, update):
        if appointment_id == self.crash_on:
            raise RuntimeError("driver crashed")
        return await super().update_appointment(appointment_id, update)


@pytest.fixture
def scheduler(provider):
    return AutoScheduler(provider)


def _times(appointments):
    return [(a.id, a.time, a.end_time) for a in appointments]


# ---------------------------------------------------------------- reschedule

class TestReschedule:
    @pytest.mark.asyncio
    async def test_start_follows_previous_end_plus_travel(self, scheduler, make_appt):
        appts = [
            make_appt("a", "9:00 AM", "A", duration=60),
            make_appt("c", "11:00 AM", "C", duration=60),
        ]
        result = await scheduler.reschedule(appts, BASE)

        # 9:00 + 60 min service + 20 min A->C
        assert _times(result.appointments) == [
            ("a", "9:00 AM", "10:00 AM"),
            ("c", "10:20 AM", "11:20 AM"),
        ]
        assert result.changes[-1].travel_minutes_before == 20

    @pytest.mark.asyncio
    async def test_no_overlaps_and_consistent_ends(self, scheduler, day_appointments):
        result = await scheduler.reschedule(day_appointments, BASE)

        starts = [parse_time_of_day(a.time) for a in result.appointments]
        ends = [parse_time_of_day(a.end_time) for a in result.appointments]
        for appt, start, end in zip(result.appointments, starts, ends):
            assert end == start + appt.duration
        for i in range(len(starts) - 1):
            assert starts[i + 1] >= ends[i]

    @pytest.mark.asyncio
    async def test_chain_through_the_day(self, scheduler, day_appointments):
        result = await scheduler.reschedule(day_appointments, BASE)
        assert _times(result.appointments) == [
            ("a", "9:00 AM", "10:00 AM"),
            ("b", "10:05 AM", "11:05 AM"),
            ("c", "11:45 AM", "12:45 PM"),
        ]

    @pytest.mark.asyncio
    async def test_drive_from_base_does_not_move_anchor(self, scheduler, day_appointments):
        result = await scheduler.reschedule(day_appointments, BASE)
        assert result.appointments[0].time == "9:00 AM"
        assert result.changes[0].travel_minutes_before == 10

    @pytest.mark.asyncio
    async def test_unaddressed_appointment_gets_no_travel(self, scheduler, make_appt):
        appts = [
            make_appt("a", "9:00 AM", "A", duration=60),
            make_appt("x", "10:00 AM", None, duration=60),
            make_appt("c", "11:00 AM", "C", duration=60),
        ]
        result = await scheduler.reschedule(appts, BASE)

        # x starts right after a; c is reached from A, the last known address
        assert _times(result.appointments) == [
            ("a", "9:00 AM", "10:00 AM"),
            ("x", "10:00 AM", "11:00 AM"),
            ("c", "11:20 AM", "12:20 PM"),
        ]

    @pytest.mark.asyncio
    async def test_duration_derived_from_services(self, scheduler, make_appt):
        appts = [make_appt("a", "9:00 AM", "A", services=["full-groom", "nail-trim"])]
        result = await scheduler.reschedule(appts, BASE)
        assert result.appointments[0].duration == 105
        assert result.appointments[0].end_time == "10:45 AM"

    @pytest.mark.asyncio
    async def test_unchanged_appointment_not_listed(self, scheduler, make_appt):
        appts = [make_appt("a", "9:00 AM", "A", duration=60, end_time="10:00 AM")]
        result = await scheduler.reschedule(appts, BASE)
        assert result.changes == []
        assert _times(result.appointments) == [("a", "9:00 AM", "10:00 AM")]

    @pytest.mark.asyncio
    async def test_explicit_anchor(self, scheduler, day_appointments):
        result = await scheduler.reschedule(day_appointments, BASE, anchor_minutes=8 * 60)
        assert result.appointments[0].time == "8:00 AM"

    @pytest.mark.asyncio
    async def test_unreadable_anchor_is_best_effort(self, scheduler, make_appt):
        appts = [make_appt("a", "first thing", "A", duration=60)]
        result = await scheduler.reschedule(appts, BASE)

        assert result.best_effort is True
        assert result.appointments[0].time == "12:00 PM"
        assert "unreadable" in result.notes[0]

    @pytest.mark.asyncio
    async def test_past_end_of_day_noted(self, provider, make_appt):
        scheduler = AutoScheduler(provider, day_end_minutes=22 * 60)
        appts = [make_appt("late", "9:00 PM", "A", duration=90)]
        result = await scheduler.reschedule(appts, BASE)

        assert result.appointments[0].end_time == "10:30 PM"
        assert any("past the end of the day" in note for note in result.notes)

    @pytest.mark.asyncio
    async def test_appointments_past_midnight_keep_their_times(self, scheduler, make_appt):
        appts = [
            make_appt("a", "10:30 PM", "A", duration=90),
            make_appt("c", "11:00 PM", "C", duration=60),
        ]
        result = await scheduler.reschedule(appts, BASE)

        assert result.best_effort is True
        assert result.changes == []
        assert result.proposed == appts
        assert any("after midnight" in note for note in result.notes)

    @pytest.mark.asyncio
    async def test_stops_before_midnight(self, scheduler, make_appt):
        appts = [
            make_appt("a", "10:00 PM", "A", duration=60),
            make_appt("c", "11:00 PM", "C", duration=60),
        ]
        store = InMemoryAppointmentStore(appts)
        result = await scheduler.reschedule(appts, BASE, store=store)

        # 11:00 PM + 20 min A->C + 60 min would end at 12:20 AM
        assert _times(result.appointments) == [
            ("a", "10:00 PM", "11:00 PM"),
            ("c", "11:00 PM", None),
        ]
        assert [change.appointment_id for change in result.changes] == ["a"]
        assert [appt_id for appt_id, _ in store.writes] == ["a"]
        assert result.best_effort is True
        assert result.succeeded

    @pytest.mark.asyncio
    async def test_empty_day(self, scheduler, stub_client):
        result = await scheduler.reschedule([], BASE)
        assert result.appointments == []
        assert result.changes == []
        assert result.succeeded
        assert stub_client.calls == []

    @pytest.mark.asyncio
    async def test_input_not_mutated(self, scheduler, day_appointments):
        before = [a.model_copy() for a in day_appointments]
        await scheduler.reschedule(day_appointments, BASE)
        assert day_appointments == before


# ---------------------------------------------------------------- persistence

class TestPersistence:
    @pytest.mark.asyncio
    async def test_changes_written_to_store(self, scheduler, day_appointments):
        store = InMemoryAppointmentStore(day_appointments)
        result = await scheduler.reschedule(day_appointments, BASE, store=store)

        assert result.succeeded
        assert [appt_id for appt_id, _ in store.writes] == ["a", "b", "c"]
        assert store.get("c").time == "11:45 AM"
        assert result.appointments == result.proposed

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_original(self, scheduler, day_appointments):
        store = InMemoryAppointmentStore(day_appointments)
        store.fail_on("b")

        result = await scheduler.reschedule(day_appointments, BASE, store=store)

        assert result.succeeded is False
        assert result.failures == {"b": "simulated store failure"}
        # the other writes still happen
        assert [appt_id for appt_id, _ in store.writes] == ["a", "c"]
        assert result.appointments[1].time == "11:00 AM"
        assert result.proposed[1].time == "10:05 AM"
        assert result.appointments[2].time == "11:45 AM"

    @pytest.mark.asyncio
    async def test_unknown_appointment_recorded_as_failure(self, scheduler, day_appointments):
        store = InMemoryAppointmentStore(day_appointments[:2])
        result = await scheduler.reschedule(day_appointments, BASE, store=store)
        assert list(result.failures) == ["c"]
        assert "not found" in result.failures["c"]

    @pytest.mark.asyncio
    async def test_unexpected_store_error_does_not_abort(self, scheduler, make_appt):
        appts = [
            make_appt("a", "7:00 AM", "A", duration=60),
            make_appt("b", "11:00 AM", "B", duration=60),
            make_appt("c", "1:00 PM", "C", duration=60),
        ]
        store = CrashingStore(appts, crash_on="a")

        result = await scheduler.reschedule(appts, BASE, store=store)

        assert result.failures == {"a": "driver crashed"}
        assert [appt_id for appt_id, _ in store.writes] == ["b", "c"]
        assert result.appointments[0] == appts[0]
        assert result.appointments[1].time == "8:05 AM"

    @pytest.mark.asyncio
    async def test_failures_recorded_as_event(self, scheduler, day_appointments, obs_logger):
        store = InMemoryAppointmentStore(day_appointments)
        store.fail_on("a")
        await scheduler.reschedule(day_appointments, BASE, store=store)

        event = obs_logger.get_recent_events("schedule")[-1]
        assert event["event_type"] == "schedule_success"
        assert event["failed_ids"] == ["a"]
        assert event["changed_count"] == 3


# ------------------------------------------------------------ entry points

class TestAutoSchedule:
    @pytest.mark.asyncio
    async def test_sorts_chronologically(self, scheduler, day_appointments):
        shuffled = [day_appointments[2], day_appointments[0], day_appointments[1]]
        result = await scheduler.auto_schedule(shuffled, BASE)
        assert [a.id for a in result.appointments] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_mode_recorded(self, scheduler, day_appointments, obs_logger):
        await scheduler.auto_schedule(day_appointments, BASE)
        assert obs_logger.get_recent_events("schedule")[-1]["mode"] == "chronological"


class TestApplyOptimizedOrder:
    @pytest.mark.asyncio
    async def test_reorders_and_keeps_day_start(self, scheduler, day_appointments):
        result = await scheduler.apply_optimized_order(day_appointments, BASE)

        # nearest neighbour from L: B (8), A (5), C (20)
        assert _times(result.appointments) == [
            ("b", "9:00 AM", "10:00 AM"),
            ("a", "10:05 AM", "11:05 AM"),
            ("c", "11:25 AM", "12:25 PM"),
        ]
        assert result.changes[0].travel_minutes_before == 8

    @pytest.mark.asyncio
    async def test_anchor_is_earliest_start(self, scheduler, make_appt):
        appts = [
            make_appt("c", "10:30 AM", "C", duration=30),
            make_appt("a", "8:15 AM", "A", duration=30),
        ]
        result = await scheduler.apply_optimized_order(appts, BASE)
        assert result.appointments[0].time == "8:15 AM"

    @pytest.mark.asyncio
    async def test_unaddressed_keeps_position(self, scheduler, make_appt):
        appts = [
            make_appt("a", "9:00 AM", "A", duration=60),
            make_appt("x", "10:00 AM", None, duration=30),
            make_appt("b", "11:00 AM", "B", duration=60),
        ]
        result = await scheduler.apply_optimized_order(appts, BASE)
        assert [a.id for a in result.appointments] == ["b", "x", "a"]

    @pytest.mark.asyncio
    async def test_empty(self, scheduler):
        result = await scheduler.apply_optimized_order([], BASE)
        assert result.appointments == []

    @pytest.mark.asyncio
    async def test_writes_through_store(self, scheduler, day_appointments):
        store = InMemoryAppointmentStore(day_appointments)
        await scheduler.apply_optimized_order(day_appointments, BASE, store=store)
        assert store.get("b").time == "9:00 AM"
        assert store.get("a").time == "10:05 AM"
