"""
Tests for the slot engine.
"""

from datetime import date

import pytest

from slotengine.domain.exceptions import InvalidInputError
from slotengine.domain.models import (
    BookedInterval,
    OperatingWindow,
    RejectionReason,
    TimelineKind,
    format_clock,
    parse_clock,
)
from slotengine.domain.slot_engine import (
    SlotEngine,
    build_timeline,
    generate_slots,
    validate_booking_request,
)

DAY = date(2024, 11, 25)  # Monday


def _window(open_time="09:00", close_time="18:00", break_start=None, break_end=None, is_closed=False):
    return OperatingWindow.from_record({
        "day_of_week": 1,
        "open_time": open_time,
        "close_time": close_time,
        "break_start": break_start,
        "break_end": break_end,
        "is_closed": is_closed,
    })


def _booking(start: str, end: str, appointment_id=None) -> BookedInterval:
    return BookedInterval(date=DAY, start=parse_clock(start), end=parse_clock(end), appointment_id=appointment_id)


def _by_time(slots):
    return {slot.time: slot for slot in slots}


class TestGenerateSlots:
    """Tests for slot generation."""

    def test_full_day_without_break_or_bookings(self):
        """09:00-18:00 on a 30 minute grid gives 18 available slots."""
        slots = generate_slots(_window(), 30, 30, [])

        assert len(slots) == 18
        assert slots[0].time == "09:00"
        assert slots[-1].time == "17:30"
        assert all(slot.available for slot in slots)

    def test_break_starts_are_not_emitted(self):
        slots = _by_time(generate_slots(_window(break_start="12:00", break_end="13:00"), 30, 30, []))

        assert "12:00" not in slots
        assert "12:30" not in slots
        assert slots["11:30"].available  # ends exactly at break start
        assert slots["13:00"].available
        assert len(slots) == 16

    def test_service_running_into_break_is_unavailable(self):
        slots = _by_time(generate_slots(_window(break_start="12:00", break_end="13:00"), 30, 45, []))

        assert not slots["11:30"].available
        assert slots["11:30"].reason == RejectionReason.DURING_BREAK
        assert slots["11:00"].available

    def test_booking_conflicts_only_on_real_overlap(self):
        slots = _by_time(generate_slots(_window(), 30, 30, [_booking("10:00", "10:30")]))

        assert not slots["10:00"].available
        assert slots["10:00"].reason == RejectionReason.CONFLICT
        assert slots["09:30"].available  # ends when booking starts
        assert slots["10:30"].available  # starts when booking ends

    def test_long_service_overruns_closing(self):
        slots = _by_time(generate_slots(_window(), 30, 45, []))

        assert not slots["17:30"].available
        assert slots["17:30"].reason == RejectionReason.OVERRUNS_CLOSING
        assert slots["17:00"].available  # ends 17:45

    def test_long_service_blocks_earlier_slots_before_booking(self):
        """A 45 minute service at 09:30 would collide with a 10:00 booking."""
        slots = _by_time(generate_slots(_window(), 30, 45, [_booking("10:00", "10:30")]))

        assert not slots["09:30"].available
        assert slots["09:00"].available

    def test_closed_day_yields_no_slots(self):
        assert generate_slots(_window(is_closed=True), 30, 30, []) == []

    def test_missing_hours_yield_no_slots(self):
        assert generate_slots(_window(open_time=None), 30, 30, []) == []

    def test_granularity_independent_of_duration(self):
        """15 minute grid with a 30 minute service."""
        slots = generate_slots(_window(open_time="09:00", close_time="10:00"), 15, 30, [])

        assert [slot.time for slot in slots] == ["09:00", "09:15", "09:30", "09:45"]
        assert [slot.available for slot in slots] == [True, True, True, False]

    def test_grid_not_dividing_day_stops_before_close(self):
        slots = generate_slots(_window(open_time="09:00", close_time="10:00"), 20, 20, [])

        assert [slot.time for slot in slots] == ["09:00", "09:20", "09:40"]

    def test_open_until_midnight(self):
        slots = generate_slots(_window(open_time="22:00", close_time="24:00"), 30, 60, [])

        assert [slot.time for slot in slots if slot.available] == ["22:00", "22:30", "23:00"]
        assert _by_time(slots)["23:30"].reason == RejectionReason.OVERRUNS_CLOSING

    @pytest.mark.parametrize("granularity,duration", [(0, 30), (30, 0), (-15, 30), (30, -30)])
    def test_non_positive_minutes_rejected(self, granularity, duration):
        with pytest.raises(InvalidInputError):
            generate_slots(_window(), granularity, duration, [])


class TestSlotProperties:
    """Invariants that must hold for any input."""

    CASES = [
        (_window(), 30, 30, []),
        (_window(break_start="12:00", break_end="13:00"), 30, 45, [_booking("10:00", "10:30")]),
        (_window(open_time="08:15", close_time="16:40", break_start="12:10", break_end="12:50"), 20, 50,
         [_booking("09:00", "09:40"), _booking("13:30", "15:00")]),
        (_window(open_time="10:00", close_time="18:00"), 15, 60,
         [_booking("10:45", "11:15"), _booking("11:15", "11:30"), _booking("17:00", "18:00")]),
    ]

    @pytest.mark.parametrize("window,granularity,duration,booked", CASES)
    def test_invariants(self, window, granularity, duration, booked):
        slots = generate_slots(window, granularity, duration, booked)
        hours = window.hours
        lunch = window.break_range

        starts = [slot.start for slot in slots]
        assert starts == sorted(starts)

        for slot in slots:
            assert (slot.start - hours.start) % granularity == 0
            assert hours.start <= slot.start < hours.end
            if lunch is not None:
                assert not lunch.contains(slot.start)

            if not slot.available:
                continue

            end = slot.start + duration
            assert end <= hours.end
            if lunch is not None:
                assert not (slot.start < lunch.end and end > lunch.start)
            for interval in booked:
                assert not (slot.start < interval.end and end > interval.start)

    @pytest.mark.parametrize("window,granularity,duration,booked", CASES)
    def test_generation_is_repeatable(self, window, granularity, duration, booked):
        assert generate_slots(window, granularity, duration, booked) == generate_slots(
            window, granularity, duration, booked
        )

    @pytest.mark.parametrize("window,granularity,duration,booked", CASES)
    def test_validation_mirrors_generation(self, window, granularity, duration, booked):
        for slot in generate_slots(window, granularity, duration, booked):
            decision = validate_booking_request(window, granularity, duration, booked, slot.start)

            assert decision.ok == slot.available
            assert decision.reason == slot.reason
            if decision.ok:
                assert decision.end == slot.start + duration


class TestValidateBookingRequest:
    """Tests for write-time validation."""

    def test_accepts_free_slot_and_returns_end(self):
        decision = validate_booking_request(_window(), 30, 45, [], "09:00")

        assert decision.ok
        assert format_clock(decision.end) == "09:45"

    def test_before_opening(self):
        decision = validate_booking_request(_window(), 30, 30, [], "08:45")

        assert decision.reason == RejectionReason.OUTSIDE_HOURS

    def test_at_closing(self):
        decision = validate_booking_request(_window(), 30, 30, [], "18:00")

        assert decision.reason == RejectionReason.OUTSIDE_HOURS

    def test_closed_day(self):
        for start in ("00:00", "09:00", "12:00"):
            decision = validate_booking_request(_window(is_closed=True), 30, 30, [], start)
            assert decision.reason == RejectionReason.CLOSED_DAY

    def test_overrun(self):
        decision = validate_booking_request(_window(), 30, 45, [], "17:30")

        assert decision.reason == RejectionReason.OVERRUNS_CLOSING

    def test_start_inside_break(self):
        decision = validate_booking_request(
            _window(break_start="12:00", break_end="13:00"), 30, 30, [], "12:30"
        )

        assert decision.reason == RejectionReason.DURING_BREAK

    def test_conflict(self):
        decision = validate_booking_request(_window(), 30, 30, [_booking("10:00", "11:00")], "10:15")

        assert decision.reason == RejectionReason.CONFLICT
        assert decision.end is None

    def test_back_to_back_bookings_allowed(self):
        booked = [_booking("10:00", "10:30"), _booking("11:00", "11:30")]

        assert validate_booking_request(_window(), 30, 30, booked, "10:30").ok

    def test_off_grid_start_accepted_by_default(self):
        decision = validate_booking_request(_window(), 30, 30, [], "09:10")

        assert decision.ok
        assert format_clock(decision.end) == "09:40"

    def test_off_grid_start_rejected_when_alignment_enforced(self):
        decision = validate_booking_request(_window(), 30, 30, [], "09:10", enforce_alignment=True)

        assert decision.reason == RejectionReason.MISALIGNED

    def test_alignment_is_relative_to_opening_time(self):
        engine = SlotEngine(granularity_minutes=30, enforce_alignment=True)

        assert engine.validate_booking_request(_window(open_time="09:15"), 30, [], "09:45").ok

    def test_malformed_start_raises(self):
        with pytest.raises(InvalidInputError):
            validate_booking_request(_window(), 30, 30, [], "9am")


class TestBuildTimeline:
    """Tests for the admin day view."""

    def test_timeline_marks_breaks_bookings_and_free_times(self):
        window = _window(open_time="09:00", close_time="12:00", break_start="10:30", break_end="11:00")
        booked = [_booking("09:00", "10:00", "a1"), _booking("11:15", "11:45", "a2")]

        entries = build_timeline(window, 30, booked)

        assert [(entry.time, entry.kind) for entry in entries] == [
            ("09:00", TimelineKind.APPOINTMENT),
            ("10:00", TimelineKind.FREE),
            ("10:30", TimelineKind.BREAK),
            ("11:15", TimelineKind.APPOINTMENT),
        ]
        assert entries[0].interval.appointment_id == "a1"
        assert entries[3].interval.appointment_id == "a2"

    def test_empty_day_is_all_free(self):
        entries = build_timeline(_window(open_time="09:00", close_time="10:00"), 20, [])

        assert [entry.time for entry in entries] == ["09:00", "09:20", "09:40"]
        assert all(entry.kind == TimelineKind.FREE for entry in entries)

    def test_closed_day_has_no_timeline(self):
        assert build_timeline(_window(is_closed=True), 30, []) == []
