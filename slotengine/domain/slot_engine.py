"""
Core business logic for computing and validating appointment slots.

Pure domain logic: no I/O, no shared state. Every booking surface (customer
booking page, admin day view, write-time validation) goes through the same
interval math defined here.
"""

from typing import Iterable, Iterator, List, Optional

from .models import (
    DEFAULT_SLOT_INTERVAL,
    BookedInterval,
    BookingDecision,
    OperatingWindow,
    RejectionReason,
    Slot,
    TimelineEntry,
    TimelineKind,
    TimeRange,
    parse_clock,
    require_positive_minutes,
)


class SlotEngine:
    """
    Computes the bookable start times of a day and validates requests.

    Algorithm:
    1. Walk from opening time in steps of the granularity while the
       candidate start is before closing time
    2. Drop candidates that start inside the break
    3. Occupy ``[start, start + duration)`` and test it, in order, against
       closing time, the break and existing bookings
    4. Return slots in ascending order with the first failing reason

    All interval tests are strict half-open overlaps, so back-to-back
    bookings and a service ending exactly at the break are fine.
    """

    def __init__(
        self,
        granularity_minutes: int = DEFAULT_SLOT_INTERVAL,
        enforce_alignment: bool = False
    ):
        self.granularity_minutes = require_positive_minutes(granularity_minutes, "granularity_minutes")
        self.enforce_alignment = enforce_alignment

    def generate_slots(
        self,
        window: OperatingWindow,
        service_duration_minutes: int,
        booked_intervals: Iterable[BookedInterval]
    ) -> List[Slot]:
        """
        Generate the candidate slots for one day.

        Args:
            window: Effective operating window for the date (override applied)
            service_duration_minutes: How long the requested service takes
            booked_intervals: Non-cancelled bookings on that date

        Returns:
            Slots in ascending order; empty on a closed day
        """
        require_positive_minutes(service_duration_minutes, "service_duration_minutes")

        hours = window.hours
        if hours is None:
            return []

        lunch = window.break_range
        busy = self._busy_ranges(booked_intervals)
        slots: List[Slot] = []

        for start in self._candidate_starts(hours):
            if lunch is not None and lunch.contains(start):
                continue

            reason = self._occupancy_problem(hours, lunch, busy, start, service_duration_minutes)
            slots.append(Slot(start=start, available=reason is None, reason=reason))

        return slots

    def validate_booking_request(
        self,
        window: OperatingWindow,
        service_duration_minutes: int,
        booked_intervals: Iterable[BookedInterval],
        requested_start: int | str
    ) -> BookingDecision:
        """
        Decide whether a start time can be booked, regardless of what was offered.

        Args:
            window: Effective operating window for the date
            service_duration_minutes: How long the requested service takes
            booked_intervals: Non-cancelled bookings on that date
            requested_start: Minutes since midnight or an ``HH:MM`` string

        Returns:
            BookingDecision with the computed end time, or the rejection reason

        Raises:
            InvalidInputError: If the duration or start time is malformed
        """
        require_positive_minutes(service_duration_minutes, "service_duration_minutes")
        start = parse_clock(requested_start)

        hours = window.hours
        if hours is None:
            return BookingDecision.rejected(RejectionReason.CLOSED_DAY)

        if not hours.contains(start):
            return BookingDecision.rejected(RejectionReason.OUTSIDE_HOURS)

        if self.enforce_alignment and (start - hours.start) % self.granularity_minutes:
            return BookingDecision.rejected(RejectionReason.MISALIGNED)

        reason = self._occupancy_problem(
            hours,
            window.break_range,
            self._busy_ranges(booked_intervals),
            start,
            service_duration_minutes
        )
        if reason is not None:
            return BookingDecision.rejected(reason)

        return BookingDecision.accepted(start + service_duration_minutes)

    def build_timeline(
        self,
        window: OperatingWindow,
        booked_intervals: Iterable[BookedInterval]
    ) -> List[TimelineEntry]:
        """
        Build the admin view of a day on the slot grid.

        Grid times inside the break are BREAK rows. A booking is listed at its
        own start time, in the grid cell it starts in. Grid times covered by
        an ongoing booking are skipped; everything else is FREE.
        """
        hours = window.hours
        if hours is None:
            return []

        lunch = window.break_range
        bookings = sorted(booked_intervals, key=lambda b: (b.start, b.end))
        entries: List[TimelineEntry] = []

        for tick in self._candidate_starts(hours):
            if lunch is not None and lunch.contains(tick):
                entries.append(TimelineEntry(start=tick, kind=TimelineKind.BREAK))
                continue

            cell_end = tick + self.granularity_minutes
            starting = [b for b in bookings if tick <= b.start < cell_end]

            if starting:
                entries.extend(
                    TimelineEntry(start=b.start, kind=TimelineKind.APPOINTMENT, interval=b)
                    for b in starting
                )
            elif not any(b.start < tick < b.end for b in bookings):
                entries.append(TimelineEntry(start=tick, kind=TimelineKind.FREE))

        return entries

    def _candidate_starts(self, hours: TimeRange) -> Iterator[int]:
        return iter(range(hours.start, hours.end, self.granularity_minutes))

    @staticmethod
    def _busy_ranges(booked_intervals: Iterable[BookedInterval]) -> List[TimeRange]:
        return [interval.time_range for interval in booked_intervals]

    @staticmethod
    def _occupancy_problem(
        hours: TimeRange,
        lunch: Optional[TimeRange],
        busy: List[TimeRange],
        start: int,
        duration_minutes: int
    ) -> Optional[RejectionReason]:
        """First reason ``[start, start + duration)`` cannot be booked, if any."""
        occupancy = TimeRange(start=start, end=start + duration_minutes)

        if occupancy.end > hours.end:
            return RejectionReason.OVERRUNS_CLOSING

        if lunch is not None and occupancy.overlaps(lunch):
            return RejectionReason.DURING_BREAK

        if any(occupancy.overlaps(booked) for booked in busy):
            return RejectionReason.CONFLICT

        return None


def generate_slots(
    window: OperatingWindow,
    granularity_minutes: int,
    service_duration_minutes: int,
    booked_intervals: Iterable[BookedInterval]
) -> List[Slot]:
    """Functional shortcut for ``SlotEngine(granularity).generate_slots(...)``."""
    engine = SlotEngine(granularity_minutes=granularity_minutes)
    return engine.generate_slots(window, service_duration_minutes, booked_intervals)


def validate_booking_request(
    window: OperatingWindow,
    granularity_minutes: int,
    service_duration_minutes: int,
    booked_intervals: Iterable[BookedInterval],
    requested_start: int | str,
    enforce_alignment: bool = False
) -> BookingDecision:
    """Functional shortcut for ``SlotEngine.validate_booking_request``."""
    engine = SlotEngine(granularity_minutes=granularity_minutes, enforce_alignment=enforce_alignment)
    return engine.validate_booking_request(
        window, service_duration_minutes, booked_intervals, requested_start
    )


def build_timeline(
    window: OperatingWindow,
    granularity_minutes: int,
    booked_intervals: Iterable[BookedInterval]
) -> List[TimelineEntry]:
    """Functional shortcut for ``SlotEngine.build_timeline``."""
    return SlotEngine(granularity_minutes=granularity_minutes).build_timeline(window, booked_intervals)
