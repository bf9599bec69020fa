"""
Application services for offering and booking appointment slots.

The service fetches schedule data through a repository adapter and leaves
all slot math to the domain-level ``SlotEngine``. The repository is typed as
a protocol so the in-memory store, the PostgREST client or a test stub can
be plugged in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Protocol

from ..domain.exceptions import (
    BookingConflictError,
    NotFoundError,
    PermissionDeniedError,
    RepositoryError,
)
from ..domain.models import (
    Appointment,
    BookedInterval,
    BookingDecision,
    Caller,
    OperatingWindow,
    RejectionReason,
    Slot,
    TimelineEntry,
    format_clock,
    parse_clock,
    parse_date,
)
from ..domain.slot_engine import SlotEngine

logger = logging.getLogger(__name__)


class ScheduleRepository(Protocol):
    """Data access needed by the booking service."""

    def get_effective_window(self, business_id: str, day: date) -> OperatingWindow:
        """Weekly hours for the date, replaced by an override when one exists."""

    def get_booked_intervals(self, business_id: str, day: date) -> List[BookedInterval]:
        """All non-cancelled appointments of the business on that date."""

    def get_slot_granularity(self, business_id: str) -> int:
        """Minutes between offered start times."""

    def get_service_duration(self, service_id: str) -> int:
        """Minutes a service occupies."""

    def get_open_days(self, business_id: str) -> List[int]:
        """Days of week (Sunday=0) with weekly opening hours."""

    def is_business_active(self, business_id: str) -> bool:
        """False while the business has paused its booking page."""

    def persist_appointment(
        self,
        business_id: str,
        customer_id: str,
        service_id: str,
        day: date,
        start: int,
        end: int,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Insert an appointment; raises BookingConflictError if it no longer fits."""

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        """Mark an appointment cancelled so it frees its interval."""

    def get_appointment(self, appointment_id: str) -> Appointment:
        """Fetch one appointment by id."""


@dataclass(frozen=True)
class BookingOutcome:
    """Result of a booking attempt: the stored appointment or a rejection."""
    appointment: Optional[Appointment] = None
    reason: Optional[RejectionReason] = None

    @property
    def ok(self) -> bool:
        return self.appointment is not None

    @property
    def message(self) -> str:
        if self.reason is not None:
            return self.reason.message
        return "Appointment booked."


class BookingService:
    """
    Orchestrates schedule lookups, slot computation and booking.

    ``book`` validates before persisting, and the repository re-validates
    inside its own transaction. A booking that loses that race is reported
    as a CONFLICT outcome, not an error.
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        enforce_alignment: bool = False,
    ) -> None:
        self._repository = repository
        self._enforce_alignment = enforce_alignment

    def available_slots(
        self,
        *,
        business_id: str,
        day: date | str,
        service_id: str,
    ) -> List[Slot]:
        """
        Offered start times for a service on a date.

        Missing schedule data degrades to an empty list so the booking page
        shows "no available times" instead of an error.
        """
        day = parse_date(day)

        try:
            if not self._repository.is_business_active(business_id):
                logger.info("Business %s is paused; offering no slots", business_id)
                return []
            window = self._repository.get_effective_window(business_id, day)
            booked = self._repository.get_booked_intervals(business_id, day)
            engine = self._engine_for(business_id)
        except (NotFoundError, RepositoryError) as exc:
            logger.warning("No slots for business %s on %s: %s", business_id, day, exc)
            return []

        duration = self._repository.get_service_duration(service_id)
        return engine.generate_slots(window, duration, booked)

    def check_booking(
        self,
        *,
        business_id: str,
        day: date | str,
        service_id: str,
        start: int | str,
    ) -> BookingDecision:
        """Validate a requested start time without persisting anything."""
        day = parse_date(day)
        if not self._repository.is_business_active(business_id):
            return BookingDecision.rejected(RejectionReason.BUSINESS_PAUSED)

        engine = self._engine_for(business_id)

        return engine.validate_booking_request(
            self._repository.get_effective_window(business_id, day),
            self._repository.get_service_duration(service_id),
            self._repository.get_booked_intervals(business_id, day),
            start,
        )

    def book(
        self,
        caller: Caller,
        *,
        business_id: str,
        customer_id: str,
        service_id: str,
        day: date | str,
        start: int | str,
        notes: Optional[str] = None,
    ) -> BookingOutcome:
        """
        Validate and store a new appointment.

        Args:
            caller: Identity performing the request
            business_id: Business the appointment belongs to
            customer_id: Customer the appointment is for
            service_id: Requested service
            day: Calendar date (date or YYYY-MM-DD)
            start: Start time (minutes since midnight or HH:MM)
            notes: Optional free text

        Returns:
            BookingOutcome with the appointment, or the rejection reason

        Raises:
            PermissionDeniedError: If the caller may not book for this customer
        """
        if not caller.can_act_for(business_id, customer_id):
            raise PermissionDeniedError(
                f"Caller may not book for customer {customer_id} at business {business_id}"
            )

        day = parse_date(day)
        start_minutes = parse_clock(start)

        decision = self.check_booking(
            business_id=business_id,
            day=day,
            service_id=service_id,
            start=start_minutes,
        )
        if not decision.ok:
            logger.info(
                "Rejected booking at %s %s for business %s: %s",
                day, format_clock(start_minutes), business_id, decision.reason.value,
            )
            return BookingOutcome(reason=decision.reason)

        try:
            appointment = self._repository.persist_appointment(
                business_id,
                customer_id,
                service_id,
                day,
                start_minutes,
                decision.end,
                notes,
            )
        except BookingConflictError as exc:
            logger.warning(
                "Booking at %s %s for business %s lost a race: %s",
                day, format_clock(start_minutes), business_id, exc,
            )
            return BookingOutcome(reason=exc.reason)

        logger.info("Booked appointment %s", appointment.id)
        return BookingOutcome(appointment=appointment)

    def cancel(self, caller: Caller, appointment_id: str) -> Appointment:
        """Cancel an appointment the caller owns or administers."""
        appointment = self._repository.get_appointment(appointment_id)

        if not caller.can_act_for(appointment.business_id, appointment.customer_id):
            raise PermissionDeniedError(f"Caller may not cancel appointment {appointment_id}")

        cancelled = self._repository.cancel_appointment(appointment_id)
        logger.info("Cancelled appointment %s", appointment_id)
        return cancelled

    def timeline(
        self,
        caller: Caller,
        *,
        business_id: str,
        day: date | str,
    ) -> List[TimelineEntry]:
        """Admin day view: free grid times, bookings and the break."""
        if not caller.can_manage(business_id):
            raise PermissionDeniedError(f"Caller may not view the schedule of business {business_id}")

        day = parse_date(day)
        engine = self._engine_for(business_id)

        return engine.build_timeline(
            self._repository.get_effective_window(business_id, day),
            self._repository.get_booked_intervals(business_id, day),
        )

    def bookable_days(self, business_id: str) -> List[int]:
        """Days of week the booking page's date picker should enable."""
        return self._repository.get_open_days(business_id)

    def _engine_for(self, business_id: str) -> SlotEngine:
        return SlotEngine(
            granularity_minutes=self._repository.get_slot_granularity(business_id),
            enforce_alignment=self._enforce_alignment,
        )
