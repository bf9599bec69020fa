"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentStatus,
    BookedInterval,
    BookingDecision,
    Caller,
    CallerRole,
    OperatingWindow,
    RejectionReason,
    ScheduleOverride,
    Slot,
    TimelineEntry,
    TimelineKind,
    TimeRange,
    WeeklySchedule,
)
from .slot_engine import SlotEngine, build_timeline, generate_slots, validate_booking_request

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "BookedInterval",
    "BookingDecision",
    "Caller",
    "CallerRole",
    "OperatingWindow",
    "RejectionReason",
    "ScheduleOverride",
    "Slot",
    "TimelineEntry",
    "TimelineKind",
    "TimeRange",
    "WeeklySchedule",
    "SlotEngine",
    "build_timeline",
    "generate_slots",
    "validate_booking_request",
]
