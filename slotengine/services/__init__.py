"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import BookingOutcome, BookingService, ScheduleRepository

__all__ = ["BookingOutcome", "BookingService", "ScheduleRepository"]
