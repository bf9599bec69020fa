"""
In-memory schedule repository, optionally persisted to a JSON data file.

Tenant hours, services and seed overrides come from the YAML config. The
data file holds everything that changes at runtime: appointments and
overrides edited through the CLI.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import AppConfig, BusinessConfig
from ..domain.exceptions import BookingConflictError, NotFoundError, RepositoryError
from ..domain.models import (
    DEFAULT_SLOT_INTERVAL,
    Appointment,
    AppointmentStatus,
    BookedInterval,
    OperatingWindow,
    ScheduleOverride,
    WeeklySchedule,
    format_clock,
)
from ..domain.slot_engine import SlotEngine

logger = logging.getLogger(__name__)


class InMemoryScheduleRepository:
    """
    Schedule repository keeping all state in process memory.

    Writes happen under a lock, and ``persist_appointment`` re-validates the
    booking under that same lock, so two overlapping requests can never both
    be stored.
    """

    def __init__(
        self,
        businesses: Iterable[BusinessConfig],
        appointments: Iterable[Appointment] = (),
        overrides: Optional[Dict[str, List[ScheduleOverride]]] = None,
        data_file: Path | None = None,
        default_slot_interval: int = DEFAULT_SLOT_INTERVAL,
        enforce_alignment: bool = False
    ):
        """
        Initialize the repository.

        Args:
            businesses: Tenant configuration (hours, services, seed overrides)
            appointments: Previously stored appointments
            overrides: Stored overrides per business id; they win over seeds
            data_file: Optional JSON file rewritten after every change
            default_slot_interval: Granularity for businesses without one
            enforce_alignment: Reject off-grid starts when re-validating
        """
        self._lock = threading.RLock()
        self._data_file = data_file
        self._enforce_alignment = enforce_alignment

        self._schedules: Dict[str, WeeklySchedule] = {}
        self._granularity: Dict[str, int] = {}
        self._overrides: Dict[str, Dict[date, ScheduleOverride]] = {}
        self._durations: Dict[str, int] = {}
        self._active: Dict[str, bool] = {}

        for business in businesses:
            self._schedules[business.id] = business.weekly_schedule()
            self._granularity[business.id] = business.slot_interval or default_slot_interval
            self._active[business.id] = business.is_active
            self._overrides[business.id] = {
                override.date: override for override in business.schedule_overrides()
            }
            # Inactive services are deleted ones and cannot be booked.
            for service in business.services:
                if service.is_active:
                    self._durations[service.id] = service.duration

        for business_id, stored in (overrides or {}).items():
            self._require_business(business_id)
            for override in stored:
                self._overrides[business_id][override.date] = override

        self._appointments: Dict[str, Appointment] = {
            appointment.id: appointment for appointment in appointments
        }

    @classmethod
    def from_config(cls, config: AppConfig) -> "InMemoryScheduleRepository":
        """Build the repository from config, loading the data file if it exists."""
        appointments: List[Appointment] = []
        overrides: Dict[str, List[ScheduleOverride]] = {}

        if config.data_file is not None and config.data_file.exists():
            appointments, overrides = cls._load_data_file(config.data_file)

        return cls(
            businesses=config.businesses,
            appointments=appointments,
            overrides=overrides,
            data_file=config.data_file,
            default_slot_interval=config.default_slot_interval,
            enforce_alignment=config.enforce_alignment,
        )

    # Schedule lookups

    def get_effective_window(self, business_id: str, day: date) -> OperatingWindow:
        with self._lock:
            schedule = self._require_business(business_id)
            return schedule.window_for(day, self._overrides[business_id].get(day))

    def get_booked_intervals(self, business_id: str, day: date) -> List[BookedInterval]:
        self._require_business(business_id)
        with self._lock:
            return self._booked_intervals(business_id, day)

    def get_slot_granularity(self, business_id: str) -> int:
        self._require_business(business_id)
        return self._granularity[business_id]

    def get_service_duration(self, service_id: str) -> int:
        try:
            return self._durations[service_id]
        except KeyError:
            raise NotFoundError(f"Unknown service: {service_id}") from None

    def get_open_days(self, business_id: str) -> List[int]:
        return self._require_business(business_id).open_days()

    def is_business_active(self, business_id: str) -> bool:
        self._require_business(business_id)
        return self._active[business_id]

    def get_weekly_schedule(self, business_id: str) -> WeeklySchedule:
        return self._require_business(business_id)

    # Appointments

    def persist_appointment(
        self,
        business_id: str,
        customer_id: str,
        service_id: str,
        day: date,
        start: int,
        end: int,
        notes: Optional[str] = None
    ) -> Appointment:
        """
        Store a new confirmed appointment.

        Raises:
            BookingConflictError: If the interval no longer fits the schedule
        """
        with self._lock:
            engine = SlotEngine(
                granularity_minutes=self.get_slot_granularity(business_id),
                enforce_alignment=self._enforce_alignment,
            )
            decision = engine.validate_booking_request(
                self.get_effective_window(business_id, day),
                end - start,
                self._booked_intervals(business_id, day),
                start,
            )
            if not decision.ok:
                raise BookingConflictError(
                    decision.reason,
                    f"Cannot book {format_clock(start)}-{format_clock(end)} on {day}: {decision.reason.message}",
                )

            appointment = Appointment(
                id=uuid.uuid4().hex,
                business_id=business_id,
                customer_id=customer_id,
                service_id=service_id,
                date=day,
                start=start,
                end=end,
                status=AppointmentStatus.CONFIRMED,
                notes=notes,
            )
            self._appointments[appointment.id] = appointment
            try:
                self._save()
            except RepositoryError:
                del self._appointments[appointment.id]
                raise

        return appointment

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            previous = appointment.status
            appointment.status = AppointmentStatus.CANCELLED
            try:
                self._save()
            except RepositoryError:
                appointment.status = previous
                raise
        return appointment

    def get_appointment(self, appointment_id: str) -> Appointment:
        try:
            return self._appointments[appointment_id]
        except KeyError:
            raise NotFoundError(f"Unknown appointment: {appointment_id}") from None

    def list_appointments(
        self,
        business_id: str,
        from_day: Optional[date] = None
    ) -> List[Appointment]:
        """Non-cancelled appointments of a business ordered by date and time."""
        self._require_business(business_id)
        with self._lock:
            found = [
                appointment for appointment in self._appointments.values()
                if appointment.business_id == business_id
                and appointment.is_active
                and (from_day is None or appointment.date >= from_day)
            ]
        return sorted(found, key=lambda a: (a.date, a.start))

    # Schedule overrides

    def list_overrides(
        self,
        business_id: str,
        from_day: Optional[date] = None,
        to_day: Optional[date] = None
    ) -> List[ScheduleOverride]:
        self._require_business(business_id)
        with self._lock:
            found = [
                override for day, override in self._overrides[business_id].items()
                if (from_day is None or day >= from_day) and (to_day is None or day <= to_day)
            ]
        return sorted(found, key=lambda o: o.date)

    def upsert_override(self, business_id: str, override: ScheduleOverride) -> ScheduleOverride:
        """Create or replace the override for ``override.date``."""
        self._require_business(business_id)
        # Fails fast on hours the engine cannot use.
        override.to_window()
        with self._lock:
            previous = self._overrides[business_id].get(override.date)
            self._overrides[business_id][override.date] = override
            try:
                self._save()
            except RepositoryError:
                if previous is None:
                    del self._overrides[business_id][override.date]
                else:
                    self._overrides[business_id][override.date] = previous
                raise
        return override

    def delete_override(self, business_id: str, day: date) -> bool:
        """Remove the override for a date. Returns False if there was none."""
        self._require_business(business_id)
        with self._lock:
            removed = self._overrides[business_id].pop(day, None)
            if removed is not None:
                try:
                    self._save()
                except RepositoryError:
                    self._overrides[business_id][day] = removed
                    raise
        return removed is not None

    # Internals

    def _require_business(self, business_id: str) -> WeeklySchedule:
        try:
            return self._schedules[business_id]
        except KeyError:
            raise NotFoundError(f"Unknown business: {business_id}") from None

    def _booked_intervals(self, business_id: str, day: date) -> List[BookedInterval]:
        return sorted(
            (
                appointment.to_interval() for appointment in self._appointments.values()
                if appointment.business_id == business_id
                and appointment.date == day
                and appointment.is_active
            ),
            key=lambda interval: interval.start,
        )

    def _save(self) -> None:
        """Rewrite the data file, if one is configured."""
        if self._data_file is None:
            return

        payload = {
            "appointments": [
                appointment.to_record()
                for appointment in sorted(self._appointments.values(), key=lambda a: (a.date, a.start, a.id))
            ],
            "overrides": [
                _override_to_record(business_id, override)
                for business_id, by_day in sorted(self._overrides.items())
                for override in sorted(by_day.values(), key=lambda o: o.date)
            ],
        }

        try:
            self._data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._data_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except OSError as exc:
            raise RepositoryError(f"Could not write data file {self._data_file}: {exc}") from exc

        logger.debug("Saved %d appointments to %s", len(payload["appointments"]), self._data_file)

    @staticmethod
    def _load_data_file(data_file: Path):
        """Load appointments and overrides from the JSON data file."""
        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise RepositoryError(f"Could not read data file {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise RepositoryError(f"Data file {data_file} must contain a JSON object")

        appointments = [Appointment.from_record(record) for record in data.get("appointments", [])]

        overrides: Dict[str, List[ScheduleOverride]] = {}
        for record in data.get("overrides", []):
            overrides.setdefault(str(record["business_id"]), []).append(
                ScheduleOverride.from_record(record)
            )

        logger.debug("Loaded %d appointments from %s", len(appointments), data_file)
        return appointments, overrides


def _override_to_record(business_id: str, override: ScheduleOverride) -> Dict[str, Any]:
    def fmt(value):
        return format_clock(value) if value is not None else None

    return {
        "business_id": business_id,
        "date": override.date.isoformat(),
        "open_time": fmt(override.open_time),
        "close_time": fmt(override.close_time),
        "is_closed": override.is_closed,
        "reason": override.reason,
    }
