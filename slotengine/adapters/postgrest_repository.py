"""
Schedule repository backed by a hosted Postgres exposed through PostgREST.

Table layout:
    businesses(id, slot_interval, ...)
    business_hours(business_id, day_of_week, open_time, close_time,
                   break_start, break_end, is_closed)
    schedule_overrides(business_id, date, open_time, close_time, is_closed, reason)
    services(id, business_id, duration, ...)
    appointments(id, business_id, customer_id, service_id, date,
                 start_time, end_time, status, notes)

The appointments table is expected to carry an exclusion constraint on
``(business_id, date, time range)`` for non-cancelled rows. PostgREST
reports its violation as HTTP 409, which is what makes concurrent bookings
safe.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from ..domain.exceptions import BookingConflictError, NotFoundError, RepositoryError
from ..domain.models import (
    DEFAULT_SLOT_INTERVAL,
    Appointment,
    AppointmentStatus,
    BookedInterval,
    OperatingWindow,
    RejectionReason,
    ScheduleOverride,
    day_of_week,
    format_clock,
    parse_clock,
    parse_date,
)

logger = logging.getLogger(__name__)


class PostgrestScheduleRepository:
    """
    Client for the booking tables over the PostgREST HTTP interface.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``
            api_key: API key sent as ``apikey`` and bearer token
            timeout_seconds: Timeout applied to every request
            session: Optional preconfigured requests session
        """
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def get_effective_window(self, business_id: str, day: date) -> OperatingWindow:
        overrides = self._select(
            "schedule_overrides",
            {"business_id": f"eq.{business_id}", "date": f"eq.{day.isoformat()}"},
        )
        if overrides:
            return ScheduleOverride.from_record(overrides[0]).to_window()

        weekday = day_of_week(day)
        hours = self._select(
            "business_hours",
            {"business_id": f"eq.{business_id}", "day_of_week": f"eq.{weekday}"},
        )
        if not hours:
            return OperatingWindow.closed(weekday)

        return OperatingWindow.from_record(hours[0])

    def get_booked_intervals(self, business_id: str, day: date) -> List[BookedInterval]:
        rows = self._select(
            "appointments",
            {
                "select": "id,date,start_time,end_time",
                "business_id": f"eq.{business_id}",
                "date": f"eq.{day.isoformat()}",
                "status": f"neq.{AppointmentStatus.CANCELLED.value}",
                "order": "start_time.asc",
            },
        )
        return [
            BookedInterval(
                date=parse_date(row["date"]),
                start=parse_clock(row["start_time"]),
                end=parse_clock(row["end_time"], end_of_day=True),
                appointment_id=str(row["id"]),
            )
            for row in rows
        ]

    def get_slot_granularity(self, business_id: str) -> int:
        rows = self._select("businesses", {"select": "slot_interval", "id": f"eq.{business_id}"})
        if not rows:
            raise NotFoundError(f"Unknown business: {business_id}")
        return rows[0].get("slot_interval") or DEFAULT_SLOT_INTERVAL

    def get_service_duration(self, service_id: str) -> int:
        rows = self._select(
            "services",
            {"select": "duration", "id": f"eq.{service_id}", "is_active": "eq.true"},
        )
        if not rows:
            raise NotFoundError(f"Unknown service: {service_id}")
        return int(rows[0]["duration"])

    def get_open_days(self, business_id: str) -> List[int]:
        rows = self._select("business_hours", {"business_id": f"eq.{business_id}"})
        windows = [OperatingWindow.from_record(row) for row in rows]
        return sorted(window.day_of_week for window in windows if window.has_hours)

    def is_business_active(self, business_id: str) -> bool:
        rows = self._select("businesses", {"select": "is_active", "id": f"eq.{business_id}"})
        if not rows:
            raise NotFoundError(f"Unknown business: {business_id}")
        return bool(rows[0].get("is_active", True))

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
        Insert a confirmed appointment.

        Raises:
            BookingConflictError: If the database rejects an overlapping row
            RepositoryError: If the request fails for any other reason
        """
        payload = {
            "business_id": business_id,
            "customer_id": customer_id,
            "service_id": service_id,
            "date": day.isoformat(),
            "start_time": format_clock(start),
            "end_time": format_clock(end),
            "status": AppointmentStatus.CONFIRMED.value,
            "notes": notes,
        }

        response = self._request(
            "POST",
            "appointments",
            json=payload,
            headers={"Prefer": "return=representation"},
            conflict_ok=True,
        )
        if response.status_code == 409:
            raise BookingConflictError(
                RejectionReason.CONFLICT,
                f"Database rejected {format_clock(start)}-{format_clock(end)} on {day}: {response.text}",
            )

        rows = response.json()
        return Appointment.from_record(rows[0])

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        # RPC keeps status changes behind the database's own row checks.
        self._request(
            "POST",
            "rpc/update_appointment_status",
            json={"p_appointment_id": appointment_id, "p_status": AppointmentStatus.CANCELLED.value},
        )
        return self.get_appointment(appointment_id)

    def get_appointment(self, appointment_id: str) -> Appointment:
        rows = self._select("appointments", {"id": f"eq.{appointment_id}"})
        if not rows:
            raise NotFoundError(f"Unknown appointment: {appointment_id}")
        return Appointment.from_record(rows[0])

    def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        params = {"select": "*", **params}
        response = self._request("GET", table, params=params)
        data = response.json()

        if not isinstance(data, list):
            raise RepositoryError(f"Unexpected response for {table}: {data!r}")

        logger.debug("Fetched %d row(s) from %s", len(data), table)
        return data

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        conflict_ok: bool = False
    ) -> requests.Response:
        url = f"{self.rest_url}/{path}"

        try:
            response = self.session.request(
                method,
                url,
                headers={**self.headers, **(headers or {})},
                params=params,
                json=json,
                timeout=self.timeout_seconds,
            )
            if conflict_ok and response.status_code == 409:
                return response
            response.raise_for_status()

        except requests.exceptions.RequestException as e:
            raise RepositoryError(f"{method} {path} failed: {e}") from e

        return response
