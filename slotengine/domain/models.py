"""
Domain models for operating windows, booked intervals and slots.

Clock times are stored as minutes since midnight. ``HH:MM`` strings only
appear at the edges (config files, JSON, REST rows, CLI arguments).
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Dict, List, Optional

import pendulum

from .exceptions import InvalidInputError

MINUTES_PER_DAY = 24 * 60
DEFAULT_SLOT_INTERVAL = 30


def parse_clock(value: Any, end_of_day: bool = False) -> int:
    """
    Convert a clock value to minutes since midnight.

    Accepts ``HH:MM`` and ``HH:MM:SS`` strings (Postgres ``time`` columns
    come back with seconds), ``datetime.time`` objects and plain minute
    integers. With ``end_of_day`` set, ``24:00`` (1440) is also accepted
    so closing and end times can fall on midnight.

    Raises:
        InvalidInputError: If the value cannot be interpreted as a time of day
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid clock time: {value!r}")

    if isinstance(value, int):
        minutes = value
    elif isinstance(value, time):
        minutes = value.hour * 60 + value.minute
    elif isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise InvalidInputError(f"Invalid clock time: {value!r} (expected HH:MM)")
        hours, mins = int(parts[0]), int(parts[1])
        midnight = end_of_day and hours == 24 and all(int(p) == 0 for p in parts[1:])
        if (hours > 23 and not midnight) or mins > 59:
            raise InvalidInputError(f"Invalid clock time: {value!r}")
        minutes = hours * 60 + mins
    else:
        raise InvalidInputError(f"Invalid clock time: {value!r}")

    limit = MINUTES_PER_DAY if end_of_day else MINUTES_PER_DAY - 1
    if not 0 <= minutes <= limit:
        raise InvalidInputError(f"Clock time out of range: {value!r}")

    return minutes


def parse_optional_clock(value: Any, end_of_day: bool = False) -> Optional[int]:
    """Like ``parse_clock`` but maps ``None`` and empty strings to ``None``."""
    if value is None or value == "":
        return None
    return parse_clock(value, end_of_day=end_of_day)


def format_clock(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: Any) -> date:
    """
    Parse a ``YYYY-MM-DD`` calendar date.

    Raises:
        InvalidInputError: If the string is not a valid date
    """
    if isinstance(value, date):
        return value
    try:
        return pendulum.from_format(str(value).strip(), "YYYY-MM-DD").date()
    except (ValueError, TypeError) as exc:
        raise InvalidInputError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from exc


def day_of_week(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6."""
    return day.isoweekday() % 7


def require_positive_minutes(value: int, name: str) -> int:
    """Fail fast on zero, negative or non-integer durations."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(f"{name} must be a positive number of minutes, got {value!r}")
    return value


@dataclass(frozen=True)
class TimeRange:
    """
    Half-open clock interval ``[start, end)`` in minutes since midnight.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInputError(
                f"Start time {format_clock(self.start)} must be before end time {format_clock(self.end)}"
            )

    def duration_minutes(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        """Strict overlap check; touching endpoints do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end

    def __str__(self) -> str:
        return f"{format_clock(self.start)} - {format_clock(self.end)}"


@dataclass(frozen=True)
class OperatingWindow:
    """
    Opening hours of a business for one day.

    If ``is_closed`` is set the times are ignored. A break is only applied
    when both ``break_start`` and ``break_end`` are present; it must lie
    inside ``[open_time, close_time)``.
    """
    day_of_week: int
    open_time: Optional[int] = None
    close_time: Optional[int] = None
    is_closed: bool = False
    break_start: Optional[int] = None
    break_end: Optional[int] = None

    def __post_init__(self):
        if self.day_of_week not in range(7):
            raise InvalidInputError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")

        hours = self.hours
        if hours is None:
            return

        lunch = self.break_range
        if lunch is not None:
            if lunch.start < hours.start or lunch.end >= hours.end:
                raise InvalidInputError(
                    f"Break {lunch} must lie within opening hours {hours}"
                )

    @property
    def has_hours(self) -> bool:
        return not self.is_closed and self.open_time is not None and self.close_time is not None

    @property
    def hours(self) -> Optional[TimeRange]:
        """Opening hours as a range, or None on a closed day."""
        if not self.has_hours:
            return None
        return TimeRange(start=self.open_time, end=self.close_time)

    @property
    def break_range(self) -> Optional[TimeRange]:
        if self.break_start is None or self.break_end is None:
            return None
        return TimeRange(start=self.break_start, end=self.break_end)

    @classmethod
    def closed(cls, day: int) -> "OperatingWindow":
        return cls(day_of_week=day, is_closed=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "OperatingWindow":
        """Build a window from a ``business_hours`` row or config mapping."""
        return cls(
            day_of_week=int(record["day_of_week"]),
            open_time=parse_optional_clock(record.get("open_time")),
            close_time=parse_optional_clock(record.get("close_time"), end_of_day=True),
            is_closed=bool(record.get("is_closed", False)),
            break_start=parse_optional_clock(record.get("break_start")),
            break_end=parse_optional_clock(record.get("break_end")),
        )

    def to_record(self) -> Dict[str, Any]:
        def fmt(value):
            return format_clock(value) if value is not None else None

        return {
            "day_of_week": self.day_of_week,
            "open_time": fmt(self.open_time),
            "close_time": fmt(self.close_time),
            "is_closed": self.is_closed,
            "break_start": fmt(self.break_start),
            "break_end": fmt(self.break_end),
        }


@dataclass(frozen=True)
class ScheduleOverride:
    """Date-specific replacement of the weekly window (holiday, special hours)."""
    date: date
    open_time: Optional[int] = None
    close_time: Optional[int] = None
    is_closed: bool = False
    reason: Optional[str] = None

    def to_window(self) -> OperatingWindow:
        # Overrides never carry a break.
        return OperatingWindow(
            day_of_week=day_of_week(self.date),
            open_time=self.open_time,
            close_time=self.close_time,
            is_closed=self.is_closed,
        )

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ScheduleOverride":
        override = cls(
            date=parse_date(record["date"]),
            open_time=parse_optional_clock(record.get("open_time")),
            close_time=parse_optional_clock(record.get("close_time"), end_of_day=True),
            is_closed=bool(record.get("is_closed", False)),
            reason=record.get("reason"),
        )
        # Surface bad hours at load time rather than on first lookup.
        override.to_window()
        return override


@dataclass
class WeeklySchedule:
    """
    The seven operating windows of a business.

    Days without an entry are closed.
    """
    windows: Dict[int, OperatingWindow] = field(default_factory=dict)

    @classmethod
    def from_windows(cls, windows: List[OperatingWindow]) -> "WeeklySchedule":
        return cls(windows={window.day_of_week: window for window in windows})

    def window_for(self, day: date, override: Optional[ScheduleOverride] = None) -> OperatingWindow:
        """Effective window for a date; an override wins when present."""
        if override is not None:
            return override.to_window()

        weekday = day_of_week(day)
        return self.windows.get(weekday) or OperatingWindow.closed(weekday)

    def open_days(self) -> List[int]:
        """Days of week (Sunday=0) that have opening hours."""
        return sorted(day for day, window in self.windows.items() if window.has_hours)


@dataclass(frozen=True)
class BookedInterval:
    """Time occupied by an existing, non-cancelled appointment."""
    date: date
    start: int
    end: int
    appointment_id: Optional[str] = None

    def __post_init__(self):
        TimeRange(start=self.start, end=self.end)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class RejectionReason(str, Enum):
    """Why a start time cannot be booked."""
    CLOSED_DAY = "closed_day"
    OUTSIDE_HOURS = "outside_hours"
    OVERRUNS_CLOSING = "overruns_closing"
    DURING_BREAK = "during_break"
    CONFLICT = "conflict"
    MISALIGNED = "misaligned"
    BUSINESS_PAUSED = "business_paused"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    RejectionReason.CLOSED_DAY: "The business is closed on this date.",
    RejectionReason.OUTSIDE_HOURS: "This time is outside of opening hours.",
    RejectionReason.OVERRUNS_CLOSING: "The service would end after closing time.",
    RejectionReason.DURING_BREAK: "This time falls into the break.",
    RejectionReason.CONFLICT: "This time was just taken. Please pick another one.",
    RejectionReason.MISALIGNED: "Appointments can only start on the offered time grid.",
    RejectionReason.BUSINESS_PAUSED: "This business is not taking bookings right now.",
}


@dataclass(frozen=True)
class BookingDecision:
    """Outcome of validating a booking request: an end time or a reason."""
    end: Optional[int] = None
    reason: Optional[RejectionReason] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def accepted(cls, end: int) -> "BookingDecision":
        return cls(end=end)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "BookingDecision":
        return cls(reason=reason)


@dataclass(frozen=True)
class Slot:
    """A candidate start time and whether it can be booked."""
    start: int
    available: bool
    reason: Optional[RejectionReason] = None

    @property
    def time(self) -> str:
        return format_clock(self.start)


class TimelineKind(str, Enum):
    FREE = "free"
    APPOINTMENT = "appointment"
    BREAK = "break"


@dataclass(frozen=True)
class TimelineEntry:
    """One row of the admin day view."""
    start: int
    kind: TimelineKind
    interval: Optional[BookedInterval] = None

    @property
    def time(self) -> str:
        return format_clock(self.start)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass
class Appointment:
    """A persisted booking."""
    id: str
    business_id: str
    customer_id: str
    service_id: Optional[str]
    date: date
    start: int
    end: int
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED

    def to_interval(self) -> BookedInterval:
        return BookedInterval(date=self.date, start=self.start, end=self.end, appointment_id=self.id)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "service_id": self.service_id,
            "date": self.date.isoformat(),
            "start_time": format_clock(self.start),
            "end_time": format_clock(self.end),
            "status": self.status.value,
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Appointment":
        return cls(
            id=str(record["id"]),
            business_id=str(record["business_id"]),
            customer_id=str(record["customer_id"]),
            service_id=record.get("service_id"),
            date=parse_date(record["date"]),
            start=parse_clock(record["start_time"]),
            end=parse_clock(record["end_time"], end_of_day=True),
            status=AppointmentStatus(record.get("status", AppointmentStatus.CONFIRMED.value)),
            notes=record.get("notes"),
        )


class CallerRole(str, Enum):
    CUSTOMER = "customer"
    BUSINESS_ADMIN = "business_admin"
    PLATFORM_ADMIN = "platform_admin"


@dataclass(frozen=True)
class Caller:
    """
    Identity of whoever is making a request.

    Passed explicitly into the service layer instead of being read from
    ambient session storage.
    """
    role: CallerRole
    business_id: Optional[str] = None
    customer_id: Optional[str] = None

    @classmethod
    def customer(cls, business_id: str, customer_id: str) -> "Caller":
        return cls(role=CallerRole.CUSTOMER, business_id=business_id, customer_id=customer_id)

    @classmethod
    def business_admin(cls, business_id: str) -> "Caller":
        return cls(role=CallerRole.BUSINESS_ADMIN, business_id=business_id)

    @classmethod
    def platform_admin(cls) -> "Caller":
        return cls(role=CallerRole.PLATFORM_ADMIN)

    def can_manage(self, business_id: str) -> bool:
        """Admin rights over a business."""
        if self.role == CallerRole.PLATFORM_ADMIN:
            return True
        return self.role == CallerRole.BUSINESS_ADMIN and self.business_id == business_id

    def can_act_for(self, business_id: str, customer_id: str) -> bool:
        """May book or cancel on behalf of this customer."""
        if self.can_manage(business_id):
            return True
        return (
            self.role == CallerRole.CUSTOMER
            and self.business_id == business_id
            and self.customer_id == customer_id
        )
