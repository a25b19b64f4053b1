"""
Domain models for working-hours policy, busy intervals, and hourly slots.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

MINUTES_PER_DAY = 24 * 60
SLOT_MINUTES = 60


class DataSource(str, Enum):
    """Where the busy data behind an availability result came from."""

    CALENDAR = "calendar-api"
    MOCK_FALLBACK = "mock-fallback"
    POLICY_ONLY = "policy-only"


class AppointmentStatus(str, Enum):
    """Persisted appointment states."""

    AGENDADA = "AGENDADA"
    CONFIRMADA = "CONFIRMADA"
    CANCELADA = "CANCELADA"
    REAGENDADA = "REAGENDADA"
    NOTIFICADA = "NOTIFICADA"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (half-open ranges)."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WorkingHoursRule:
    """Stored working-hours row for one calendar and ISO weekday (7 = Sunday)."""
    calendar_id: str
    weekday: int
    start_hour: int
    end_hour: int


@dataclass(frozen=True)
class DayPolicy:
    """
    Resolved opening hours for one calendar day.

    ``close_hour`` is the start of the last bookable session, so candidate
    hours run from ``open_hour`` to ``close_hour`` inclusive.
    """
    date: Date
    open_hour: int
    close_hour: int
    has_lunch: bool = False
    lunch_start: Optional[int] = None
    lunch_end: Optional[int] = None
    is_closed: bool = False

    @classmethod
    def closed(cls, date: Date) -> "DayPolicy":
        return cls(date=date, open_hour=0, close_hour=0, is_closed=True)

    def candidate_hours(self) -> range:
        if self.is_closed:
            return range(0)
        return range(self.open_hour, self.close_hour + 1)

    def total_possible_slots(self) -> int:
        return len(self.candidate_hours())

    def is_lunch_hour(self, hour: int) -> bool:
        if not self.has_lunch or self.lunch_start is None or self.lunch_end is None:
            return False
        return self.lunch_start <= hour < self.lunch_end

    def contains_hour(self, hour: int) -> bool:
        return hour in self.candidate_hours() and not self.is_lunch_hour(hour)


@dataclass(frozen=True)
class BusyInterval:
    """
    A busy period inside one day, in minutes since local midnight.

    Half-open: ``[start_minute, end_minute)``.
    """
    start_minute: int
    end_minute: int
    label: str = ""

    def __post_init__(self):
        if self.start_minute >= self.end_minute:
            raise ValueError(
                f"Busy interval start {self.start_minute} must be before end {self.end_minute}"
            )

    def overlaps(self, start_minute: int, end_minute: int) -> bool:
        return self.start_minute < end_minute and self.end_minute > start_minute

    def __str__(self) -> str:
        return f"{_minute_label(self.start_minute)}-{_minute_label(self.end_minute)} {self.label}".strip()


@dataclass(frozen=True)
class Slot:
    """A bookable 60-minute session starting on the hour."""
    hour: int
    date: Date
    calendar_id: str

    @property
    def time_label(self) -> str:
        return f"{self.hour:02d}:00"

    def start_minute(self) -> int:
        return self.hour * 60

    def end_minute(self) -> int:
        return self.start_minute() + SLOT_MINUTES


@dataclass(frozen=True)
class DayAvailabilityResult:
    """Free slots for one day plus occupancy statistics."""
    date: Date
    calendar_id: str
    slots: Tuple[Slot, ...]
    total_possible_slots: int
    occupied_count: int
    occupation_percentage: int
    data_source: DataSource
    direction: Optional[str] = None
    distance: int = 0
    priority: int = 0

    @classmethod
    def build(
        cls,
        policy: DayPolicy,
        calendar_id: str,
        slots: List[Slot],
        data_source: DataSource,
    ) -> "DayAvailabilityResult":
        total = policy.total_possible_slots()
        occupied = total - len(slots)
        percentage = round_half_up(occupied / total * 100) if total > 0 else 0
        return cls(
            date=policy.date,
            calendar_id=calendar_id,
            slots=tuple(slots),
            total_possible_slots=total,
            occupied_count=occupied,
            occupation_percentage=percentage,
            data_source=data_source,
        )

    @property
    def has_availability(self) -> bool:
        return len(self.slots) > 0

    @property
    def available_count(self) -> int:
        return len(self.slots)

    def slot_labels(self) -> List[str]:
        return [slot.time_label for slot in self.slots]

    def has_hour(self, hour: int) -> bool:
        return any(slot.hour == hour for slot in self.slots)


@dataclass(frozen=True)
class NextAvailable:
    """First bookable day found by a forward scan."""
    date: Date
    first_slot: Slot
    slots: Tuple[Slot, ...]


@dataclass(frozen=True)
class CalendarEvent:
    """
    Raw event as returned by a calendar adapter.

    ``start``/``end`` are ISO 8601 strings; for all-day events they are plain
    ``YYYY-MM-DD`` dates.
    """
    id: str
    title: str
    start: Optional[str]
    end: Optional[str]
    all_day: bool = False


@dataclass(frozen=True)
class EventDraft:
    """Event to be created in the external calendar."""
    title: str
    description: str
    start: DateTime
    end: DateTime


@dataclass
class AppointmentRecord:
    """Persisted appointment as seen by the booking core."""
    reservation_code: str
    client_name: str
    client_phone: str
    client_email: str
    calendar_id: str
    service_id: str
    date: str
    time: str
    specialist: str = ""
    service_name: str = ""
    status: AppointmentStatus = AppointmentStatus.AGENDADA
    created_at: Optional[DateTime] = field(default=None, compare=False)

    def starts_at(self, timezone: str) -> DateTime:
        return pendulum.from_format(f"{self.date} {self.time}", "YYYY-MM-DD HH:mm", tz=timezone)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for the non-negative values used in percentages."""
    return int(math.floor(value + 0.5))


def _minute_label(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"
