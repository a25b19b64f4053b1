"""Domain layer: policy, busy intervals, slot calculation and booking input rules."""

from .busy_intervals import BusyIntervalNormalizer
from .catalog import Catalog
from .models import (
    AppointmentRecord,
    AppointmentStatus,
    BusyInterval,
    CalendarEvent,
    DataSource,
    DayAvailabilityResult,
    DayPolicy,
    EventDraft,
    NextAvailable,
    Slot,
    TimeRange,
    WorkingHoursRule,
)
from .slot_calculator import SlotCalculator
from .working_hours import ClinicHours, WorkingHoursPolicy

__all__ = [
    "AppointmentRecord",
    "AppointmentStatus",
    "BusyInterval",
    "BusyIntervalNormalizer",
    "CalendarEvent",
    "Catalog",
    "ClinicHours",
    "DataSource",
    "DayAvailabilityResult",
    "DayPolicy",
    "EventDraft",
    "NextAvailable",
    "Slot",
    "SlotCalculator",
    "TimeRange",
    "WorkingHoursPolicy",
    "WorkingHoursRule",
]
