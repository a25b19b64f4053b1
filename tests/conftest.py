"""
Shared stubs and fixtures for the test suite.
"""

from dataclasses import replace
from typing import Dict, List, Optional

import pendulum
import pytest

from clinicagenda.adapters.config_policy_store import ConfigPolicyStore
from clinicagenda.adapters.mock_calendar_client import MockCalendarClient
from clinicagenda.config import WorkingHoursEntry
from clinicagenda.domain.exceptions import CalendarAPIError, StoreError
from clinicagenda.domain.models import AppointmentRecord, AppointmentStatus, CalendarEvent
from clinicagenda.domain.validation import phone_to_10_digits
from clinicagenda.services.availability import AvailabilityService, SearchLimits
from clinicagenda.services.booking import BookingService

TZ = "America/Mexico_City"

# Friday morning
NOW = pendulum.datetime(2025, 1, 10, 9, 30, tz=TZ)


def clinic_week(calendar: str = "1") -> List[WorkingHoursEntry]:
    """Monday to Saturday rules for one calendar; Sunday has no rule."""
    return [
        WorkingHoursEntry(calendar=calendar, weekday=weekday, start_hour=9, end_hour=19)
        for weekday in range(1, 7)
    ]


class InMemoryAppointmentStore:
    """Appointment store kept in a dict, with switches to simulate failures."""

    def __init__(self):
        self.records: Dict[str, AppointmentRecord] = {}
        self.fail_insert = False
        self.fail_updates = False
        self.phone_lookups = 0

    def add(self, record: AppointmentRecord) -> None:
        self.records[record.reservation_code] = record

    async def find_by_reservation_code(self, code: str) -> Optional[AppointmentRecord]:
        record = self.records.get(code.upper())
        return replace(record) if record else None

    async def reservation_code_exists(self, code: str) -> bool:
        return code.upper() in self.records

    async def insert_appointment(self, record: AppointmentRecord) -> None:
        if self.fail_insert:
            raise StoreError("database is down")
        self.records[record.reservation_code] = replace(record)

    async def update_status(self, code: str, status: AppointmentStatus) -> bool:
        if self.fail_updates:
            raise StoreError("database is down")
        record = self.records.get(code.upper())
        if record is None:
            return False
        record.status = status
        return True

    async def update_date_time(self, code: str, date: str, time: str) -> bool:
        if self.fail_updates:
            raise StoreError("database is down")
        record = self.records.get(code.upper())
        if record is None:
            return False
        record.date = date
        record.time = time
        return True

    async def find_by_phone(self, phone: str) -> Optional[AppointmentRecord]:
        self.phone_lookups += 1
        national = phone_to_10_digits(phone)
        matches = [r for r in self.records.values() if phone_to_10_digits(r.client_phone) == national]
        return replace(matches[-1]) if matches else None

    async def list_between(self, start, end, statuses) -> List[AppointmentRecord]:
        return [
            replace(record) for record in self.records.values()
            if record.status in statuses and start <= record.starts_at(TZ) <= end
        ]


class RecordingNotifier:
    """Notifier that records every call and answers with a fixed result."""

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[tuple] = []

    async def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return self.result

    async def send_booking_confirmation(self, record):
        return await self._record("confirmation", record.reservation_code)

    async def send_business_notification(self, record):
        return await self._record("business", record.reservation_code)

    async def send_reschedule_confirmation(self, record, old_date, old_time):
        return await self._record("reschedule", record.reservation_code, old_date, old_time)

    async def send_reminder(self, record):
        return await self._record("reminder", record.reservation_code)


class FailingCalendarClient:
    """Calendar whose every call fails like an unreachable Graph API."""

    async def list_events(self, calendar_ref, range_start, range_end):
        raise CalendarAPIError("Graph unreachable")

    async def create_event(self, calendar_ref, draft, event_id=None):
        raise CalendarAPIError("Graph unreachable")

    async def delete_event(self, calendar_ref, event_id):
        raise CalendarAPIError("Graph unreachable")


class FullyBookedCalendarClient(FailingCalendarClient):
    """Calendar with an all-day event on every requested day."""

    async def list_events(self, calendar_ref, range_start, range_end):
        return [
            CalendarEvent(id="blocked", title="Congreso", start=range_start.to_date_string(), end=None, all_day=True)
        ]


def all_day(day: str, title: str = "Bloqueado") -> CalendarEvent:
    return CalendarEvent(id=f"all-day-{day}", title=title, start=day, end=day, all_day=True)


def timed(event_id: str, start: str, end: str, title: str = "Ocupado") -> CalendarEvent:
    return CalendarEvent(id=event_id, title=title, start=start, end=end)


def make_record(
    code: str = "ABC123",
    date: str = "2025-01-13",
    time: str = "11:00",
    status: AppointmentStatus = AppointmentStatus.AGENDADA,
    phone: str = "5512345678",
) -> AppointmentRecord:
    return AppointmentRecord(
        reservation_code=code,
        client_name="Ana López",
        client_phone=phone,
        client_email="ana@example.com",
        calendar_id="1",
        service_id="1",
        date=date,
        time=time,
        specialist="Dra. Ana",
        service_name="Consulta general",
        status=status,
    )


def sequence(*values: str):
    """Factory returning the given values in order, then repeating the last one."""
    remaining = list(values)

    def factory() -> str:
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return factory


@pytest.fixture
def calendar() -> MockCalendarClient:
    return MockCalendarClient(timezone=TZ)


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_availability():
    def build(calendar_client, now=NOW, limits: Optional[SearchLimits] = None, rules=None) -> AvailabilityService:
        return AvailabilityService(
            calendar_client,
            ConfigPolicyStore(clinic_week() if rules is None else rules),
            timezone=TZ,
            limits=limits,
            clock=lambda: now,
        )

    return build


@pytest.fixture
def availability(calendar, make_availability) -> AvailabilityService:
    return make_availability(calendar)


@pytest.fixture
def booking(availability, calendar, store, notifier) -> BookingService:
    return BookingService(
        availability,
        calendar,
        store,
        notifier,
        specialists={"1": "Dra. Ana", "2": "Dr. Luis"},
        service_names={"1": "Consulta general"},
        code_factory=sequence("ABC123", "DEF456", "GHI789"),
        event_id_factory=sequence("evt1", "evt2", "evt3", "evt4"),
    )
