"""
Protocols describing what the services need from their collaborators.

Concrete adapters live in ``clinicagenda.adapters``; tests plug in small stubs.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import (
    AppointmentRecord,
    AppointmentStatus,
    CalendarEvent,
    EventDraft,
    WorkingHoursRule,
)


class CalendarPort(Protocol):
    """Calendar behaviour needed by availability and booking."""

    async def list_events(
        self,
        calendar_ref: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[CalendarEvent]:
        """Return raw events overlapping the range."""

    async def create_event(
        self,
        calendar_ref: str,
        draft: EventDraft,
        event_id: Optional[str] = None,
    ) -> str:
        """Create an event and return its id. Raises ConflictError on a rejected double booking."""

    async def delete_event(self, calendar_ref: str, event_id: str) -> None:
        """Delete an event. Raises NotFoundError when it does not exist."""


class PolicyStore(Protocol):
    async def get_working_hours_rule(self, calendar_id: str, weekday: int) -> Optional[WorkingHoursRule]:
        """Stored rule for an ISO weekday, or None when closed."""


class AppointmentStore(Protocol):
    async def find_by_reservation_code(self, code: str) -> Optional[AppointmentRecord]: ...

    async def insert_appointment(self, record: AppointmentRecord) -> None: ...

    async def update_status(self, code: str, status: AppointmentStatus) -> bool: ...

    async def update_date_time(self, code: str, date: str, time: str) -> bool: ...

    async def find_by_phone(self, phone: str) -> Optional[AppointmentRecord]:
        """Latest appointment whose phone matches on the last 10 digits."""

    async def reservation_code_exists(self, code: str) -> bool: ...

    async def list_between(
        self,
        start: DateTime,
        end: DateTime,
        statuses: List[AppointmentStatus],
    ) -> List[AppointmentRecord]: ...


class NotificationPort(Protocol):
    """Best-effort notifications. Implementations return False instead of raising."""

    async def send_booking_confirmation(self, record: AppointmentRecord) -> bool: ...

    async def send_business_notification(self, record: AppointmentRecord) -> bool: ...

    async def send_reschedule_confirmation(
        self, record: AppointmentRecord, old_date: str, old_time: str
    ) -> bool: ...

    async def send_reminder(self, record: AppointmentRecord) -> bool:
        """Return True when the reminder reached the client over WhatsApp."""
