"""
In-memory calendar for development and tests, without Microsoft credentials.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConflictError, NotFoundError
from ..domain.models import CalendarEvent, EventDraft, TimeRange

logger = logging.getLogger(__name__)


@dataclass
class _StoredEvent:
    calendar_ref: str
    event: CalendarEvent


class MockCalendarClient:
    """
    Calendar port kept in memory.

    Seed data is a JSON list of objects with ``calendarId``, ``id``, ``title``,
    ``start``, ``end`` and optionally ``allDay``. Creating an event over an
    existing one is accepted, like a real calendar; pass ``reject_overlaps``
    to emulate a calendar that refuses double bookings.
    """

    def __init__(
        self,
        timezone: str,
        data_file: Optional[Path] = None,
        reject_overlaps: bool = False,
    ):
        self.timezone = timezone
        self.reject_overlaps = reject_overlaps
        self._events: Dict[str, _StoredEvent] = {}
        if data_file is not None:
            self.load(data_file)

    def load(self, data_file: Path) -> None:
        if not data_file.exists():
            logger.warning("Mock calendar data %s not found, starting empty", data_file)
            return

        with open(data_file, "r", encoding="utf-8") as f:
            raw_events = json.load(f)

        for raw in raw_events:
            event = CalendarEvent(
                id=raw.get("id") or uuid.uuid4().hex,
                title=raw.get("title", ""),
                start=raw.get("start"),
                end=raw.get("end"),
                all_day=bool(raw.get("allDay", False)),
            )
            self.add(str(raw.get("calendarId", "")), event)
        logger.info("Loaded %d mock calendar events from %s", len(raw_events), data_file)

    def add(self, calendar_ref: str, event: CalendarEvent) -> None:
        self._events[event.id] = _StoredEvent(calendar_ref=calendar_ref, event=event)

    def events(self, calendar_ref: Optional[str] = None) -> List[CalendarEvent]:
        return [
            stored.event for stored in self._events.values()
            if calendar_ref is None or stored.calendar_ref == calendar_ref
        ]

    async def list_events(
        self,
        calendar_ref: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[CalendarEvent]:
        window = TimeRange(start=range_start, end=range_end)
        found = []
        for stored in self._events.values():
            if stored.calendar_ref != calendar_ref:
                continue
            try:
                span = self._span(stored.event)
            except ValueError:
                # Malformed seed data is handed through; the normalizer drops it.
                found.append(stored.event)
                continue
            if span.overlaps(window):
                found.append(stored.event)
        return found

    async def create_event(
        self,
        calendar_ref: str,
        draft: EventDraft,
        event_id: Optional[str] = None,
    ) -> str:
        event_id = event_id or uuid.uuid4().hex
        if self.reject_overlaps:
            clashing = await self.list_events(calendar_ref, draft.start, draft.end)
            if clashing:
                raise ConflictError(f"{len(clashing)} event(s) already booked in {TimeRange(draft.start, draft.end)}")

        self.add(
            calendar_ref,
            CalendarEvent(
                id=event_id,
                title=draft.title,
                start=draft.start.in_timezone(self.timezone).to_iso8601_string(),
                end=draft.end.in_timezone(self.timezone).to_iso8601_string(),
            ),
        )
        return event_id

    async def delete_event(self, calendar_ref: str, event_id: str) -> None:
        stored = self._events.get(event_id)
        if stored is None or stored.calendar_ref != calendar_ref:
            raise NotFoundError(f"Event {event_id} not found")
        del self._events[event_id]

    def _span(self, event: CalendarEvent) -> TimeRange:
        if not event.start or not event.end:
            raise ValueError("incomplete event")
        if event.all_day or len(event.start) == 10:
            start = pendulum.from_format(event.start[:10], "YYYY-MM-DD", tz=self.timezone)
            return TimeRange(start=start, end=start.add(days=1))
        start = pendulum.parse(event.start, tz=self.timezone)
        end = pendulum.parse(event.end, tz=self.timezone)
        if not isinstance(start, DateTime) or not isinstance(end, DateTime):
            raise ValueError("not a timestamp")
        return TimeRange(start=start, end=end)
