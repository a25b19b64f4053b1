"""
Normalization of raw calendar events into per-day busy intervals.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Iterable, List, Optional

import pendulum
from pendulum import DateTime

from .models import MINUTES_PER_DAY, BusyInterval, CalendarEvent

logger = logging.getLogger(__name__)

DATE_ONLY_LENGTH = len("YYYY-MM-DD")


class BusyIntervalNormalizer:
    """
    Converts raw events into minute-precision busy intervals for a single day.

    Only events whose local start date equals the target date survive; an
    event bleeding in from the previous day does not block this day at all.
    A malformed event is dropped with a warning and never aborts the batch.
    """

    def __init__(self, timezone: str):
        self.timezone = timezone

    def normalize(
        self,
        raw_events: Iterable[CalendarEvent],
        target_date: date_type,
    ) -> List[BusyInterval]:
        target = target_date.isoformat()
        intervals: List[BusyInterval] = []

        for event in raw_events:
            try:
                interval = self._normalize_event(event, target)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Dropping calendar event %r (%s): %s", event.title, event.id, exc
                )
                continue

            if interval is not None:
                intervals.append(interval)

        intervals.sort(key=lambda interval: (interval.start_minute, interval.end_minute))
        return intervals

    def _normalize_event(self, event: CalendarEvent, target: str) -> Optional[BusyInterval]:
        if not event.start:
            raise ValueError("event has no start")

        label = event.title or "Sin título"

        if event.all_day or len(event.start) == DATE_ONLY_LENGTH:
            start_day = pendulum.from_format(event.start[:DATE_ONLY_LENGTH], "YYYY-MM-DD", tz=self.timezone)
            if start_day.to_date_string() != target:
                return None
            return BusyInterval(start_minute=0, end_minute=MINUTES_PER_DAY, label=label)

        if not event.end:
            raise ValueError("event has no end")

        start = self._to_local_minute(event.start)
        end = self._to_local_minute(event.end)

        if start.to_date_string() != target:
            return None

        start_minute = start.hour * 60 + start.minute
        if end.to_date_string() > target:
            end_minute = MINUTES_PER_DAY
        else:
            end_minute = end.hour * 60 + end.minute

        if end_minute <= start_minute:
            raise ValueError(f"end {event.end} is not after start {event.start}")

        return BusyInterval(start_minute=start_minute, end_minute=end_minute, label=label)

    def _to_local_minute(self, value: str) -> DateTime:
        """Parse an ISO timestamp, convert it to the clinic timezone, and drop seconds."""
        parsed = pendulum.parse(value, tz=self.timezone)
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Could not parse datetime: {value}")
        return parsed.in_timezone(self.timezone).set(second=0, microsecond=0)
