"""
Core business logic for calculating bookable hourly slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import pendulum
from pendulum import DateTime

from .models import BusyInterval, DayPolicy, Slot
from .working_hours import is_sunday

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TIME_MINUTES = 60


class SlotDecision(str, Enum):
    FREE = "free"
    LUNCH = "lunch"
    LEAD_TIME = "lead-time"
    OCCUPIED = "occupied"


@dataclass(frozen=True)
class HourEvaluation:
    """Outcome for one candidate hour, with every busy interval that blocks it."""
    hour: int
    decision: SlotDecision
    blocking: Tuple[BusyInterval, ...] = ()

    @property
    def is_free(self) -> bool:
        return self.decision is SlotDecision.FREE


class SlotCalculator:
    """
    Calculates the free hourly slots of one day.

    Algorithm, for every candidate hour ``h`` from open to close (inclusive):
    1. Nothing on a closed day or on a Sunday
    2. Skip the lunch hours
    3. Skip, on the current day, anything starting before now + lead time
    4. Skip if ``[h:00, h+1:00)`` overlaps any busy interval
    5. Otherwise the hour is a free slot

    An interval ending exactly at ``h:00`` leaves slot ``h`` free; one starting
    exactly at ``h:00`` blocks it.
    """

    def __init__(self, timezone: str, lead_time_minutes: int = DEFAULT_LEAD_TIME_MINUTES):
        self.timezone = timezone
        self.lead_time_minutes = lead_time_minutes

    def compute_available_slots(
        self,
        policy: DayPolicy,
        busy_intervals: Sequence[BusyInterval],
        now: DateTime,
        is_target_today: bool,
        calendar_id: str = "",
    ) -> List[Slot]:
        """
        Return the ordered free slots for the policy's date.

        Args:
            policy: Resolved opening hours for the day
            busy_intervals: Normalized busy intervals of that same day
            now: Current instant
            is_target_today: Whether the policy's date is the current local date
            calendar_id: Calendar the slots belong to

        Returns:
            Free slots in ascending hour order
        """
        return [
            Slot(hour=evaluation.hour, date=policy.date, calendar_id=calendar_id)
            for evaluation in self.evaluate_hours(policy, busy_intervals, now, is_target_today)
            if evaluation.is_free
        ]

    def evaluate_hours(
        self,
        policy: DayPolicy,
        busy_intervals: Sequence[BusyInterval],
        now: DateTime,
        is_target_today: bool,
    ) -> List[HourEvaluation]:
        """Evaluate every candidate hour of the day and say why it is or is not free."""
        if policy.is_closed or is_sunday(policy.date):
            return []

        earliest_start = now.in_timezone(self.timezone).add(minutes=self.lead_time_minutes)
        evaluations: List[HourEvaluation] = []

        for hour in policy.candidate_hours():
            if policy.is_lunch_hour(hour):
                evaluations.append(HourEvaluation(hour=hour, decision=SlotDecision.LUNCH))
                continue

            if is_target_today and self._slot_start(policy, hour) < earliest_start:
                evaluations.append(HourEvaluation(hour=hour, decision=SlotDecision.LEAD_TIME))
                continue

            blocking = self.find_overlapping(hour, busy_intervals)
            if blocking:
                if len(blocking) > 1:
                    logger.debug(
                        "Slot %02d:00 on %s occupied by %d simultaneous events",
                        hour, policy.date.isoformat(), len(blocking),
                    )
                evaluations.append(
                    HourEvaluation(hour=hour, decision=SlotDecision.OCCUPIED, blocking=tuple(blocking))
                )
                continue

            evaluations.append(HourEvaluation(hour=hour, decision=SlotDecision.FREE))

        return evaluations

    @staticmethod
    def find_overlapping(hour: int, busy_intervals: Sequence[BusyInterval]) -> List[BusyInterval]:
        """Every busy interval overlapping ``[hour:00, hour+1:00)``, not just the first."""
        slot_start = hour * 60
        slot_end = slot_start + 60
        return [
            interval for interval in busy_intervals
            if interval.overlaps(slot_start, slot_end)
        ]

    @staticmethod
    def simultaneous_starts(busy_intervals: Sequence[BusyInterval]) -> Dict[int, int]:
        """Hours at which two or more busy intervals start, mapped to the event count."""
        counts = Counter(interval.start_minute // 60 for interval in busy_intervals)
        return {hour: count for hour, count in sorted(counts.items()) if count >= 2}

    def _slot_start(self, policy: DayPolicy, hour: int) -> DateTime:
        day = policy.date
        return pendulum.datetime(day.year, day.month, day.day, hour, tz=self.timezone)
