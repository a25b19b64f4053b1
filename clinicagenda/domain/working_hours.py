"""
Working-hours policy: turns a stored weekday rule into the opening hours of one date.

The clinic runs three fixed day types:

- Sunday: always closed, whatever the stored rule says.
- Saturday: the stored rule clamped to the Saturday window, no lunch break.
- Monday to Friday: the weekday window is forced, with a lunch break.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type
from typing import Optional

from .models import DayPolicy, WorkingHoursRule

SATURDAY = 6
SUNDAY = 7


def iso_weekday(day: date_type) -> int:
    """ISO weekday, 1 = Monday ... 7 = Sunday."""
    return day.isoweekday()


def is_sunday(day: date_type) -> bool:
    return iso_weekday(day) == SUNDAY


@dataclass(frozen=True)
class ClinicHours:
    """Fixed hours for each day type."""
    weekday_open: int = 10
    weekday_close: int = 19
    lunch_start: int = 14
    lunch_end: int = 15
    saturday_open: int = 10
    saturday_close: int = 13


class WorkingHoursPolicy:
    """Resolves a ``DayPolicy`` for a (calendar, date) pair."""

    def __init__(self, hours: Optional[ClinicHours] = None):
        self.hours = hours or ClinicHours()

    def resolve(
        self,
        calendar_id: str,
        day: date_type,
        raw_rule: Optional[WorkingHoursRule],
    ) -> DayPolicy:
        """
        Apply the day-type overrides on top of the stored rule.

        Args:
            calendar_id: Calendar the rule belongs to (kept for symmetry with the store)
            day: Target date
            raw_rule: Stored rule for the date's weekday, or None when the clinic
                does not open that weekday

        Returns:
            DayPolicy; ``is_closed`` is set for Sundays, missing rules, and
            Saturday rules that clamp to an empty window.
        """
        weekday = iso_weekday(day)

        if weekday == SUNDAY or raw_rule is None:
            return DayPolicy.closed(day)

        if weekday == SATURDAY:
            open_hour = max(raw_rule.start_hour, self.hours.saturday_open)
            close_hour = min(raw_rule.end_hour, self.hours.saturday_close)
            if close_hour < open_hour:
                return DayPolicy.closed(day)
            return DayPolicy(
                date=day,
                open_hour=open_hour,
                close_hour=close_hour,
                has_lunch=False,
            )

        # Weekday hours are forced regardless of the stored rule.
        return DayPolicy(
            date=day,
            open_hour=self.hours.weekday_open,
            close_hour=self.hours.weekday_close,
            has_lunch=True,
            lunch_start=self.hours.lunch_start,
            lunch_end=self.hours.lunch_end,
        )
