"""
Working-hours rules read from the application config (no database needed).
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from ..config import WorkingHoursEntry
from ..domain.models import WorkingHoursRule


class ConfigPolicyStore:
    """Policy store over the ``working_hours`` config section."""

    def __init__(self, entries: Iterable[WorkingHoursEntry]):
        self._rules: Dict[Tuple[str, int], WorkingHoursRule] = {}
        for entry in entries:
            self._rules[(entry.calendar, entry.weekday)] = WorkingHoursRule(
                calendar_id=entry.calendar,
                weekday=entry.weekday,
                start_hour=entry.start_hour,
                end_hour=entry.end_hour,
            )

    async def get_working_hours_rule(self, calendar_id: str, weekday: int) -> Optional[WorkingHoursRule]:
        return self._rules.get((calendar_id, weekday))
