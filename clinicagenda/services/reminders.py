"""
Daily 24-hour reminder job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from pendulum import DateTime

from ..domain.exceptions import CollaboratorError
from ..domain.models import AppointmentRecord, AppointmentStatus
from .ports import AppointmentStore, NotificationPort

logger = logging.getLogger(__name__)

WINDOW_START_HOURS = 23
WINDOW_END_HOURS = 25
REMINDABLE = [AppointmentStatus.AGENDADA, AppointmentStatus.REAGENDADA]


@dataclass
class ReminderReport:
    checked: int = 0
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ReminderService:
    """
    Sends reminders for appointments starting 23 to 25 hours from now.

    Meant to run once a day (09:00, from an external scheduler). An
    appointment is marked NOTIFICADA only when the WhatsApp reminder went out,
    so an email-only delivery is retried on the next run that still covers it.
    """

    def __init__(self, store: AppointmentStore, notifier: NotificationPort, timezone: str) -> None:
        self._store = store
        self._notifier = notifier
        self.timezone = timezone

    async def run(self, now: DateTime) -> ReminderReport:
        now = now.in_timezone(self.timezone)
        window_start = now.add(hours=WINDOW_START_HOURS)
        window_end = now.add(hours=WINDOW_END_HOURS)
        logger.info("Reminder window %s to %s",
                    window_start.format("YYYY-MM-DD HH:mm"), window_end.format("YYYY-MM-DD HH:mm"))

        appointments = await self._store.list_between(window_start, window_end, REMINDABLE)
        report = ReminderReport(checked=len(appointments))

        for record in appointments:
            if not await self._send(record):
                report.failed.append(record.reservation_code)
                continue
            report.sent.append(record.reservation_code)
            try:
                await self._store.update_status(record.reservation_code, AppointmentStatus.NOTIFICADA)
            except CollaboratorError as exc:
                logger.error("Reminder sent for %s but status update failed: %s", record.reservation_code, exc)

        logger.info("Reminders: %d checked, %d sent, %d failed",
                    report.checked, len(report.sent), len(report.failed))
        return report

    async def _send(self, record: AppointmentRecord) -> bool:
        try:
            return bool(await self._notifier.send_reminder(record))
        except CollaboratorError as exc:
            logger.warning("Reminder for %s failed: %s", record.reservation_code, exc)
            return False
