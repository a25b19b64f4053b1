"""Application services: availability search, booking transactions and reminders."""

from .availability import AvailabilityQueryResult, AvailabilityService, QueryOutcome, SearchLimits
from .booking import BookingOutcome, BookingService, CancelOutcome, ConfirmOutcome, RescheduleOutcome
from .client_cache import ClientInfo, ClientInfoCache
from .reminders import ReminderReport, ReminderService
from .slot_locks import SlotLockRegistry

__all__ = [
    "AvailabilityQueryResult",
    "AvailabilityService",
    "BookingOutcome",
    "BookingService",
    "CancelOutcome",
    "ClientInfo",
    "ClientInfoCache",
    "ConfirmOutcome",
    "QueryOutcome",
    "ReminderReport",
    "ReminderService",
    "RescheduleOutcome",
    "SearchLimits",
    "SlotLockRegistry",
]
