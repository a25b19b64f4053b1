"""
Domain-specific exception hierarchy for the booking backend.
"""

from __future__ import annotations

from typing import List, Optional

from pendulum import Date


class AgendaError(Exception):
    """Base class for all application-level errors."""


class ValidationError(AgendaError):
    """Raised when request data is missing or malformed. No side effects happened."""

    def __init__(
        self,
        message: str,
        missing: Optional[List[str]] = None,
        invalid: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.missing = list(missing or [])
        self.invalid = list(invalid or [])


class PolicyViolation(AgendaError):
    """Raised when a request breaks a business rule (Sunday, past date, lead time, hours)."""

    def __init__(
        self,
        message: str,
        reason: str,
        suggested_date: Optional[Date] = None,
        suggested_time: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.suggested_date = suggested_date
        self.suggested_time = suggested_time


class ConflictError(AgendaError):
    """Raised when the requested slot is no longer free at creation time."""

    def __init__(self, message: str, slot_date: Optional[Date] = None, slot_time: Optional[str] = None) -> None:
        super().__init__(message)
        self.slot_date = slot_date
        self.slot_time = slot_time


class NotFoundError(AgendaError):
    """
    Raised when a reservation code or external event does not resolve.

    The message is for logs; users only ever see ``reservation_code``.
    """

    def __init__(self, message: str, reservation_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.reservation_code = reservation_code


class CollaboratorError(AgendaError):
    """Raised when an external collaborator (calendar or store) fails."""


class CalendarAPIError(CollaboratorError):
    """Raised when calendar data cannot be fetched, created, or deleted."""


class AuthenticationError(CalendarAPIError):
    """Raised when authentication or token handling fails."""


class StoreError(CollaboratorError):
    """Raised when the persistence layer fails."""
