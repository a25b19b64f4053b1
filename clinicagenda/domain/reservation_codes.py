"""
Reservation codes and external event identifiers.
"""

import secrets
import string
import uuid

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_reservation_code(length: int = CODE_LENGTH) -> str:
    """Random human-facing code such as ``K7Q2ZD``."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_event_id() -> str:
    """Opaque identifier for the external calendar event (lowercase hex, no dashes)."""
    return uuid.uuid4().hex


def event_title(client_name: str, reservation_code: str) -> str:
    return f"Cita: {client_name} ({reservation_code})"


def title_contains_code(title: str, reservation_code: str) -> bool:
    """Whether an event title carries ``(CODE)``; matching is case-insensitive."""
    return f"({reservation_code.upper()})" in (title or "").upper()
