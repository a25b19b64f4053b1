"""
Input validation and normalization for booking requests.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
DATE_FORMAT = "YYYY-MM-DD"
DATE_TIME_FORMAT = "YYYY-MM-DD HH:mm"
MIN_PHONE_DIGITS = 10
COUNTRY_PREFIX = "52"


def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def phone_to_10_digits(phone: Optional[str]) -> str:
    """
    Reduce a phone number to its 10 national digits.

    Handles ``521`` / ``52`` prefixed mobile numbers and anything longer than
    10 digits by keeping the trailing 10.
    """
    digits = digits_only(phone)
    if digits.startswith("521") and len(digits) >= 13:
        return digits[3:13]
    if digits.startswith(COUNTRY_PREFIX) and len(digits) >= 12:
        return digits[2:12]
    if len(digits) > 10:
        return digits[-10:]
    return digits


def normalize_phone(phone: Optional[str]) -> str:
    """Canonical ``52`` + 10 digits key, or an empty string when there are too few digits."""
    national = phone_to_10_digits(phone)
    if len(national) != 10:
        return ""
    return COUNTRY_PREFIX + national


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def is_valid_phone(phone: Optional[str]) -> bool:
    return len(digits_only(phone)) >= MIN_PHONE_DIGITS


def parse_date(value: Optional[str], timezone: str, field: str = "date") -> DateTime:
    """Parse a ``YYYY-MM-DD`` string into local midnight."""
    if not value:
        raise ValidationError(f"Falta el campo {field}", missing=[field])
    try:
        return pendulum.from_format(value.strip(), DATE_FORMAT, tz=timezone)
    except ValueError:
        raise ValidationError(
            f"Formato de fecha inválido: {value}. Usa YYYY-MM-DD", invalid=[field]
        ) from None


def parse_slot_start(
    date_value: str,
    time_value: str,
    timezone: str,
    date_field: str = "date",
    time_field: str = "time",
) -> DateTime:
    """Parse date + ``HH:mm`` into a local datetime that must start on the hour."""
    text = f"{date_value.strip()} {time_value.strip()}"
    try:
        start = pendulum.from_format(text, DATE_TIME_FORMAT, tz=timezone)
    except ValueError:
        raise ValidationError(
            f"Fecha u hora inválida: {text}. Usa YYYY-MM-DD y HH:mm",
            invalid=[date_field, time_field],
        ) from None
    if start.minute != 0:
        raise ValidationError(
            "Las citas solo se agendan en horas exactas (por ejemplo 10:00)",
            invalid=[time_field],
        )
    return start


@dataclass
class BookingRequest:
    """Raw booking input as received from the API or the CLI."""
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    calendar: Optional[str] = None
    service: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None

    def check_fields(self) -> Tuple[List[str], List[str]]:
        """Return (missing, invalid) field names."""
        required = {
            "clientName": self.client_name,
            "clientPhone": self.client_phone,
            "clientEmail": self.client_email,
            "calendar": self.calendar,
            "service": self.service,
            "date": self.date,
            "time": self.time,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]

        invalid: List[str] = []
        if "clientPhone" not in missing and not is_valid_phone(self.client_phone):
            invalid.append("clientPhone")
        if "clientEmail" not in missing and not is_valid_email(self.client_email):
            invalid.append("clientEmail")
        return missing, invalid

    def validate(self) -> None:
        missing, invalid = self.check_fields()
        if missing or invalid:
            parts = []
            if missing:
                parts.append("faltan datos: " + ", ".join(missing))
            if invalid:
                parts.append("datos inválidos: " + ", ".join(invalid))
            raise ValidationError("No se pudo agendar, " + "; ".join(parts), missing=missing, invalid=invalid)
