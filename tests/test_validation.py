"""
Tests for booking input validation, phone normalization and reservation codes.
"""

import pendulum
import pytest

from clinicagenda.domain.exceptions import ValidationError
from clinicagenda.domain.reservation_codes import (
    CODE_ALPHABET,
    CODE_LENGTH,
    event_title,
    generate_event_id,
    generate_reservation_code,
    title_contains_code,
)
from clinicagenda.domain.validation import (
    BookingRequest,
    is_valid_email,
    normalize_phone,
    parse_date,
    parse_slot_start,
    phone_to_10_digits,
)

TZ = "America/Mexico_City"


class TestPhones:
    @pytest.mark.parametrize(
        "raw",
        ["5512345678", "55 1234 5678", "+52 55 1234 5678", "5215512345678", "+52 1 (55) 1234-5678"],
    )
    def test_variants_share_one_key(self, raw):
        assert phone_to_10_digits(raw) == "5512345678"
        assert normalize_phone(raw) == "525512345678"

    def test_short_number_has_no_key(self):
        assert normalize_phone("12345") == ""
        assert normalize_phone(None) == ""


def test_email_validation():
    assert is_valid_email("ana.lopez+citas@example.com.mx")
    assert not is_valid_email("ana@example")
    assert not is_valid_email("")


class TestParsing:
    def test_parse_date(self):
        assert parse_date("2025-01-13", TZ) == pendulum.datetime(2025, 1, 13, tz=TZ)

    def test_missing_date(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_date(None, TZ)

        assert excinfo.value.missing == ["date"]

    def test_malformed_date(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_date("13/01/2025", TZ, field="fecha")

        assert excinfo.value.invalid == ["fecha"]

    def test_slot_start(self):
        assert parse_slot_start("2025-01-13", "09:00", TZ) == pendulum.datetime(2025, 1, 13, 9, tz=TZ)

    def test_slot_start_rejects_garbage(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_slot_start("2025-01-13", "nueve", TZ)

        assert excinfo.value.invalid == ["date", "time"]


def test_booking_request_lists_every_missing_field():
    missing, invalid = BookingRequest().check_fields()

    assert missing == ["clientName", "clientPhone", "clientEmail", "calendar", "service", "date", "time"]
    assert invalid == []


class TestReservationCodes:
    def test_code_shape(self):
        code = generate_reservation_code()

        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)

    def test_event_ids_are_opaque_hex(self):
        event_id = generate_event_id()

        assert len(event_id) == 32
        assert "-" not in event_id
        assert event_id != generate_event_id()

    def test_title_lookup_is_case_insensitive(self):
        title = event_title("Ana López", "K7Q2ZD")

        assert title == "Cita: Ana López (K7Q2ZD)"
        assert title_contains_code(title, "k7q2zd")
        assert not title_contains_code(title, "K7Q2Z")
        assert not title_contains_code("", "K7Q2ZD")
