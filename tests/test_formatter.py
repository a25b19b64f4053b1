"""
Tests for the Spanish presentation layer.
"""

from dataclasses import replace

import pendulum
import pytest

from clinicagenda.domain.exceptions import CalendarAPIError, ConflictError, NotFoundError, PolicyViolation
from clinicagenda.domain.models import (
    AppointmentStatus,
    DataSource,
    DayAvailabilityResult,
    DayPolicy,
    NextAvailable,
    Slot,
)
from clinicagenda.presentation.formatter import (
    GENERIC_APOLOGY,
    PresentationFormatter,
    format_time_12h,
    long_date,
    occupation_emoji,
    relative_day_label,
    slot_letter,
)
from clinicagenda.services.availability import AvailabilityQueryResult, QueryOutcome
from clinicagenda.services.booking import CancelOutcome, ConfirmOutcome

from conftest import make_record

TODAY = pendulum.date(2025, 1, 10)


def _day(day, hours, close_hour=19, direction=None):
    policy = DayPolicy(date=day, open_hour=10, close_hour=close_hour)
    slots = [Slot(hour=hour, date=day, calendar_id="1") for hour in hours]
    result = DayAvailabilityResult.build(policy, "1", slots, DataSource.CALENDAR)
    if direction:
        result = replace(result, direction=direction)
    return result


@pytest.mark.parametrize(
    "value,expected",
    [("00:00", "12:00 AM"), ("09:00", "9:00 AM"), ("12:00", "12:00 PM"), ("13:00", "1:00 PM"), ("19:00", "7:00 PM")],
)
def test_format_time_12h(value, expected):
    assert format_time_12h(value) == expected


def test_format_time_12h_passes_through_garbage():
    assert format_time_12h("pronto") == "pronto"


def test_relative_labels():
    assert relative_day_label(pendulum.date(2025, 1, 10), TODAY) == "HOY"
    assert relative_day_label(pendulum.date(2025, 1, 11), TODAY) == "MAÑANA"
    assert relative_day_label(pendulum.date(2025, 1, 12), TODAY) == "PASADO MAÑANA"
    assert relative_day_label(pendulum.date(2025, 1, 9), TODAY) == "HOY MISMO"
    assert relative_day_label(pendulum.date(2025, 1, 13), TODAY) == "lunes 13 de enero"


def test_long_date():
    assert long_date(pendulum.date(2025, 3, 1)) == "sábado 1 de marzo"


def test_slot_letters():
    assert slot_letter(0) == "A"
    assert slot_letter(25) == "Z"
    assert slot_letter(26) == "27."


def test_occupation_emoji_thresholds():
    assert occupation_emoji(85) == "🔴"
    assert occupation_emoji(60) == "🟡"
    assert occupation_emoji(40) == "🟢"
    assert occupation_emoji(10) == "✅"


class TestAvailabilityTexts:
    def test_menu_letters_run_across_days(self):
        formatter = PresentationFormatter(TODAY)
        days = [_day(pendulum.date(2025, 1, 13), [10, 11]), _day(pendulum.date(2025, 1, 14), [15])]

        text, mapping = formatter.slot_menu(days)

        assert list(mapping) == ["A", "B", "C"]
        assert mapping["C"] == {"date": "2025-01-14", "time": "15:00", "dayName": "martes 14 de enero"}
        assert "A 10:00 AM" in text
        assert "C 3:00 PM" in text
        assert "Lunes 13" in text

    def test_available_result_has_metadata(self):
        formatter = PresentationFormatter(TODAY)
        earlier = _day(pendulum.date(2025, 1, 11), [10, 11, 12, 13], close_hour=13, direction="anterior")
        later = _day(pendulum.date(2025, 1, 13), [19])
        result = AvailabilityQueryResult(
            requested_date=pendulum.date(2025, 1, 12), outcome=QueryOutcome.ALTERNATIVES, days=[earlier, later],
        )

        text, metadata = formatter.availability(result)

        assert "opciones cercanas" in text
        assert text.endswith("💡 Escribe la letra del horario que prefieras (A, B, C...)")
        assert metadata["totalDays"] == 2
        assert metadata["totalSlots"] == 5
        assert metadata["averageOccupation"] == 45
        assert metadata["dataSources"] == ["calendar-api"]
        assert metadata["recommendations"] == {
            "hasEarlierDay": True, "hasHighDemandDay": True, "hasLowDemandDay": True,
        }

    def test_sunday_redirect_suggests_next_day(self):
        formatter = PresentationFormatter(TODAY)
        monday = pendulum.date(2025, 1, 13)
        slot = Slot(hour=10, date=monday, calendar_id="1")
        result = AvailabilityQueryResult(
            requested_date=pendulum.date(2025, 1, 12),
            outcome=QueryOutcome.SUNDAY_REDIRECT,
            next_available=NextAvailable(date=monday, first_slot=slot, slots=(slot,)),
        )

        text, metadata = formatter.availability(result)

        assert metadata is None
        assert "domingos" in text
        assert "2025-01-13" in text
        assert "10:00 AM" in text

    def test_nothing_found(self):
        formatter = PresentationFormatter(TODAY)
        result = AvailabilityQueryResult(requested_date=pendulum.date(2025, 1, 13), outcome=QueryOutcome.NOTHING)

        text, _ = formatter.availability(result)

        assert "otra fecha" in text


class TestOutcomeTexts:
    def test_cancel_texts(self):
        formatter = PresentationFormatter(TODAY)

        assert "fue cancelada" in formatter.cancelled(CancelOutcome("ABC123", cancelled=True))
        assert "No encontré" in formatter.cancelled(CancelOutcome("ABC123", cancelled=False))

    def test_confirm_texts(self):
        formatter = PresentationFormatter(TODAY)
        record = make_record()

        cancelled = ConfirmOutcome(record, AppointmentStatus.CANCELADA, changed=False)
        already = ConfirmOutcome(record, AppointmentStatus.CONFIRMADA, changed=False)

        assert "cancelada" in formatter.confirmed(cancelled)
        assert "ya estaba confirmada" in formatter.confirmed(already)

    def test_errors(self):
        formatter = PresentationFormatter(TODAY)
        violation = PolicyViolation("Los domingos no hay servicio", reason="sunday",
                                    suggested_date=pendulum.date(2025, 1, 13))

        text = formatter.error(violation)

        assert text.startswith("⚠️ Los domingos no hay servicio")
        assert "lunes 13 de enero (2025-01-13)" in text
        assert formatter.error(CalendarAPIError("HTTP 503 from graph")) == GENERIC_APOLOGY
        assert formatter.error(KeyError("boom")) == GENERIC_APOLOGY
        assert formatter.error(ConflictError("409 from graph")).startswith("😔 Ese horario ya no está disponible")

    def test_adapter_text_never_reaches_the_user(self):
        formatter = PresentationFormatter(TODAY)

        conflict = formatter.error(
            ConflictError("Slot 11:00 is taken", slot_date=pendulum.date(2025, 1, 13), slot_time="11:00")
        )
        unknown_code = formatter.error(NotFoundError("No appointment with code XYZ999", reservation_code="XYZ999"))
        missing_event = formatter.error(NotFoundError("Graph event not found: https://graph.microsoft.com/v1.0/x"))

        assert "11:00 AM del lunes 13 de enero" in conflict
        assert "is taken" not in conflict
        assert "XYZ999" in unknown_code
        assert "graph.microsoft.com" not in missing_event
        assert missing_event.startswith("ℹ️ No encontré")
