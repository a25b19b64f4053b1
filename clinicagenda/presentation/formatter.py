"""
User-facing Spanish texts for availability results and booking outcomes.

Everything here is deterministic given ``today``; the services never build
user-visible strings themselves.
"""

from __future__ import annotations

from datetime import date as date_type
from typing import Any, Dict, List, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from ..domain.exceptions import (
    AgendaError,
    CollaboratorError,
    ConflictError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from ..domain.models import AppointmentStatus, DayAvailabilityResult, round_half_up
from ..services.availability import AvailabilityQueryResult, QueryOutcome
from ..services.booking import BookingOutcome, CancelOutcome, ConfirmOutcome, RescheduleOutcome
from ..services.client_cache import ClientInfo

WEEKDAYS = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

HIGH_DEMAND_PERCENTAGE = 70
LOW_DEMAND_PERCENTAGE = 30

GENERIC_APOLOGY = (
    "😔 Lo siento, tuvimos un problema técnico. Intenta de nuevo en unos minutos "
    "o contáctanos directamente."
)


def parse_iso_date(value: str) -> Date:
    return pendulum.from_format(value, "YYYY-MM-DD").date()


def weekday_name(day: date_type) -> str:
    return WEEKDAYS[day.weekday()]


def long_date(day: date_type) -> str:
    """``lunes 3 de marzo``"""
    return f"{weekday_name(day)} {day.day} de {MONTHS[day.month - 1]}"


def relative_day_label(day: date_type, today: date_type) -> str:
    """HOY, MAÑANA, PASADO MAÑANA, HOY MISMO (yesterday), else the long date."""
    delta = day.toordinal() - today.toordinal()
    if delta == 0:
        return "HOY"
    if delta == 1:
        return "MAÑANA"
    if delta == -1:
        return "HOY MISMO"
    if delta == 2:
        return "PASADO MAÑANA"
    return long_date(day)


def format_time_12h(value: str) -> str:
    """``13:00`` -> ``1:00 PM``; anything unparsable is returned unchanged."""
    parts = (value or "").split(":")
    if len(parts) < 2 or not parts[0].strip().isdigit():
        return value
    hour, minutes = int(parts[0]), parts[1]
    if hour == 0:
        return f"12:{minutes} AM"
    if hour < 12:
        return f"{hour}:{minutes} AM"
    if hour == 12:
        return f"12:{minutes} PM"
    return f"{hour - 12}:{minutes} PM"


def slot_letter(index: int) -> str:
    """A..Z for the first 26 options, then ``27.``, ``28.`` ..."""
    if index < 26:
        return chr(ord("A") + index)
    return f"{index + 1}."


def occupation_emoji(percentage: int) -> str:
    if percentage >= 80:
        return "🔴"
    if percentage >= 60:
        return "🟡"
    if percentage >= 40:
        return "🟢"
    return "✅"


def urgency_text(percentage: int) -> str:
    if percentage >= 80:
        return "¡AGENDA YA!"
    if percentage >= 60:
        return "¡Reserva pronto!"
    if percentage >= 40:
        return ""
    return "¡Gran disponibilidad!"


class PresentationFormatter:
    """Builds ``respuesta`` texts and availability metadata."""

    def __init__(self, today: Date):
        self.today = today

    @classmethod
    def for_now(cls, now: DateTime) -> "PresentationFormatter":
        return cls(today=now.date())

    def day_label(self, day: date_type) -> str:
        return relative_day_label(day, self.today)

    def slot_menu(self, days: List[DayAvailabilityResult]) -> Tuple[str, Dict[str, Dict[str, str]]]:
        """
        Render the lettered menu and the letter -> date/time mapping.

        Letters run continuously across days so each option is unique.
        """
        lines: List[str] = []
        mapping: Dict[str, Dict[str, str]] = {}
        index = 0

        for day in days:
            header = f"{weekday_name(day.date).capitalize()} {day.date.day}"
            urgency = urgency_text(day.occupation_percentage)
            lines.append(f"{occupation_emoji(day.occupation_percentage)} {header}" + (f" {urgency}" if urgency else ""))

            for slot in day.slots:
                letter = slot_letter(index)
                mapping[letter] = {
                    "date": day.date.isoformat(),
                    "time": slot.time_label,
                    "dayName": self.day_label(day.date),
                }
                lines.append(f"{letter} {format_time_12h(slot.time_label)}")
                index += 1
            lines.append("")

        return "\n".join(lines).rstrip(), mapping

    def availability(self, result: AvailabilityQueryResult) -> Tuple[str, Optional[Dict[str, Any]]]:
        """Return ``(respuesta, metadata)`` for an availability query."""
        requested = result.requested_date
        requested_label = f"*{self.day_label(requested)}* ({requested.isoformat()})"

        if result.outcome is QueryOutcome.SUNDAY_REDIRECT:
            text = f"🚫 Los domingos no hay servicio ({requested.isoformat()})."
            return text + self._suggestion(result), None

        if result.outcome in (QueryOutcome.NEXT_AVAILABLE, QueryOutcome.NOTHING):
            text = f"😔 No tengo horarios disponibles para {requested_label}."
            return text + self._suggestion(result), None

        menu, mapping = self.slot_menu(result.days)
        if result.outcome is QueryOutcome.ALTERNATIVES:
            intro = (
                f"😔 No hay horarios para {requested_label}, "
                f"pero encontré estas opciones cercanas:\n\n"
            )
        else:
            intro = ""

        text = intro + menu + "\n\n💡 Escribe la letra del horario que prefieras (A, B, C...)"
        return text, self.availability_metadata(result, mapping)

    def availability_metadata(
        self,
        result: AvailabilityQueryResult,
        mapping: Dict[str, Dict[str, str]],
    ) -> Dict[str, Any]:
        days = result.days
        average = round_half_up(sum(day.occupation_percentage for day in days) / len(days)) if days else 0
        return {
            "totalDays": len(days),
            "totalSlots": result.total_slots,
            "averageOccupation": average,
            "dateMapping": mapping,
            "dataSources": sorted({day.data_source.value for day in days}),
            "recommendations": {
                "hasEarlierDay": any(day.direction == "anterior" for day in days),
                "hasHighDemandDay": any(day.occupation_percentage >= HIGH_DEMAND_PERCENTAGE for day in days),
                "hasLowDemandDay": any(day.occupation_percentage <= LOW_DEMAND_PERCENTAGE for day in days),
            },
        }

    def booking_confirmed(self, outcome: BookingOutcome) -> str:
        record = outcome.record
        day = parse_iso_date(record.date)
        lines = [
            "✅ ¡Cita confirmada!",
            "",
            f"📅 Fecha: {long_date(day)} ({self.day_label(day)})",
            f"⏰ Hora: {format_time_12h(record.time)}",
        ]
        if record.service_name:
            lines.append(f"🩺 Servicio: {record.service_name}")
        if record.specialist:
            lines.append(f"👩‍⚕️ Especialista: {record.specialist}")
        lines += [
            f"🎟️ Código de reserva: *{record.reservation_code}*",
            "",
            "Guarda tu código para cancelar, reagendar o confirmar tu cita.",
        ]
        return "\n".join(lines)

    def cancelled(self, outcome: CancelOutcome) -> str:
        if not outcome.cancelled:
            return (
                f"ℹ️ No encontré una cita activa con el código {outcome.reservation_code}. "
                "Es posible que ya haya sido cancelada o que el código sea incorrecto."
            )
        return f"✅ Tu cita con código {outcome.reservation_code} fue cancelada."

    def rescheduled(self, outcome: RescheduleOutcome) -> str:
        record = outcome.record
        day = parse_iso_date(record.date)
        return (
            f"🔄 ¡Cita reagendada!\n\n"
            f"Antes: {outcome.old_date} {format_time_12h(outcome.old_time)}\n"
            f"Ahora: {long_date(day)} a las {format_time_12h(record.time)}\n"
            f"🎟️ Código de reserva: *{record.reservation_code}*"
        )

    def confirmed(self, outcome: ConfirmOutcome) -> str:
        code = outcome.record.reservation_code
        if outcome.previous_status is AppointmentStatus.CANCELADA:
            return f"ℹ️ La cita {code} está cancelada, no se puede confirmar. Agenda una nueva cita si lo necesitas."
        if not outcome.changed:
            return f"ℹ️ La cita {code} ya estaba confirmada. ¡Te esperamos!"
        return f"✅ ¡Gracias! Tu asistencia a la cita {code} quedó confirmada."

    def client_recognized(self, info: Optional[ClientInfo]) -> str:
        if info is None:
            return "👋 ¡Hola! No encontré citas previas con ese número. ¿Me compartes tu nombre y correo?"
        return f"👋 ¡Hola de nuevo, {info.name}! Usaremos tu correo {info.email} para la confirmación."

    def current_date(self, now: DateTime) -> str:
        return f"📅 Hoy es {long_date(now.date())} de {now.year}, son las {format_time_12h(now.format('HH:mm'))}."

    def error(self, exc: Exception) -> str:
        """Short, non-technical message for any error; only policy and validation texts are shown verbatim."""
        if isinstance(exc, PolicyViolation):
            text = f"⚠️ {exc}"
            if exc.suggested_date is not None:
                text += f"\n\n🔍 Te sugiero el {long_date(exc.suggested_date)} ({exc.suggested_date.isoformat()})"
                if exc.suggested_time:
                    text += f" a las {format_time_12h(exc.suggested_time)}"
                text += "."
            return text
        if isinstance(exc, ValidationError):
            return f"⚠️ {exc}"
        if isinstance(exc, ConflictError):
            slot = "Ese horario"
            if exc.slot_date is not None and exc.slot_time:
                slot = f"El horario de las {format_time_12h(exc.slot_time)} del {long_date(exc.slot_date)}"
            return f"😔 {slot} ya no está disponible. Consulta la disponibilidad de nuevo para elegir otro horario."
        if isinstance(exc, NotFoundError):
            if exc.reservation_code:
                return (
                    f"ℹ️ No existe una cita con el código {exc.reservation_code}. "
                    "Verifica el código e intenta de nuevo."
                )
            return "ℹ️ No encontré la cita solicitada. Verifica los datos e intenta de nuevo."
        if isinstance(exc, CollaboratorError) or not isinstance(exc, AgendaError):
            return GENERIC_APOLOGY
        return f"⚠️ {exc}"

    def _suggestion(self, result: AvailabilityQueryResult) -> str:
        suggestion = result.next_available
        if suggestion is None:
            return "\n\n🔍 Te sugerimos elegir otra fecha o contactarnos directamente."
        return (
            f"\n\n🔍 Te recomiendo el día **{self.day_label(suggestion.date)}** "
            f"({suggestion.date.isoformat()}) a las **{format_time_12h(suggestion.first_slot.time_label)}**."
            "\n\n📅 Esta es la próxima fecha y hora más cercana disponible."
        )
