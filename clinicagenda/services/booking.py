"""
Booking transactions: create, cancel, reschedule and confirm appointments.

Each operation is a linear sequence of awaited steps. Validation and policy
checks run before any side effect; once the external event exists, a
persistence failure deletes it again before the error is re-raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Mapping, Optional

from pendulum import Date, DateTime

from ..domain.exceptions import (
    AgendaError,
    CollaboratorError,
    ConflictError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from ..domain.catalog import Catalog
from ..domain.models import SLOT_MINUTES, AppointmentRecord, AppointmentStatus, EventDraft
from ..domain.reservation_codes import (
    event_title,
    generate_event_id,
    generate_reservation_code,
    title_contains_code,
)
from ..domain.validation import BookingRequest, parse_slot_start
from ..domain.working_hours import is_sunday
from .availability import AvailabilityService
from .client_cache import ClientInfo, ClientInfoCache
from .ports import AppointmentStore, CalendarPort, NotificationPort
from .slot_locks import SlotLockRegistry

logger = logging.getLogger(__name__)

CANCEL_LOOKBACK_DAYS = 30
CANCEL_LOOKAHEAD_DAYS = 90
CODE_ATTEMPTS = 5


@dataclass
class BookingOutcome:
    record: AppointmentRecord
    event_id: str
    notifications: Dict[str, bool] = field(default_factory=dict)


@dataclass
class CancelOutcome:
    reservation_code: str
    cancelled: bool
    status_updated: bool = False
    record: Optional[AppointmentRecord] = None


@dataclass
class RescheduleOutcome:
    record: AppointmentRecord
    old_date: str
    old_time: str
    event_id: str
    old_event_removed: bool
    notified: bool = False


@dataclass
class ConfirmOutcome:
    record: AppointmentRecord
    previous_status: AppointmentStatus
    changed: bool


class BookingService:
    """
    Orchestrates the booking state machines over the calendar and store ports.

    The conflict check always re-reads the calendar (no mock fallback), so a
    slot the client believed free is refused if someone else booked it first.
    """

    def __init__(
        self,
        availability: AvailabilityService,
        calendar_client: CalendarPort,
        store: AppointmentStore,
        notifier: NotificationPort,
        *,
        specialists: Optional[Mapping[str, str]] = None,
        service_names: Optional[Mapping[str, str]] = None,
        client_cache: Optional[ClientInfoCache] = None,
        slot_locks: Optional[SlotLockRegistry] = None,
        code_factory: Callable[[], str] = generate_reservation_code,
        event_id_factory: Callable[[], str] = generate_event_id,
    ) -> None:
        self._availability = availability
        self._calendar_client = calendar_client
        self._store = store
        self._notifier = notifier
        self._catalog = Catalog(specialists, service_names)
        self._client_cache = client_cache or ClientInfoCache()
        self._slot_locks = slot_locks or SlotLockRegistry()
        self._code_factory = code_factory
        self._event_id_factory = event_id_factory

    @property
    def timezone(self) -> str:
        return self._availability.timezone

    # ------------------------------------------------------------------ create

    async def create(self, request: BookingRequest) -> BookingOutcome:
        """
        Book a new appointment.

        Raises:
            ValidationError: Missing or malformed fields
            PolicyViolation: Past date, Sunday, outside hours or lead time
            ConflictError: The hour is no longer free
            CollaboratorError: Calendar or store failure (after rollback)
        """
        request = await self._fill_client_details(request)
        request.validate()

        start = parse_slot_start(request.date, request.time, self.timezone)
        calendar_id = request.calendar.strip()
        service_id = request.service.strip()
        self._catalog.check(calendar_id, service_id)
        await self._check_timing(calendar_id, start)

        async with self._slot_locks.hold(calendar_id, start.to_date_string(), start.hour):
            await self._ensure_slot_free(calendar_id, start)
            code = await self._new_reservation_code()
            record = AppointmentRecord(
                reservation_code=code,
                client_name=request.client_name.strip(),
                client_phone=request.client_phone.strip(),
                client_email=request.client_email.strip(),
                calendar_id=calendar_id,
                service_id=service_id,
                date=start.to_date_string(),
                time=start.format("HH:mm"),
                specialist=self._catalog.specialist(calendar_id),
                service_name=self._catalog.service_name(service_id),
                created_at=self._availability.now(),
            )
            event_id = await self._create_event(record, start)

            try:
                await self._store.insert_appointment(record)
            except CollaboratorError:
                logger.error("Persisting %s failed, removing event %s", code, event_id)
                await self._rollback_event(calendar_id, event_id, code)
                raise

        logger.info("Booked %s for %s on %s %s", code, record.client_name, record.date, record.time)
        self._client_cache.put(record.client_phone, record.client_name, record.client_email)

        notifications = {
            "client": await self._notify("confirmation", self._notifier.send_booking_confirmation, record),
            "business": await self._notify("business", self._notifier.send_business_notification, record),
        }
        return BookingOutcome(record=record, event_id=event_id, notifications=notifications)

    # ------------------------------------------------------------------ cancel

    async def cancel(self, reservation_code: Optional[str]) -> CancelOutcome:
        """Cancel by reservation code; an unknown or already cancelled code is not an error."""
        code = self._clean_code(reservation_code)
        record = await self._lookup_quietly(code)

        removed = await self._delete_events_for_code(code, record)
        if not removed:
            logger.info("No calendar event found for %s", code)
            return CancelOutcome(reservation_code=code, cancelled=False, record=record)

        status_updated = False
        try:
            status_updated = await self._store.update_status(code, AppointmentStatus.CANCELADA)
        except CollaboratorError as exc:
            logger.error("Event for %s deleted but status update failed: %s", code, exc)

        if record is not None:
            record.status = AppointmentStatus.CANCELADA
        logger.info("Cancelled %s", code)
        return CancelOutcome(reservation_code=code, cancelled=True, status_updated=status_updated, record=record)

    # -------------------------------------------------------------- reschedule

    async def reschedule(
        self,
        reservation_code: Optional[str],
        new_date: Optional[str],
        new_time: Optional[str],
    ) -> RescheduleOutcome:
        """
        Move an appointment to a new hour.

        The old event is removed first so the appointment may move within its
        own slot. If anything fails after that, the old event is put back.
        """
        missing = [
            name for name, value in (
                ("codigo_reserva", reservation_code),
                ("fecha_reagendada", new_date),
                ("hora_reagendada", new_time),
            ) if not (value or "").strip()
        ]
        if missing:
            raise ValidationError("Faltan datos para reagendar: " + ", ".join(missing), missing=missing)

        code = self._clean_code(reservation_code)
        record = await self._store.find_by_reservation_code(code)
        if record is None:
            raise NotFoundError(f"No appointment with code {code}", reservation_code=code)
        if record.status is AppointmentStatus.CANCELADA:
            raise PolicyViolation("La cita ya fue cancelada y no se puede reagendar", reason="cancelled")

        start = parse_slot_start(new_date, new_time, self.timezone, "fecha_reagendada", "hora_reagendada")
        calendar_id = record.calendar_id
        await self._check_timing(calendar_id, start)
        old_date, old_time = record.date, record.time

        async with self._slot_locks.hold(calendar_id, start.to_date_string(), start.hour):
            old_removed = await self._remove_old_event(code, record)
            updated = replace(
                record,
                date=start.to_date_string(),
                time=start.format("HH:mm"),
                status=AppointmentStatus.REAGENDADA,
            )

            try:
                await self._ensure_slot_free(calendar_id, start)
                event_id = await self._create_event(updated, start)
            except AgendaError:
                if old_removed:
                    await self._restore_event(record)
                raise

            try:
                if not await self._store.update_date_time(code, updated.date, updated.time):
                    raise NotFoundError(f"Appointment {code} vanished while rescheduling", reservation_code=code)
                await self._store.update_status(code, AppointmentStatus.REAGENDADA)
            except (CollaboratorError, NotFoundError):
                logger.error("Persisting reschedule of %s failed, reverting calendar", code)
                await self._rollback_event(calendar_id, event_id, code)
                if old_removed:
                    await self._restore_event(record)
                raise

        logger.info("Rescheduled %s from %s %s to %s %s", code, old_date, old_time, updated.date, updated.time)
        notified = await self._notify(
            "reschedule",
            lambda rec: self._notifier.send_reschedule_confirmation(rec, old_date, old_time),
            updated,
        )
        return RescheduleOutcome(
            record=updated,
            old_date=old_date,
            old_time=old_time,
            event_id=event_id,
            old_event_removed=old_removed,
            notified=notified,
        )

    # ----------------------------------------------------------------- confirm

    async def confirm(self, reservation_code: Optional[str]) -> ConfirmOutcome:
        code = self._clean_code(reservation_code)
        record = await self._store.find_by_reservation_code(code)
        if record is None:
            raise NotFoundError(f"No appointment with code {code}", reservation_code=code)

        previous = record.status
        if previous in (AppointmentStatus.CANCELADA, AppointmentStatus.CONFIRMADA):
            return ConfirmOutcome(record=record, previous_status=previous, changed=False)

        await self._store.update_status(code, AppointmentStatus.CONFIRMADA)
        record.status = AppointmentStatus.CONFIRMADA
        logger.info("Confirmed %s", code)
        return ConfirmOutcome(record=record, previous_status=previous, changed=True)

    # ------------------------------------------------------ client recognition

    async def recognize_client(self, phone: Optional[str]) -> Optional[ClientInfo]:
        """Known name and email for a phone, from the cache or the latest appointment."""
        if not phone:
            raise ValidationError("Falta el número de teléfono", missing=["clientPhone"])

        cached = self._client_cache.get(phone)
        if cached is not None:
            return cached

        record = await self._store.find_by_phone(phone)
        if record is None:
            return None
        self._client_cache.put(phone, record.client_name, record.client_email)
        return ClientInfo(name=record.client_name, email=record.client_email)

    # ----------------------------------------------------------------- helpers

    async def _fill_client_details(self, request: BookingRequest) -> BookingRequest:
        if (request.client_name and request.client_email) or not request.client_phone:
            return request
        try:
            known = await self.recognize_client(request.client_phone)
        except CollaboratorError as exc:
            logger.warning("Client lookup failed for %s: %s", request.client_phone, exc)
            return request
        if known is None:
            return request
        return replace(
            request,
            client_name=request.client_name or known.name,
            client_email=request.client_email or known.email,
        )

    async def _check_timing(self, calendar_id: str, start: DateTime) -> None:
        now = self._availability.now()
        day = start.date()

        if day < now.date():
            raise PolicyViolation("No se pueden agendar citas en fechas pasadas", reason="past-date")

        if is_sunday(day):
            suggestion = await self._availability.find_next_working_day(calendar_id, day)
            raise PolicyViolation(
                "Los domingos no hay servicio, elige otro día",
                reason="sunday",
                suggested_date=suggestion,
                suggested_time=await self._first_free_time(calendar_id, suggestion),
            )

        if start < now.add(minutes=self._availability.lead_time_minutes):
            suggestion = await self._availability.find_next_working_day(calendar_id, day)
            raise PolicyViolation(
                "Las citas deben agendarse con al menos una hora de anticipación",
                reason="lead-time",
                suggested_date=suggestion,
                suggested_time=await self._first_free_time(calendar_id, suggestion),
            )

    async def _first_free_time(self, calendar_id: str, day: Date) -> Optional[str]:
        try:
            result = await self._availability.evaluate_day(calendar_id, day)
        except AgendaError as exc:
            logger.warning("No slot suggestion for %s on %s: %s", calendar_id, day, exc)
            return None
        return result.slots[0].time_label if result.has_availability else None

    async def _ensure_slot_free(self, calendar_id: str, start: DateTime) -> None:
        policy = await self._availability.resolve_policy(calendar_id, start)
        if not policy.contains_hour(start.hour):
            raise PolicyViolation(
                f"Las {start.format('HH:mm')} está fuera del horario de atención",
                reason="outside-hours",
            )

        result = await self._availability.evaluate_day(calendar_id, start, allow_fallback=False)
        if not result.has_hour(start.hour):
            logger.warning("Slot %s %s on calendar %s is taken", start.to_date_string(),
                           start.format("HH:mm"), calendar_id)
            raise ConflictError(
                f"Slot {start.format('HH:mm')} on {start.to_date_string()} is taken",
                slot_date=start.date(),
                slot_time=start.format("HH:mm"),
            )

    async def _new_reservation_code(self) -> str:
        for attempt in range(1, CODE_ATTEMPTS + 1):
            code = self._code_factory()
            if not await self._store.reservation_code_exists(code):
                return code
            logger.warning("Reservation code %s already used (attempt %d)", code, attempt)
        raise CollaboratorError("No se pudo generar un código de reserva único")

    async def _create_event(self, record: AppointmentRecord, start: DateTime) -> str:
        draft = EventDraft(
            title=event_title(record.client_name, record.reservation_code),
            description=(
                f"Código de reserva: {record.reservation_code}\n"
                f"Servicio: {record.service_name or record.service_id}\n"
                f"Especialista: {record.specialist or record.calendar_id}\n"
                f"Teléfono: {record.client_phone}\n"
                f"Email: {record.client_email}"
            ),
            start=start,
            end=start.add(minutes=SLOT_MINUTES),
        )
        return await self._calendar_client.create_event(
            self._availability.calendar_ref(record.calendar_id),
            draft,
            event_id=self._event_id_factory(),
        )

    async def _rollback_event(self, calendar_id: str, event_id: str, code: str) -> None:
        try:
            await self._calendar_client.delete_event(self._availability.calendar_ref(calendar_id), event_id)
            logger.info("Rolled back event %s for %s", event_id, code)
        except AgendaError as exc:
            logger.error("Rollback of event %s for %s failed: %s", event_id, code, exc)

    async def _restore_event(self, record: AppointmentRecord) -> None:
        try:
            start = record.starts_at(self.timezone)
            await self._create_event(record, start)
            logger.info("Restored original event of %s at %s %s", record.reservation_code, record.date, record.time)
        except (AgendaError, ValueError) as exc:
            logger.error("Could not restore original event of %s: %s", record.reservation_code, exc)

    async def _remove_old_event(self, code: str, record: AppointmentRecord) -> bool:
        try:
            return await self._delete_events_for_code(code, record)
        except AgendaError as exc:
            logger.warning("Old event of %s could not be removed, continuing: %s", code, exc)
            return False

    async def _delete_events_for_code(self, code: str, record: Optional[AppointmentRecord]) -> bool:
        now = self._availability.now()
        range_start = now.subtract(days=CANCEL_LOOKBACK_DAYS)
        range_end = now.add(days=CANCEL_LOOKAHEAD_DAYS)

        if record is not None:
            calendar_ids = [record.calendar_id]
        else:
            calendar_ids = self._catalog.calendar_ids() or ["1"]

        removed = False
        for calendar_id in calendar_ids:
            ref = self._availability.calendar_ref(calendar_id)
            events = await self._calendar_client.list_events(ref, range_start, range_end)
            for event in events:
                if not title_contains_code(event.title, code):
                    continue
                try:
                    await self._calendar_client.delete_event(ref, event.id)
                    removed = True
                except NotFoundError:
                    logger.info("Event %s for %s was already gone", event.id, code)
        return removed

    async def _lookup_quietly(self, code: str) -> Optional[AppointmentRecord]:
        try:
            return await self._store.find_by_reservation_code(code)
        except CollaboratorError as exc:
            logger.warning("Lookup of %s failed, searching every calendar: %s", code, exc)
            return None

    async def _notify(self, label: str, send, record: AppointmentRecord) -> bool:
        try:
            sent = await send(record)
        except AgendaError as exc:
            logger.warning("%s notification for %s failed: %s", label, record.reservation_code, exc)
            return False
        if not sent:
            logger.warning("%s notification for %s was not delivered", label, record.reservation_code)
        return bool(sent)

    @staticmethod
    def _clean_code(reservation_code: Optional[str]) -> str:
        code = (reservation_code or "").strip().upper()
        if not code:
            raise ValidationError("Falta el código de reserva", missing=["codigo_reserva"])
        return code
