"""
Email and WhatsApp notifications.

All senders are best-effort: transport failures are logged and reported as
``False``, never raised into the booking flow.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Sequence

import requests
from jinja2 import Environment, PackageLoader, select_autoescape

from ..config import BusinessConfig, SmtpConfig, WhatsAppConfig
from ..domain.models import AppointmentRecord
from ..domain.validation import normalize_phone
from ..presentation.formatter import format_time_12h, long_date, parse_iso_date

logger = logging.getLogger(__name__)

_templates = Environment(
    loader=PackageLoader("clinicagenda", "adapters/templates"),
    autoescape=select_autoescape(["html"]),
)


def render_template(name: str, context: Dict[str, Any]) -> str:
    return _templates.get_template(f"{name}.html").render(**context)


def appointment_context(record: AppointmentRecord, business: BusinessConfig) -> Dict[str, Any]:
    day = parse_iso_date(record.date)
    return {
        "business": business,
        "client_name": record.client_name,
        "date_long": f"{long_date(day)} de {day.year}",
        "time_12h": format_time_12h(record.time),
        "service_name": record.service_name or record.service_id,
        "specialist": record.specialist or record.calendar_id,
        "reservation_code": record.reservation_code,
        "client_phone": record.client_phone,
        "client_email": record.client_email,
    }


class EmailNotifier:
    """HTML emails over SMTP, rendered from jinja2 templates."""

    def __init__(self, smtp: SmtpConfig, business: BusinessConfig):
        self.smtp = smtp
        self.business = business

    async def send_booking_confirmation(self, record: AppointmentRecord) -> bool:
        html = render_template("confirmation", appointment_context(record, self.business))
        return await self._send(record.client_email, f"Confirmación de tu cita - {record.reservation_code}", html)

    async def send_business_notification(self, record: AppointmentRecord) -> bool:
        if not self.business.email:
            return False
        html = render_template("business_notification", appointment_context(record, self.business))
        return await self._send(
            self.business.email,
            f"Nueva cita: {record.client_name} {record.date} {record.time}",
            html,
        )

    async def send_reschedule_confirmation(self, record: AppointmentRecord, old_date: str, old_time: str) -> bool:
        context = appointment_context(record, self.business)
        context.update(old_date_long=long_date(parse_iso_date(old_date)), old_time_12h=format_time_12h(old_time))
        html = render_template("rescheduled", context)
        return await self._send(record.client_email, f"Tu cita fue reagendada - {record.reservation_code}", html)

    async def send_reminder(self, record: AppointmentRecord) -> bool:
        html = render_template("reminder_24h", appointment_context(record, self.business))
        return await self._send(record.client_email, "Recordatorio: tu cita es mañana", html)

    async def _send(self, to_email: str, subject: str, html: str) -> bool:
        if not self.smtp.enabled or not self.smtp.host:
            logger.info("Email disabled, not sending %r to %s", subject, to_email)
            return False
        try:
            await asyncio.to_thread(self._send_html, to_email, subject, html)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Email %r to %s failed: %s", subject, to_email, exc)
            return False
        logger.info("Email %r sent to %s", subject, to_email)
        return True

    def _send_html(self, to_email: str, subject: str, html: str) -> None:
        sender = self.smtp.sender or self.smtp.user
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(html, "html", "utf-8"))

        with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=30) as server:
            server.starttls()
            if self.smtp.user and self.smtp.password:
                server.login(self.smtp.user, self.smtp.password)
            server.sendmail(sender, [to_email], msg.as_string())


class WhatsAppNotifier:
    """Plain-text WhatsApp messages through an HTTP messaging API."""

    def __init__(self, whatsapp: WhatsAppConfig, business: BusinessConfig, session: Optional[requests.Session] = None):
        self.whatsapp = whatsapp
        self.business = business
        self._session = session or requests.Session()

    async def send_booking_confirmation(self, record: AppointmentRecord) -> bool:
        ctx = appointment_context(record, self.business)
        return await self._send(
            record.client_phone,
            f"✅ *Cita agendada*\n\nHola *{ctx['client_name']}*, tu cita quedó registrada:\n\n"
            f"📅 {ctx['date_long']}\n⏰ {ctx['time_12h']}\n🩺 {ctx['service_name']}\n"
            f"🎟️ Código: *{ctx['reservation_code']}*",
        )

    async def send_business_notification(self, record: AppointmentRecord) -> bool:
        if not self.business.phone:
            return False
        ctx = appointment_context(record, self.business)
        return await self._send(
            self.business.phone,
            f"📥 Nueva cita {ctx['reservation_code']}: {ctx['client_name']} ({ctx['client_phone']}) "
            f"el {ctx['date_long']} a las {ctx['time_12h']}",
        )

    async def send_reschedule_confirmation(self, record: AppointmentRecord, old_date: str, old_time: str) -> bool:
        ctx = appointment_context(record, self.business)
        return await self._send(
            record.client_phone,
            f"🔄 *Cita reagendada*\n\nHola *{ctx['client_name']}*, tu cita {ctx['reservation_code']} "
            f"ahora es el {ctx['date_long']} a las {ctx['time_12h']}.",
        )

    async def send_reminder(self, record: AppointmentRecord) -> bool:
        ctx = appointment_context(record, self.business)
        message = (
            f"🔔 *Recordatorio de Cita*\n\n"
            f"Hola *{ctx['client_name']}*,\n\n"
            f"Te recordamos que tienes una cita programada para *mañana*:\n\n"
            f"📅 *Fecha:* {ctx['date_long']}\n"
            f"⏰ *Hora:* {ctx['time_12h']}\n"
            f"👨‍⚕️ *Con:* {ctx['specialist']}\n"
            f"🩺 *Servicio:* {ctx['service_name']}\n"
            f"🎟️ *Código:* {ctx['reservation_code']}\n\n"
            f"Responde *CONFIRMAR* para confirmar tu asistencia o *REAGENDAR* si necesitas cambiarla."
        )
        if self.business.address:
            message += f"\n\n📍 {self.business.address}"
        return await self._send(record.client_phone, message)

    async def _send(self, phone: str, message: str) -> bool:
        if not self.whatsapp.enabled or not self.whatsapp.api_url or not self.whatsapp.api_key:
            logger.info("WhatsApp API not configured, skipping message to %s", phone)
            return False

        number = normalize_phone(phone)
        if not number:
            logger.warning("Cannot send WhatsApp message, invalid phone %r", phone)
            return False

        payload = {"messages": {"content": message}, "number": number, "checkIfExists": False}
        try:
            response = await asyncio.to_thread(
                self._session.post,
                self.whatsapp.api_url,
                json=payload,
                headers={"Content-Type": "application/json", "x-api-builderbot": self.whatsapp.api_key},
                timeout=30,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            logger.warning("WhatsApp message to %s failed: %s", number, exc)
            return False
        return True


class CompositeNotifier:
    """
    Sends every notification through all channels.

    A channel is successful on its own; the reminder result reflects the
    WhatsApp channel only, since that is the one clients answer.
    """

    def __init__(
        self,
        email: Optional[EmailNotifier] = None,
        whatsapp: Optional[WhatsAppNotifier] = None,
    ):
        self.email = email
        self.whatsapp = whatsapp

    @property
    def channels(self) -> Sequence[Any]:
        return [channel for channel in (self.email, self.whatsapp) if channel is not None]

    async def send_booking_confirmation(self, record: AppointmentRecord) -> bool:
        results = [await channel.send_booking_confirmation(record) for channel in self.channels]
        return any(results)

    async def send_business_notification(self, record: AppointmentRecord) -> bool:
        results = [await channel.send_business_notification(record) for channel in self.channels]
        return any(results)

    async def send_reschedule_confirmation(self, record: AppointmentRecord, old_date: str, old_time: str) -> bool:
        results = [
            await channel.send_reschedule_confirmation(record, old_date, old_time) for channel in self.channels
        ]
        return any(results)

    async def send_reminder(self, record: AppointmentRecord) -> bool:
        if self.email is not None:
            await self.email.send_reminder(record)
        if self.whatsapp is None:
            return False
        return await self.whatsapp.send_reminder(record)
