"""
Request and response models of the HTTP API.

Every request field is optional; missing fields are reported by the booking
validation, not by FastAPI.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.validation import BookingRequest


class ApiRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class AgendaCitaRequest(ApiRequest):
    """Solicitud para agendar una cita"""
    action: Optional[str] = Field(None, description="Siempre 'schedule'")
    calendar: Optional[str] = Field(None, description="Número de calendario del especialista")
    service: Optional[str] = Field(None, description="Número de servicio")
    date: Optional[str] = Field(None, description="Fecha (YYYY-MM-DD)")
    time: Optional[str] = Field(None, description="Hora en punto (HH:MM)")
    client_name: Optional[str] = Field(None, alias="clientName")
    client_email: Optional[str] = Field(None, alias="clientEmail")
    client_phone: Optional[str] = Field(None, alias="clientPhone")

    def to_booking_request(self) -> BookingRequest:
        return BookingRequest(
            client_name=self.client_name,
            client_phone=self.client_phone,
            client_email=self.client_email,
            calendar=self.calendar,
            service=self.service,
            date=self.date,
            time=self.time,
        )


class CancelaCitaRequest(ApiRequest):
    action: Optional[str] = None
    event_id: Optional[str] = Field(None, alias="eventId")
    codigo_reserva: Optional[str] = None

    def reservation_code(self) -> Optional[str]:
        return self.codigo_reserva or self.event_id


class ReagendaCitaRequest(ApiRequest):
    codigo_reserva: Optional[str] = None
    fecha_reagendada: Optional[str] = None
    hora_reagendada: Optional[str] = None


class ConfirmaCitaRequest(ApiRequest):
    codigo_reserva: Optional[str] = None


class ReconocerClienteRequest(ApiRequest):
    client_phone: Optional[str] = Field(None, alias="clientPhone")


class Respuesta(BaseModel):
    """Respuesta estándar: siempre HTTP 200 con el texto para el usuario"""
    respuesta: str
    metadata: Optional[Dict[str, Any]] = None
    id_cita: Optional[str] = None
