"""
HTTP endpoints of the booking backend.
"""

import logging
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Query, Request

from ..bootstrap import ServiceContainer
from ..domain.exceptions import AgendaError, CollaboratorError
from ..domain.validation import parse_date
from .schemas import (
    AgendaCitaRequest,
    CancelaCitaRequest,
    ConfirmaCitaRequest,
    ReagendaCitaRequest,
    ReconocerClienteRequest,
    Respuesta,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["citas"])


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def respond(
    container: ServiceContainer,
    action: str,
    handler: Callable[[], Awaitable[Respuesta]],
) -> Respuesta:
    """Run a handler and turn domain errors into a user-facing ``respuesta``."""
    try:
        return await handler()
    except AgendaError as exc:
        if isinstance(exc, CollaboratorError):
            logger.error("%s failed: %s", action, exc)
        else:
            logger.info("%s rejected: %s", action, exc)
        return Respuesta(respuesta=container.formatter().error(exc))


@router.get("/consulta-disponibilidad", response_model=Respuesta, response_model_exclude_none=True)
async def consulta_disponibilidad(
    request: Request,
    service: Optional[str] = Query(None, description="Número de servicio"),
    date: Optional[str] = Query(None, description="Fecha (YYYY-MM-DD)"),
    calendar: Optional[str] = Query(None, description="Número de calendario"),
) -> Respuesta:
    """Consulta horarios disponibles para una fecha y días cercanos."""
    container = get_container(request)

    async def handler() -> Respuesta:
        target = parse_date(date, container.config.timezone)
        result = await container.availability.query(
            calendar or container.config.default_calendar,
            service or "1",
            target,
        )
        text, metadata = container.formatter().availability(result)
        return Respuesta(respuesta=text, metadata=metadata)

    return await respond(container, "availability", handler)


@router.post("/agenda-cita", response_model=Respuesta, response_model_exclude_none=True)
async def agenda_cita(request: Request, body: AgendaCitaRequest) -> Respuesta:
    """Agenda una cita nueva."""
    container = get_container(request)

    async def handler() -> Respuesta:
        outcome = await container.booking.create(body.to_booking_request())
        return Respuesta(
            respuesta=container.formatter().booking_confirmed(outcome),
            id_cita=outcome.record.reservation_code,
        )

    return await respond(container, "booking", handler)


@router.post("/cancela-cita", response_model=Respuesta, response_model_exclude_none=True)
async def cancela_cita(request: Request, body: CancelaCitaRequest) -> Respuesta:
    """Cancela una cita por código de reserva."""
    container = get_container(request)

    async def handler() -> Respuesta:
        outcome = await container.booking.cancel(body.reservation_code())
        return Respuesta(respuesta=container.formatter().cancelled(outcome))

    return await respond(container, "cancel", handler)


@router.post("/reagenda-cita", response_model=Respuesta, response_model_exclude_none=True)
async def reagenda_cita(request: Request, body: ReagendaCitaRequest) -> Respuesta:
    """Mueve una cita a otra fecha y hora."""
    container = get_container(request)

    async def handler() -> Respuesta:
        outcome = await container.booking.reschedule(
            body.codigo_reserva, body.fecha_reagendada, body.hora_reagendada
        )
        return Respuesta(respuesta=container.formatter().rescheduled(outcome))

    return await respond(container, "reschedule", handler)


@router.post("/confirma-cita", response_model=Respuesta, response_model_exclude_none=True)
async def confirma_cita(request: Request, body: ConfirmaCitaRequest) -> Respuesta:
    """Confirma la asistencia a una cita."""
    container = get_container(request)

    async def handler() -> Respuesta:
        outcome = await container.booking.confirm(body.codigo_reserva)
        return Respuesta(respuesta=container.formatter().confirmed(outcome))

    return await respond(container, "confirm", handler)


@router.post("/reconocer-cliente", response_model=Respuesta, response_model_exclude_none=True)
async def reconocer_cliente(request: Request, body: ReconocerClienteRequest) -> Respuesta:
    """Busca nombre y correo de un cliente por su teléfono."""
    container = get_container(request)

    async def handler() -> Respuesta:
        info = await container.booking.recognize_client(body.client_phone)
        metadata = {"clientName": info.name, "clientEmail": info.email} if info else None
        return Respuesta(respuesta=container.formatter().client_recognized(info), metadata=metadata)

    return await respond(container, "recognize", handler)


@router.get("/consulta-fecha-actual", response_model=Respuesta, response_model_exclude_none=True)
async def consulta_fecha_actual(request: Request) -> Respuesta:
    """Fecha y hora actuales en la zona horaria de la clínica."""
    container = get_container(request)
    now = container.now()
    return Respuesta(
        respuesta=container.formatter().current_date(now),
        metadata={"fecha": now.to_date_string(), "hora": now.format("HH:mm"), "timezone": container.config.timezone},
    )


@router.get("/diagnostico/{fecha}", response_model=Respuesta, response_model_exclude_none=True)
async def diagnostico(
    request: Request,
    fecha: str,
    calendar: Optional[str] = Query(None, description="Número de calendario"),
) -> Respuesta:
    """Explica hora por hora la disponibilidad de un día."""
    container = get_container(request)

    async def handler() -> Respuesta:
        day = parse_date(fecha, container.config.timezone, field="fecha")
        diagnosis = await container.availability.diagnose_day(calendar or container.config.default_calendar, day)
        hours = [
            {
                "hora": f"{evaluation.hour:02d}:00",
                "estado": evaluation.decision.value,
                "motivo": diagnosis.reason_for(evaluation),
                "eventos": [str(interval) for interval in evaluation.blocking],
            }
            for evaluation in diagnosis.evaluations
        ]
        policy = diagnosis.policy
        text = (
            f"Diagnóstico {policy.date.isoformat()}: "
            + ("cerrado" if policy.is_closed else f"{len(diagnosis.free_hours)} horario(s) libre(s)")
        )
        return Respuesta(
            respuesta=text,
            metadata={
                "cerrado": policy.is_closed,
                "apertura": policy.open_hour,
                "cierre": policy.close_hour,
                "fuente": diagnosis.data_source.value,
                "eventosSimultaneos": {f"{hour:02d}:00": count for hour, count in diagnosis.simultaneous.items()},
                "horas": hours,
            },
        )

    return await respond(container, "diagnose", handler)
