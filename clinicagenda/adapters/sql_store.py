"""
SQLAlchemy persistence for clients, appointments and working-hours rules.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TypeVar

import pendulum
from pendulum import DateTime
from sqlalchemy import Column, DateTime as SqlDateTime, ForeignKey, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from ..domain.exceptions import StoreError
from ..domain.models import AppointmentRecord, AppointmentStatus, WorkingHoursRule
from ..domain.validation import phone_to_10_digits

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


class Client(Base):
    """Client identified by phone number"""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False, index=True)  # 10 national digits
    email = Column(String(255), nullable=False)
    created_at = Column(SqlDateTime(timezone=True), server_default=func.now())

    appointments = relationship("Appointment", back_populates="client")


class Appointment(Base):
    """Booked appointment; date and time are clinic-local strings"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    reservation_code = Column(String(12), unique=True, nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    calendar_id = Column(String(50), nullable=False)
    service_id = Column(String(50), nullable=False)
    specialist = Column(String(255), default="")
    service_name = Column(String(255), default="")
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time = Column(String(5), nullable=False)  # HH:MM
    status = Column(String(20), default=AppointmentStatus.AGENDADA.value, nullable=False, index=True)
    created_at = Column(SqlDateTime(timezone=True), server_default=func.now())
    updated_at = Column(SqlDateTime(timezone=True), onupdate=func.now())

    client = relationship("Client", back_populates="appointments")


class WorkingHours(Base):
    """Opening hours per calendar and ISO weekday (7 = Sunday)"""

    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("calendar_id", "weekday", name="uq_working_hours_day"),)

    id = Column(Integer, primary_key=True)
    calendar_id = Column(String(50), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)
    start_hour = Column(Integer, nullable=False)
    end_hour = Column(Integer, nullable=False)


def create_store_engine(url: str) -> Engine:
    """Engine for ``url``; in-memory SQLite shares one connection across threads."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if url == "sqlite://" or ":memory:" in url:
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


class _SqlRepository:
    def __init__(self, engine: Engine):
        self._session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Database operation failed: {exc}") from exc
        finally:
            session.close()

    async def _run(self, operation: Callable[[Session], T]) -> T:
        def work() -> T:
            with self._session() as session:
                return operation(session)

        return await asyncio.to_thread(work)


class SqlAppointmentStore(_SqlRepository):
    """Appointment store over SQLAlchemy; blocking sessions run in worker threads."""

    def __init__(self, engine: Engine, timezone: str):
        super().__init__(engine)
        self.timezone = timezone

    async def find_by_reservation_code(self, code: str) -> Optional[AppointmentRecord]:
        def operation(session: Session) -> Optional[AppointmentRecord]:
            row = session.query(Appointment).filter(Appointment.reservation_code == code.upper()).first()
            return self._to_record(row) if row else None

        return await self._run(operation)

    async def reservation_code_exists(self, code: str) -> bool:
        def operation(session: Session) -> bool:
            return session.query(Appointment.id).filter(Appointment.reservation_code == code.upper()).first() is not None

        return await self._run(operation)

    async def insert_appointment(self, record: AppointmentRecord) -> None:
        def operation(session: Session) -> None:
            client = self._find_or_create_client(session, record.client_name, record.client_phone, record.client_email)
            session.add(
                Appointment(
                    reservation_code=record.reservation_code,
                    client=client,
                    calendar_id=record.calendar_id,
                    service_id=record.service_id,
                    specialist=record.specialist,
                    service_name=record.service_name,
                    date=record.date,
                    time=record.time,
                    status=record.status.value,
                )
            )

        await self._run(operation)
        logger.info("Stored appointment %s", record.reservation_code)

    async def find_or_create_client(self, name: str, phone: str, email: str) -> int:
        def operation(session: Session) -> int:
            client = self._find_or_create_client(session, name, phone, email)
            session.flush()
            return client.id

        return await self._run(operation)

    async def update_status(self, code: str, status: AppointmentStatus) -> bool:
        def operation(session: Session) -> bool:
            updated = (
                session.query(Appointment)
                .filter(Appointment.reservation_code == code.upper())
                .update({Appointment.status: status.value})
            )
            return updated > 0

        return await self._run(operation)

    async def update_date_time(self, code: str, date: str, time: str) -> bool:
        def operation(session: Session) -> bool:
            updated = (
                session.query(Appointment)
                .filter(Appointment.reservation_code == code.upper())
                .update({Appointment.date: date, Appointment.time: time})
            )
            return updated > 0

        return await self._run(operation)

    async def find_by_phone(self, phone: str) -> Optional[AppointmentRecord]:
        national = phone_to_10_digits(phone)
        if len(national) < 10:
            return None

        def operation(session: Session) -> Optional[AppointmentRecord]:
            row = (
                session.query(Appointment)
                .join(Client)
                .filter(Client.phone.like(f"%{national}"))
                .order_by(Appointment.id.desc())
                .first()
            )
            return self._to_record(row) if row else None

        return await self._run(operation)

    async def list_between(
        self,
        start: DateTime,
        end: DateTime,
        statuses: List[AppointmentStatus],
    ) -> List[AppointmentRecord]:
        local_start = start.in_timezone(self.timezone)
        local_end = end.in_timezone(self.timezone)

        def operation(session: Session) -> List[AppointmentRecord]:
            rows = (
                session.query(Appointment)
                .filter(Appointment.date >= local_start.to_date_string())
                .filter(Appointment.date <= local_end.to_date_string())
                .filter(Appointment.status.in_([status.value for status in statuses]))
                .order_by(Appointment.date, Appointment.time)
                .all()
            )
            return [self._to_record(row) for row in rows]

        records = await self._run(operation)
        return [record for record in records if local_start <= record.starts_at(self.timezone) <= local_end]

    @staticmethod
    def _find_or_create_client(session: Session, name: str, phone: str, email: str) -> Client:
        national = phone_to_10_digits(phone)
        client = session.query(Client).filter(Client.phone == national).first()
        if client is None:
            client = Client(name=name, phone=national, email=email)
            session.add(client)
        else:
            client.name = name or client.name
            client.email = email or client.email
        return client

    def _to_record(self, row: Appointment) -> AppointmentRecord:
        created_at = pendulum.instance(row.created_at, tz=self.timezone) if row.created_at else None
        return AppointmentRecord(
            reservation_code=row.reservation_code,
            client_name=row.client.name,
            client_phone=row.client.phone,
            client_email=row.client.email,
            calendar_id=row.calendar_id,
            service_id=row.service_id,
            date=row.date,
            time=row.time,
            specialist=row.specialist or "",
            service_name=row.service_name or "",
            status=AppointmentStatus(row.status),
            created_at=created_at,
        )


class SqlPolicyStore(_SqlRepository):
    """Working-hours rules from the ``working_hours`` table."""

    async def get_working_hours_rule(self, calendar_id: str, weekday: int) -> Optional[WorkingHoursRule]:
        def operation(session: Session) -> Optional[WorkingHoursRule]:
            row = (
                session.query(WorkingHours)
                .filter(WorkingHours.calendar_id == calendar_id, WorkingHours.weekday == weekday)
                .first()
            )
            if row is None:
                return None
            return WorkingHoursRule(
                calendar_id=row.calendar_id,
                weekday=row.weekday,
                start_hour=row.start_hour,
                end_hour=row.end_hour,
            )

        return await self._run(operation)

    async def save_rule(self, rule: WorkingHoursRule) -> None:
        def operation(session: Session) -> None:
            row = (
                session.query(WorkingHours)
                .filter(WorkingHours.calendar_id == rule.calendar_id, WorkingHours.weekday == rule.weekday)
                .first()
            )
            if row is None:
                session.add(
                    WorkingHours(
                        calendar_id=rule.calendar_id,
                        weekday=rule.weekday,
                        start_hour=rule.start_hour,
                        end_hour=rule.end_hour,
                    )
                )
            else:
                row.start_hour = rule.start_hour
                row.end_hour = rule.end_hour

        await self._run(operation)
