"""
Wiring of adapters and services from an ``AppConfig``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pendulum
from pendulum import DateTime

from .adapters.config_policy_store import ConfigPolicyStore
from .adapters.graph_authenticator import GraphAuthenticator
from .adapters.graph_client import GraphCalendarClient
from .adapters.mock_calendar_client import MockCalendarClient
from .adapters.notifications import CompositeNotifier, EmailNotifier, WhatsAppNotifier
from .adapters.sql_store import SqlAppointmentStore, SqlPolicyStore, create_store_engine, init_schema
from .config import AppConfig
from .domain.catalog import Catalog
from .domain.slot_calculator import SlotCalculator
from .domain.working_hours import WorkingHoursPolicy
from .presentation.formatter import PresentationFormatter
from .services.availability import AvailabilityService, Clock
from .services.booking import BookingService
from .services.client_cache import ClientInfoCache
from .services.ports import AppointmentStore, CalendarPort, NotificationPort, PolicyStore
from .services.reminders import ReminderService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything the API and the CLI need, built once per process."""
    config: AppConfig
    availability: AvailabilityService
    booking: BookingService
    reminders: ReminderService
    clock: Clock

    def now(self) -> DateTime:
        return self.clock().in_timezone(self.config.timezone)

    def formatter(self) -> PresentationFormatter:
        return PresentationFormatter.for_now(self.now())


def build_calendar_client(config: AppConfig, mock_data: Optional[Path] = None) -> CalendarPort:
    if config.use_mock_calendar:
        logger.info("Using the in-memory mock calendar")
        return MockCalendarClient(timezone=config.timezone, data_file=mock_data)

    authenticator = GraphAuthenticator(
        client_id=config.graph.client_id,
        tenant_id=config.graph.tenant_id,
        client_secret=config.graph.client_secret,
        authority_url=config.graph.get_authority_url(),
    )
    return GraphCalendarClient(authenticator=authenticator, timezone=config.timezone)


def build_container(
    config: AppConfig,
    *,
    calendar_client: Optional[CalendarPort] = None,
    policy_store: Optional[PolicyStore] = None,
    appointment_store: Optional[AppointmentStore] = None,
    notifier: Optional[NotificationPort] = None,
    clock: Optional[Clock] = None,
    mock_data: Optional[Path] = None,
) -> ServiceContainer:
    """
    Build the service graph.

    Any collaborator passed in replaces the one the config would build; the
    policy store reads the database unless ``working_hours`` are configured.
    """
    clock = clock or (lambda: pendulum.now(config.timezone))

    if appointment_store is None or (policy_store is None and not config.working_hours):
        engine = create_store_engine(config.database.url)
        init_schema(engine)
        if appointment_store is None:
            appointment_store = SqlAppointmentStore(engine, timezone=config.timezone)
        if policy_store is None and not config.working_hours:
            policy_store = SqlPolicyStore(engine)

    if policy_store is None:
        policy_store = ConfigPolicyStore(config.working_hours)

    if calendar_client is None:
        calendar_client = build_calendar_client(config, mock_data)

    if notifier is None:
        notifier = CompositeNotifier(
            email=EmailNotifier(config.smtp, config.business),
            whatsapp=WhatsAppNotifier(config.whatsapp, config.business),
        )

    catalog = Catalog(config.specialists(), config.service_names())
    availability = AvailabilityService(
        calendar_client,
        policy_store,
        timezone=config.timezone,
        policy=WorkingHoursPolicy(config.policy.to_clinic_hours()),
        slot_calculator=SlotCalculator(config.timezone, lead_time_minutes=config.policy.lead_time_minutes),
        calendar_refs=config.calendar_refs(),
        catalog=catalog,
        limits=config.search.to_limits(),
        clock=clock,
    )
    booking = BookingService(
        availability,
        calendar_client,
        appointment_store,
        notifier,
        specialists=catalog.specialists,
        service_names=catalog.services,
        client_cache=ClientInfoCache(config.client_cache.max_entries, config.client_cache.ttl_seconds),
    )
    reminders = ReminderService(appointment_store, notifier, config.timezone)

    return ServiceContainer(
        config=config,
        availability=availability,
        booking=booking,
        reminders=reminders,
        clock=clock,
    )
