"""Adapters for the calendar, persistence and notification ports."""

from .config_policy_store import ConfigPolicyStore
from .graph_authenticator import GraphAuthenticator
from .graph_client import GraphCalendarClient
from .mock_calendar_client import MockCalendarClient
from .notifications import CompositeNotifier, EmailNotifier, WhatsAppNotifier
from .sql_store import SqlAppointmentStore, SqlPolicyStore, create_store_engine, init_schema

__all__ = [
    "CompositeNotifier",
    "ConfigPolicyStore",
    "EmailNotifier",
    "GraphAuthenticator",
    "GraphCalendarClient",
    "MockCalendarClient",
    "SqlAppointmentStore",
    "SqlPolicyStore",
    "WhatsAppNotifier",
    "create_store_engine",
    "init_schema",
]
