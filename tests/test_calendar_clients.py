"""
Tests for the mock calendar and the Microsoft Graph adapters.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import msal
import pendulum
import pytest
import requests

from clinicagenda.adapters.graph_authenticator import GraphAuthenticator
from clinicagenda.adapters.graph_client import GraphCalendarClient
from clinicagenda.adapters.mock_calendar_client import MockCalendarClient
from clinicagenda.domain.exceptions import AuthenticationError, CalendarAPIError, ConflictError, NotFoundError
from clinicagenda.domain.models import EventDraft

from conftest import TZ, timed

DAY_START = pendulum.datetime(2025, 1, 13, tz=TZ)
DAY_END = DAY_START.add(days=1)


def _draft(hour: int) -> EventDraft:
    start = pendulum.datetime(2025, 1, 13, hour, tz=TZ)
    return EventDraft(title="Cita: Ana (ABC123)", description="", start=start, end=start.add(hours=1))


class TestMockCalendarClient:
    def test_load_seed_file(self, tmp_path):
        data = [
            {"calendarId": "1", "id": "a", "title": "Paciente", "start": "2025-01-13T10:00:00", "end": "2025-01-13T11:00:00"},
            {"calendarId": 2, "title": "Vacaciones", "start": "2025-01-13", "end": "2025-01-14", "allDay": True},
        ]
        path = tmp_path / "events.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        client = MockCalendarClient(timezone=TZ, data_file=path)

        assert [event.id for event in client.events("1")] == ["a"]
        assert client.events("2")[0].all_day

    def test_missing_seed_file_starts_empty(self, tmp_path):
        client = MockCalendarClient(timezone=TZ, data_file=tmp_path / "nope.json")

        assert client.events() == []

    def test_list_filters_by_calendar_and_range(self):
        client = MockCalendarClient(timezone=TZ)
        client.add("1", timed("today", "2025-01-13T10:00:00", "2025-01-13T11:00:00"))
        client.add("1", timed("tomorrow", "2025-01-14T10:00:00", "2025-01-14T11:00:00"))
        client.add("2", timed("other", "2025-01-13T10:00:00", "2025-01-13T11:00:00"))

        events = asyncio.run(client.list_events("1", DAY_START, DAY_END))

        assert [event.id for event in events] == ["today"]

    def test_touching_events_are_outside_the_range(self):
        client = MockCalendarClient(timezone=TZ)
        client.add("1", timed("before", "2025-01-12T23:00:00", "2025-01-13T00:00:00"))
        client.add("1", timed("inside", "2025-01-13T23:00:00", "2025-01-14T00:00:00"))

        events = asyncio.run(client.list_events("1", DAY_START, DAY_END))

        assert [event.id for event in events] == ["inside"]

    def test_malformed_events_are_passed_through(self):
        client = MockCalendarClient(timezone=TZ)
        client.add("1", timed("broken", "2025-01-13T10:00:00", None))

        events = asyncio.run(client.list_events("1", DAY_START, DAY_END))

        assert [event.id for event in events] == ["broken"]

    def test_create_and_delete(self):
        client = MockCalendarClient(timezone=TZ)

        event_id = asyncio.run(client.create_event("1", _draft(11), event_id="abc"))

        assert event_id == "abc"
        assert client.events("1")[0].start == "2025-01-13T11:00:00-06:00"
        with pytest.raises(NotFoundError):
            asyncio.run(client.delete_event("2", "abc"))
        asyncio.run(client.delete_event("1", "abc"))
        assert client.events() == []

    def test_reject_overlaps(self):
        client = MockCalendarClient(timezone=TZ, reject_overlaps=True)
        asyncio.run(client.create_event("1", _draft(11)))

        with pytest.raises(ConflictError):
            asyncio.run(client.create_event("1", _draft(11)))
        asyncio.run(client.create_event("1", _draft(12)))


class StubAuthenticator:
    def get_access_token(self) -> str:
        return "token"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class UnreadableResponse(FakeResponse):
    def json(self):
        raise ValueError("Expecting value: line 1 column 1")


class FakeSession:
    """Replays canned responses and records every request."""

    def __init__(self, responses: List[Any]):
        self._responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "headers": headers, **kwargs})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _graph(session: FakeSession) -> GraphCalendarClient:
    return GraphCalendarClient(authenticator=StubAuthenticator(), timezone=TZ, session=session)


class TestGraphCalendarClient:
    def test_list_events_follows_pages_and_skips_free_time(self):
        session = FakeSession([
            FakeResponse(payload={
                "value": [
                    {"id": "1", "subject": "Paciente", "start": {"dateTime": "2025-01-13T10:00:00.0000000"},
                     "end": {"dateTime": "2025-01-13T11:00:00.0000000"}, "showAs": "busy"},
                    {"id": "2", "subject": "Libre", "start": {"dateTime": "2025-01-13T12:00:00.0000000"},
                     "end": {"dateTime": "2025-01-13T13:00:00.0000000"}, "showAs": "free"},
                ],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/next-page",
            }),
            FakeResponse(payload={
                "value": [
                    {"id": "3", "subject": "Congreso", "isAllDay": True,
                     "start": {"dateTime": "2025-01-13T00:00:00.0000000"},
                     "end": {"dateTime": "2025-01-14T00:00:00.0000000"}},
                    {"id": "4", "subject": "Cancelada", "isCancelled": True,
                     "start": {"dateTime": "2025-01-13T15:00:00.0000000"},
                     "end": {"dateTime": "2025-01-13T16:00:00.0000000"}},
                ],
            }),
        ])

        events = asyncio.run(_graph(session).list_events("agenda@clinic.mx/CAL1", DAY_START, DAY_END))

        assert [(e.id, e.start, e.end, e.all_day) for e in events] == [
            ("1", "2025-01-13T10:00:00", "2025-01-13T11:00:00", False),
            ("3", "2025-01-13", "2025-01-14", True),
        ]
        first, second = session.requests
        assert first["url"] == "https://graph.microsoft.com/v1.0/users/agenda@clinic.mx/calendars/CAL1/calendarView"
        assert first["params"]["startDateTime"].startswith("2025-01-13T06:00:00")
        assert first["headers"]["Prefer"] == f'outlook.timezone="{TZ}"'
        assert second["url"] == "https://graph.microsoft.com/v1.0/next-page"
        assert second["params"] is None

    def test_create_event_sends_local_times(self):
        session = FakeSession([FakeResponse(201, {"id": "graph-id"})])

        event_id = asyncio.run(_graph(session).create_event("agenda@clinic.mx", _draft(11), event_id="abc"))

        assert event_id == "graph-id"
        request = session.requests[0]
        assert request["url"].endswith("/users/agenda@clinic.mx/calendar/events")
        assert request["json"]["start"] == {"dateTime": "2025-01-13T11:00:00", "timeZone": TZ}
        assert request["json"]["transactionId"] == "abc"

    def test_delete_missing_event(self):
        session = FakeSession([FakeResponse(404)])

        with pytest.raises(NotFoundError):
            asyncio.run(_graph(session).delete_event("agenda@clinic.mx/CAL1", "gone"))

        assert session.requests[0]["url"].endswith("/users/agenda@clinic.mx/events/gone")

    def test_server_errors_become_calendar_errors(self):
        session = FakeSession([FakeResponse(503), requests.exceptions.ConnectionError("offline")])
        client = _graph(session)

        with pytest.raises(CalendarAPIError):
            asyncio.run(client.list_events("agenda@clinic.mx", DAY_START, DAY_END))
        with pytest.raises(CalendarAPIError):
            asyncio.run(client.list_events("agenda@clinic.mx", DAY_START, DAY_END))

    def test_missing_calendar_is_a_calendar_error(self):
        """A 404 outside of DELETE means the calendar reference is wrong, not that an event is gone."""
        session = FakeSession([FakeResponse(404), FakeResponse(404)])
        client = _graph(session)

        with pytest.raises(CalendarAPIError) as listing:
            asyncio.run(client.list_events("agenda@clinic.mx", DAY_START, DAY_END))
        with pytest.raises(CalendarAPIError):
            asyncio.run(client.create_event("agenda@clinic.mx", _draft(11)))

        assert not isinstance(listing.value, NotFoundError)

    def test_unreadable_bodies_are_calendar_errors(self):
        session = FakeSession([UnreadableResponse(), FakeResponse(201, {"subject": "no id"})])
        client = _graph(session)

        with pytest.raises(CalendarAPIError):
            asyncio.run(client.list_events("agenda@clinic.mx", DAY_START, DAY_END))
        with pytest.raises(CalendarAPIError, match="without an id"):
            asyncio.run(client.create_event("agenda@clinic.mx", _draft(11)))


class FakeConfidentialClient:
    result: Dict[str, Any] = {"access_token": "app-token"}

    def __init__(self, client_id, client_credential, authority):
        self.authority = authority

    def acquire_token_for_client(self, scopes):
        return self.result


class TestGraphAuthenticator:
    def test_returns_app_token(self, monkeypatch):
        monkeypatch.setattr(msal, "ConfidentialClientApplication", FakeConfidentialClient)

        authenticator = GraphAuthenticator(client_id="app", tenant_id="tenant", client_secret="s3cret")

        assert authenticator.get_access_token() == "app-token"
        assert authenticator.app.authority == "https://login.microsoftonline.com/tenant"

    def test_missing_secret(self):
        with pytest.raises(AuthenticationError, match="secret"):
            GraphAuthenticator(client_id="app", tenant_id="tenant", client_secret="")

    def test_token_errors(self, monkeypatch):
        class Refusing(FakeConfidentialClient):
            result = {"error": "invalid_client", "error_description": "bad secret"}

        monkeypatch.setattr(msal, "ConfidentialClientApplication", Refusing)

        with pytest.raises(AuthenticationError, match="bad secret"):
            GraphAuthenticator(client_id="app", tenant_id="tenant", client_secret="x").get_access_token()
