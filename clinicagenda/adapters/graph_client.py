"""
Microsoft Graph calendar adapter.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError, ConflictError, NotFoundError
from ..domain.models import CalendarEvent, EventDraft
from .graph_authenticator import GraphAuthenticator

logger = logging.getLogger(__name__)

NOT_BUSY = {"free"}


class GraphCalendarClient:
    """
    Calendar port over the Microsoft Graph REST API.

    ``calendar_ref`` is a mailbox (``agenda@clinic.mx``) or a mailbox plus a
    calendar id (``agenda@clinic.mx/AAMkAG...``). Blocking HTTP calls run in a
    worker thread so the event loop stays responsive.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
    PAGE_SIZE = 100

    def __init__(
        self,
        authenticator: GraphAuthenticator,
        timezone: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self._authenticator = authenticator
        self.timezone = timezone
        self._session = session or requests.Session()
        self.timeout = timeout

    async def list_events(
        self,
        calendar_ref: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[CalendarEvent]:
        return await asyncio.to_thread(self._list_events, calendar_ref, range_start, range_end)

    async def create_event(
        self,
        calendar_ref: str,
        draft: EventDraft,
        event_id: Optional[str] = None,
    ) -> str:
        return await asyncio.to_thread(self._create_event, calendar_ref, draft, event_id)

    async def delete_event(self, calendar_ref: str, event_id: str) -> None:
        await asyncio.to_thread(self._delete_event, calendar_ref, event_id)

    def _list_events(self, calendar_ref: str, range_start: DateTime, range_end: DateTime) -> List[CalendarEvent]:
        url: Optional[str] = f"{self._calendar_path(calendar_ref)}/calendarView"
        params: Optional[Dict[str, Any]] = {
            "startDateTime": range_start.in_timezone("UTC").to_iso8601_string(),
            "endDateTime": range_end.in_timezone("UTC").to_iso8601_string(),
            "$select": "id,subject,start,end,isAllDay,showAs,isCancelled",
            "$top": self.PAGE_SIZE,
        }
        events: List[CalendarEvent] = []

        while url:
            data = self._json(self._request("GET", url, params=params))
            for item in data.get("value", []):
                event = self._parse_event(item)
                if event is not None:
                    events.append(event)
            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

        logger.debug("Graph returned %d busy events for %s", len(events), calendar_ref)
        return events

    def _create_event(self, calendar_ref: str, draft: EventDraft, event_id: Optional[str]) -> str:
        payload: Dict[str, Any] = {
            "subject": draft.title,
            "body": {"contentType": "text", "content": draft.description},
            "start": {"dateTime": draft.start.format("YYYY-MM-DDTHH:mm:ss"), "timeZone": self.timezone},
            "end": {"dateTime": draft.end.format("YYYY-MM-DDTHH:mm:ss"), "timeZone": self.timezone},
            "showAs": "busy",
        }
        if event_id:
            payload["transactionId"] = event_id

        data = self._json(self._request("POST", f"{self._calendar_path(calendar_ref)}/events", json=payload))
        created_id = data.get("id")
        if not created_id:
            raise CalendarAPIError("Microsoft Graph created an event without an id")
        return created_id

    def _delete_event(self, calendar_ref: str, event_id: str) -> None:
        self._request("DELETE", f"{self._mailbox_path(calendar_ref)}/events/{event_id}")

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        token = self._authenticator.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": f'outlook.timezone="{self.timezone}"',
        }
        try:
            response = self._session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise CalendarAPIError(f"Microsoft Graph request failed: {exc}") from exc

        if response.status_code == 404:
            # anything but an event delete points at a misconfigured calendar
            if method == "DELETE":
                raise NotFoundError(f"Graph event not found: {url}")
            raise CalendarAPIError(f"Microsoft Graph returned 404 for {method} {url}")
        if response.status_code == 409:
            raise ConflictError("The calendar rejected the event as a conflict")
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise CalendarAPIError(f"Microsoft Graph returned {response.status_code}: {exc}") from exc
        return response

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise CalendarAPIError(f"Microsoft Graph sent an unreadable body: {exc}") from exc
        if not isinstance(data, dict):
            raise CalendarAPIError("Microsoft Graph sent an unexpected body")
        return data

    def _parse_event(self, item: Dict[str, Any]) -> Optional[CalendarEvent]:
        if item.get("isCancelled") or str(item.get("showAs", "")).lower() in NOT_BUSY:
            return None

        start = (item.get("start") or {}).get("dateTime")
        end = (item.get("end") or {}).get("dateTime")
        all_day = bool(item.get("isAllDay"))
        if all_day:
            start = start[:10] if start else None
            end = end[:10] if end else None
        else:
            # Graph sends seven fractional digits
            start = start.split(".")[0] if start else None
            end = end.split(".")[0] if end else None

        return CalendarEvent(
            id=item.get("id", ""),
            title=item.get("subject") or "",
            start=start,
            end=end,
            all_day=all_day,
        )

    def _mailbox_path(self, calendar_ref: str) -> str:
        mailbox = calendar_ref.split("/", 1)[0]
        return f"{self.GRAPH_API_ENDPOINT}/users/{mailbox}"

    def _calendar_path(self, calendar_ref: str) -> str:
        if "/" in calendar_ref:
            mailbox, calendar_id = calendar_ref.split("/", 1)
            return f"{self.GRAPH_API_ENDPOINT}/users/{mailbox}/calendars/{calendar_id}"
        return f"{self.GRAPH_API_ENDPOINT}/users/{calendar_ref}/calendar"
