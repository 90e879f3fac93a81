"""Google Calendar provider implementation.

Wraps the synchronous ``googleapiclient`` Calendar v3 client.  Every call
runs in the default thread pool so the event loop stays responsive, and
every failure is translated into a ``ProviderError`` carrying the HTTP
status Google returned.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

import httplib2
from google.auth.credentials import Credentials as BaseCredentials
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from slotbook.errors import ProviderError

from .base import CalendarProvider, EventPage

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3."""

    def __init__(self, credentials: BaseCredentials) -> None:
        self._credentials = credentials
        self._service = build(
            "calendar", "v3", credentials=credentials, cache_discovery=False
        )

    @classmethod
    def from_service_account_file(cls, path: str) -> GoogleCalendarProvider:
        creds = service_account.Credentials.from_service_account_file(
            path, scopes=SCOPES
        )
        return cls(creds)

    @classmethod
    def from_refresh_token(
        cls, client_id: str, client_secret: str, refresh_token: str
    ) -> GoogleCalendarProvider:
        """Single-tenant mode: one long-lived refresh token from the env."""
        creds = user_credentials.Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
            scopes=SCOPES,
        )
        return cls(creds)

    @classmethod
    def from_credentials(cls, creds: BaseCredentials) -> GoogleCalendarProvider:
        return cls(creds)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def _execute(self, request, operation: str) -> Any:
        try:
            return await self._run_in_executor(request.execute)
        except HttpError as exc:
            status = exc.resp.status if exc.resp is not None else None
            raise ProviderError(
                f"{operation} failed: {_http_error_message(exc)}",
                provider_status=int(status) if status is not None else None,
            ) from exc
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as exc:
            raise ProviderError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: datetime,
        time_max: datetime,
        page_token: str | None = None,
        private_extended_property: str | None = None,
        query: str | None = None,
        max_results: int | None = None,
    ) -> EventPage:
        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": self._to_rfc3339(time_min),
            "timeMax": self._to_rfc3339(time_max),
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if page_token:
            params["pageToken"] = page_token
        if private_extended_property:
            params["privateExtendedProperty"] = private_extended_property
        if query:
            params["q"] = query
        if max_results:
            params["maxResults"] = max_results

        response = await self._execute(
            self._service.events().list(**params), "events.list"
        )
        return EventPage(
            items=response.get("items", []),
            next_page_token=response.get("nextPageToken"),
        )

    async def insert_event(
        self,
        calendar_id: str,
        body: dict,
        *,
        send_updates: str = "all",
        conference_data_version: int = 0,
    ) -> dict:
        """Insert an event into the Google Calendar.

        Sends email invitations to attendees according to ``send_updates``.
        """
        result = await self._execute(
            self._service.events().insert(
                calendarId=calendar_id,
                body=body,
                sendUpdates=send_updates,
                conferenceDataVersion=conference_data_version,
            ),
            "events.insert",
        )
        logger.info("Created event %s on calendar %s", result.get("id"), calendar_id)
        return result

    async def get_event(self, calendar_id: str, event_id: str) -> dict | None:
        try:
            return await self._execute(
                self._service.events().get(calendarId=calendar_id, eventId=event_id),
                "events.get",
            )
        except ProviderError as exc:
            if exc.provider_status in (404, 410):
                return None
            raise

    async def delete_event(
        self, calendar_id: str, event_id: str, *, send_updates: str = "all"
    ) -> None:
        """Delete an event from Google Calendar."""
        await self._execute(
            self._service.events().delete(
                calendarId=calendar_id, eventId=event_id, sendUpdates=send_updates
            ),
            "events.delete",
        )
        logger.info("Deleted event %s on calendar %s", event_id, calendar_id)


def _http_error_message(exc: HttpError) -> str:
    """Pull Google's ``error.message`` out of the response body if present."""
    try:
        payload = json.loads(exc.content.decode("utf-8"))
        return payload["error"]["message"]
    except (ValueError, KeyError, TypeError, AttributeError):
        return str(exc)
