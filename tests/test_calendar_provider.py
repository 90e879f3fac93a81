"""Tests for CalendarProvider ABC and GoogleCalendarProvider."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from slotbook.calendar_providers.base import CalendarProvider, EventPage
from slotbook.errors import ProviderError


def http_error(status: int, message: str = "boom") -> HttpError:
    resp = httplib2.Response({"status": status})
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp, content, uri="https://www.googleapis.com/calendar/v3")


# ── ABC contract tests ─────────────────────────────────────────────


class TestCalendarProviderABC:
    def test_cannot_instantiate(self):
        """CalendarProvider is abstract and cannot be instantiated directly."""
        with pytest.raises(TypeError):
            CalendarProvider()

    def test_event_page_defaults(self):
        page = EventPage()
        assert page.items == []
        assert page.next_page_token is None


# ── GoogleCalendarProvider tests (mocked API) ──────────────────────


class TestGoogleCalendarProvider:
    @pytest.fixture
    def mock_provider(self):
        """Create a GoogleCalendarProvider with a mocked discovery client."""
        with patch("slotbook.calendar_providers.google.build") as mock_build:
            from slotbook.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider(MagicMock())
            provider._service = mock_build.return_value
            return provider

    @pytest.mark.asyncio
    async def test_list_events_params(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.list.return_value.execute.return_value = {
            "items": [{"id": "evt_1"}],
            "nextPageToken": "page-2",
        }
        start = datetime(2025, 9, 22, 21, 30, tzinfo=timezone.utc)
        end = datetime(2025, 10, 6, 21, 30, tzinfo=timezone.utc)

        page = await mock_provider.list_events(
            "primary",
            time_min=start,
            time_max=end,
            page_token="page-1",
            private_extended_property="slotbookKey=abc",
        )

        assert page.items == [{"id": "evt_1"}]
        assert page.next_page_token == "page-2"
        events.list.assert_called_once_with(
            calendarId="primary",
            timeMin="2025-09-22T21:30:00+00:00",
            timeMax="2025-10-06T21:30:00+00:00",
            singleEvents=True,
            orderBy="startTime",
            pageToken="page-1",
            privateExtendedProperty="slotbookKey=abc",
        )

    @pytest.mark.asyncio
    async def test_list_events_last_page(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.list.return_value.execute.return_value = {}
        start = datetime(2025, 9, 22, tzinfo=timezone.utc)
        page = await mock_provider.list_events("primary", time_min=start, time_max=start)
        assert page.items == []
        assert page.next_page_token is None

    @pytest.mark.asyncio
    async def test_list_events_http_error(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.list.return_value.execute.side_effect = http_error(403, "Rate Limit Exceeded")
        start = datetime(2025, 9, 22, tzinfo=timezone.utc)

        with pytest.raises(ProviderError) as exc_info:
            await mock_provider.list_events("primary", time_min=start, time_max=start)

        assert exc_info.value.provider_status == 403
        assert "Rate Limit Exceeded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.list.return_value.execute.side_effect = TimeoutError("timed out")
        start = datetime(2025, 9, 22, tzinfo=timezone.utc)

        with pytest.raises(ProviderError) as exc_info:
            await mock_provider.list_events("primary", time_min=start, time_max=start)
        assert exc_info.value.provider_status is None
        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_insert_event(self, mock_provider):
        """insert_event should call events().insert() and return the resource."""
        events = mock_provider._service.events.return_value
        events.insert.return_value.execute.return_value = {
            "id": "evt_123",
            "htmlLink": "https://calendar.google.com/event/evt_123",
            "status": "confirmed",
        }
        body = {"summary": "Tour"}

        result = await mock_provider.insert_event("primary", body, send_updates="none")

        assert result["id"] == "evt_123"
        assert result["htmlLink"] == "https://calendar.google.com/event/evt_123"
        events.insert.assert_called_once_with(
            calendarId="primary", body=body, sendUpdates="none", conferenceDataVersion=0
        )

    @pytest.mark.asyncio
    async def test_insert_with_conference(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.insert.return_value.execute.return_value = {
            "id": "evt_meet",
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
        }
        body = {"conferenceData": {"createRequest": {"requestId": "r1"}}}

        result = await mock_provider.insert_event("primary", body, conference_data_version=1)

        assert result["hangoutLink"] == "https://meet.google.com/abc-defg-hij"
        assert events.insert.call_args.kwargs["conferenceDataVersion"] == 1

    @pytest.mark.asyncio
    async def test_insert_failure(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.insert.return_value.execute.side_effect = http_error(500)
        with pytest.raises(ProviderError) as exc_info:
            await mock_provider.insert_event("primary", {})
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_get_event_missing(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.get.return_value.execute.side_effect = http_error(404, "Not Found")
        assert await mock_provider.get_event("primary", "evt_404") is None

    @pytest.mark.asyncio
    async def test_get_event_other_error(self, mock_provider):
        events = mock_provider._service.events.return_value
        events.get.return_value.execute.side_effect = http_error(401, "Invalid Credentials")
        with pytest.raises(ProviderError):
            await mock_provider.get_event("primary", "evt_1")

    @pytest.mark.asyncio
    async def test_delete_event(self, mock_provider):
        """delete_event should call events().delete()."""
        events = mock_provider._service.events.return_value
        events.delete.return_value.execute.return_value = ""

        await mock_provider.delete_event("primary", "evt_123")
        events.delete.assert_called_once_with(
            calendarId="primary", eventId="evt_123", sendUpdates="all"
        )

    def test_from_refresh_token(self):
        with patch("slotbook.calendar_providers.google.build") as mock_build:
            from slotbook.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider.from_refresh_token("id", "secret", "refresh")

        creds = provider._credentials
        assert creds.refresh_token == "refresh"
        assert creds.client_id == "id"
        assert creds.token is None
        mock_build.assert_called_once()
