"""Shared fixtures: an in-memory calendar standing in for Google Calendar."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from slotbook.app import create_app
from slotbook.calendar_providers.base import CalendarProvider, EventPage
from slotbook.config import Settings
from slotbook.engine import AvailabilityService
from slotbook.errors import ProviderError
from slotbook.identity import CalendarHandle, StaticIdentityResolver

NEW_YORK = ZoneInfo("America/New_York")

# Busy 21:30Z-21:35Z, i.e. 5:30-5:35pm in New York on 2025-09-22
SEED_BUSY = {
    "id": "busy-1",
    "status": "confirmed",
    "start": {"dateTime": "2025-09-22T21:30:00Z"},
    "end": {"dateTime": "2025-09-22T21:35:00Z"},
}


def _edge(edge: dict) -> datetime:
    if edge.get("dateTime"):
        value = edge["dateTime"].replace("Z", "+00:00")
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=ZoneInfo(edge.get("timeZone", "UTC")))
        return parsed.astimezone(timezone.utc)
    return datetime.fromisoformat(edge["date"]).replace(tzinfo=timezone.utc)


class FakeCalendarProvider(CalendarProvider):
    """Minimal in-memory calendar.

    Supports window overlap, pagination, the private-property filter and
    records every call so tests can count mutations.
    """

    def __init__(
        self,
        seed: list[dict] | None = None,
        *,
        page_size: int | None = None,
        fail_filtered: bool = False,
        fail_list: bool = False,
        fail_insert: bool = False,
    ) -> None:
        self.store = [dict(item) for item in seed or []]
        self.page_size = page_size
        self.fail_filtered = fail_filtered
        self.fail_list = fail_list
        self.fail_insert = fail_insert
        self.list_calls: list[dict] = []
        self.inserted: list[dict] = []
        self.insert_calls: list[dict] = []
        self.deleted: list[str] = []
        self._seq = 0

    async def list_events(
        self,
        calendar_id,
        *,
        time_min,
        time_max,
        page_token=None,
        private_extended_property=None,
        query=None,
        max_results=None,
    ) -> EventPage:
        self.list_calls.append(
            {
                "calendar_id": calendar_id,
                "time_min": time_min,
                "time_max": time_max,
                "page_token": page_token,
                "private_extended_property": private_extended_property,
            }
        )
        if self.fail_list:
            raise ProviderError("backend unavailable", provider_status=503)
        if private_extended_property and self.fail_filtered:
            raise ProviderError("privateExtendedProperty not supported", provider_status=400)

        items = []
        for item in self.store:
            try:
                start, end = _edge(item["start"]), _edge(item["end"])
            except (KeyError, ValueError):
                continue
            if end <= time_min or start >= time_max:
                continue
            if private_extended_property:
                name, _, value = private_extended_property.partition("=")
                private = (item.get("extendedProperties") or {}).get("private") or {}
                if private.get(name) != value:
                    continue
            if query and query.lower() not in (item.get("summary") or "").lower():
                continue
            items.append(item)

        offset = int(page_token or 0)
        size = self.page_size or max_results or len(items) or 1
        page = items[offset : offset + size]
        next_token = str(offset + size) if offset + size < len(items) else None
        return EventPage(items=page, next_page_token=next_token)

    async def insert_event(
        self, calendar_id, body, *, send_updates="all", conference_data_version=0
    ) -> dict:
        if self.fail_insert:
            raise ProviderError("Rate Limit Exceeded", provider_status=429)
        self._seq += 1
        event_id = f"book-{self._seq}"
        event = {
            **body,
            "id": event_id,
            "status": "confirmed",
            "htmlLink": f"https://calendar.local/{event_id}",
        }
        if conference_data_version and "conferenceData" in body:
            event["hangoutLink"] = f"https://meet.local/{event_id}"
        self.insert_calls.append(
            {"send_updates": send_updates, "conference_data_version": conference_data_version}
        )
        self.store.append(event)
        self.inserted.append(event)
        return event

    async def get_event(self, calendar_id, event_id) -> dict | None:
        for item in self.store:
            if item.get("id") == event_id:
                return item
        return None

    async def delete_event(self, calendar_id, event_id, *, send_updates="all") -> None:
        before = len(self.store)
        self.store = [item for item in self.store if item.get("id") != event_id]
        if len(self.store) == before:
            raise ProviderError("Not Found", provider_status=404)
        self.deleted.append(event_id)


@pytest.fixture
def fake_calendar() -> FakeCalendarProvider:
    return FakeCalendarProvider([SEED_BUSY])


@pytest.fixture
def handle(fake_calendar) -> CalendarHandle:
    return CalendarHandle(provider=fake_calendar, calendar_id="primary")


@pytest.fixture
def service(handle) -> AvailabilityService:
    return AvailabilityService(
        handle,
        granularity_minutes=5,
        horizon_days=14,
        reference_zone=NEW_YORK,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        google_calendar_id="primary",
        calendar_timezone="America/New_York",
        slot_minutes=5,
        horizon_days=14,
        auth_mode="single",
    )


@pytest.fixture
def client(test_settings, handle) -> TestClient:
    app = create_app(test_settings, StaticIdentityResolver(handle))
    return TestClient(app)
