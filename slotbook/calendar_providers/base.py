"""Abstract base class for calendar providers.

Defines the slice of a remote calendar the booking engine relies on:
paginated event listing, insertion, lookup and deletion.  The provider is
the only source of truth for busy time and the only place bookings are
persisted.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class EventPage:
    """One page of a ``list_events`` response."""

    items: list[dict] = field(default_factory=list)
    next_page_token: str | None = None


class CalendarProvider(ABC):
    """Abstract calendar backend.

    Implementations raise ``slotbook.errors.ProviderError`` for every
    failure reported by the remote service.
    """

    @abstractmethod
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
        """Return one page of events overlapping ``[time_min, time_max)``.

        Recurring events are expanded into single instances and ordered by
        start time.

        Args:
            calendar_id: The calendar to query.
            time_min: Inclusive lower bound (events ending after it).
            time_max: Exclusive upper bound (events starting before it).
            page_token: Continuation token from a previous page.
            private_extended_property: ``"name=value"`` filter on private
                event metadata.  Not every backend supports it.
            query: Free-text search term.
            max_results: Page size hint.
        """

    @abstractmethod
    async def insert_event(
        self,
        calendar_id: str,
        body: dict,
        *,
        send_updates: str = "all",
        conference_data_version: int = 0,
    ) -> dict:
        """Create an event.

        ``conference_data_version=1`` lets the provider act on a
        ``conferenceData.createRequest`` in the body.

        Returns:
            Provider event resource containing at least ``"id"`` and
            ``"htmlLink"``.
        """

    @abstractmethod
    async def get_event(self, calendar_id: str, event_id: str) -> dict | None:
        """Fetch one event, or None if it does not exist."""

    @abstractmethod
    async def delete_event(
        self, calendar_id: str, event_id: str, *, send_updates: str = "all"
    ) -> None:
        """Delete an event from the calendar."""
