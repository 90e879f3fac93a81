"""Idempotent booking against the provider.

A booking lands on the earliest free slot at or after the requested
instant.  Each created event carries a deterministic idempotency key in its
private metadata; a request that maps to an existing key gets that event
back instead of a duplicate.

There is no lock between reading the timeline and inserting the event, so
two concurrent requests for the same slot can both insert.  Callers that
need serialization wrap ``commit`` in a lock (see ``BookingLocks``).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from slotbook.calendar_providers.base import CalendarProvider
from slotbook.errors import ProviderError

from .instants import normalize, resolve_zone
from .slots import SlotFinder
from .timeline import IDEMPOTENCY_FIELD, BusyEvent, event_interval, private_properties

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "slotbook"
KEY_DELIMITER = "|"


def idempotency_key(
    caller_email: str | None,
    chosen_instant: datetime,
    label: str | None,
    agent_id: str = "default",
) -> str:
    """Deterministic key for a (caller, slot, label) booking."""
    when = chosen_instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return KEY_DELIMITER.join(
        [
            KEY_NAMESPACE,
            agent_id,
            (caller_email or "anon").strip().lower(),
            when,
            (label or "").strip(),
        ]
    )


@dataclass
class BookingOptions:
    """Per-request booking metadata.

    ``external_key`` replaces the derived idempotency key.  A booking made
    under it is found again anywhere in the horizon, not just on the slot
    the request resolves to.
    """

    timezone: str
    summary: str
    caller_email: str | None = None
    label: str | None = None
    location: str = ""
    description: str = ""
    create_meet: bool = False
    external_key: str | None = None


@dataclass
class BookingResult:
    chosen_instant: datetime
    end_instant: datetime
    was_bumped: bool
    event_id: str
    html_link: str | None = None
    meet_link: str | None = None
    replayed: bool = False


class BookingCommitter:
    """Books the earliest free slot on one calendar, at most once per key."""

    def __init__(
        self,
        provider: CalendarProvider,
        calendar_id: str,
        finder: SlotFinder,
        *,
        agent_id: str = "default",
        send_updates: str = "all",
    ) -> None:
        self._provider = provider
        self._calendar_id = calendar_id
        self._finder = finder
        self._agent_id = agent_id
        self._send_updates = send_updates

    @property
    def granularity_minutes(self) -> int:
        return self._finder.granularity_minutes

    def key_for(self, options: BookingOptions, instant: datetime) -> str:
        if options.external_key:
            return options.external_key
        return idempotency_key(options.caller_email, instant, options.label, self._agent_id)

    async def commit(self, requested_instant: datetime, options: BookingOptions) -> BookingResult:
        # Validate before touching the provider
        zone = resolve_zone(options.timezone)
        normalized = normalize(requested_instant, self.granularity_minutes)
        slot = timedelta(minutes=self.granularity_minutes)

        if options.external_key:
            horizon_end = normalized + timedelta(days=self._finder.horizon_days)
            existing = await self._find_existing(options.external_key, normalized, horizon_end)
            if existing is not None:
                interval = event_interval(existing, zone)
                chosen = interval.start if interval else normalized
                return self._replayed(existing, chosen, chosen + slot, chosen != normalized)
            chosen = await self._finder.find_first_free(normalized)
        else:
            def own_booking(event: BusyEvent) -> bool:
                return event.idempotency_key == self.key_for(options, event.interval.start)

            chosen = await self._finder.find_first_free(normalized, reusable=own_booking)

        was_bumped = chosen != normalized
        end = chosen + slot
        key = self.key_for(options, chosen)

        if not options.external_key:
            existing = await self._find_existing(key, chosen, end)
            if existing is not None:
                return self._replayed(existing, chosen, end, was_bumped)

        if was_bumped:
            logger.info(
                "Requested %s is busy, bumped to %s", normalized.isoformat(), chosen.isoformat()
            )

        body = self._event_body(options, chosen, end, zone, key)
        created = await self._provider.insert_event(
            self._calendar_id,
            body,
            send_updates=self._send_updates,
            conference_data_version=1 if options.create_meet else 0,
        )
        logger.info(
            "Booked %s at %s on %s", created.get("id"), chosen.isoformat(), self._calendar_id
        )
        return BookingResult(
            chosen_instant=chosen,
            end_instant=end,
            was_bumped=was_bumped,
            event_id=created.get("id", ""),
            html_link=created.get("htmlLink"),
            meet_link=created.get("hangoutLink"),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _replayed(existing: dict, chosen: datetime, end: datetime, was_bumped: bool) -> BookingResult:
        logger.info("Replaying booking %s", existing.get("id"))
        return BookingResult(
            chosen_instant=chosen,
            end_instant=end,
            was_bumped=was_bumped,
            event_id=existing.get("id", ""),
            html_link=existing.get("htmlLink"),
            meet_link=existing.get("hangoutLink"),
            replayed=True,
        )

    async def _find_existing(self, key: str, start: datetime, end: datetime) -> dict | None:
        """Look up a prior booking under ``key`` in ``[start, end)``.

        Tries the provider-side metadata filter first, then an unfiltered
        window read matched in memory.  If both fail the lookup reports no
        match and the caller goes on to create the event.
        """
        try:
            page = await self._provider.list_events(
                self._calendar_id,
                time_min=start,
                time_max=end,
                private_extended_property=f"{IDEMPOTENCY_FIELD}={key}",
                max_results=1,
            )
            return _first_with_key(page.items, key)
        except ProviderError as exc:
            logger.warning("Filtered idempotency lookup failed (%s), scanning window", exc)

        try:
            items: list[dict] = []
            page_token: str | None = None
            while True:
                page = await self._provider.list_events(
                    self._calendar_id,
                    time_min=start,
                    time_max=end,
                    page_token=page_token,
                )
                items.extend(page.items)
                page_token = page.next_page_token
                if not page_token:
                    break
        except ProviderError as exc:
            logger.warning("Idempotency lookup unavailable (%s), booking without it", exc)
            return None
        return _first_with_key(items, key)

    def _event_body(
        self,
        options: BookingOptions,
        start: datetime,
        end: datetime,
        zone,
        key: str,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": options.summary,
            "start": {"dateTime": start.astimezone(zone).isoformat(), "timeZone": options.timezone},
            "end": {"dateTime": end.astimezone(zone).isoformat(), "timeZone": options.timezone},
            "reminders": {"useDefault": True},
            "extendedProperties": {"private": {IDEMPOTENCY_FIELD: key}},
        }
        if options.location:
            body["location"] = options.location
        description = options.description
        if options.label:
            description = f"{description}\n\n{options.label}" if description else options.label
        if description:
            body["description"] = description
        if options.caller_email:
            body["attendees"] = [{"email": options.caller_email}]
            body["guestsCanSeeOtherGuests"] = False
            body["guestsCanInviteOthers"] = False
        if options.create_meet:
            # requestId must be unique per conference
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body


def _first_with_key(items: list[dict], key: str) -> dict | None:
    for item in items:
        if not isinstance(item, dict) or item.get("status") == "cancelled":
            continue
        if private_properties(item).get(IDEMPOTENCY_FIELD) == key:
            return item
    return None
