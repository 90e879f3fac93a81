"""Availability/booking facade used by the request handlers.

``AvailabilityService`` is built per request around one caller's calendar
handle and exposes the stateless operations: soonest free slot, book
at-or-after, and reschedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator
from zoneinfo import ZoneInfo

from slotbook.errors import NotFoundError, ValidationError
from slotbook.identity.resolver import CalendarHandle

from .committer import BookingCommitter, BookingOptions, BookingResult
from .instants import normalize, utcnow
from .slots import SlotFinder
from .timeline import IDEMPOTENCY_FIELD, BusyTimelineBuilder, private_properties

logger = logging.getLogger(__name__)

RESCHEDULE_LOOKAHEAD_DAYS = 60


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime


class BookingLocks:
    """One asyncio.Lock per (account, calendar), held across fetch, scan and insert.

    Different accounts never wait on each other, even when both book on
    their own "primary" calendar.  Locks nobody holds or waits on are
    dropped.  Only serializes bookings inside this process; separate
    workers or hosts can still race each other.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, owner: str, calendar_id: str) -> asyncio.Lock:
        key = (owner, calendar_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class AvailabilityService:
    """Soonest-slot and booking operations for one calendar handle."""

    def __init__(
        self,
        handle: CalendarHandle,
        *,
        granularity_minutes: int,
        horizon_days: int,
        reference_zone: ZoneInfo,
        agent_id: str = "default",
        send_updates: str = "all",
        locks: BookingLocks | None = None,
    ) -> None:
        self.handle = handle
        self.granularity_minutes = granularity_minutes
        self._send_updates = send_updates
        self._locks = locks
        builder = BusyTimelineBuilder(handle.provider, handle.calendar_id, reference_zone)
        self._finder = SlotFinder(builder, granularity_minutes, horizon_days)
        self._committer = BookingCommitter(
            handle.provider,
            handle.calendar_id,
            self._finder,
            agent_id=agent_id,
            send_updates=send_updates,
        )

    @property
    def calendar_id(self) -> str:
        return self.handle.calendar_id

    async def soonest(self, from_instant: datetime | None = None) -> Slot:
        """Earliest free slot at or after ``from_instant`` (default: now)."""
        start = await self._finder.find_first_free(from_instant or utcnow())
        return Slot(start=start, end=start + timedelta(minutes=self.granularity_minutes))

    async def book(self, requested_instant: datetime, options: BookingOptions) -> BookingResult:
        # Surface malformed input before waiting on the lock
        normalize(requested_instant, self.granularity_minutes)
        async with self._serialized():
            return await self._committer.commit(requested_instant, options)

    async def reschedule(
        self,
        requested_instant: datetime,
        options: BookingOptions,
        *,
        event_id: str | None = None,
    ) -> BookingResult:
        """Move an existing booking: create the new one, then delete the old.

        The existing booking is found by ``event_id`` or, failing that, by
        the caller's email among upcoming slotbook events.
        """
        if not event_id and not options.caller_email:
            raise ValidationError("either eventId or email is required to reschedule")
        normalize(requested_instant, self.granularity_minutes)

        async with self._serialized():
            old_id = await self._locate_existing(event_id, options.caller_email)
            result = await self._committer.commit(requested_instant, options)
            if result.event_id != old_id:
                await self.handle.provider.delete_event(
                    self.calendar_id, old_id, send_updates=self._send_updates
                )
                logger.info("Rescheduled %s -> %s", old_id, result.event_id)
            return result

    async def _locate_existing(self, event_id: str | None, email: str | None) -> str:
        provider = self.handle.provider
        if event_id:
            event = await provider.get_event(self.calendar_id, event_id)
            if event is None or event.get("status") == "cancelled":
                raise NotFoundError(f"event {event_id} not found")
            return event_id

        wanted = (email or "").lower()
        now = utcnow()
        page_token: str | None = None
        while True:
            page = await provider.list_events(
                self.calendar_id,
                time_min=now,
                time_max=now + timedelta(days=RESCHEDULE_LOOKAHEAD_DAYS),
                page_token=page_token,
            )
            for item in page.items:
                if item.get("status") == "cancelled":
                    continue
                private = private_properties(item)
                if IDEMPOTENCY_FIELD not in private:
                    continue
                attendees = item.get("attendees") or []
                if any((a.get("email") or "").lower() == wanted for a in attendees):
                    return item["id"]
            page_token = page.next_page_token
            if not page_token:
                break
        raise NotFoundError(f"no upcoming booking found for {email}")

    @contextlib.asynccontextmanager
    async def _serialized(self) -> AsyncIterator[None]:
        if self._locks is None:
            yield
            return
        owner = self.handle.owner or self.handle.email or ""
        async with self._locks.get(owner, self.calendar_id):
            yield
