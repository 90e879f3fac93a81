"""Busy timeline construction.

Pulls every event overlapping a horizon window from the provider, keeps
the ones that actually consume availability, converts them to absolute
intervals and merges those into a sorted, non-touching sequence.  Nothing
is cached: the provider is authoritative and may change between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotbook.calendar_providers.base import CalendarProvider

logger = logging.getLogger(__name__)

# Private extended-property name carrying a booking's idempotency key
IDEMPOTENCY_FIELD = "slotbookKey"


@dataclass(frozen=True)
class Interval:
    """Half-open absolute span ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not self.start < self.end:
            raise ValueError(f"interval start {self.start} is not before end {self.end}")

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


@dataclass(frozen=True)
class BusyEvent:
    """A blocking provider event and the absolute interval it occupies."""

    event_id: str
    interval: Interval
    idempotency_key: str | None = None
    html_link: str | None = None


def is_blocking(item: dict) -> bool:
    """Cancelled and transparent ("show me as available") events don't block."""
    if item.get("status") == "cancelled":
        return False
    if item.get("transparency") == "transparent":
        return False
    return True


def private_properties(item: dict) -> dict:
    """``extendedProperties.private`` of a provider event, or ``{}``."""
    extended = item.get("extendedProperties")
    private = extended.get("private") if isinstance(extended, dict) else None
    return private if isinstance(private, dict) else {}


def _parse_datetime(value: str, fallback_zone: ZoneInfo) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO string, got {type(value).__name__}")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=fallback_zone)
    return parsed.astimezone(timezone.utc)


def _local_midnight(day: date, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)


def _item_zone(edge: dict, reference_zone: ZoneInfo) -> ZoneInfo:
    name = edge.get("timeZone")
    if not name:
        return reference_zone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return reference_zone


def event_interval(item: dict, reference_zone: ZoneInfo) -> Interval | None:
    """Convert a provider event to an absolute interval.

    All-day events block whole days in ``reference_zone``; Google's end date
    is exclusive.  Returns None for anything malformed.
    """
    start = item.get("start") or {}
    end = item.get("end") or {}
    if not isinstance(start, dict) or not isinstance(end, dict):
        return None
    try:
        if start.get("dateTime"):
            if not end.get("dateTime"):
                return None
            begin = _parse_datetime(start["dateTime"], _item_zone(start, reference_zone))
            finish = _parse_datetime(end["dateTime"], _item_zone(end, reference_zone))
        elif start.get("date"):
            first_day = date.fromisoformat(start["date"])
            last_day = (
                date.fromisoformat(end["date"])
                if end.get("date")
                else first_day + timedelta(days=1)
            )
            begin = _local_midnight(first_day, reference_zone)
            finish = _local_midnight(last_day, reference_zone)
        else:
            return None
    except (TypeError, ValueError, AttributeError, OverflowError):
        return None

    if finish <= begin:
        return None
    return Interval(begin, finish)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort by start and coalesce overlapping or touching intervals."""
    merged: list[Interval] = []
    for current in sorted(intervals, key=lambda iv: iv.start):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


class BusyTimelineBuilder:
    """Builds the busy timeline of one calendar."""

    def __init__(
        self,
        provider: CalendarProvider,
        calendar_id: str,
        reference_zone: ZoneInfo,
    ) -> None:
        self._provider = provider
        self._calendar_id = calendar_id
        self._reference_zone = reference_zone

    async def fetch(self, from_instant: datetime, horizon_days: int) -> list[BusyEvent]:
        """Return every blocking event overlapping the horizon window.

        Follows ``nextPageToken`` until exhausted, reusing the same bounds on
        each page.  A provider error propagates and the pages already read
        are dropped with it.
        """
        time_min = from_instant
        time_max = from_instant + timedelta(days=horizon_days)

        items: list[dict] = []
        page_token: str | None = None
        pages = 0
        while True:
            page = await self._provider.list_events(
                self._calendar_id,
                time_min=time_min,
                time_max=time_max,
                page_token=page_token,
            )
            pages += 1
            items.extend(page.items)
            page_token = page.next_page_token
            if not page_token:
                break

        busy: list[BusyEvent] = []
        for item in items:
            if not isinstance(item, dict) or not is_blocking(item):
                continue
            interval = event_interval(item, self._reference_zone)
            if interval is None:
                logger.debug("Discarding malformed event %s", item.get("id"))
                continue
            key = private_properties(item).get(IDEMPOTENCY_FIELD)
            busy.append(
                BusyEvent(
                    event_id=item.get("id", ""),
                    interval=interval,
                    idempotency_key=key if isinstance(key, str) else None,
                    html_link=item.get("htmlLink"),
                )
            )

        logger.debug(
            "Fetched %d events over %d page(s) on %s, %d blocking",
            len(items), pages, self._calendar_id, len(busy),
        )
        return busy

    async def build(self, from_instant: datetime, horizon_days: int) -> list[Interval]:
        events = await self.fetch(from_instant, horizon_days)
        return merge_intervals(event.interval for event in events)
