"""Earliest-free-slot search over a merged busy timeline."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Sequence

from .instants import normalize
from .timeline import BusyEvent, BusyTimelineBuilder, Interval, merge_intervals

ReusablePredicate = Callable[[BusyEvent], bool]


def scan(start: datetime, timeline: Sequence[Interval], granularity_minutes: int) -> datetime:
    """Greedy first-fit walk of a sorted, merged timeline.

    ``start`` must already be normalized.  Returns the first cursor value
    with a full slot free before the next busy interval; gaps shorter than
    one slot are skipped.
    """
    slot = timedelta(minutes=granularity_minutes)
    cursor = start
    for busy in timeline:
        if cursor + slot <= busy.start:
            return cursor
        if cursor < busy.end:
            cursor = normalize(busy.end, granularity_minutes)
    return cursor


class SlotFinder:
    """Finds the earliest quantized free instant on one calendar."""

    def __init__(
        self,
        builder: BusyTimelineBuilder,
        granularity_minutes: int,
        horizon_days: int,
    ) -> None:
        self._builder = builder
        self.granularity_minutes = granularity_minutes
        self.horizon_days = horizon_days

    async def find_first_free(
        self,
        from_instant: datetime,
        *,
        reusable: ReusablePredicate | None = None,
    ) -> datetime:
        """Earliest free instant at or after ``normalize(from_instant)``.

        Events matched by ``reusable`` are treated as free so a replayed
        request can land back on its own booking.
        """
        start = normalize(from_instant, self.granularity_minutes)
        events = await self._builder.fetch(start, self.horizon_days)
        return self.first_free(start, events, reusable=reusable)

    def first_free(
        self,
        start: datetime,
        events: Sequence[BusyEvent],
        *,
        reusable: ReusablePredicate | None = None,
    ) -> datetime:
        full = merge_intervals(event.interval for event in events)
        if reusable is None:
            return scan(start, full, self.granularity_minutes)

        own = [event for event in events if reusable(event)]
        if not own:
            return scan(start, full, self.granularity_minutes)

        others = merge_intervals(event.interval for event in events if not reusable(event))
        candidate = scan(start, others, self.granularity_minutes)
        end = candidate + timedelta(minutes=self.granularity_minutes)
        for event in own:
            # A reusable event only counts as free if we land exactly on it
            if event.interval.overlaps(candidate, end) and event.interval.start != candidate:
                return scan(start, full, self.granularity_minutes)
        return candidate
