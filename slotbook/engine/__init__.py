"""Availability & booking engine."""

from .committer import BookingCommitter, BookingOptions, BookingResult, idempotency_key
from .instants import normalize, parse_instant, resolve_zone, to_iso
from .service import AvailabilityService, BookingLocks, Slot
from .slots import SlotFinder, scan
from .timeline import BusyEvent, BusyTimelineBuilder, Interval, merge_intervals

__all__ = [
    "AvailabilityService",
    "BookingCommitter",
    "BookingLocks",
    "BookingOptions",
    "BookingResult",
    "BusyEvent",
    "BusyTimelineBuilder",
    "Interval",
    "Slot",
    "SlotFinder",
    "idempotency_key",
    "merge_intervals",
    "normalize",
    "parse_instant",
    "resolve_zone",
    "scan",
    "to_iso",
]
