"""Instant normalization and parsing.

All bookable start times sit on a fixed grid measured from the Unix epoch
in absolute time, so the grid is the same whatever zone a caller uses.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotbook.errors import ValidationError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_micros(instant: datetime) -> int:
    delta = instant - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def normalize(instant: datetime, granularity_minutes: int) -> datetime:
    """Round ``instant`` up to the next multiple of the granularity.

    An instant already on a boundary is returned unchanged (ceiling, not
    strictly-greater). The result is UTC.
    """
    if instant.tzinfo is None:
        raise ValidationError("instant must carry a time zone")
    if granularity_minutes <= 0:
        raise ValidationError("granularity must be a positive number of minutes")

    window = granularity_minutes * 60_000_000
    micros = _to_micros(instant)
    ceiled = -(-micros // window) * window
    return _EPOCH + timedelta(microseconds=ceiled)


def resolve_zone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA identifier or raise ValidationError."""
    if not name:
        raise ValidationError("time zone must not be empty")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"unknown time zone: {name!r}") from exc


def parse_instant(value: str, zone: ZoneInfo | None = None) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Naive timestamps are read as wall-clock time in ``zone`` (UTC when no
    zone is given).
    """
    if not value or not value.strip():
        raise ValidationError("instant must not be empty")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"could not parse instant: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone or timezone.utc)
    return parsed


def to_iso(instant: datetime) -> str:
    """UTC ISO string with millisecond precision, e.g. ``2025-09-22T21:35:00.000Z``."""
    utc = instant.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)
