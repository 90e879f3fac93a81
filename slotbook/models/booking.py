"""Pydantic models for booking requests and responses.

JSON field names are camelCase on the wire (``requestedStartIso``,
``bumpedFromRequested``); Python attributes stay snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingRequest(_CamelModel):
    """Book the earliest free slot at or after ``requested_start_iso``."""

    requested_start_iso: str = Field(min_length=1)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    label: Optional[str] = Field(default=None, max_length=500)
    tz: Optional[str] = None
    summary: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=4000)
    create_meet: Optional[bool] = None
    external_key: Optional[str] = Field(default=None, min_length=1, max_length=1024)


class RescheduleRequest(BookingRequest):
    """Move an existing booking, located by ``event_id`` or attendee email."""

    event_id: Optional[str] = None


class SoonestResponse(_CamelModel):
    start_iso: str
    end_iso: str
    slot_minutes: int
    calendar_id: str


class BookingResponse(_CamelModel):
    ok: bool = True
    scheduled_start_iso: str
    scheduled_end_iso: str
    bumped_from_requested: bool
    event_id: str
    external_link: Optional[str] = None
    meet_link: Optional[str] = None
    slot_minutes: int
    replayed: bool = False

