"""Calendar provider abstractions and implementations."""

from .base import CalendarProvider, EventPage

__all__ = ["CalendarProvider", "EventPage"]
