"""Request/response models for the HTTP layer."""

from .booking import (
    BookingRequest,
    BookingResponse,
    RescheduleRequest,
    SoonestResponse,
)

__all__ = [
    "BookingRequest",
    "BookingResponse",
    "RescheduleRequest",
    "SoonestResponse",
]
