"""
Pydantic schemas for the Tutorbook HTTP surface.
"""

from .availability import (
    AvailabilityResponse,
    DayAvailabilityResponse,
    SlotStatusListResponse,
    SlotStatusResponse,
)
from .booking import (
    BookingCancel,
    BookingConfirm,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
)
from .health import HealthResponse
from .payment import WebhookResponse

__all__ = [
    "AvailabilityResponse",
    "BookingCancel",
    "BookingConfirm",
    "BookingCreate",
    "BookingListResponse",
    "BookingResponse",
    "DayAvailabilityResponse",
    "HealthResponse",
    "SlotStatusListResponse",
    "SlotStatusResponse",
    "WebhookResponse",
]
