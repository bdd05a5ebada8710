"""
Booking request/response schemas.

Requests carry the wall-clock time the customer picked; responses carry the
canonical UTC instant plus its rendering in the platform timezone.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from ..core.constants import MAX_NOTES_LENGTH
from ..core.timezone_utils import to_local
from ..models.booking import Booking, BookingStatus, CancellationReason
from .base import StandardizedModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """Reserve a tutor's slot for the authenticated customer."""

    tutor_id: str = Field(..., min_length=1, max_length=64, description="Tutor to book")
    selected_date_time: str = Field(
        ...,
        min_length=1,
        description=(
            "ISO 8601 date-time. Without an offset it is read as wall-clock time "
            "in the platform timezone."
        ),
        examples=["2025-03-10T14:30:00"],
    )
    session_length_minutes: Optional[int] = Field(
        None, ge=1, description="Session length in minutes (defaults to the platform setting)"
    )
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class BookingCancel(StrictRequestModel):
    """Optional body for cancelling a booking."""

    reason: Optional[CancellationReason] = Field(
        None, description="Defaults to the caller's role (customer or tutor request)"
    )


class BookingConfirm(StrictRequestModel):
    """Body for the internal confirm hook."""

    payment_reference: Optional[str] = Field(None, max_length=255)


class BookingResponse(StandardizedModel):
    """Booking as returned to customers and tutors."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    tutor_id: str
    customer_id: str
    selected_at: datetime
    selected_local: str = Field(..., description="Start time in the platform timezone")
    slot_start_at: datetime = Field(..., description="Start of the slot this booking holds")
    ends_at: datetime
    duration_minutes: int
    status: BookingStatus
    payment_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[CancellationReason] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            tutor_id=booking.tutor_id,
            customer_id=booking.customer_id,
            selected_at=booking.selected_at,
            selected_local=to_local(booking.selected_at).isoformat(),
            slot_start_at=booking.slot_start_at,
            ends_at=booking.ends_at,
            duration_minutes=booking.duration_minutes,
            status=booking.status,
            payment_expires_at=booking.payment_expires_at,
            cancellation_reason=booking.cancellation_reason,
            payment_reference=booking.payment_reference,
            notes=booking.notes,
            created_at=booking.created_at,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
            completed_at=booking.completed_at,
        )


class BookingListResponse(StandardizedModel):
    items: List[BookingResponse]
    total: int
