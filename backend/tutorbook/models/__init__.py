"""
Database models for the Tutorbook booking core.

- SlotTemplate: tutor-published availability windows (no booking state)
- Booking: the booking ledger, single source of truth for availability
"""

from .booking import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    Booking,
    BookingStatus,
    CancellationReason,
    can_transition,
)
from .slot_template import SlotTemplate

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "Booking",
    "BookingStatus",
    "CancellationReason",
    "SlotTemplate",
    "can_transition",
]
