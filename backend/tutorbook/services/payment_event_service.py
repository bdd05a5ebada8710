# backend/tutorbook/services/payment_event_service.py
"""
Payment Event Service for Tutorbook

Maps payment provider events (Stripe event payloads) onto booking
transitions. Processing is idempotent: a repeated success event finds the
booking already CONFIRMED and does nothing, and events that no longer apply
(late payment after expiry, payment for a cancelled booking) are logged for
reconciliation and reported as ignored rather than failed.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, StaleTransitionException
from .base import BaseService
from .booking_service import BookingService

logger = logging.getLogger(__name__)

CONFIRM_EVENTS = frozenset({"checkout.session.completed", "payment_intent.succeeded"})
FAILURE_EVENTS = frozenset(
    {"payment_intent.payment_failed", "checkout.session.expired", "payment_intent.canceled"}
)

STATUS_PROCESSED = "processed"
STATUS_IGNORED = "ignored"


@dataclass
class PaymentEventOutcome:
    status: str
    event_type: str
    booking_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_booking_id(payment_object: Mapping[str, Any]) -> Optional[str]:
    """Booking id from ``metadata.booking_id`` or ``client_reference_id``."""
    metadata = payment_object.get("metadata") or {}
    booking_id = metadata.get("booking_id") or payment_object.get("client_reference_id")
    return str(booking_id) if booking_id else None


def extract_payment_reference(payment_object: Mapping[str, Any]) -> Optional[str]:
    reference = payment_object.get("payment_intent") or payment_object.get("id")
    return str(reference) if reference else None


class PaymentEventService(BaseService):
    """Applies payment provider events to bookings."""

    def __init__(self, db: Session, booking_service: Optional[BookingService] = None):
        super().__init__(db)
        self.booking_service = booking_service or BookingService(db)

    @BaseService.measure_operation("handle_payment_event")
    def handle_event(
        self, event: Mapping[str, Any], now: Optional[datetime] = None
    ) -> PaymentEventOutcome:
        event_type = str(event.get("type") or "")
        payment_object = (event.get("data") or {}).get("object") or {}

        if event_type not in CONFIRM_EVENTS and event_type not in FAILURE_EVENTS:
            self.logger.info("Ignoring unhandled payment event type: %s", event_type)
            return PaymentEventOutcome(
                status=STATUS_IGNORED, event_type=event_type, message="Unhandled event type"
            )

        booking_id = extract_booking_id(payment_object)
        if not booking_id:
            self.logger.warning(
                "Payment event %s carries no booking id", event_type, extra={"event_id": event.get("id")}
            )
            return PaymentEventOutcome(
                status=STATUS_IGNORED, event_type=event_type, message="No booking id in event"
            )

        reference = extract_payment_reference(payment_object)
        self.log_operation(
            "handle_payment_event", event_type=event_type, booking_id=booking_id, reference=reference
        )

        try:
            if event_type in CONFIRM_EVENTS:
                booking = self.booking_service.confirm_booking(
                    booking_id, payment_reference=reference, now=now
                )
            else:
                booking = self.booking_service.fail_payment(
                    booking_id, payment_reference=reference, now=now
                )
        except StaleTransitionException as exc:
            self.logger.warning(
                "Payment event %s for booking %s needs reconciliation: %s",
                event_type,
                booking_id,
                exc.message,
                extra={
                    "booking_id": booking_id,
                    "event_type": event_type,
                    "payment_reference": reference,
                    "current_status": exc.current_status,
                },
            )
            return PaymentEventOutcome(
                status=STATUS_IGNORED,
                event_type=event_type,
                booking_id=booking_id,
                message=exc.message,
            )
        except NotFoundException:
            self.logger.warning("Payment event %s for unknown booking %s", event_type, booking_id)
            return PaymentEventOutcome(
                status=STATUS_IGNORED,
                event_type=event_type,
                booking_id=booking_id,
                message="Booking not found",
            )

        return PaymentEventOutcome(
            status=STATUS_PROCESSED,
            event_type=event_type,
            booking_id=booking_id,
            message=f"Booking is {booking.status}",
        )
