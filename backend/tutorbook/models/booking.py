# backend/tutorbook/models/booking.py
"""
Booking model for the Tutorbook booking core.

The bookings table is the booking ledger: the single source of truth for
whether a tutor's instant is taken. A booking stores the canonical UTC
instant the customer picked, the UTC start of the slot that instant matched,
and a lifecycle status from a closed enumeration. Availability is
never cached on slot templates; it is derived from this table.

Storage-level guarantees:
- ``uq_bookings_active_tutor_instant``: at most one AWAITING_PAYMENT or
  CONFIRMED booking per (tutor, instant).
- ``uq_bookings_active_tutor_slot``: at most one such booking per
  (tutor, slot start), so two instants inside one slot cannot both hold it.
- ``ck_bookings_payment_deadline``: a payment deadline exists exactly while
  the booking is AWAITING_PAYMENT.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Optional, cast

from sqlalchemy import CheckConstraint, Column, Index, Integer, String, Text, text
import ulid

from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    AWAITING_PAYMENT = "AWAITING_PAYMENT"  # Reserved, payment window open
    CONFIRMED = "CONFIRMED"  # Paid
    CANCELLED = "CANCELLED"  # Cancelled, payment failed or expired
    COMPLETED = "COMPLETED"  # Session took place


class CancellationReason(str, Enum):
    """Why a booking ended up CANCELLED."""

    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"
    TUTOR_REQUEST = "TUTOR_REQUEST"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    EXPIRED = "EXPIRED"
    ADMIN = "ADMIN"


# Statuses that hold a tutor's instant. Must match the partial index below.
ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.AWAITING_PAYMENT, BookingStatus.CONFIRMED}
)

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.AWAITING_PAYMENT: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

_missing = set(BookingStatus) - set(ALLOWED_TRANSITIONS)
if _missing:  # pragma: no cover - guards edits to BookingStatus
    raise RuntimeError(f"ALLOWED_TRANSITIONS is missing statuses: {sorted(_missing)}")


def can_transition(current: "BookingStatus | str", target: "BookingStatus | str") -> bool:
    """Whether ``current -> target`` is a defined lifecycle transition."""
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


_ACTIVE_STATUS_SQL = "status IN (%s)" % ", ".join(
    f"'{status.value}'" for status in sorted(ACTIVE_STATUSES, key=lambda s: s.value)
)


class Booking(Base):
    """
    One reservation attempt and its outcome.

    ``selected_at`` is the session start as an absolute UTC instant. Sessions
    are fixed-length (``duration_minutes``, 60 by default).
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    tutor_id = Column(String(64), nullable=False)
    customer_id = Column(String(64), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)

    selected_at = Column(UTCDateTime, nullable=False)
    # Start of the matched slot; the key availability and the unique index share
    slot_start_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    status = Column(
        String(20), nullable=False, default=BookingStatus.AWAITING_PAYMENT.value, index=True
    )
    payment_expires_at = Column(UTCDateTime, nullable=True)
    payment_reference = Column(String(255), nullable=True)
    cancellation_reason = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=_now_utc)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('AWAITING_PAYMENT', 'CONFIRMED', 'CANCELLED', 'COMPLETED')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "(status = 'AWAITING_PAYMENT' AND payment_expires_at IS NOT NULL) "
            "OR (status <> 'AWAITING_PAYMENT' AND payment_expires_at IS NULL)",
            name="ck_bookings_payment_deadline",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        Index(
            "uq_bookings_active_tutor_instant",
            "tutor_id",
            "selected_at",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index(
            "uq_bookings_active_tutor_slot",
            "tutor_id",
            "slot_start_at",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("ix_bookings_tutor_selected_at", "tutor_id", "selected_at"),
        Index("ix_bookings_tutor_slot_start", "tutor_id", "slot_start_at"),
        Index("ix_bookings_status_payment_expires", "status", "payment_expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: tutor={self.tutor_id}, customer={self.customer_id}, "
            f"at={self.selected_at}, status={self.status}>"
        )

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def ends_at(self) -> datetime:
        start = cast(datetime, self.selected_at)
        return start + timedelta(minutes=int(self.duration_minutes or 60))

    def is_payment_overdue(self, now: datetime) -> bool:
        deadline = cast(Optional[datetime], self.payment_expires_at)
        return (
            self.status == BookingStatus.AWAITING_PAYMENT
            and deadline is not None
            and deadline <= now
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and log payloads."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "tutor_id": self.tutor_id,
            "customer_id": self.customer_id,
            "selected_at": _iso(cast(Optional[datetime], self.selected_at)),
            "slot_start_at": _iso(cast(Optional[datetime], self.slot_start_at)),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "payment_expires_at": _iso(cast(Optional[datetime], self.payment_expires_at)),
            "payment_reference": self.payment_reference,
            "cancellation_reason": self.cancellation_reason,
            "created_at": _iso(cast(Optional[datetime], self.created_at)),
            "confirmed_at": _iso(cast(Optional[datetime], self.confirmed_at)),
            "cancelled_at": _iso(cast(Optional[datetime], self.cancelled_at)),
            "completed_at": _iso(cast(Optional[datetime], self.completed_at)),
        }
