# backend/tutorbook/repositories/booking_repository.py
"""
Booking Repository for Tutorbook

Implements all data access operations for the booking ledger. Status changes
are issued as conditional UPDATEs keyed on (id, expected status) so that two
competing actors can never both apply a transition to the same booking.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import DEFAULT_QUERY_LIMIT
from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus, CancellationReason, can_transition
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def create(self, **kwargs: Any) -> Booking:
        """Create a booking, exposing integrity errors for conflict handling."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise exc.__cause__
            raise

    @staticmethod
    def _holds_instant(now: datetime) -> Any:
        """SQL predicate: booking currently occupies its (tutor, instant)."""
        return or_(
            Booking.status == BookingStatus.CONFIRMED.value,
            and_(
                Booking.status == BookingStatus.AWAITING_PAYMENT.value,
                Booking.payment_expires_at > now,
            ),
        )

    @staticmethod
    def _same_instant_or_slot(instant: datetime, slot_start_at: Optional[datetime]) -> Any:
        if slot_start_at is None:
            return Booking.selected_at == instant
        return or_(Booking.selected_at == instant, Booking.slot_start_at == slot_start_at)

    # Conflict checks

    def find_conflicting(
        self,
        tutor_id: str,
        instant: datetime,
        now: datetime,
        slot_start_at: Optional[datetime] = None,
    ) -> Optional[Booking]:
        """
        Return the booking currently holding ``instant`` or the slot starting
        at ``slot_start_at`` for ``tutor_id``, if any.

        Advisory only: the partial unique indexes are what actually prevent
        double booking when two requests race past this check.
        """
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.tutor_id == tutor_id,
                    self._same_instant_or_slot(instant, slot_start_at),
                    self._holds_instant(now),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking booking conflict: {str(e)}")
            raise RepositoryException(f"Failed to check booking conflict: {str(e)}")

    def release_lapsed_hold(
        self,
        tutor_id: str,
        instant: datetime,
        now: datetime,
        slot_start_at: Optional[datetime] = None,
    ) -> int:
        """
        Cancel lapsed AWAITING_PAYMENT bookings on this instant or slot.

        A lapsed hold still occupies the unique indexes until the cleanup
        scheduler sweeps it; clearing it here lets a new customer book the
        slot immediately. Returns the number of rows released.
        """
        stmt = (
            update(Booking)
            .where(
                Booking.tutor_id == tutor_id,
                self._same_instant_or_slot(instant, slot_start_at),
                Booking.status == BookingStatus.AWAITING_PAYMENT.value,
                Booking.payment_expires_at <= now,
            )
            .values(
                status=BookingStatus.CANCELLED.value,
                cancellation_reason=CancellationReason.EXPIRED.value,
                cancelled_at=now,
                payment_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error releasing lapsed hold for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to release lapsed hold: {str(e)}") from e
        released = int(result.rowcount or 0)
        if released:
            self.logger.info(
                "Released %d lapsed payment hold(s) for tutor %s at %s",
                released,
                tutor_id,
                instant.isoformat(),
            )
        return released

    # Status transitions

    def transition(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        new_status: BookingStatus,
        *,
        deadline_after: Optional[datetime] = None,
        deadline_not_after: Optional[datetime] = None,
        **fields: Any,
    ) -> bool:
        """
        Atomically move a booking from ``expected_status`` to ``new_status``.

        The UPDATE only matches when the row is still in ``expected_status``
        (and, optionally, when its payment deadline is after / not after the
        given instant). Returns True iff exactly this call applied the change.
        """
        if not can_transition(expected_status, new_status):
            raise ValueError(
                f"Illegal booking transition {expected_status.value} -> {new_status.value}"
            )

        conditions = [Booking.id == booking_id, Booking.status == expected_status.value]
        if deadline_after is not None:
            conditions.append(Booking.payment_expires_at > deadline_after)
        if deadline_not_after is not None:
            conditions.append(Booking.payment_expires_at <= deadline_not_after)

        values = {"status": new_status.value, **fields}
        if new_status != BookingStatus.AWAITING_PAYMENT:
            values["payment_expires_at"] = None

        stmt = (
            update(Booking)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking status: {str(e)}") from e
        applied = int(result.rowcount or 0) == 1
        self.logger.debug(
            "Transition %s %s -> %s applied=%s",
            booking_id,
            expected_status.value,
            new_status.value,
            applied,
        )
        return applied

    # Queries

    def find_expired_awaiting_payment(
        self, now: datetime, limit: Optional[int] = None
    ) -> List[Booking]:
        """AWAITING_PAYMENT bookings whose deadline is at or before ``now``, oldest first."""
        try:
            query = (
                self.db.query(Booking)
                .filter(
                    Booking.status == BookingStatus.AWAITING_PAYMENT.value,
                    Booking.payment_expires_at <= now,
                )
                .order_by(Booking.payment_expires_at.asc(), Booking.id.asc())
            )
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding expired bookings: {str(e)}")
            raise RepositoryException(f"Failed to find expired bookings: {str(e)}")

    def get_active_bookings_in_range(
        self, tutor_id: str, start_utc: datetime, end_utc: datetime, now: datetime
    ) -> List[Booking]:
        """Active bookings whose slot starts in ``[start_utc, end_utc)`` for one tutor."""
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.tutor_id == tutor_id,
                    Booking.slot_start_at >= start_utc,
                    Booking.slot_start_at < end_utc,
                    self._holds_instant(now),
                )
                .order_by(Booking.slot_start_at.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active bookings for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get active bookings: {str(e)}")

    def list_for_customer(
        self,
        customer_id: str,
        status: Optional[BookingStatus] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Booking]:
        """Customer's bookings, most recent session first."""
        try:
            query = self.db.query(Booking).filter(Booking.customer_id == customer_id)
            if status is not None:
                query = query.filter(Booking.status == status.value)
            return query.order_by(Booking.selected_at.desc()).limit(limit).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings for customer {customer_id}: {str(e)}")
            raise RepositoryException(f"Failed to list customer bookings: {str(e)}")

    def list_for_tutor(
        self,
        tutor_id: str,
        status: Optional[BookingStatus] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Booking]:
        """Tutor's bookings, most recent session first."""
        try:
            query = self.db.query(Booking).filter(Booking.tutor_id == tutor_id)
            if status is not None:
                query = query.filter(Booking.status == status.value)
            return query.order_by(Booking.selected_at.desc()).limit(limit).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to list tutor bookings: {str(e)}")
