# backend/tutorbook/services/booking_service.py
"""
Booking Service for Tutorbook

Handles the booking lifecycle:
- Creating reservations that hold a tutor's instant while payment is pending
- Confirming, failing, cancelling and completing bookings
- Expiring reservations whose payment window has lapsed

Mutual exclusion is enforced by the ledger's partial unique index; every
status change is a compare-and-swap on the booking's current status, so a
late payment confirmation and the expiry sweep can never both win.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, time, timedelta
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.constants import DEFAULT_QUERY_LIMIT
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    StaleTransitionException,
    ValidationException,
)
from ..core.timezone_utils import (
    DateTimeInput,
    combine_local,
    ensure_utc,
    format_local,
    local_wall_clock,
    to_canonical_instant,
    to_local,
    utc_now,
)
from ..models.booking import Booking, BookingStatus, CancellationReason, can_transition
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .slot_catalog_service import SlotCatalogService

logger = logging.getLogger(__name__)


@dataclass
class ExpirySweepResult:
    """Counts from one expired-reservation sweep."""

    found: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Centralizes booking business logic; routes, webhooks and the cleanup
    scheduler all go through this class.
    """

    repository: BookingRepository
    slot_catalog: SlotCatalogService

    def __init__(
        self,
        db: Session,
        repository: Optional[BookingRepository] = None,
        slot_catalog: Optional[SlotCatalogService] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.slot_catalog = slot_catalog or SlotCatalogService(db)
        self.settings = config or default_settings

    @property
    def tz_name(self) -> str:
        return self.settings.platform_timezone

    @staticmethod
    def _is_lock_contention_error(exc: OperationalError) -> bool:
        orig = getattr(exc, "orig", None)
        pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if pgcode == "40P01":
            return True
        message = str(exc).lower()
        # SQLite reports a lost writer race as a lock error
        return "deadlock detected" in message or "database is locked" in message

    def _get_or_404(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def _stale(
        self, booking: Booking, requested: BookingStatus, **context: Any
    ) -> StaleTransitionException:
        self.logger.warning(
            "Stale transition for booking %s: %s -> %s",
            booking.id,
            booking.status,
            requested.value,
            extra={
                "booking_id": booking.id,
                "current_status": booking.status,
                "requested_status": requested.value,
                **context,
            },
        )
        return StaleTransitionException(
            booking_id=str(booking.id),
            current_status=str(booking.status),
            requested_status=requested.value,
        )

    def _require_transition(
        self, booking: Booking, requested: BookingStatus, **context: Any
    ) -> None:
        if not can_transition(booking.status, requested):
            raise self._stale(booking, requested, **context)

    # Creation

    def _validate_request(
        self, instant: datetime, session_length_minutes: int, now: datetime
    ) -> None:
        if session_length_minutes <= 0 or session_length_minutes > self.settings.max_session_minutes:
            raise ValidationException(
                f"Session length must be between 1 and {self.settings.max_session_minutes} minutes",
                code="INVALID_DURATION",
                details={"session_length_minutes": session_length_minutes},
            )

        if instant <= now:
            raise ValidationException(
                "Cannot book a time in the past",
                code="BOOKING_IN_PAST",
                details={"selected_at": instant.isoformat()},
            )

        local_start = to_local(instant, self.tz_name).replace(tzinfo=None)
        opens_at = datetime.combine(local_start.date(), time(self.settings.business_hours_start))
        closes_at = datetime.combine(local_start.date(), time.min) + timedelta(
            hours=self.settings.business_hours_end
        )
        local_end = local_start + timedelta(minutes=session_length_minutes)
        if local_start < opens_at or local_start >= closes_at or local_end > closes_at:
            raise ValidationException(
                f"Bookings must fall within business hours "
                f"({self.settings.business_hours_start:02d}:00-"
                f"{self.settings.business_hours_end:02d}:00)",
                code="OUTSIDE_BUSINESS_HOURS",
                details={"local_time": local_start.strftime("%H:%M")},
            )

        if self.settings.require_hour_aligned_start and (
            local_start.minute or local_start.second or local_start.microsecond
        ):
            raise ValidationException(
                "Bookings must start on the hour",
                code="NOT_HOUR_ALIGNED",
                details={"local_time": local_start.strftime("%H:%M")},
            )

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        tutor_id: str,
        customer_id: str,
        requested_local_time: DateTimeInput,
        session_length_minutes: Optional[int] = None,
        customer_email: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Reserve a tutor's instant for a customer.

        The new booking is AWAITING_PAYMENT with a deadline of
        ``now + payment_window_minutes``.

        Raises:
            ValidationException: Bad time, past time, outside business hours
            NotFoundException: Unknown tutor or no matching slot
            BookingConflictException: Instant already held by another booking
        """
        now = ensure_utc(now) if now else utc_now()
        duration = (
            self.settings.default_session_minutes
            if session_length_minutes is None
            else session_length_minutes
        )

        instant = to_canonical_instant(requested_local_time, self.tz_name)
        self.log_operation(
            "create_booking",
            tutor_id=tutor_id,
            customer_id=customer_id,
            selected_at=instant.isoformat(),
        )

        # 1. Business rules on the requested time
        self._validate_request(instant, duration, now)

        # 2. Tutor must have published a slot containing the local wall-clock time
        local_date, local_time = local_wall_clock(instant, self.tz_name)
        if not self.slot_catalog.tutor_exists(tutor_id):
            raise NotFoundException(
                "Tutor not found", code="TUTOR_NOT_FOUND", details={"tutor_id": tutor_id}
            )
        slot = self.slot_catalog.find_matching_slot(tutor_id, local_date, local_time)
        if slot is None:
            raise NotFoundException(
                "No available slot at the requested time",
                code="SLOT_NOT_FOUND",
                details={
                    "tutor_id": tutor_id,
                    "date": local_date.isoformat(),
                    "time": local_time.strftime("%H:%M"),
                },
            )

        # A booking holds the whole slot it matched, not just its own instant
        slot_start_at = combine_local(local_date, slot.start_time, self.tz_name)
        conflict_details = {
            "tutor_id": tutor_id,
            "selected_at": instant.isoformat(),
            "slot_start_at": slot_start_at.isoformat(),
        }

        # 3. Fail fast when an active booking is already visible
        if (
            self.repository.find_conflicting(tutor_id, instant, now, slot_start_at=slot_start_at)
            is not None
        ):
            raise BookingConflictException(details=conflict_details)

        # 4. Insert; the partial unique indexes decide any race
        try:
            with self.repository.transaction():
                self.repository.release_lapsed_hold(
                    tutor_id, instant, now, slot_start_at=slot_start_at
                )
                booking = self.repository.create(
                    tutor_id=tutor_id,
                    customer_id=customer_id,
                    customer_email=customer_email,
                    selected_at=instant,
                    slot_start_at=slot_start_at,
                    duration_minutes=duration,
                    status=BookingStatus.AWAITING_PAYMENT.value,
                    payment_expires_at=now
                    + timedelta(minutes=self.settings.payment_window_minutes),
                    notes=notes,
                    created_at=now,
                )
        except IntegrityError as exc:
            self.logger.info(
                "Booking race lost for tutor %s at %s", tutor_id, format_local(instant, self.tz_name)
            )
            raise BookingConflictException(details=conflict_details) from exc
        except OperationalError as exc:
            if self._is_lock_contention_error(exc):
                raise BookingConflictException(details=conflict_details) from exc
            raise
        except RepositoryException as exc:
            cause = exc.__cause__
            if isinstance(cause, OperationalError) and self._is_lock_contention_error(cause):
                raise BookingConflictException(details=conflict_details) from exc
            raise

        self.logger.info(
            "Booking %s created for tutor %s at %s (pay by %s)",
            booking.id,
            tutor_id,
            format_local(instant, self.tz_name),
            format_local(booking.payment_expires_at, self.tz_name),
        )
        return booking

    # Transitions

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(
        self,
        booking_id: str,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Mark a reservation as paid.

        Confirming an already CONFIRMED booking is a no-op. A payment that
        arrives after the deadline does not revive the booking.

        Raises:
            NotFoundException: Unknown booking
            StaleTransitionException: Booking cancelled, completed or overdue
        """
        now = ensure_utc(now) if now else utc_now()
        booking = self._get_or_404(booking_id)

        if booking.status == BookingStatus.CONFIRMED:
            self.logger.debug("Booking %s already confirmed", booking_id)
            return booking
        self._require_transition(
            booking, BookingStatus.CONFIRMED, payment_reference=payment_reference
        )

        with self.transaction():
            applied = self.repository.transition(
                booking_id,
                BookingStatus.AWAITING_PAYMENT,
                BookingStatus.CONFIRMED,
                deadline_after=now,
                confirmed_at=now,
                payment_reference=payment_reference or booking.payment_reference,
            )

        booking = self._get_or_404(booking_id)
        if applied:
            self.logger.info("Booking %s confirmed", booking_id)
            return booking
        if booking.status == BookingStatus.CONFIRMED:
            return booking

        raise self._stale(
            booking,
            BookingStatus.CONFIRMED,
            payment_reference=payment_reference,
            late_payment=booking.is_payment_overdue(now),
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        reason: Union[CancellationReason, str] = CancellationReason.CUSTOMER_REQUEST,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Cancel a reservation or a confirmed booking.

        Cancelling an already cancelled booking returns it unchanged.

        Raises:
            NotFoundException: Unknown booking
            StaleTransitionException: Booking already completed
            ValidationException: Unknown cancellation reason
        """
        now = ensure_utc(now) if now else utc_now()
        try:
            reason = CancellationReason(reason)
        except ValueError as exc:
            raise ValidationException(
                f"Unknown cancellation reason: {reason}",
                code="INVALID_CANCELLATION_REASON",
                details={"reason": str(reason)},
            ) from exc

        # A lost CAS means someone else moved the booking; re-read once.
        for _ in range(2):
            booking = self._get_or_404(booking_id)
            if booking.status == BookingStatus.CANCELLED:
                return booking
            self._require_transition(booking, BookingStatus.CANCELLED)

            with self.transaction():
                applied = self.repository.transition(
                    booking_id,
                    booking.status_enum,
                    BookingStatus.CANCELLED,
                    cancelled_at=now,
                    cancellation_reason=reason.value,
                )
            if applied:
                self.logger.info("Booking %s cancelled (%s)", booking_id, reason.value)
                return self._get_or_404(booking_id)

        booking = self._get_or_404(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking
        raise self._stale(booking, BookingStatus.CANCELLED)

    @BaseService.measure_operation("fail_payment")
    def fail_payment(
        self,
        booking_id: str,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Release a reservation whose payment failed."""
        now = ensure_utc(now) if now else utc_now()
        booking = self._get_or_404(booking_id)

        if booking.status == BookingStatus.CANCELLED:
            return booking
        # Only an unpaid hold can fail; a paid booking is cancelled instead
        if booking.status != BookingStatus.AWAITING_PAYMENT:
            raise self._stale(booking, BookingStatus.CANCELLED, payment_reference=payment_reference)

        fields: Dict[str, Any] = {
            "cancelled_at": now,
            "cancellation_reason": CancellationReason.PAYMENT_FAILED.value,
        }
        if payment_reference:
            fields["payment_reference"] = payment_reference
        with self.transaction():
            applied = self.repository.transition(
                booking_id, BookingStatus.AWAITING_PAYMENT, BookingStatus.CANCELLED, **fields
            )

        booking = self._get_or_404(booking_id)
        if applied:
            self.logger.info("Booking %s released after failed payment", booking_id)
            return booking
        if booking.status == BookingStatus.CANCELLED:
            return booking
        raise self._stale(booking, BookingStatus.CANCELLED, payment_reference=payment_reference)

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        """Mark a confirmed booking as having taken place."""
        now = ensure_utc(now) if now else utc_now()
        booking = self._get_or_404(booking_id)
        self._require_transition(booking, BookingStatus.COMPLETED)

        with self.transaction():
            applied = self.repository.transition(
                booking_id, BookingStatus.CONFIRMED, BookingStatus.COMPLETED, completed_at=now
            )
        booking = self._get_or_404(booking_id)
        if not applied:
            raise self._stale(booking, BookingStatus.COMPLETED)
        self.logger.info("Booking %s completed", booking_id)
        return booking

    def expire_booking(self, booking_id: str, now: Optional[datetime] = None) -> bool:
        """
        Cancel a reservation whose payment deadline has passed.

        Returns True only if this call performed the expiry. Losing to a
        concurrent confirmation or cancellation is logged, not raised.
        """
        now = ensure_utc(now) if now else utc_now()
        with self.transaction():
            applied = self.repository.transition(
                booking_id,
                BookingStatus.AWAITING_PAYMENT,
                BookingStatus.CANCELLED,
                deadline_not_after=now,
                cancelled_at=now,
                cancellation_reason=CancellationReason.EXPIRED.value,
            )
        if applied:
            self.logger.info("Booking %s expired (payment window lapsed)", booking_id)
            return True

        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            self.logger.warning("Expiry skipped: booking %s no longer exists", booking_id)
        elif booking.status == BookingStatus.AWAITING_PAYMENT:
            self.logger.debug("Expiry skipped: booking %s not yet due", booking_id)
        else:
            self.logger.warning(
                "Expiry skipped: booking %s is already %s",
                booking_id,
                booking.status,
                extra={"booking_id": booking_id, "current_status": booking.status},
            )
        return False

    @BaseService.measure_operation("expire_overdue_bookings")
    def expire_overdue_bookings(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> ExpirySweepResult:
        """Expire every overdue reservation; one bad record does not stop the sweep."""
        now = ensure_utc(now) if now else utc_now()
        result = ExpirySweepResult()

        overdue_ids = [
            str(booking.id)
            for booking in self.repository.find_expired_awaiting_payment(
                now, limit or self.settings.cleanup_batch_size
            )
        ]
        result.found = len(overdue_ids)

        for booking_id in overdue_ids:
            try:
                if self.expire_booking(booking_id, now):
                    result.expired += 1
                else:
                    result.skipped += 1
            except Exception as exc:
                result.failed += 1
                self.logger.error(
                    "Failed to expire booking %s: %s", booking_id, exc, exc_info=True
                )

        if result.found:
            self.logger.info("Expired reservation sweep: %s", result.to_dict())
        return result

    # Queries

    def get_booking(self, booking_id: str) -> Booking:
        return self._get_or_404(booking_id)

    def get_bookings_for_user(
        self,
        user_id: str,
        role: str = "customer",
        status: Optional[BookingStatus] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Booking]:
        """Bookings where ``user_id`` is the customer (default) or the tutor."""
        if role == "tutor":
            return self.repository.list_for_tutor(user_id, status=status, limit=limit)
        if role != "customer":
            raise ValidationException(
                f"Unknown booking role: {role}", code="INVALID_ROLE", details={"role": role}
            )
        return self.repository.list_for_customer(user_id, status=status, limit=limit)
