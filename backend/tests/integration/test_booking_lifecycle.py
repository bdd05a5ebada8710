"""
End-to-end booking lifecycle against a real schema, with a frozen clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from tutorbook.core.exceptions import (
    BookingConflictException,
    NotFoundException,
    StaleTransitionException,
    ValidationException,
)
from tutorbook.models.booking import BookingStatus, CancellationReason
from tutorbook.services.availability_service import AvailabilityService
from tutorbook.services.booking_service import BookingService

TUTOR_ID = "tutor-anna"
CUSTOMER_ID = "customer-bo"
OTHER_CUSTOMER_ID = "customer-clara"
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
DAY = date(2025, 3, 10)


@pytest.fixture
def service(db) -> BookingService:
    return BookingService(db)


@pytest.fixture
def scenario_slot(slot_factory):
    return slot_factory(TUTOR_ID, DAY, "14:00", "15:00")


@pytest.mark.usefixtures("scenario_slot")
class TestCopenhagenScenario:
    def test_wall_clock_request_is_stored_as_utc(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        assert booking.selected_at == datetime(2025, 3, 10, 13, 30, tzinfo=timezone.utc)
        assert booking.status == BookingStatus.AWAITING_PAYMENT
        assert booking.payment_expires_at == NOW + timedelta(minutes=15)
        assert booking.duration_minutes == 60
        assert booking.created_at == NOW

    def test_booked_slot_disappears_from_availability(self, db, service: BookingService) -> None:
        availability = AvailabilityService(db)
        before = availability.get_availability(TUTOR_ID, DAY, DAY, now=NOW)
        assert [d.to_dict() for d in before] == [{"date": "2025-03-10", "start_times": ["14:00"]}]

        service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        assert availability.get_availability(TUTOR_ID, DAY, DAY, now=NOW) == []

    def test_second_customer_gets_conflict(self, service: BookingService) -> None:
        service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        with pytest.raises(BookingConflictException) as exc_info:
            service.create_booking(TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        assert exc_info.value.message == (
            "This time slot was just booked by someone else. Please choose another time."
        )

    def test_same_instant_with_explicit_offset_conflicts(self, service: BookingService) -> None:
        service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        with pytest.raises(BookingConflictException):
            service.create_booking(TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T13:30:00Z", now=NOW)

    def test_slot_boundaries_are_bookable(self, service: BookingService) -> None:
        at_end = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T15:00:00", now=NOW)
        assert at_end.selected_at == datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)
        assert at_end.slot_start_at == datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)
        service.cancel_booking(at_end.id, now=NOW)

        at_start = service.create_booking(
            TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T14:00:00", now=NOW
        )
        assert at_start.selected_at == at_start.slot_start_at == at_end.slot_start_at

    def test_other_instant_in_held_slot_conflicts(self, service: BookingService) -> None:
        held = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        with pytest.raises(BookingConflictException) as exc_info:
            service.create_booking(TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T14:00:00", now=NOW)

        assert exc_info.value.details["slot_start_at"] == held.slot_start_at.isoformat()

    def test_time_outside_slot_is_not_found(self, service: BookingService) -> None:
        with pytest.raises(NotFoundException) as exc_info:
            service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T15:01:00", now=NOW)
        assert exc_info.value.code == "SLOT_NOT_FOUND"


@pytest.mark.usefixtures("scenario_slot")
class TestPaymentDeadline:
    def test_confirm_before_deadline(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        confirmed = service.confirm_booking(
            booking.id, payment_reference="pi_123", now=NOW + timedelta(minutes=14)
        )

        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.payment_expires_at is None
        assert confirmed.payment_reference == "pi_123"
        assert confirmed.confirmed_at == NOW + timedelta(minutes=14)

    def test_confirm_twice_is_idempotent(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        first = service.confirm_booking(booking.id, now=NOW + timedelta(minutes=1))
        second = service.confirm_booking(booking.id, now=NOW + timedelta(minutes=2))

        assert first.confirmed_at == second.confirmed_at

    def test_payment_at_deadline_is_too_late(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        with pytest.raises(StaleTransitionException):
            service.confirm_booking(booking.id, now=NOW + timedelta(minutes=15))

        assert service.get_booking(booking.id).status == BookingStatus.AWAITING_PAYMENT

    def test_late_payment_after_expiry_does_not_revive(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        later = NOW + timedelta(minutes=16)
        assert service.expire_overdue_bookings(now=later).expired == 1

        with pytest.raises(StaleTransitionException) as exc_info:
            service.confirm_booking(booking.id, now=later)

        assert exc_info.value.current_status == "CANCELLED"
        expired = service.get_booking(booking.id)
        assert expired.cancellation_reason == CancellationReason.EXPIRED
        assert expired.payment_expires_at is None

    def test_lapsed_hold_is_released_on_rebooking(self, service: BookingService) -> None:
        stale = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        later = NOW + timedelta(minutes=20)

        fresh = service.create_booking(TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T14:30:00", now=later)

        assert fresh.customer_id == OTHER_CUSTOMER_ID
        released = service.get_booking(stale.id)
        assert released.status == BookingStatus.CANCELLED
        assert released.cancellation_reason == CancellationReason.EXPIRED

    def test_sweep_before_deadline_expires_nothing(self, service: BookingService) -> None:
        service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        result = service.expire_overdue_bookings(now=NOW + timedelta(minutes=14))

        assert result.to_dict() == {"found": 0, "expired": 0, "skipped": 0, "failed": 0}

    def test_failed_payment_releases_the_slot(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        failed = service.fail_payment(booking.id, payment_reference="pi_9", now=NOW)

        assert failed.status == BookingStatus.CANCELLED
        assert failed.cancellation_reason == CancellationReason.PAYMENT_FAILED
        assert service.fail_payment(booking.id, now=NOW).status == BookingStatus.CANCELLED
        service.create_booking(TUTOR_ID, OTHER_CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)


@pytest.mark.usefixtures("scenario_slot")
class TestCancellation:
    def test_cancel_is_idempotent(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        first = service.cancel_booking(booking.id, now=NOW + timedelta(minutes=1))
        second = service.cancel_booking(
            booking.id, CancellationReason.TUTOR_REQUEST, now=NOW + timedelta(minutes=2)
        )

        assert first.status == second.status == BookingStatus.CANCELLED
        assert second.cancellation_reason == CancellationReason.CUSTOMER_REQUEST
        assert second.cancelled_at == NOW + timedelta(minutes=1)

    def test_cancel_confirmed_booking_frees_slot(self, db, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        service.confirm_booking(booking.id, now=NOW)

        service.cancel_booking(booking.id, CancellationReason.TUTOR_REQUEST, now=NOW)

        days = AvailabilityService(db).get_availability(TUTOR_ID, DAY, DAY, now=NOW)
        assert [d.to_dict()["start_times"] for d in days] == [["14:00"]]

    def test_completed_booking_cannot_be_cancelled(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        service.confirm_booking(booking.id, now=NOW)
        completed = service.complete_booking(booking.id, now=NOW + timedelta(days=10))
        assert completed.status == BookingStatus.COMPLETED

        with pytest.raises(StaleTransitionException):
            service.cancel_booking(booking.id, now=NOW + timedelta(days=10))

    def test_cannot_complete_unpaid_booking(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)
        with pytest.raises(StaleTransitionException):
            service.complete_booking(booking.id, now=NOW)

    def test_unknown_booking(self, service: BookingService) -> None:
        with pytest.raises(NotFoundException):
            service.cancel_booking("01JNMISSING000000000000000", now=NOW)

    def test_unknown_cancellation_reason_is_rejected(self, service: BookingService) -> None:
        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-03-10T14:30:00", now=NOW)

        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(booking.id, "CHANGED_MY_MIND", now=NOW)

        assert exc_info.value.code == "INVALID_CANCELLATION_REASON"
        assert service.get_booking(booking.id).status == BookingStatus.AWAITING_PAYMENT


class TestDaylightSaving:
    def test_summer_slot_uses_summer_offset(self, slot_factory, service: BookingService) -> None:
        slot_factory(TUTOR_ID, date(2025, 7, 1), "10:00", "11:00")

        booking = service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-07-01T10:00:00", now=NOW)

        assert booking.selected_at == datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)
        assert booking.slot_start_at == booking.selected_at

    def test_listing_bookings_for_both_roles(self, slot_factory, service: BookingService) -> None:
        slot_factory(TUTOR_ID, date(2025, 7, 1), "10:00", "11:00")
        service.create_booking(TUTOR_ID, CUSTOMER_ID, "2025-07-01T10:00:00", now=NOW)

        assert len(service.get_bookings_for_user(CUSTOMER_ID)) == 1
        assert len(service.get_bookings_for_user(TUTOR_ID, role="tutor")) == 1
        assert service.get_bookings_for_user(OTHER_CUSTOMER_ID) == []
