"""
Races between real writers on a file-backed SQLite database.

Each worker uses its own session and connection; the partial unique index
and the conditional status updates must pick exactly one winner.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timedelta, timezone
import threading
from typing import Callable, List

import pytest

from tutorbook.core.exceptions import BookingConflictException, StaleTransitionException
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.models.slot_template import SlotTemplate
from tutorbook.services.booking_service import BookingService

TUTOR_ID = "tutor-anna"
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
WORKERS = 8


def _run_concurrently(task: Callable[[int], object], workers: int = WORKERS) -> List[object]:
    """Start ``workers`` calls of ``task`` as close together as possible."""
    barrier = threading.Barrier(workers)

    def _worker(index: int) -> object:
        barrier.wait()
        try:
            return task(index)
        except Exception as exc:  # collected and asserted on by the caller
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_worker, range(workers)))


@pytest.fixture
def race_db(file_session_factory):
    session = file_session_factory()
    session.add(
        SlotTemplate(
            tutor_id=TUTOR_ID,
            slot_date=date(2025, 3, 10),
            start_time=time(14, 0),
            end_time=time(15, 0),
        )
    )
    session.commit()
    session.close()
    return file_session_factory


def test_concurrent_requests_for_one_instant_have_one_winner(race_db) -> None:
    def _book(index: int) -> object:
        session = race_db()
        try:
            return BookingService(session).create_booking(
                TUTOR_ID, f"customer-{index}", "2025-03-10T14:30:00", now=NOW
            )
        finally:
            session.close()

    outcomes = _run_concurrently(_book)

    winners = [o for o in outcomes if isinstance(o, Booking)]
    losers = [o for o in outcomes if isinstance(o, BookingConflictException)]
    assert len(winners) == 1, outcomes
    assert len(losers) == WORKERS - 1, outcomes

    check = race_db()
    try:
        active = (
            check.query(Booking)
            .filter(Booking.tutor_id == TUTOR_ID, Booking.status == BookingStatus.AWAITING_PAYMENT.value)
            .all()
        )
        assert len(active) == 1
        assert active[0].customer_id == winners[0].customer_id
    finally:
        check.close()


def test_concurrent_requests_for_one_slot_at_different_minutes_have_one_winner(race_db) -> None:
    def _book(index: int) -> object:
        session = race_db()
        try:
            return BookingService(session).create_booking(
                TUTOR_ID, f"customer-{index}", f"2025-03-10T14:{index * 7:02d}:00", now=NOW
            )
        finally:
            session.close()

    outcomes = _run_concurrently(_book)

    winners = [o for o in outcomes if isinstance(o, Booking)]
    assert len(winners) == 1, outcomes
    assert all(
        isinstance(o, BookingConflictException) for o in outcomes if not isinstance(o, Booking)
    ), outcomes

    check = race_db()
    try:
        active = check.query(Booking).filter(Booking.tutor_id == TUTOR_ID).all()
        assert len(active) == 1
        assert active[0].slot_start_at == datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)
    finally:
        check.close()


def test_payment_confirmation_races_expiry(race_db) -> None:
    session = race_db()
    try:
        booking = BookingService(session).create_booking(
            TUTOR_ID, "customer-bo", "2025-03-10T14:30:00", now=NOW
        )
        booking_id = booking.id
    finally:
        session.close()

    # Both actors act exactly at the deadline edge: the sweep sees it as due,
    # the late payment must lose regardless of ordering.
    at_deadline = NOW + timedelta(minutes=15)

    def _act(index: int) -> object:
        db = race_db()
        try:
            service = BookingService(db)
            if index % 2 == 0:
                return service.expire_booking(booking_id, now=at_deadline)
            return service.confirm_booking(booking_id, now=at_deadline)
        finally:
            db.close()

    outcomes = _run_concurrently(_act, workers=4)

    expired = [o for o in outcomes if o is True]
    assert len(expired) == 1, outcomes
    assert all(
        o is False or isinstance(o, StaleTransitionException) for o in outcomes if o is not True
    ), outcomes

    check = race_db()
    try:
        final = check.get(Booking, booking_id)
        assert final.status == BookingStatus.CANCELLED
    finally:
        check.close()


def test_confirmation_before_deadline_beats_sweep(race_db) -> None:
    session = race_db()
    try:
        booking_id = BookingService(session).create_booking(
            TUTOR_ID, "customer-bo", "2025-03-10T14:30:00", now=NOW
        ).id
    finally:
        session.close()

    def _act(index: int) -> object:
        db = race_db()
        try:
            service = BookingService(db)
            if index % 2 == 0:
                return service.expire_overdue_bookings(now=NOW + timedelta(minutes=5)).expired
            return service.confirm_booking(booking_id, now=NOW + timedelta(minutes=5)).status
        finally:
            db.close()

    outcomes = _run_concurrently(_act, workers=4)

    assert all(o in (0, BookingStatus.CONFIRMED.value) for o in outcomes), outcomes
    check = race_db()
    try:
        assert check.get(Booking, booking_id).status == BookingStatus.CONFIRMED
    finally:
        check.close()
