from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

from tutorbook.core.timezone_utils import utc_now
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.tasks import booking_tasks
from tutorbook.tasks.beat_schedule import EXPIRE_STALE_BOOKINGS_TASK, get_beat_schedule
from tutorbook.tasks.celery_app import celery_app


class TestBeatSchedule:
    def test_sweep_is_scheduled_every_interval(self) -> None:
        entry = get_beat_schedule(30)["expire-stale-bookings"]

        assert entry["task"] == EXPIRE_STALE_BOOKINGS_TASK
        assert entry["schedule"] == timedelta(seconds=30)
        assert entry["options"]["queue"] == "bookings"

    def test_task_is_registered(self) -> None:
        assert EXPIRE_STALE_BOOKINGS_TASK in celery_app.tasks
        assert "expire-stale-bookings" in celery_app.conf.beat_schedule


class TestExpireStaleBookingsTask:
    def test_expires_overdue_bookings(self, session_factory, booking_factory) -> None:
        now = utc_now()
        overdue = booking_factory(
            created_at=now - timedelta(minutes=30),
            payment_expires_at=now - timedelta(minutes=15),
        )

        with patch.object(booking_tasks, "SessionLocal", session_factory):
            result = booking_tasks.expire_stale_bookings()

        assert result == {"status": "ok", "found": 1, "expired": 1, "skipped": 0, "failed": 0}
        check = session_factory()
        try:
            assert check.get(Booking, overdue.id).status == BookingStatus.CANCELLED
        finally:
            check.close()

    def test_reports_failed_tick(self) -> None:
        def _broken_session():
            raise RuntimeError("database unavailable")

        with patch.object(booking_tasks, "SessionLocal", _broken_session):
            result = booking_tasks.expire_stale_bookings()

        assert result == {"status": "error", "error": "database unavailable"}
