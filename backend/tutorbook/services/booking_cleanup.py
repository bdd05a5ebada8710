# backend/tutorbook/services/booking_cleanup.py
"""
In-process cleanup scheduler for expired reservations.

Runs a daemon thread that sweeps the booking ledger for AWAITING_PAYMENT
bookings past their payment deadline and expires them through
BookingService. Each tick uses its own database session. A failing tick is
logged and the loop carries on with the next one.

Multi-process deployments can use the Celery beat task in
``tutorbook.tasks.booking_tasks`` instead.
"""

from datetime import datetime
import logging
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.timezone_utils import utc_now
from .booking_service import BookingService, ExpirySweepResult

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]
BookingServiceFactory = Callable[[Session], BookingService]


class BookingCleanupScheduler:
    """Owns the sweeper thread; ``start`` and ``stop`` are idempotent."""

    def __init__(
        self,
        session_factory: SessionFactory,
        interval_seconds: int = 60,
        booking_service_factory: BookingServiceFactory = BookingService,
        batch_size: Optional[int] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.booking_service_factory = booking_service_factory
        self.batch_size = batch_size

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_run_at: Optional[datetime] = None
        self._last_result: Optional[ExpirySweepResult] = None
        self._last_error: Optional[str] = None
        self._runs = 0

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                logger.debug("Booking cleanup scheduler already running")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop, name="booking-cleanup", daemon=True
            )
            self._thread.start()
        logger.info(
            "Booking cleanup scheduler started (every %ss)", self.interval_seconds
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._thread = None
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Booking cleanup scheduler stopped")

    def _run_loop(self) -> None:
        # First sweep runs immediately, then one per interval
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(self.interval_seconds):
                break

    def run_once(self, now: Optional[datetime] = None) -> Optional[ExpirySweepResult]:
        """
        Run one sweep with a fresh session.

        Returns the sweep counts, or None when the tick itself failed.
        """
        started_at = utc_now()
        db: Optional[Session] = None
        try:
            db = self.session_factory()
            service = self.booking_service_factory(db)
            result = service.expire_overdue_bookings(now=now, limit=self.batch_size)
            self._last_error = None
            return self._record(started_at, result)
        except Exception as exc:
            if db is not None:
                db.rollback()
            self._last_error = str(exc)
            self._record(started_at, None)
            logger.error("Booking cleanup tick failed: %s", exc, exc_info=True)
            return None
        finally:
            if db is not None:
                db.close()

    def _record(
        self, started_at: datetime, result: Optional[ExpirySweepResult]
    ) -> Optional[ExpirySweepResult]:
        with self._lock:
            self._runs += 1
            self._last_run_at = started_at
            self._last_result = result
        if result is not None and result.found:
            logger.debug("Booking cleanup tick: %s", result.to_dict())
        return result

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "running": self.is_running,
                "interval_seconds": self.interval_seconds,
                "runs": self._runs,
                "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
                "last_result": self._last_result.to_dict() if self._last_result else None,
                "last_error": self._last_error,
            }
