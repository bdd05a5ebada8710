# backend/tutorbook/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for Tutorbook.
"""

from datetime import timedelta
from typing import Any

EXPIRE_STALE_BOOKINGS_TASK = "tutorbook.tasks.booking_tasks.expire_stale_bookings"


def get_beat_schedule(interval_seconds: int = 60) -> dict[str, dict[str, Any]]:
    """
    Periodic tasks keyed by schedule entry name.

    Args:
        interval_seconds: Seconds between expired reservation sweeps

    Returns:
        Mapping of entry name to Celery beat configuration dict
    """
    return {
        "expire-stale-bookings": {
            "task": EXPIRE_STALE_BOOKINGS_TASK,
            "schedule": timedelta(seconds=max(1, int(interval_seconds))),
            "options": {
                "queue": "bookings",
                # A missed sweep is superseded by the next one
                "expires": max(1, int(interval_seconds)),
            },
        },
    }
