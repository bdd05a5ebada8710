# backend/tutorbook/tasks/booking_tasks.py
"""
Celery tasks for the booking lifecycle.

``expire_stale_bookings`` performs the same sweep as the in-process
BookingCleanupScheduler, for deployments running several API processes.
"""

import logging
from typing import Any, Callable, Dict, ParamSpec, Protocol, TypeVar, cast

from celery.result import AsyncResult

from tutorbook.core.config import settings
from tutorbook.database import SessionLocal
from tutorbook.services.booking_cleanup import BookingCleanupScheduler
from tutorbook.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R", covariant=True)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    delay: Callable[..., AsyncResult]
    apply_async: Callable[..., AsyncResult]


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""

    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


@typed_task(bind=True, name="tutorbook.tasks.booking_tasks.expire_stale_bookings")
def expire_stale_bookings(self: Any) -> Dict[str, Any]:
    """
    Expire AWAITING_PAYMENT bookings whose payment window has lapsed.

    Returns:
        Sweep counts (found / expired / skipped / failed), or an error marker
    """
    sweeper = BookingCleanupScheduler(
        SessionLocal,
        interval_seconds=settings.cleanup_interval_seconds,
        batch_size=settings.cleanup_batch_size,
    )
    result = sweeper.run_once()
    if result is None:
        return {"status": "error", "error": sweeper.status()["last_error"]}
    return {"status": "ok", **result.to_dict()}
