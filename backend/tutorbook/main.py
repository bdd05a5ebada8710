# backend/tutorbook/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .core.constants import BRAND_NAME
from .database import SessionLocal, init_db
from .errors import register_error_handlers
from .routes import availability, bookings, health, payment_webhooks
from .services.booking_cleanup import BookingCleanupScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info("Settings: %s", settings.as_log_dict())

    init_db()

    scheduler: BookingCleanupScheduler | None = None
    if settings.scheduler_enabled and not settings.is_testing:
        scheduler = BookingCleanupScheduler(
            SessionLocal,
            interval_seconds=settings.cleanup_interval_seconds,
            batch_size=settings.cleanup_batch_size,
        )
        scheduler.start()
    else:
        logger.info("Booking cleanup scheduler disabled")
    app.state.cleanup_scheduler = scheduler

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    if scheduler is not None:
        scheduler.stop(timeout=10)
    app.state.cleanup_scheduler = None


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Tutor availability, reservations and payment expiry",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
app.state.cleanup_scheduler = None

# Register unified error envelope handlers
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(availability.router, prefix="/tutors")
api_v1.include_router(bookings.router, prefix="/bookings")

app.include_router(api_v1)
app.include_router(payment_webhooks.router)
app.include_router(health.router)
