# backend/tutorbook/routes/health.py
"""
Health check endpoint, including the cleanup scheduler's last sweep.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from .. import __version__
from ..core.config import settings
from ..schemas.health import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Liveness plus cleanup scheduler status (``None`` when it is disabled)."""
    scheduler = getattr(request.app.state, "cleanup_scheduler", None)
    return HealthResponse(
        status="healthy",
        service=f"{settings.brand_name.lower()}-api",
        version=__version__,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
        scheduler=scheduler.status() if scheduler is not None else None,
    )
