"""
Health check response schema.
"""

from typing import Any, Dict, Optional

from .base import StandardizedModel


class HealthResponse(StandardizedModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: str
    scheduler: Optional[Dict[str, Any]] = None
