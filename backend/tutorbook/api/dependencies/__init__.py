# backend/tutorbook/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_principal, get_identity_provider
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_service,
    get_payment_event_service,
    get_slot_catalog_service,
)

__all__ = [
    # Auth
    "get_current_principal",
    "get_identity_provider",
    # Database
    "get_db",
    # Services
    "get_availability_service",
    "get_booking_service",
    "get_payment_event_service",
    "get_slot_catalog_service",
]
