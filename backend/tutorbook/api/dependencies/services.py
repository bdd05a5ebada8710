# backend/tutorbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets service instances bound to its own database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.payment_event_service import PaymentEventService
from ...services.slot_catalog_service import SlotCatalogService
from .database import get_db


def get_slot_catalog_service(db: Session = Depends(get_db)) -> SlotCatalogService:
    return SlotCatalogService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Get booking service instance for dependency injection."""
    return BookingService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_payment_event_service(
    booking_service: BookingService = Depends(get_booking_service),
) -> PaymentEventService:
    return PaymentEventService(booking_service.db, booking_service=booking_service)
