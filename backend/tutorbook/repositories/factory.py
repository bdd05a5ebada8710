# backend/tutorbook/repositories/factory.py
"""
Repository Factory for Tutorbook

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .slot_template_repository import SlotTemplateRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking ledger operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_slot_template_repository(db: Session) -> "SlotTemplateRepository":
        """Create repository for slot template operations."""
        from .slot_template_repository import SlotTemplateRepository

        return SlotTemplateRepository(db)
