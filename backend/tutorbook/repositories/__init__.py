# backend/tutorbook/repositories/__init__.py
"""
Repository layer for Tutorbook.

Key Components:
- BaseRepository: generic CRUD plus transaction handling
- RepositoryFactory: factory for creating repository instances
- BookingRepository: booking ledger with conditional status transitions
- SlotTemplateRepository: tutor-published slot templates

Usage:
    from tutorbook.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
    booking = repository.get_by_id(booking_id)
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .slot_template_repository import SlotTemplateRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
    "SlotTemplateRepository",
]
