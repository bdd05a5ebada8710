# backend/tutorbook/repositories/slot_template_repository.py
"""
Slot Template Repository for Tutorbook

Data access for tutor-published slot templates. Templates hold no booking
state, so nothing here ever looks at the bookings table.
"""

from datetime import date, time
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.slot_template import SlotTemplate
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SlotTemplateRepository(BaseRepository[SlotTemplate]):
    """Repository for slot template operations."""

    def __init__(self, db: Session):
        super().__init__(db, SlotTemplate)
        self.logger = logging.getLogger(__name__)

    def tutor_has_slots(self, tutor_id: str) -> bool:
        """Whether the tutor has ever published a slot (used as tutor existence)."""
        return self.exists(tutor_id=tutor_id)

    def get_slots_for_date(self, tutor_id: str, slot_date: date) -> List[SlotTemplate]:
        try:
            return (
                self.db.query(SlotTemplate)
                .filter(SlotTemplate.tutor_id == tutor_id, SlotTemplate.slot_date == slot_date)
                .order_by(SlotTemplate.start_time.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slots for {tutor_id} on {slot_date}: {str(e)}")
            raise RepositoryException(f"Failed to get slots: {str(e)}")

    def get_slots_in_range(
        self, tutor_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> List[SlotTemplate]:
        """Slots for a tutor between two dates inclusive, ordered by date then start."""
        try:
            query = self.db.query(SlotTemplate).filter(SlotTemplate.tutor_id == tutor_id)
            if date_from is not None:
                query = query.filter(SlotTemplate.slot_date >= date_from)
            if date_to is not None:
                query = query.filter(SlotTemplate.slot_date <= date_to)
            return query.order_by(SlotTemplate.slot_date.asc(), SlotTemplate.start_time.asc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slot range for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get slot range: {str(e)}")

    def delete_slots(self, tutor_id: str, slot_date: date, start_times: Iterable[time]) -> int:
        """Delete the given starts on one date. Returns rows removed."""
        starts = list(start_times)
        if not starts:
            return 0
        try:
            deleted = (
                self.db.query(SlotTemplate)
                .filter(
                    SlotTemplate.tutor_id == tutor_id,
                    SlotTemplate.slot_date == slot_date,
                    SlotTemplate.start_time.in_(starts),
                )
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting slots for {tutor_id} on {slot_date}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to delete slots: {str(e)}")

    def add_slots(
        self, tutor_id: str, slot_date: date, windows: Iterable[tuple[time, time]]
    ) -> List[SlotTemplate]:
        """Insert one template per (start, end) window."""
        try:
            created = [
                SlotTemplate(tutor_id=tutor_id, slot_date=slot_date, start_time=start, end_time=end)
                for start, end in windows
            ]
            self.db.add_all(created)
            self.db.flush()
            return created
        except SQLAlchemyError as e:
            self.logger.error(f"Error adding slots for {tutor_id} on {slot_date}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to add slots: {str(e)}")
