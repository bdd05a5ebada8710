# backend/tutorbook/models/slot_template.py
"""
Slot template model for the Tutorbook booking core.

A slot template says "tutor X is potentially bookable on date D from S to E".
Times are wall-clock values in the platform home timezone. Templates carry no
booking state: whether a slot is free is always derived from the booking
ledger at query time.
"""

from datetime import date, time
import logging
from typing import Any, cast

from sqlalchemy import CheckConstraint, Column, Date, Index, String, Time, UniqueConstraint
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import time_in_range
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class SlotTemplate(Base):
    """Tutor-published availability window for one calendar date."""

    __tablename__ = "slot_templates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(64), nullable=False)
    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_slot_templates_time_order"),
        UniqueConstraint(
            "tutor_id", "slot_date", "start_time", name="uq_slot_templates_tutor_date_start"
        ),
        Index("ix_slot_templates_tutor_date", "tutor_id", "slot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<SlotTemplate {self.id}: tutor={self.tutor_id}, date={self.slot_date}, "
            f"{self.start_time}-{self.end_time}>"
        )

    def contains(self, selected: time) -> bool:
        """Inclusive wall-clock match against this slot."""
        return time_in_range(selected, cast(time, self.start_time), cast(time, self.end_time))

    def to_dict(self) -> dict[str, Any]:
        slot_date = cast(date, self.slot_date)
        return {
            "id": self.id,
            "tutor_id": self.tutor_id,
            "date": slot_date.isoformat() if slot_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
        }
