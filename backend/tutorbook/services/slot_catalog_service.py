# backend/tutorbook/services/slot_catalog_service.py
"""
Slot Catalog Service for Tutorbook

Read access to tutor-published slot templates for the booking flow, plus the
day-level publishing operation used by tutor tooling. Publishing never looks
at or modifies bookings: a booking made against a slot that is later removed
stays valid.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from ..core.constants import DEFAULT_SLOT_MINUTES, MAX_SLOTS_PER_DAY, MIN_SESSION_DURATION
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import time_in_half_open_range
from ..models.slot_template import SlotTemplate
from ..repositories.factory import RepositoryFactory
from ..repositories.slot_template_repository import SlotTemplateRepository
from .base import BaseService

logger = logging.getLogger(__name__)

TimeInput = Union[str, time]


def _parse_start(value: TimeInput) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError) as exc:
        raise ValidationException(
            f"Invalid slot start time: {value!r} (expected HH:MM)",
            code="INVALID_SLOT_TIME",
            details={"value": str(value)},
        ) from exc


class SlotCatalogService(BaseService):
    """Service for reading and publishing slot templates."""

    def __init__(self, db: Session, repository: Optional[SlotTemplateRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_slot_template_repository(db)

    def tutor_exists(self, tutor_id: str) -> bool:
        return self.repository.tutor_has_slots(tutor_id)

    @BaseService.measure_operation("list_slots")
    def list_slots(
        self, tutor_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> List[SlotTemplate]:
        """Slots for a tutor, ordered by date then start time."""
        return self.repository.get_slots_in_range(tutor_id, date_from, date_to)

    def list_slots_for_date(self, tutor_id: str, slot_date: date) -> List[SlotTemplate]:
        return self.repository.get_slots_for_date(tutor_id, slot_date)

    def find_matching_slot(
        self, tutor_id: str, slot_date: date, selected: time
    ) -> Optional[SlotTemplate]:
        """
        Slot on ``slot_date`` that a request at ``selected`` books.

        Boundaries are inclusive, but a slot whose half-open window
        ``[start, end)`` contains ``selected`` wins: 12:00 books the 12:00-13:00
        slot when one exists and falls back to 11:00-12:00 otherwise.
        """
        slots = self.repository.get_slots_for_date(tutor_id, slot_date)
        for slot in slots:
            if time_in_half_open_range(selected, slot.start_time, slot.end_time):
                return slot
        return next((slot for slot in slots if slot.contains(selected)), None)

    @staticmethod
    def _build_windows(
        start_times: Sequence[TimeInput], slot_minutes: int
    ) -> List[Tuple[time, time]]:
        if slot_minutes < MIN_SESSION_DURATION:
            raise ValidationException(
                f"Slot length must be at least {MIN_SESSION_DURATION} minutes",
                code="INVALID_SLOT_LENGTH",
                details={"slot_minutes": slot_minutes},
            )
        if len(start_times) > MAX_SLOTS_PER_DAY:
            raise ValidationException(
                f"At most {MAX_SLOTS_PER_DAY} slots can be published per day",
                code="TOO_MANY_SLOTS",
                details={"count": len(start_times)},
            )

        starts = sorted(_parse_start(value) for value in start_times)
        windows: List[Tuple[time, time]] = []
        for start in starts:
            start_dt = datetime.combine(date.min, start)
            end_dt = start_dt + timedelta(minutes=slot_minutes)
            if end_dt.date() != start_dt.date():
                raise ValidationException(
                    f"Slot starting at {start:%H:%M} would cross midnight",
                    code="SLOT_CROSSES_MIDNIGHT",
                    details={"start_time": start.strftime("%H:%M")},
                )
            if windows and windows[-1][0] == start:
                raise ValidationException(
                    f"Duplicate slot start time {start:%H:%M}",
                    code="DUPLICATE_SLOT",
                    details={"start_time": start.strftime("%H:%M")},
                )
            if windows and start < windows[-1][1]:
                raise ValidationException(
                    f"Slot starting at {start:%H:%M} overlaps the slot starting at "
                    f"{windows[-1][0]:%H:%M}",
                    code="OVERLAPPING_SLOTS",
                    details={
                        "start_time": start.strftime("%H:%M"),
                        "previous_start_time": windows[-1][0].strftime("%H:%M"),
                    },
                )
            windows.append((start, end_dt.time()))
        return windows

    @BaseService.measure_operation("replace_day_slots")
    def replace_day_slots(
        self,
        tutor_id: str,
        slot_date: date,
        start_times: Iterable[TimeInput],
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
    ) -> Dict[str, Any]:
        """
        Publish exactly ``start_times`` as the tutor's slots for ``slot_date``.

        Unchanged slots keep their ids; others are removed or added. Returns
        the added and removed start times plus the resulting slot list.
        """
        windows = self._build_windows(list(start_times), slot_minutes)
        self.log_operation(
            "replace_day_slots", tutor_id=tutor_id, slot_date=slot_date, count=len(windows)
        )

        with self.transaction():
            existing = self.repository.get_slots_for_date(tutor_id, slot_date)
            existing_windows = {(slot.start_time, slot.end_time) for slot in existing}
            wanted = set(windows)

            to_remove = sorted(w for w in existing_windows if w not in wanted)
            to_add = [w for w in windows if w not in existing_windows]

            self.repository.delete_slots(tutor_id, slot_date, [start for start, _ in to_remove])
            self.repository.add_slots(tutor_id, slot_date, to_add)

        slots = self.repository.get_slots_for_date(tutor_id, slot_date)
        self.logger.info(
            "Published %d slot(s) for tutor %s on %s (+%d/-%d)",
            len(slots),
            tutor_id,
            slot_date.isoformat(),
            len(to_add),
            len(to_remove),
        )
        return {
            "added": [start.strftime("%H:%M") for start, _ in to_add],
            "removed": [start.strftime("%H:%M") for start, _ in to_remove],
            "slots": [slot.to_dict() for slot in slots],
        }

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, tutor_id: str, slot_id: str) -> None:
        slot = self.repository.get_by_id(slot_id)
        if slot is None or slot.tutor_id != tutor_id:
            raise NotFoundException(
                "Slot not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id}
            )
        with self.transaction():
            self.repository.delete(slot_id)
        self.logger.info("Deleted slot %s for tutor %s", slot_id, tutor_id)
