# backend/tutorbook/services/availability_service.py
"""
Availability Service for Tutorbook

Computes the bookable start times for a tutor by subtracting the slots held
by active bookings from the published slot templates. Nothing is
cached or persisted: every call re-reads the booking ledger, so a hold that
lapsed a second ago is already free again.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import (
    ensure_utc,
    local_date_bounds_utc,
    local_wall_clock,
    utc_now,
)
from ..models.booking import Booking
from ..models.slot_template import SlotTemplate
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .slot_catalog_service import SlotCatalogService

logger = logging.getLogger(__name__)

SLOT_AVAILABLE = "AVAILABLE"
SLOT_BOOKED = "BOOKED"


@dataclass
class DayAvailability:
    """Free slot start times for one local calendar date."""

    date: date
    start_times: List[time] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "start_times": [t.strftime("%H:%M") for t in self.start_times],
        }


def slot_is_occupied(slot: SlotTemplate, booked_slot_starts: Set[time]) -> bool:
    """
    Whether an active booking holds ``slot``.

    Bookings record the start of the slot they matched at creation, and the
    ledger allows one active booking per (tutor, slot start), so this is the
    same key the write side enforces.
    """
    return slot.start_time in booked_slot_starts


class AvailabilityService(BaseService):
    """Read-side service deriving free slots from the booking ledger."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        slot_catalog: Optional[SlotCatalogService] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.slot_catalog = slot_catalog or SlotCatalogService(db)
        self.settings = config or default_settings

    def _validate_range(self, date_from: date, date_to: date) -> None:
        if date_from > date_to:
            raise ValidationException(
                "date_from must be on or before date_to",
                code="INVALID_DATE_RANGE",
                details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
            )
        span = (date_to - date_from).days + 1
        if span > self.settings.availability_max_range_days:
            raise ValidationException(
                f"Date range cannot exceed {self.settings.availability_max_range_days} days",
                code="DATE_RANGE_TOO_LARGE",
                details={"days": span},
            )

    def _booked_slot_starts(
        self, tutor_id: str, date_from: date, date_to: date, now: datetime
    ) -> Dict[date, Set[time]]:
        tz_name = self.settings.platform_timezone
        start_utc, end_utc = local_date_bounds_utc(date_from, date_to, tz_name)
        active: Iterable[Booking] = self.booking_repository.get_active_bookings_in_range(
            tutor_id, start_utc, end_utc, now
        )
        booked: Dict[date, Set[time]] = defaultdict(set)
        for booking in active:
            local_date, local_time = local_wall_clock(booking.slot_start_at, tz_name)
            booked[local_date].add(local_time)
        return booked

    def _slots_by_date(
        self, tutor_id: str, date_from: date, date_to: date
    ) -> Dict[date, List[SlotTemplate]]:
        grouped: Dict[date, List[SlotTemplate]] = defaultdict(list)
        for slot in self.slot_catalog.list_slots(tutor_id, date_from, date_to):
            grouped[slot.slot_date].append(slot)
        return grouped

    @BaseService.measure_operation("get_availability")
    def get_availability(
        self,
        tutor_id: str,
        date_from: date,
        date_to: date,
        now: Optional[datetime] = None,
    ) -> List[DayAvailability]:
        """
        Free slot start times per date, in date order.

        Dates without a free slot are omitted.
        """
        self._validate_range(date_from, date_to)
        now = ensure_utc(now) if now else utc_now()

        slots_by_date = self._slots_by_date(tutor_id, date_from, date_to)
        booked = self._booked_slot_starts(tutor_id, date_from, date_to, now)

        result: List[DayAvailability] = []
        for slot_date in sorted(slots_by_date):
            slots = slots_by_date[slot_date]
            booked_starts = booked.get(slot_date, set())
            free = sorted(
                slot.start_time for slot in slots if not slot_is_occupied(slot, booked_starts)
            )
            if free:
                result.append(DayAvailability(date=slot_date, start_times=free))

        self.logger.debug(
            "Availability for tutor %s %s..%s: %d day(s) with free slots",
            tutor_id,
            date_from,
            date_to,
            len(result),
        )
        return result

    @BaseService.measure_operation("get_day_slot_statuses")
    def get_day_slot_statuses(
        self,
        tutor_id: str,
        date_from: date,
        date_to: date,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Every slot in range with an AVAILABLE or BOOKED status."""
        self._validate_range(date_from, date_to)
        now = ensure_utc(now) if now else utc_now()

        slots_by_date = self._slots_by_date(tutor_id, date_from, date_to)
        booked = self._booked_slot_starts(tutor_id, date_from, date_to, now)

        statuses: List[Dict[str, Any]] = []
        for slot_date in sorted(slots_by_date):
            slots = slots_by_date[slot_date]
            booked_starts = booked.get(slot_date, set())
            for slot in slots:
                entry = slot.to_dict()
                entry["status"] = (
                    SLOT_BOOKED if slot_is_occupied(slot, booked_starts) else SLOT_AVAILABLE
                )
                statuses.append(entry)
        return statuses
