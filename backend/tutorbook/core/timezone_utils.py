"""
Timezone utilities for the Tutorbook booking core.

Slot templates store wall-clock times in the platform's home timezone while
bookings store a single canonical UTC instant. These helpers convert between
the two using the IANA database, resolving the UTC offset for each calendar
date instead of assuming one offset for the whole year.
"""

from datetime import date, datetime, time, timedelta, timezone
import logging
import re
from typing import Optional, Tuple, Union

import pytz

from .config import settings
from .exceptions import ValidationException

logger = logging.getLogger(__name__)

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateTimeInput = Union[str, datetime]


def get_platform_timezone(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return the platform home timezone (or ``tz_name``) as a pytz timezone."""
    return pytz.timezone(tz_name or settings.platform_timezone)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC (this is how SQLite hands
    timestamps back).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_datetime(value: str) -> datetime:
    candidate = value.strip()
    if not candidate or DATE_ONLY_REGEX.fullmatch(candidate):
        raise ValidationException(
            f"Invalid datetime format: {value!r}",
            code="INVALID_DATETIME",
            details={"value": value},
        )
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationException(
            f"Invalid datetime format: {value!r}",
            code="INVALID_DATETIME",
            details={"value": value},
        ) from exc


def localize_wall_clock(naive: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Attach the home timezone to a naive wall-clock datetime.

    Wall-clock times that do not exist (spring-forward gap) are rejected.
    Ambiguous times (fall-back overlap) resolve to the first occurrence.
    """
    tz = get_platform_timezone(tz_name)
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError as exc:
        raise ValidationException(
            f"{naive.isoformat()} does not exist in {tz.zone} (daylight saving change)",
            code="NONEXISTENT_LOCAL_TIME",
            details={"value": naive.isoformat(), "timezone": tz.zone},
        ) from exc
    except pytz.AmbiguousTimeError:
        logger.debug("Ambiguous local time %s in %s; using first occurrence", naive, tz.zone)
        return tz.localize(naive, is_dst=True)


def to_canonical_instant(value: DateTimeInput, tz_name: Optional[str] = None) -> datetime:
    """
    Convert a user-supplied date/time into the canonical UTC instant.

    Values carrying an explicit offset (or ``Z``) are converted as-is.
    Offset-naive values are read as wall-clock time in the platform timezone,
    with the offset looked up for that calendar date.
    """
    if isinstance(value, str):
        parsed = _parse_datetime(value)
    elif isinstance(value, datetime):
        parsed = value
    else:
        raise ValidationException(
            "Requested time must be an ISO 8601 string or datetime",
            code="INVALID_DATETIME",
            details={"type": type(value).__name__},
        )

    if parsed.tzinfo is None or parsed.tzinfo.utcoffset(parsed) is None:
        localized = localize_wall_clock(parsed, tz_name)
        return localized.astimezone(timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_local(instant: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a UTC instant to wall-clock time in the platform timezone."""
    return ensure_utc(instant).astimezone(get_platform_timezone(tz_name))


def local_wall_clock(instant: datetime, tz_name: Optional[str] = None) -> Tuple[date, time]:
    """Return the local calendar date and time-of-day for a UTC instant."""
    local = to_local(instant, tz_name)
    return local.date(), local.time().replace(tzinfo=None)


def combine_local(
    slot_date: date, slot_time: time, tz_name: Optional[str] = None
) -> datetime:
    """UTC instant for a wall-clock time on a given local date."""
    return localize_wall_clock(datetime.combine(slot_date, slot_time), tz_name).astimezone(
        timezone.utc
    )


def local_date_bounds_utc(
    start_date: date, end_date: date, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """
    UTC window covering local calendar days ``start_date`` through ``end_date``.

    The window is half-open: ``[start_date 00:00 local, end_date + 1 00:00 local)``.
    """
    tz = get_platform_timezone(tz_name)
    start_local = tz.localize(datetime.combine(start_date, time.min))
    end_local = tz.localize(datetime.combine(end_date + timedelta(days=1), time.min))
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def time_in_range(selected: time, start: time, end: time) -> bool:
    """
    Inclusive time-of-day match.

    A request at the exact boundary minute of two adjacent slots matches both
    (e.g. 12:00:00 matches 11:00-12:00 and 12:00-13:00).
    """
    return start <= selected <= end


def time_in_half_open_range(selected: time, start: time, end: time) -> bool:
    """``start <= selected < end``; used to decide which slot a booking occupies."""
    return start <= selected < end


def format_local(instant: datetime, tz_name: Optional[str] = None) -> str:
    """Human readable local time, e.g. ``10.03.2025 14:30``."""
    return to_local(instant, tz_name).strftime("%d.%m.%Y %H:%M")
