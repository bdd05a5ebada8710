"""
Availability response schemas.
"""

from datetime import date
from typing import List, Literal

from pydantic import Field

from .base import StandardizedModel


class DayAvailabilityResponse(StandardizedModel):
    date: date
    start_times: List[str] = Field(..., description="Free slot start times (HH:MM, local)")


class AvailabilityResponse(StandardizedModel):
    tutor_id: str
    timezone: str
    date_from: date
    date_to: date
    days: List[DayAvailabilityResponse]


class SlotStatusResponse(StandardizedModel):
    id: str
    date: date
    start_time: str
    end_time: str
    status: Literal["AVAILABLE", "BOOKED"]


class SlotStatusListResponse(StandardizedModel):
    tutor_id: str
    timezone: str
    slots: List[SlotStatusResponse]
