# backend/tutorbook/routes/availability.py
"""
Public availability endpoints.

Availability is recomputed from the booking ledger on every request.
"""

import asyncio
from datetime import date
import logging

from fastapi import APIRouter, Depends, Path, Query

from ..api.dependencies.services import get_availability_service
from ..core.config import settings
from ..core.exceptions import DomainException
from ..schemas.availability import (
    AvailabilityResponse,
    DayAvailabilityResponse,
    SlotStatusListResponse,
    SlotStatusResponse,
)
from ..services.availability_service import AvailabilityService
from .route_helpers import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


@router.get(
    "/{tutor_id}/availability",
    response_model=AvailabilityResponse,
    responses={400: {"description": "Invalid date range"}},
)
async def get_tutor_availability(
    tutor_id: str = Path(..., min_length=1, max_length=64),
    date_from: date = Query(..., description="First local date (inclusive)"),
    date_to: date = Query(..., description="Last local date (inclusive)"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Free slot start times per date; dates with nothing free are omitted."""
    try:
        days = await asyncio.to_thread(
            availability_service.get_availability, tutor_id, date_from, date_to
        )
    except DomainException as e:
        handle_domain_exception(e)

    return AvailabilityResponse(
        tutor_id=tutor_id,
        timezone=settings.platform_timezone,
        date_from=date_from,
        date_to=date_to,
        days=[
            DayAvailabilityResponse(
                date=day.date, start_times=[t.strftime("%H:%M") for t in day.start_times]
            )
            for day in days
        ],
    )


@router.get("/{tutor_id}/slots", response_model=SlotStatusListResponse)
async def get_tutor_slot_statuses(
    tutor_id: str = Path(..., min_length=1, max_length=64),
    date_from: date = Query(...),
    date_to: date = Query(...),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> SlotStatusListResponse:
    """Every published slot in range with its AVAILABLE/BOOKED status."""
    try:
        statuses = await asyncio.to_thread(
            availability_service.get_day_slot_statuses, tutor_id, date_from, date_to
        )
    except DomainException as e:
        handle_domain_exception(e)

    return SlotStatusListResponse(
        tutor_id=tutor_id,
        timezone=settings.platform_timezone,
        slots=[SlotStatusResponse(**entry) for entry in statuses],
    )
