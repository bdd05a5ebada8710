# backend/tutorbook/routes/bookings.py
"""
Booking endpoints.

Customers create, list, view and cancel their bookings. Tutors can list,
view and cancel bookings made with them. Confirmation normally arrives
through the payment webhook; the confirm endpoint is an internal hook
limited to configured admin principals.
"""

import asyncio
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ..api.dependencies.auth import get_current_principal
from ..api.dependencies.services import get_booking_service
from ..core.config import settings
from ..core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT, ULID_PATH_PATTERN
from ..core.exceptions import (
    DomainException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    raise_503_if_pool_exhaustion,
)
from ..models.booking import Booking, BookingStatus, CancellationReason
from ..principal import UserPrincipal
from ..schemas.booking import (
    BookingCancel,
    BookingConfirm,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
)
from ..services.booking_service import BookingService
from .route_helpers import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


def _ensure_participant(booking: Booking, principal: UserPrincipal) -> None:
    # Non-participants get 404 so booking ids do not leak
    if principal.user_id not in (booking.customer_id, booking.tutor_id):
        raise NotFoundException(
            "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking.id}
        )


def _cancellation_reason_for(
    booking: Booking, principal: UserPrincipal, requested: Optional[CancellationReason]
) -> CancellationReason:
    default = (
        CancellationReason.TUTOR_REQUEST
        if principal.user_id == booking.tutor_id
        else CancellationReason.CUSTOMER_REQUEST
    )
    if requested is None or requested == default:
        return default
    raise ValidationException(
        f"Cancellation reason {requested.value} is not available to this caller",
        code="INVALID_CANCELLATION_REASON",
        details={"reason": requested.value},
    )


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid or unbookable time"},
        404: {"description": "Tutor or slot not found"},
        409: {"description": "Time slot not available"},
    },
)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    principal: UserPrincipal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Reserve a slot for the authenticated customer.

    The booking starts AWAITING_PAYMENT and is released automatically if
    payment does not arrive within the payment window.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            booking_data.tutor_id,
            principal.user_id,
            booking_data.selected_date_time,
            booking_data.session_length_minutes,
            principal.email,
            booking_data.notes,
        )
    except DomainException as e:
        handle_domain_exception(e)
    except Exception as e:
        raise_503_if_pool_exhaustion(e)
        raise
    return BookingResponse.from_booking(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    role: Literal["customer", "tutor"] = Query("customer"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    principal: UserPrincipal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """The caller's bookings as customer (default) or as tutor."""
    try:
        bookings = await asyncio.to_thread(
            booking_service.get_bookings_for_user, principal.user_id, role, status_filter, limit
        )
    except DomainException as e:
        handle_domain_exception(e)
    items = [BookingResponse.from_booking(b) for b in bookings]
    return BookingListResponse(items=items, total=len(items))


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    principal: UserPrincipal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id)
        _ensure_participant(booking, principal)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.from_booking(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    responses={
        404: {"description": "Booking not found"},
        409: {"description": "Booking can no longer be cancelled"},
    },
)
async def cancel_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    cancel_data: Optional[BookingCancel] = Body(None),
    principal: UserPrincipal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking; cancelling twice returns the cancelled booking."""
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id)
        _ensure_participant(booking, principal)
        reason = _cancellation_reason_for(
            booking, principal, cancel_data.reason if cancel_data else None
        )
        booking = await asyncio.to_thread(booking_service.cancel_booking, booking_id, reason)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.from_booking(booking)


@router.post(
    "/{booking_id}/confirm",
    response_model=BookingResponse,
    responses={
        403: {"description": "Caller is not an admin principal"},
        409: {"description": "Booking is no longer awaiting payment"},
    },
)
async def confirm_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    confirm_data: Optional[BookingConfirm] = Body(None),
    principal: UserPrincipal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Internal hook to confirm a booking outside the payment webhook."""
    try:
        if principal.user_id not in settings.admin_user_id_set:
            raise ForbiddenException("Admin access required", code="ADMIN_REQUIRED")
        booking = await asyncio.to_thread(
            booking_service.confirm_booking,
            booking_id,
            confirm_data.payment_reference if confirm_data else None,
        )
    except DomainException as e:
        handle_domain_exception(e)
    logger.info("Booking %s confirmed via internal hook by %s", booking_id, principal.user_id)
    return BookingResponse.from_booking(booking)
