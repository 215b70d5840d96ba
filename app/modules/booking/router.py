"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import BookingStatusEnum
from app.modules.booking.schemas import (
    BookingCancelRequest,
    BookingCreate,
    BookingRead,
    CancellationResultRead,
)
from app.modules.booking.service import BookingService, get_booking_service
from app.modules.identity.service import get_current_user
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["booking"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Create a booking; consent-required businesses start in PENDING_CONSENT."""
    booking = await service.create_booking(payload, current_user)
    return BookingRead.model_validate(booking)


@router.get("", response_model=Page[BookingRead])
async def list_bookings(
    status_filter: BookingStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> Page[BookingRead]:
    items, total = await service.list_bookings(current_user, status_filter, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    booking = await service.get_booking(booking_id, current_user)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=CancellationResultRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest | None = None,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> CancellationResultRead:
    """Cancel a booking and apply the refund policy."""
    result = await service.cancel_booking(booking_id, payload or BookingCancelRequest(), current_user)
    return CancellationResultRead(
        success=result.success,
        refund_performed=result.refund_performed,
        refund_error=result.refund_error,
        message=result.message,
    )


@router.post("/{booking_id}/confirm", response_model=BookingRead)
async def confirm_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Confirm a booking waiting for its consent form."""
    booking = await service.confirm_consent(booking_id, current_user)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    booking = await service.complete_booking(booking_id, current_user)
    return BookingRead.model_validate(booking)
