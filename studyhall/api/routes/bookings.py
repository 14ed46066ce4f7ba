"""
Booking endpoints with concurrency-safe seat reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.logging import get_logger
from studyhall.core.security import get_current_user
from studyhall.db.session import get_db
from studyhall.models.user import User
from studyhall.schemas.booking import (
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    PaymentStart,
    PriceQuote,
    QuoteRequest,
    VacateRequest,
)
from studyhall.services import booking_service

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/quote", response_model=PriceQuote)
async def quote_booking(
    data: QuoteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Price a stay without reserving anything."""
    return await booking_service.quote(db, user, data)


@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve a seat for a date range and start its payment.

    Uses optimistic locking on the seat row so two overlapping requests for
    the same seat cannot both succeed; the loser gets a 409.
    """
    booking, transaction, payment = await booking_service.create_booking(db, user, booking_data)
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(booking),
        payment=PaymentStart(
            transaction_id=transaction.id,
            payment_method=transaction.payment_method,
            status=transaction.status,
            amount=transaction.amount,
            provider_order_id=payment.provider_order_id,
            qr_id=payment.qr_id,
            qr_image_url=payment.qr_image_url,
            checkout=payment.checkout,
        ),
    )


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    study_hall_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Bookings visible to the caller's role."""
    return await booking_service.list_bookings(db, user, status_filter, study_hall_id, limit, offset)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking(db, user, booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    data: Optional[BookingCancelRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and release its seat."""
    booking = await booking_service.cancel_booking(
        db, user, booking_id, data.reason if data else None
    )
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
        payment_status=booking.payment_status,
    )


@router.post("/{booking_id}/vacate", response_model=BookingResponse)
async def vacate_booking_endpoint(
    booking_id: int,
    data: Optional[VacateRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """End a paid stay early; the seat frees up from the vacate date."""
    return await booking_service.vacate_booking(
        db,
        user,
        booking_id,
        data.vacated_on if data else None,
        data.reason if data else None,
    )
