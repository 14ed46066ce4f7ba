"""
Unauthenticated walk-in booking, reached from the QR code printed at a hall.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.db.session import get_db
from studyhall.schemas.booking import (
    BookingResponse,
    GuestBookingCreate,
    GuestBookingCreateResponse,
    PaymentStart,
)
from studyhall.schemas.payment import PaymentStatusResponse
from studyhall.schemas.study_hall import PublicStudyHall, SeatResponse, StudyHallResponse
from studyhall.services import availability_service, booking_service, study_hall_service

router = APIRouter(prefix="/public", tags=["Walk-in Booking"])


@router.get("/study-halls/{hall_id}", response_model=PublicStudyHall)
async def walk_in_hall(hall_id: int, db: AsyncSession = Depends(get_db)):
    hall = await study_hall_service.get_walk_in_hall(db, hall_id)
    today = date.today()
    free = await availability_service.seat_availability_map(db, hall, today, today)
    seats = [
        SeatResponse(
            id=seat.id,
            row_name=seat.row_name,
            seat_number=seat.seat_number,
            seat_label=seat.seat_label,
            is_available=free[seat.id],
        )
        for seat in hall.seats
    ]
    return PublicStudyHall(
        study_hall=StudyHallResponse.model_validate(hall),
        seats=seats,
        available_seats=sum(1 for seat in seats if seat.is_available),
        total_seats=hall.total_seats,
    )


@router.post(
    "/study-halls/{hall_id}/bookings",
    response_model=GuestBookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_guest_booking(
    hall_id: int, data: GuestBookingCreate, db: AsyncSession = Depends(get_db)
):
    """Book a seat with a name and phone number, no account needed."""
    booking, transaction, payment = await booking_service.create_guest_booking(db, hall_id, data)
    return GuestBookingCreateResponse(
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
        study_hall_name=booking.study_hall.name,
        seat_label=booking.seat.seat_label,
        guest_token=booking.guest_token,
    )


@router.get("/bookings/{booking_id}", response_model=PaymentStatusResponse)
async def guest_booking_status(
    booking_id: int,
    token: str = Query(..., min_length=16),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.guest_payment_status(db, booking_id, token)
