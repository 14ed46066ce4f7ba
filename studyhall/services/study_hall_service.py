"""
Study hall management: layout, seats, status, public search and walk-in QR links.
"""

import string
from datetime import date
from decimal import Decimal
from typing import Optional

import httpx
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.config import get_settings
from studyhall.core.logging import get_logger
from studyhall.models.booking import BLOCKING_STATUSES, Booking
from studyhall.models.study_hall import Seat, StudyHall, StudyHallStatus
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.study_hall import StudyHallCreate, StudyHallUpdate, label_collision

logger = get_logger(__name__)

LAYOUT_FIELDS = ("rows", "seats_per_row", "custom_row_names")


def row_names_for(rows: int, custom_row_names: Optional[list[str]] = None) -> list[str]:
    """Custom names when given, else A, B, C..."""
    if custom_row_names:
        return list(custom_row_names)
    return list(string.ascii_uppercase[:rows])


def layout_labels(
    rows: int, seats_per_row: int, custom_row_names: Optional[list[str]] = None
) -> list[tuple[str, int, str]]:
    """(row name, seat number, label) for every seat of a layout, in order."""
    return [
        (row, number, f"{row}{number}")
        for row in row_names_for(rows, custom_row_names)
        for number in range(1, seats_per_row + 1)
    ]


async def get_study_hall(db: AsyncSession, hall_id: int) -> StudyHall:
    result = await db.execute(select(StudyHall).where(StudyHall.id == hall_id))
    hall = result.scalar_one_or_none()
    if not hall:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Study hall {hall_id} not found",
        )
    return hall


def ensure_hall_owner(user: User, hall: StudyHall) -> None:
    if user.role in ADMIN_ROLES:
        return
    if user.role == UserRole.MERCHANT.value and hall.merchant_id == user.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only manage your own study halls",
    )


async def _resolve_merchant(db: AsyncSession, actor: User, merchant_id: Optional[int]) -> int:
    if actor.role == UserRole.MERCHANT.value:
        return actor.id

    if merchant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="merchant_id is required when creating a hall on behalf of a merchant",
        )
    result = await db.execute(select(User).where(User.id == merchant_id))
    merchant = result.scalar_one_or_none()
    if not merchant or merchant.role != UserRole.MERCHANT.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User {merchant_id} is not a merchant",
        )
    return merchant.id


async def create_study_hall(db: AsyncSession, actor: User, data: StudyHallCreate) -> StudyHall:
    merchant_id = await _resolve_merchant(db, actor, data.merchant_id)

    hall = StudyHall(
        merchant_id=merchant_id,
        name=data.name,
        description=data.description,
        location=data.location,
        formatted_address=data.formatted_address,
        latitude=data.latitude,
        longitude=data.longitude,
        amenities=list(data.amenities),
        rows=data.rows,
        seats_per_row=data.seats_per_row,
        custom_row_names=list(data.custom_row_names or []),
        total_seats=data.rows * data.seats_per_row,
        daily_price=data.daily_price,
        weekly_price=data.weekly_price,
        monthly_price=data.monthly_price,
        status=StudyHallStatus.ACTIVE.value,
        qr_booking_enabled=data.qr_booking_enabled,
        average_rating=Decimal("0"),
        total_reviews=0,
    )
    hall.seats = [
        Seat(row_name=row, seat_number=number, seat_label=label, is_available=True, version=1)
        for row, number, label in layout_labels(
            data.rows, data.seats_per_row, data.custom_row_names
        )
    ]
    db.add(hall)
    await db.flush()

    logger.info(
        "study_hall_created",
        study_hall_id=hall.id,
        merchant_id=merchant_id,
        seats=hall.total_seats,
    )
    return hall


async def has_current_or_future_bookings(db: AsyncSession, hall_id: int) -> bool:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.study_hall_id == hall_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.end_date >= date.today(),
        )
    )
    return result.scalar_one() > 0


async def _regenerate_seats(db: AsyncSession, hall: StudyHall) -> None:
    """
    Reconcile seats with the hall layout by label. Seats that leave the layout
    are deleted, or retired (made unavailable) when past bookings reference them.
    """
    wanted = {
        label: (row, number)
        for row, number, label in layout_labels(hall.rows, hall.seats_per_row, hall.custom_row_names)
    }
    existing = {seat.seat_label: seat for seat in hall.seats}

    referenced = set(
        (
            await db.execute(
                select(Booking.seat_id).where(Booking.study_hall_id == hall.id).distinct()
            )
        ).scalars()
    )

    for label, seat in existing.items():
        if label in wanted:
            seat.row_name, seat.seat_number = wanted[label]
        elif seat.id in referenced:
            seat.is_available = False
        else:
            hall.seats.remove(seat)

    for label, (row, number) in wanted.items():
        if label not in existing:
            hall.seats.append(
                Seat(row_name=row, seat_number=number, seat_label=label, is_available=True, version=1)
            )

    hall.total_seats = len(wanted)


async def update_study_hall(
    db: AsyncSession, actor: User, hall_id: int, data: StudyHallUpdate
) -> StudyHall:
    hall = await get_study_hall(db, hall_id)
    ensure_hall_owner(actor, hall)

    changes = data.model_dump(exclude_unset=True)
    layout_changed = any(
        field in changes and changes[field] != getattr(hall, field) for field in LAYOUT_FIELDS
    )

    if layout_changed:
        rows = changes.get("rows", hall.rows)
        custom = changes.get("custom_row_names", hall.custom_row_names)
        if custom and len(custom) != rows:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Number of custom row names must equal the number of rows",
            )
        if custom:
            duplicate = label_collision(custom, changes.get("seats_per_row", hall.seats_per_row))
            if duplicate:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Row names produce the seat label {duplicate} more than once",
                )
        if await has_current_or_future_bookings(db, hall.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Seat layout cannot change while the hall has active or upcoming bookings",
            )

    for field, value in changes.items():
        if field == "custom_row_names":
            value = list(value or [])
        setattr(hall, field, value)

    if layout_changed:
        await _regenerate_seats(db, hall)

    await db.flush()
    logger.info(
        "study_hall_updated",
        study_hall_id=hall.id,
        fields=sorted(changes),
        layout_changed=layout_changed,
    )
    return hall


async def get_walk_in_hall(db: AsyncSession, hall_id: int) -> StudyHall:
    """An active hall that takes walk-in bookings from its QR code."""
    hall = await get_study_hall(db, hall_id)
    if hall.status != StudyHallStatus.ACTIVE.value or not hall.qr_booking_enabled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Study hall not found or QR booking is disabled",
        )
    return hall


def walk_in_links(hall: StudyHall) -> dict:
    """Public booking page of a hall and a printable QR image pointing at it."""
    settings = get_settings()
    booking_url = f"{settings.FRONTEND_URL.rstrip('/')}/studyhall/{hall.id}/booking"
    qr_code_url = httpx.URL(
        settings.QR_IMAGE_SERVICE_URL,
        params={"size": settings.QR_IMAGE_SIZE, "format": "png", "data": booking_url},
    )
    return {
        "study_hall_id": hall.id,
        "study_hall_name": hall.name,
        "qr_booking_enabled": hall.qr_booking_enabled,
        "booking_url": booking_url,
        "qr_code_url": str(qr_code_url),
    }


async def set_status(db: AsyncSession, hall_id: int, new_status: str) -> StudyHall:
    hall = await get_study_hall(db, hall_id)
    hall.status = new_status
    await db.flush()
    logger.info("study_hall_status_changed", study_hall_id=hall.id, status=new_status)
    return hall


async def list_study_halls(
    db: AsyncSession,
    search: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[StudyHall], int]:
    """Active halls only; text search matches name or location."""
    query = select(StudyHall).where(StudyHall.status == StudyHallStatus.ACTIVE.value)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(StudyHall.name.ilike(pattern), StudyHall.location.ilike(pattern))
        )
    if min_price is not None:
        query = query.where(StudyHall.daily_price >= min_price)
    if max_price is not None:
        query = query.where(StudyHall.daily_price <= max_price)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query.order_by(StudyHall.average_rating.desc(), StudyHall.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().unique().all()), total


async def list_merchant_halls(db: AsyncSession, merchant_id: int) -> list[StudyHall]:
    result = await db.execute(
        select(StudyHall).where(StudyHall.merchant_id == merchant_id).order_by(StudyHall.id)
    )
    return list(result.scalars().unique().all())


async def get_seat(db: AsyncSession, hall_id: int, seat_id: int) -> Seat:
    result = await db.execute(
        select(Seat).where(Seat.id == seat_id, Seat.study_hall_id == hall_id)
    )
    seat = result.scalar_one_or_none()
    if not seat:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Seat {seat_id} not found in study hall {hall_id}",
        )
    return seat


async def set_seat_availability(
    db: AsyncSession, hall_id: int, seat_id: int, is_available: bool
) -> Seat:
    seat = await get_seat(db, hall_id, seat_id)
    seat.is_available = is_available
    seat.version = seat.version + 1
    await db.flush()
    logger.info(
        "seat_availability_changed",
        study_hall_id=hall_id,
        seat_id=seat_id,
        is_available=is_available,
    )
    return seat
