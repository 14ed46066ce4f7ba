"""
Study hall endpoints with Redis caching on the public listing.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.logging import get_logger
from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.availability import (
    DateAvailability,
    HallAvailabilityResponse,
    OccupancyResponse,
    SeatAvailabilityResponse,
)
from studyhall.schemas.study_hall import (
    SeatAvailabilityUpdate,
    SeatResponse,
    StudyHallCreate,
    StudyHallDetail,
    StudyHallListResponse,
    StudyHallResponse,
    StudyHallStatusUpdate,
    StudyHallUpdate,
    WalkInLinks,
)
from studyhall.services import availability_service, incharge_service, study_hall_service
from studyhall.services.cache_service import get_cached_halls, invalidate_hall_cache, set_cached_halls

logger = get_logger(__name__)
router = APIRouter(prefix="/study-halls", tags=["Study Halls"])

MAX_DATE_LOOKUP = 62


@router.post("/", response_model=StudyHallDetail, status_code=status.HTTP_201_CREATED)
async def create_study_hall_endpoint(
    hall_data: StudyHallCreate,
    user: User = Depends(require_roles(UserRole.MERCHANT, *ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Create a hall and generate its seats from the layout."""
    hall = await study_hall_service.create_study_hall(db, user, hall_data)
    await invalidate_hall_cache()
    return hall


@router.get("/", response_model=StudyHallListResponse)
async def list_study_halls_endpoint(
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    Public search of active halls.
    Results are cached in Redis and dropped whenever a hall changes.
    """
    filters = {
        "search": search,
        "min_price": min_price,
        "max_price": max_price,
        "page": page,
        "page_size": page_size,
    }
    cached = await get_cached_halls(filters)
    if cached:
        logger.info("halls_list_cache_hit", page=page)
        cached["cached"] = True
        return StudyHallListResponse(**cached)

    halls, total = await study_hall_service.list_study_halls(
        db, search, min_price, max_price, page, page_size
    )
    response_data = {
        "items": [StudyHallResponse.model_validate(h).model_dump(mode="json") for h in halls],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_halls(filters, response_data)
    return StudyHallListResponse(**response_data)


@router.get("/mine", response_model=list[StudyHallResponse])
async def list_my_halls(
    user: User = Depends(require_roles(UserRole.MERCHANT, UserRole.INCHARGE)),
    db: AsyncSession = Depends(get_db),
):
    if user.role == UserRole.INCHARGE.value:
        hall_ids = await incharge_service.assigned_hall_ids(db, user)
        return [await study_hall_service.get_study_hall(db, hall_id) for hall_id in sorted(hall_ids)]
    return await study_hall_service.list_merchant_halls(db, user.id)


@router.get("/{hall_id}", response_model=StudyHallDetail)
async def get_study_hall_endpoint(hall_id: int, db: AsyncSession = Depends(get_db)):
    """Hall with its seat map. Not cached."""
    return await study_hall_service.get_study_hall(db, hall_id)


@router.patch("/{hall_id}", response_model=StudyHallDetail)
async def update_study_hall_endpoint(
    hall_id: int,
    hall_data: StudyHallUpdate,
    user: User = Depends(require_roles(UserRole.MERCHANT, *ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    hall = await study_hall_service.update_study_hall(db, user, hall_id, hall_data)
    await invalidate_hall_cache()
    return hall


@router.patch("/{hall_id}/status", response_model=StudyHallResponse)
async def set_study_hall_status(
    hall_id: int,
    data: StudyHallStatusUpdate,
    user: User = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    hall = await study_hall_service.set_status(db, hall_id, data.status)
    await invalidate_hall_cache()
    return hall


@router.patch("/{hall_id}/seats/{seat_id}", response_model=SeatResponse)
async def set_seat_availability_endpoint(
    hall_id: int,
    seat_id: int,
    data: SeatAvailabilityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Block a seat for maintenance or release it."""
    hall = await study_hall_service.get_study_hall(db, hall_id)
    await incharge_service.ensure_can_manage_hall(db, user, hall)
    return await study_hall_service.set_seat_availability(db, hall_id, seat_id, data.is_available)


@router.get("/{hall_id}/qr-code", response_model=WalkInLinks)
async def walk_in_qr_code(
    hall_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Link and QR image for the hall's walk-in booking page, to print at the desk."""
    hall = await study_hall_service.get_study_hall(db, hall_id)
    await incharge_service.ensure_can_manage_hall(db, user, hall)
    return study_hall_service.walk_in_links(hall)


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date cannot be before start date",
        )


@router.get("/{hall_id}/seats/{seat_id}/availability", response_model=SeatAvailabilityResponse)
async def seat_availability(
    hall_id: int,
    seat_id: int,
    start_date: date,
    end_date: date,
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    seat = await study_hall_service.get_seat(db, hall_id, seat_id)
    return await availability_service.check_seat_availability(db, seat, start_date, end_date)


@router.get("/{hall_id}/availability", response_model=HallAvailabilityResponse)
async def hall_availability(
    hall_id: int,
    start_date: date,
    end_date: date,
    db: AsyncSession = Depends(get_db),
):
    """Seat id to availability for the whole range."""
    _check_range(start_date, end_date)
    hall = await study_hall_service.get_study_hall(db, hall_id)
    seats = await availability_service.seat_availability_map(db, hall, start_date, end_date)
    return HallAvailabilityResponse(
        study_hall_id=hall.id, start_date=start_date, end_date=end_date, seats=seats
    )


@router.get("/{hall_id}/availability/dates", response_model=list[DateAvailability])
async def hall_date_availability(
    hall_id: int,
    start_date: date,
    end_date: date,
    db: AsyncSession = Depends(get_db),
):
    """Per-day available and occupied seats."""
    _check_range(start_date, end_date)
    dates = availability_service.date_range(start_date, end_date)
    if len(dates) > MAX_DATE_LOOKUP:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_DATE_LOOKUP} days can be looked up at once",
        )
    hall = await study_hall_service.get_study_hall(db, hall_id)
    return await availability_service.date_availability(db, hall, dates)


@router.get("/{hall_id}/occupancy", response_model=OccupancyResponse)
async def hall_occupancy(
    hall_id: int,
    on: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    hall = await study_hall_service.get_study_hall(db, hall_id)
    await incharge_service.ensure_can_manage_hall(db, user, hall)
    return await availability_service.hall_occupancy(db, hall, on or date.today())
