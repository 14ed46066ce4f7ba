"""
Review endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.review import (
    ReviewableBooking,
    ReviewCreate,
    ReviewRespond,
    ReviewResponse,
    ReviewStatusUpdate,
)
from studyhall.services import review_service

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("/eligible", response_model=list[ReviewableBooking])
async def eligible_bookings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Paid stays the caller has not reviewed yet."""
    bookings = await review_service.eligible_bookings(db, user.id)
    return [
        ReviewableBooking(
            booking_id=b.id,
            study_hall_id=b.study_hall_id,
            study_hall_name=b.study_hall.name,
            start_date=b.start_date,
            end_date=b.end_date,
        )
        for b in bookings
    ]


@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.create_review(db, user, data)


@router.get("/", response_model=list[ReviewResponse])
async def list_reviews(
    status_filter: Optional[str] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.list_reviews(db, user, status_filter)


@router.get("/study-halls/{hall_id}", response_model=list[ReviewResponse])
async def hall_reviews(hall_id: int, db: AsyncSession = Depends(get_db)):
    """Public: approved reviews of a hall."""
    return await review_service.list_hall_reviews(db, hall_id)


@router.post("/{review_id}/respond", response_model=ReviewResponse)
async def respond_to_review(
    review_id: int,
    data: ReviewRespond,
    merchant: User = Depends(require_roles(UserRole.MERCHANT)),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.respond_to_review(db, merchant, review_id, data.merchant_response)


@router.patch("/{review_id}/status", response_model=ReviewResponse)
async def update_review_status(
    review_id: int,
    data: ReviewStatusUpdate,
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await review_service.update_review_status(db, review_id, data.status)
