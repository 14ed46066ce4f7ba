"""
Study hall reviews: one per paid booking, moderated by rating threshold.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.models.booking import Booking, BookingStatus, PaymentStatus
from studyhall.models.review import Review, ReviewStatus
from studyhall.models.study_hall import StudyHall
from studyhall.models.user import ADMIN_ROLES, STAFF_ROLES, User, UserRole
from studyhall.schemas.review import ReviewCreate
from studyhall.services.cache_service import invalidate_hall_cache
from studyhall.services.notification_service import notify
from studyhall.services.settings_service import get_business_settings

logger = get_logger(__name__)

REVIEWABLE_STATUSES = (BookingStatus.ACTIVE.value, BookingStatus.COMPLETED.value)


def _eligible_query(user_id: int):
    return select(Booking).where(
        Booking.user_id == user_id,
        Booking.payment_status == PaymentStatus.PAID.value,
        Booking.status.in_(REVIEWABLE_STATUSES),
        Booking.id.not_in(select(Review.booking_id)),
    )


async def eligible_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    result = await db.execute(_eligible_query(user_id).order_by(Booking.end_date.desc()))
    return list(result.scalars().unique().all())


async def recompute_hall_rating(db: AsyncSession, hall_id: int) -> StudyHall:
    row = (
        await db.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(
                Review.study_hall_id == hall_id,
                Review.status == ReviewStatus.APPROVED.value,
            )
        )
    ).one()
    hall = (await db.execute(select(StudyHall).where(StudyHall.id == hall_id))).scalar_one()
    average, count = row
    hall.average_rating = (
        Decimal(str(average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) if count else Decimal("0")
    )
    hall.total_reviews = count
    await db.flush()
    await invalidate_hall_cache()
    return hall


async def create_review(db: AsyncSession, user: User, data: ReviewCreate) -> Review:
    result = await db.execute(_eligible_query(user.id).where(Booking.id == data.booking_id))
    booking = result.scalars().first()
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This booking cannot be reviewed",
        )

    biz = await get_business_settings(db)
    threshold = biz.auto_approval_threshold
    review_status = (
        ReviewStatus.APPROVED.value
        if threshold is None or data.rating >= threshold
        else ReviewStatus.PENDING.value
    )
    review = Review(
        booking_id=booking.id,
        user_id=user.id,
        study_hall_id=booking.study_hall_id,
        merchant_id=booking.study_hall.merchant_id,
        rating=data.rating,
        review_text=data.review_text,
        status=review_status,
    )
    db.add(review)
    await db.flush()
    await recompute_hall_rating(db, booking.study_hall_id)

    await notify(
        db,
        review.merchant_id,
        "New review",
        f"{user.full_name} rated {booking.study_hall.name} {data.rating}/5.",
    )
    logger.info(
        "review_created",
        review_id=review.id,
        booking_id=booking.id,
        rating=data.rating,
        status=review_status,
    )
    return review


async def _get_review(db: AsyncSession, review_id: int) -> Review:
    review = (await db.execute(select(Review).where(Review.id == review_id))).scalar_one_or_none()
    if not review:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    return review


async def respond_to_review(
    db: AsyncSession, merchant: User, review_id: int, response: str
) -> Review:
    review = await _get_review(db, review_id)
    if review.merchant_id != merchant.id and merchant.role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only respond to reviews of your own study halls",
        )
    review.merchant_response = response
    await db.flush()
    await notify(
        db,
        review.user_id,
        "The study hall replied to your review",
        response[:200],
    )
    logger.info("review_responded", review_id=review.id, merchant_id=merchant.id)
    return review


async def update_review_status(db: AsyncSession, review_id: int, new_status: str) -> Review:
    review = await _get_review(db, review_id)
    review.status = new_status
    await db.flush()
    await recompute_hall_rating(db, review.study_hall_id)
    logger.info("review_status_changed", review_id=review.id, status=new_status)
    return review


async def list_hall_reviews(db: AsyncSession, hall_id: int) -> list[Review]:
    result = await db.execute(
        select(Review)
        .where(Review.study_hall_id == hall_id, Review.status == ReviewStatus.APPROVED.value)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return list(result.scalars().all())


async def list_reviews(
    db: AsyncSession, user: User, status_filter: Optional[str] = None
) -> list[Review]:
    query = select(Review)
    if user.role in STAFF_ROLES:
        pass
    elif user.role == UserRole.MERCHANT.value:
        query = query.where(Review.merchant_id == user.id)
    else:
        query = query.where(Review.user_id == user.id)
    if status_filter:
        query = query.where(Review.status == status_filter)
    result = await db.execute(query.order_by(Review.created_at.desc(), Review.id.desc()))
    return list(result.scalars().all())
