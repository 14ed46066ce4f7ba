"""
Referral program.

Every user can share one code. A new user applies someone else's code once;
the referral stays pending until that user's first paid booking, then both
sides are credited reward points. Referrers are capped at
REFERRAL_MONTHLY_LIMIT completed referrals per calendar month.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.config import get_settings
from studyhall.core.logging import get_logger
from studyhall.db.base import utcnow
from studyhall.models.booking import Booking, PaymentStatus
from studyhall.models.notification import NotificationType
from studyhall.models.referral import (
    Referral,
    ReferralCode,
    ReferralCodeStatus,
    ReferralStatus,
)
from studyhall.models.user import User
from studyhall.services import reward_service
from studyhall.services.notification_service import notify

logger = get_logger(__name__)
settings = get_settings()

CODE_PREFIX_LENGTH = 4
CODE_ATTEMPTS = 5


def generate_code(full_name: str) -> str:
    prefix = re.sub(r"[^A-Z]", "", full_name.upper())[:CODE_PREFIX_LENGTH] or "SH"
    return f"{prefix}{secrets.token_hex(3).upper()}"


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def get_or_create_code(db: AsyncSession, user: User) -> ReferralCode:
    result = await db.execute(select(ReferralCode).where(ReferralCode.user_id == user.id))
    referral_code = result.scalar_one_or_none()
    if referral_code is not None:
        return referral_code

    for _ in range(CODE_ATTEMPTS):
        code = generate_code(user.full_name)
        taken = await db.execute(select(ReferralCode.id).where(ReferralCode.code == code))
        if taken.scalar_one_or_none() is None:
            break
    else:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not allocate a referral code. Please try again.",
        )

    referral_code = ReferralCode(
        user_id=user.id,
        code=code,
        status=ReferralCodeStatus.ACTIVE.value,
        total_referrals=0,
        successful_referrals=0,
        total_earnings=0,
    )
    db.add(referral_code)
    await db.flush()
    logger.info("referral_code_created", user_id=user.id, code=code)
    return referral_code


async def _completed_this_month(db: AsyncSession, referrer_id: int) -> int:
    now = utcnow()
    month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    result = await db.execute(
        select(func.count(Referral.id)).where(
            Referral.referrer_id == referrer_id,
            Referral.status == ReferralStatus.COMPLETED.value,
            Referral.completed_at >= month_start,
        )
    )
    return result.scalar_one()


async def _paid_booking(db: AsyncSession, user: User, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None or booking.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if booking.payment_status != PaymentStatus.PAID.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Referral rewards need a paid booking",
        )
    return booking


async def apply_code(
    db: AsyncSession, user: User, code: str, booking_id: Optional[int] = None
) -> Referral:
    """
    Record that `user` was referred with `code`. With a paid `booking_id` the
    referral completes at once; otherwise on the user's first paid booking.
    """
    result = await db.execute(
        select(ReferralCode).where(
            ReferralCode.code == normalize_code(code),
            ReferralCode.status == ReferralCodeStatus.ACTIVE.value,
        )
    )
    referral_code = result.scalar_one_or_none()
    if referral_code is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid referral code")
    if referral_code.user_id == user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot use your own referral code",
        )

    existing = await db.execute(select(Referral.id).where(Referral.referee_id == user.id))
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already used a referral code",
        )

    if await _completed_this_month(db, referral_code.user_id) >= settings.REFERRAL_MONTHLY_LIMIT:
        logger.info("referral_limit_reached", referrer_id=referral_code.user_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Referral limit reached for this month",
        )

    booking = await _paid_booking(db, user, booking_id) if booking_id is not None else None

    referral = Referral(
        referral_code_id=referral_code.id,
        referrer_id=referral_code.user_id,
        referee_id=user.id,
        referrer_points=settings.REFERRER_REWARD_POINTS,
        referee_points=settings.REFEREE_REWARD_POINTS,
        status=ReferralStatus.PENDING.value,
    )
    db.add(referral)
    await db.execute(
        update(ReferralCode)
        .where(ReferralCode.id == referral_code.id)
        .values(total_referrals=ReferralCode.total_referrals + 1)
    )
    await db.flush()
    logger.info(
        "referral_recorded",
        referral_id=referral.id,
        referrer_id=referral.referrer_id,
        referee_id=user.id,
    )

    if booking is not None:
        await complete(db, referral, booking.id)
    return referral


async def complete(db: AsyncSession, referral: Referral, booking_id: int) -> bool:
    """Credit both sides once. False when another payment already completed it."""
    claimed = await db.execute(
        update(Referral)
        .where(Referral.id == referral.id, Referral.status == ReferralStatus.PENDING.value)
        .values(
            status=ReferralStatus.COMPLETED.value,
            booking_id=booking_id,
            completed_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False
    await db.refresh(referral)

    await reward_service.credit(
        db, referral.referrer_id, referral.referrer_points, "Referral reward", booking_id
    )
    await reward_service.credit(
        db, referral.referee_id, referral.referee_points, "Referral bonus", booking_id
    )
    await db.execute(
        update(ReferralCode)
        .where(ReferralCode.id == referral.referral_code_id)
        .values(
            successful_referrals=ReferralCode.successful_referrals + 1,
            total_earnings=ReferralCode.total_earnings + referral.referrer_points,
        )
    )
    await notify(
        db,
        referral.referrer_id,
        "Referral reward earned",
        f"You earned {referral.referrer_points} reward points for referring a friend.",
        notification_type=NotificationType.SUCCESS.value,
    )
    await notify(
        db,
        referral.referee_id,
        "Referral bonus received",
        f"You received {referral.referee_points} reward points for using a referral code.",
        notification_type=NotificationType.SUCCESS.value,
    )
    logger.info(
        "referral_completed",
        referral_id=referral.id,
        referrer_id=referral.referrer_id,
        referee_id=referral.referee_id,
        booking_id=booking_id,
    )
    return True


async def complete_for_booking(db: AsyncSession, booking: Booking) -> bool:
    """Called when a booking is paid; completes its owner's pending referral."""
    if booking.user_id is None:
        return False
    result = await db.execute(
        select(Referral).where(
            Referral.referee_id == booking.user_id,
            Referral.status == ReferralStatus.PENDING.value,
        )
    )
    referral = result.scalars().first()
    if referral is None:
        return False
    return await complete(db, referral, booking.id)


async def list_referrals(db: AsyncSession, user: User) -> list[Referral]:
    result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == user.id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )
    return list(result.scalars().unique().all())
