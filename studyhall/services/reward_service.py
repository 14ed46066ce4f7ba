"""
Loyalty points.

Points are debited when a booking is created, credited back if that booking
never gets paid, and earned once its payment completes. Every movement is a
ledger row; the account row keeps running balances.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.models.business_settings import BusinessSettings
from studyhall.models.notification import NotificationType
from studyhall.models.reward import Reward, RewardTransaction, RewardTransactionType
from studyhall.services.notification_service import notify

logger = get_logger(__name__)

PAISE = Decimal("0.01")


@dataclass
class Redemption:
    valid: bool
    points: int = 0
    discount: Decimal = Decimal("0")
    reason: Optional[str] = None


async def get_or_create_account(db: AsyncSession, user_id: int) -> Reward:
    result = await db.execute(select(Reward).where(Reward.user_id == user_id))
    account = result.scalar_one_or_none()
    if account is None:
        account = Reward(
            user_id=user_id,
            total_points=0,
            available_points=0,
            lifetime_earned=0,
            lifetime_redeemed=0,
        )
        db.add(account)
        await db.flush()
    return account


def points_value(points: int, rate: Decimal) -> Decimal:
    return (Decimal(points) * Decimal(rate)).quantize(PAISE, rounding=ROUND_HALF_UP)


async def validate_redemption(
    db: AsyncSession,
    user_id: int,
    points: int,
    amount: Decimal,
    config: BusinessSettings,
) -> Redemption:
    if not config.rewards_enabled:
        return Redemption(valid=False, reason="Reward points are not enabled")
    if points <= 0:
        return Redemption(valid=False, reason="Enter a positive number of points")
    if points < config.min_redemption_points:
        return Redemption(
            valid=False,
            reason=f"Minimum {config.min_redemption_points} points required for redemption",
        )

    account = await get_or_create_account(db, user_id)
    if points > account.available_points:
        return Redemption(
            valid=False,
            reason=f"Only {account.available_points} points available",
        )

    rate = Decimal(config.rewards_conversion_rate)
    amount = Decimal(amount)
    discount = points_value(points, rate)
    if discount > amount:
        # Spend only what the amount can absorb
        points = math.ceil(amount / rate) if amount > 0 else 0
        discount = amount.quantize(PAISE)
        if points == 0:
            return Redemption(valid=False, reason="Nothing left to pay with points")

    return Redemption(valid=True, points=points, discount=discount)


async def _add_ledger(
    db: AsyncSession,
    user_id: int,
    entry_type: str,
    points: int,
    reason: str,
    booking_id: Optional[int] = None,
) -> RewardTransaction:
    entry = RewardTransaction(
        user_id=user_id,
        booking_id=booking_id,
        type=entry_type,
        points=points,
        reason=reason,
    )
    db.add(entry)
    await db.flush()
    return entry


async def redeem(
    db: AsyncSession, user_id: int, points: int, booking_id: int, discount: Decimal
) -> RewardTransaction:
    account = await get_or_create_account(db, user_id)
    result = await db.execute(
        update(Reward)
        .where(Reward.id == account.id, Reward.available_points >= points)
        .values(
            available_points=Reward.available_points - points,
            total_points=Reward.total_points - points,
            lifetime_redeemed=Reward.lifetime_redeemed + points,
        )
    )
    if result.rowcount == 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Not enough reward points available",
        )

    entry = await _add_ledger(
        db,
        user_id,
        RewardTransactionType.REDEEMED.value,
        -points,
        f"Redeemed for booking #{booking_id}",
        booking_id,
    )
    await notify(
        db,
        user_id,
        "Reward points redeemed",
        f"{points} points (Rs. {discount}) applied to booking #{booking_id}.",
    )
    logger.info("reward_points_redeemed", user_id=user_id, points=points, booking_id=booking_id)
    return entry


async def restore(
    db: AsyncSession, user_id: int, points: int, booking_id: int, reason: str
) -> Optional[RewardTransaction]:
    if points <= 0:
        return None
    account = await get_or_create_account(db, user_id)
    await db.execute(
        update(Reward)
        .where(Reward.id == account.id)
        .values(
            available_points=Reward.available_points + points,
            total_points=Reward.total_points + points,
            lifetime_redeemed=Reward.lifetime_redeemed - points,
        )
    )
    entry = await _add_ledger(
        db, user_id, RewardTransactionType.RESTORED.value, points, reason, booking_id
    )
    logger.info("reward_points_restored", user_id=user_id, points=points, booking_id=booking_id)
    return entry


async def credit(
    db: AsyncSession, user_id: int, points: int, reason: str, booking_id: Optional[int] = None
) -> RewardTransaction:
    account = await get_or_create_account(db, user_id)
    await db.execute(
        update(Reward)
        .where(Reward.id == account.id)
        .values(
            available_points=Reward.available_points + points,
            total_points=Reward.total_points + points,
            lifetime_earned=Reward.lifetime_earned + points,
        )
    )
    return await _add_ledger(
        db, user_id, RewardTransactionType.EARNED.value, points, reason, booking_id
    )


async def earn(
    db: AsyncSession, user_id: int, booking_id: int, config: BusinessSettings
) -> Optional[RewardTransaction]:
    points = config.points_per_booking or 0
    if not config.rewards_enabled or points <= 0:
        return None

    entry = await credit(db, user_id, points, f"Earned for booking #{booking_id}", booking_id)
    await notify(
        db,
        user_id,
        "Reward points earned",
        f"You earned {points} points for booking #{booking_id}.",
        notification_type=NotificationType.SUCCESS.value,
    )
    logger.info("reward_points_earned", user_id=user_id, points=points, booking_id=booking_id)
    return entry


async def adjust(db: AsyncSession, user_id: int, points: int, reason: str) -> Reward:
    if points == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Adjustment must be non-zero",
        )
    account = await get_or_create_account(db, user_id)
    if account.available_points + points < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Adjustment would make the balance negative",
        )

    account.available_points += points
    account.total_points += points
    if points > 0:
        account.lifetime_earned += points
    await _add_ledger(db, user_id, RewardTransactionType.ADJUSTED.value, points, reason)
    logger.info("reward_points_adjusted", user_id=user_id, points=points)
    return account


async def list_ledger(db: AsyncSession, user_id: int, limit: int = 100) -> list[RewardTransaction]:
    result = await db.execute(
        select(RewardTransaction)
        .where(RewardTransaction.user_id == user_id)
        .order_by(RewardTransaction.created_at.desc(), RewardTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
