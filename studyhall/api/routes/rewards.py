"""
Reward point endpoints.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User
from studyhall.schemas.reward import (
    RedemptionPreview,
    RedemptionRequest,
    RewardAdjustment,
    RewardSummary,
    RewardTransactionResponse,
)
from studyhall.services import reward_service
from studyhall.services.settings_service import get_business_settings

router = APIRouter(prefix="/rewards", tags=["Rewards"])


async def _summary(db: AsyncSession, user_id: int) -> RewardSummary:
    config = await get_business_settings(db)
    account = await reward_service.get_or_create_account(db, user_id)
    rate = Decimal(config.rewards_conversion_rate)
    return RewardSummary(
        user_id=user_id,
        total_points=account.total_points,
        available_points=account.available_points,
        lifetime_earned=account.lifetime_earned,
        lifetime_redeemed=account.lifetime_redeemed,
        enabled=config.rewards_enabled,
        conversion_rate=rate,
        min_redemption_points=config.min_redemption_points,
        points_value=reward_service.points_value(account.available_points, rate),
    )


@router.get("/me", response_model=RewardSummary)
async def my_rewards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _summary(db, user.id)


@router.get("/me/ledger", response_model=list[RewardTransactionResponse])
async def my_ledger(
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await reward_service.list_ledger(db, user.id, limit)


@router.post("/preview", response_model=RedemptionPreview)
async def preview_redemption(
    data: RedemptionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """How many points would be spent against `amount`, and for what discount."""
    config = await get_business_settings(db)
    redemption = await reward_service.validate_redemption(db, user.id, data.points, data.amount, config)
    return RedemptionPreview(
        valid=redemption.valid,
        points=redemption.points,
        discount=redemption.discount,
        reason=redemption.reason,
    )


@router.post("/adjust", response_model=RewardSummary)
async def adjust_points(
    data: RewardAdjustment,
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    await reward_service.adjust(db, data.user_id, data.points, data.reason)
    return await _summary(db, data.user_id)
