"""
Business settings and manual runs of the maintenance jobs.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.booking import LifecycleReport
from studyhall.schemas.business_settings import (
    BusinessSettingsResponse,
    BusinessSettingsUpdate,
    PublicSettings,
)
from studyhall.schemas.payment import RecoveryReport
from studyhall.services import booking_service, payment_service, settings_service

router = APIRouter(tags=["Settings"])

admins = require_roles(*ADMIN_ROLES)


@router.get("/settings/public", response_model=PublicSettings)
async def public_settings(db: AsyncSession = Depends(get_db)):
    """What checkout needs to know: usable payment methods and reward rules."""
    biz = await settings_service.get_business_settings(db)
    return PublicSettings(
        available_payment_methods=settings_service.available_payment_methods(biz),
        rewards_enabled=biz.rewards_enabled,
        rewards_conversion_rate=biz.rewards_conversion_rate,
        min_redemption_points=biz.min_redemption_points,
        support_email=biz.support_email,
        support_phone=biz.support_phone,
    )


@router.get("/admin/settings", response_model=BusinessSettingsResponse)
async def get_settings(admin: User = Depends(admins), db: AsyncSession = Depends(get_db)):
    return await settings_service.get_business_settings(db)


@router.patch("/admin/settings", response_model=BusinessSettingsResponse)
async def update_settings(
    data: BusinessSettingsUpdate,
    admin: User = Depends(admins),
    db: AsyncSession = Depends(get_db),
):
    return await settings_service.update_business_settings(db, data)


@router.post("/admin/lifecycle/run", response_model=LifecycleReport)
async def run_lifecycle(
    today: Optional[date] = None,
    admin: User = Depends(admins),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.run_lifecycle(db, today)


@router.post("/admin/payments/recover", response_model=RecoveryReport)
async def run_recovery(
    user: User = Depends(require_roles(UserRole.PENDING_PAYMENTS_CALLER, *ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.run_payment_recovery(db)
