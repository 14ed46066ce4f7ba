"""
Coupon endpoints. Admins create platform coupons; merchants create coupons
restricted to their own halls.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidation,
)
from studyhall.services import coupon_service, study_hall_service

router = APIRouter(prefix="/coupons", tags=["Coupons"])

coupon_managers = require_roles(UserRole.MERCHANT, *ADMIN_ROLES)


@router.post("/", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    data: CouponCreate,
    user: User = Depends(coupon_managers),
    db: AsyncSession = Depends(get_db),
):
    return await coupon_service.create_coupon(db, user, data)


@router.get("/", response_model=list[CouponResponse])
async def list_coupons(
    user: User = Depends(coupon_managers),
    db: AsyncSession = Depends(get_db),
):
    return await coupon_service.list_coupons(db, user)


@router.post("/validate", response_model=CouponValidation)
async def validate_coupon(
    data: CouponValidateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check a code against a booking amount. Invalid codes come back with a reason."""
    hall = None
    if data.study_hall_id is not None:
        hall = await study_hall_service.get_study_hall(db, data.study_hall_id)
    check = await coupon_service.validate_coupon(db, user.id, data.code, data.booking_amount, hall)
    return CouponValidation(
        valid=check.valid,
        code=check.code,
        discount=check.discount,
        reason=check.reason,
        coupon_id=check.coupon_id if check.valid else None,
    )


@router.post("/{coupon_id}/activate", response_model=CouponResponse)
async def activate_coupon(
    coupon_id: int,
    user: User = Depends(coupon_managers),
    db: AsyncSession = Depends(get_db),
):
    return await coupon_service.set_coupon_status(db, user, coupon_id, active=True)


@router.post("/{coupon_id}/deactivate", response_model=CouponResponse)
async def deactivate_coupon(
    coupon_id: int,
    user: User = Depends(coupon_managers),
    db: AsyncSession = Depends(get_db),
):
    return await coupon_service.set_coupon_status(db, user, coupon_id, active=False)
