"""
Referral endpoints: a user's own code, the referrals it produced, and applying
someone else's code.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user
from studyhall.db.session import get_db
from studyhall.models.user import User
from studyhall.schemas.referral import ReferralApply, ReferralCodeResponse, ReferralResponse
from studyhall.services import referral_service

router = APIRouter(prefix="/referrals", tags=["Referrals"])


@router.get("/me", response_model=ReferralCodeResponse)
async def my_code(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await referral_service.get_or_create_code(db, user)


@router.get("/", response_model=list[ReferralResponse])
async def my_referrals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await referral_service.list_referrals(db, user)


@router.post("/apply", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def apply_referral(
    data: ReferralApply,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pending until your first paid booking, unless a paid booking is given."""
    return await referral_service.apply_code(db, user, data.referral_code, data.booking_id)
