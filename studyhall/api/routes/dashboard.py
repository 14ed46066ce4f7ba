"""
Role dashboard summaries.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, STAFF_ROLES, User, UserRole
from studyhall.schemas.dashboard import AdminSummary, MerchantSummary
from studyhall.services import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/merchant", response_model=MerchantSummary)
async def merchant_dashboard(
    merchant_id: Optional[int] = None,
    user: User = Depends(require_roles(UserRole.MERCHANT, *STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    if user.role == UserRole.MERCHANT.value:
        merchant_id = user.id
    elif merchant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="merchant_id is required",
        )
    return await dashboard_service.merchant_summary(db, merchant_id)


@router.get("/admin", response_model=AdminSummary)
async def admin_dashboard(
    user: User = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await dashboard_service.admin_summary(db)
