"""
Merchant settlement endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, STAFF_ROLES, User, UserRole
from studyhall.schemas.settlement import (
    EligibleTransaction,
    SettlementCreate,
    SettlementResponse,
    SettlementStatusUpdate,
    UnsettledSummary,
)
from studyhall.services import settlement_service

router = APIRouter(prefix="/settlements", tags=["Settlements"])

settlement_admins = require_roles(UserRole.SETTLEMENT_MANAGER, *ADMIN_ROLES)


def _merchant_scope(user: User, merchant_id: Optional[int]) -> int:
    """Merchants see their own balance; staff must name the merchant."""
    if user.role == UserRole.MERCHANT.value:
        return user.id
    if user.role in STAFF_ROLES and merchant_id is not None:
        return merchant_id
    if user.role in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="merchant_id is required",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have permission to perform this action",
    )


@router.get("/eligible", response_model=list[EligibleTransaction])
async def eligible_transactions(
    merchant_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transactions = await settlement_service.eligible_transactions(
        db, _merchant_scope(user, merchant_id)
    )
    return [
        EligibleTransaction(
            transaction_id=t.id,
            booking_id=t.booking_id,
            amount=t.amount,
            payment_method=t.payment_method,
            completed_at=t.updated_at,
        )
        for t in transactions
    ]


@router.get("/unsettled", response_model=UnsettledSummary)
async def unsettled_summary(
    merchant_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    scope = _merchant_scope(user, merchant_id)
    summary = await settlement_service.unsettled_summary(db, scope)
    return UnsettledSummary(**summary)


@router.post("/", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    data: SettlementCreate,
    admin: User = Depends(settlement_admins),
    db: AsyncSession = Depends(get_db),
):
    return await settlement_service.create_settlement(db, admin, data)


@router.get("/", response_model=list[SettlementResponse])
async def list_settlements(
    merchant_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    user: User = Depends(require_roles(UserRole.MERCHANT, *STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await settlement_service.list_settlements(db, user, merchant_id, status_filter)


@router.get("/{settlement_id}", response_model=SettlementResponse)
async def get_settlement(
    settlement_id: int,
    user: User = Depends(require_roles(UserRole.MERCHANT, *STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await settlement_service.get_settlement(db, user, settlement_id)


@router.patch("/{settlement_id}/status", response_model=SettlementResponse)
async def update_settlement_status(
    settlement_id: int,
    data: SettlementStatusUpdate,
    admin: User = Depends(settlement_admins),
    db: AsyncSession = Depends(get_db),
):
    return await settlement_service.update_settlement_status(db, admin, settlement_id, data)
