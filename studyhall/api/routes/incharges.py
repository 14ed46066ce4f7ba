"""
Incharge endpoints: invitations, assignments and the activity log.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.incharge import (
    ActivityLogResponse,
    InchargeInvite,
    InchargeResponse,
    InchargeUpdate,
    InvitationAccept,
)
from studyhall.services import incharge_service

router = APIRouter(prefix="/incharges", tags=["Incharges"])

incharge_owners = require_roles(UserRole.MERCHANT, *ADMIN_ROLES)


@router.post("/", response_model=InchargeResponse, status_code=status.HTTP_201_CREATED)
async def invite_incharge(
    data: InchargeInvite,
    merchant: User = Depends(require_roles(UserRole.MERCHANT)),
    db: AsyncSession = Depends(get_db),
):
    """Invite someone to run one or more of the merchant's halls.

    The invitation link goes to the invitee only; it is not part of the response.
    """
    return await incharge_service.invite_incharge(db, merchant, data)


@router.post("/accept", response_model=InchargeResponse)
async def accept_invitation(data: InvitationAccept, db: AsyncSession = Depends(get_db)):
    """Public: set a password and activate the incharge account."""
    return await incharge_service.accept_invitation(db, data.token, data.password)


@router.get("/", response_model=list[InchargeResponse])
async def list_incharges(
    merchant: User = Depends(incharge_owners),
    db: AsyncSession = Depends(get_db),
):
    return await incharge_service.list_incharges(db, merchant)


@router.get("/activity", response_model=list[ActivityLogResponse])
async def list_activity(
    incharge_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    merchant: User = Depends(incharge_owners),
    db: AsyncSession = Depends(get_db),
):
    return await incharge_service.list_activity(db, merchant, incharge_id, limit)


@router.get("/{incharge_id}", response_model=InchargeResponse)
async def get_incharge(
    incharge_id: int,
    merchant: User = Depends(incharge_owners),
    db: AsyncSession = Depends(get_db),
):
    return await incharge_service.get_incharge(db, merchant, incharge_id)


@router.patch("/{incharge_id}", response_model=InchargeResponse)
async def update_incharge(
    incharge_id: int,
    data: InchargeUpdate,
    merchant: User = Depends(incharge_owners),
    db: AsyncSession = Depends(get_db),
):
    return await incharge_service.update_incharge(db, merchant, incharge_id, data)
