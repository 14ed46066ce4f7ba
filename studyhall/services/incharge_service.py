"""
Incharges: staff a merchant invites to run specific study halls.

An invitation carries a URL-safe token valid for a fixed number of days.
Accepting it creates a new user account with the incharge role; an email that
already has an account cannot be invited.
"""

import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.config import get_settings
from studyhall.core.logging import get_logger
from studyhall.core.security import hash_password
from studyhall.db.base import utcnow
from studyhall.models.incharge import Incharge, InchargeActivityLog, InchargeStatus
from studyhall.models.study_hall import StudyHall
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.incharge import InchargeInvite, InchargeUpdate

logger = get_logger(__name__)
settings = get_settings()


def invitation_link(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/incharge/accept-invitation?token={token}"


async def _merchant_halls(
    db: AsyncSession, merchant_id: int, hall_ids: list[int]
) -> list[StudyHall]:
    result = await db.execute(
        select(StudyHall).where(StudyHall.id.in_(hall_ids), StudyHall.merchant_id == merchant_id)
    )
    halls = list(result.scalars().unique().all())
    if len(halls) != len(set(hall_ids)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incharges can only be assigned to your own study halls",
        )
    return halls


async def invite_incharge(db: AsyncSession, merchant: User, data: InchargeInvite) -> Incharge:
    email = data.email.lower()
    existing = await db.execute(
        select(Incharge).where(Incharge.merchant_id == merchant.id, Incharge.email == email)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An incharge with this email already exists",
        )
    await _ensure_email_unregistered(db, email)

    halls = await _merchant_halls(db, merchant.id, data.study_hall_ids)
    incharge = Incharge(
        merchant_id=merchant.id,
        full_name=data.full_name,
        email=email,
        mobile=data.mobile,
        permissions=dict(data.permissions),
        status=InchargeStatus.INVITED.value,
        invitation_token=secrets.token_urlsafe(32),
        invitation_sent_at=utcnow(),
        account_activated=False,
    )
    incharge.study_halls = halls
    db.add(incharge)
    await db.flush()

    deliver_invitation(incharge, merchant)
    logger.info(
        "incharge_invited",
        incharge_id=incharge.id,
        merchant_id=merchant.id,
        email=email,
        halls=[h.id for h in halls],
    )
    return incharge


def deliver_invitation(incharge: Incharge, merchant: User) -> None:
    """
    Hand the invitation link to the invitee's delivery channel.

    The link is the only copy of the token outside the database; it goes to
    the invitee, never back to the inviting merchant.
    """
    logger.info(
        "incharge_invitation_delivery",
        incharge_id=incharge.id,
        to=incharge.email,
        merchant=merchant.full_name,
        invitation_link=invitation_link(incharge.invitation_token),
    )


async def _ensure_email_unregistered(db: AsyncSession, email: str) -> None:
    taken = await db.execute(select(User.id).where(User.email == email))
    if taken.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )


async def accept_invitation(db: AsyncSession, token: str, password: str) -> Incharge:
    cutoff = utcnow() - timedelta(days=settings.INVITATION_EXPIRE_DAYS)
    result = await db.execute(select(Incharge).where(Incharge.invitation_token == token))
    incharge = result.scalar_one_or_none()
    if incharge is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found or already used",
        )

    fresh = await db.execute(
        select(Incharge.id).where(
            Incharge.id == incharge.id, Incharge.invitation_sent_at >= cutoff
        )
    )
    if fresh.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="This invitation has expired. Ask the merchant to send a new one.",
        )

    # Accepting only ever creates a new account; existing accounts are left untouched
    await _ensure_email_unregistered(db, incharge.email)
    user = User(
        email=incharge.email,
        full_name=incharge.full_name,
        phone=incharge.mobile,
        hashed_password=hash_password(password),
        role=UserRole.INCHARGE.value,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    incharge.user_id = user.id
    incharge.status = InchargeStatus.ACTIVE.value
    incharge.account_activated = True
    incharge.invitation_token = None
    await db.flush()

    logger.info("incharge_invitation_accepted", incharge_id=incharge.id, user_id=user.id)
    return incharge


async def get_incharge(db: AsyncSession, merchant: User, incharge_id: int) -> Incharge:
    query = select(Incharge).where(Incharge.id == incharge_id)
    if merchant.role not in ADMIN_ROLES:
        query = query.where(Incharge.merchant_id == merchant.id)
    incharge = (await db.execute(query)).scalar_one_or_none()
    if not incharge:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Incharge not found")
    return incharge


async def update_incharge(
    db: AsyncSession, merchant: User, incharge_id: int, data: InchargeUpdate
) -> Incharge:
    incharge = await get_incharge(db, merchant, incharge_id)
    changes = data.model_dump(exclude_unset=True)

    hall_ids = changes.pop("study_hall_ids", None)
    if hall_ids is not None:
        incharge.study_halls = await _merchant_halls(db, incharge.merchant_id, hall_ids)
    for field, value in changes.items():
        setattr(incharge, field, value)

    await db.flush()
    logger.info("incharge_updated", incharge_id=incharge.id, fields=sorted(changes))
    return incharge


async def list_incharges(db: AsyncSession, merchant: User) -> list[Incharge]:
    query = select(Incharge)
    if merchant.role not in ADMIN_ROLES:
        query = query.where(Incharge.merchant_id == merchant.id)
    result = await db.execute(query.order_by(Incharge.id))
    return list(result.scalars().all())


async def get_active_incharge(db: AsyncSession, user: User) -> Optional[Incharge]:
    if user.role != UserRole.INCHARGE.value:
        return None
    result = await db.execute(
        select(Incharge).where(
            Incharge.user_id == user.id,
            Incharge.status == InchargeStatus.ACTIVE.value,
        )
    )
    return result.scalar_one_or_none()


async def assigned_hall_ids(db: AsyncSession, user: User) -> set[int]:
    incharge = await get_active_incharge(db, user)
    return set(incharge.assigned_study_hall_ids) if incharge else set()


async def can_manage_hall(db: AsyncSession, user: User, hall: StudyHall) -> bool:
    """Admins, the owning merchant and incharges assigned to the hall."""
    if user.role in ADMIN_ROLES:
        return True
    if user.role == UserRole.MERCHANT.value:
        return hall.merchant_id == user.id
    if user.role == UserRole.INCHARGE.value:
        return hall.id in await assigned_hall_ids(db, user)
    return False


async def ensure_can_manage_hall(db: AsyncSession, user: User, hall: StudyHall) -> None:
    if not await can_manage_hall(db, user, hall):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to manage this study hall",
        )


async def log_activity(
    db: AsyncSession,
    user: User,
    action: str,
    booking_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> Optional[InchargeActivityLog]:
    """Record an action when `user` is acting as an incharge; no-op otherwise."""
    incharge = await get_active_incharge(db, user)
    if incharge is None:
        return None
    entry = InchargeActivityLog(
        incharge_id=incharge.id,
        merchant_id=incharge.merchant_id,
        action=action,
        booking_id=booking_id,
        details=details or {},
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_activity(
    db: AsyncSession, merchant: User, incharge_id: Optional[int] = None, limit: int = 100
) -> list[InchargeActivityLog]:
    query = select(InchargeActivityLog)
    if merchant.role not in ADMIN_ROLES:
        query = query.where(InchargeActivityLog.merchant_id == merchant.id)
    if incharge_id is not None:
        query = query.where(InchargeActivityLog.incharge_id == incharge_id)
    result = await db.execute(
        query.order_by(InchargeActivityLog.created_at.desc(), InchargeActivityLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
