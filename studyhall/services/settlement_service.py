"""
Merchant settlements.

A completed transaction is eligible until it is part of a settlement that is
not cancelled. Cancelling a settlement releases its transactions.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.db.base import utcnow
from studyhall.models.booking import Booking
from studyhall.models.notification import NotificationType
from studyhall.models.settlement import (
    SETTLEMENT_TRANSITIONS,
    Settlement,
    SettlementStatus,
    SettlementTransaction,
)
from studyhall.models.study_hall import StudyHall
from studyhall.models.transaction import Transaction, TransactionStatus
from studyhall.models.user import STAFF_ROLES, User, UserRole
from studyhall.schemas.settlement import SettlementCreate, SettlementStatusUpdate
from studyhall.services.notification_service import notify
from studyhall.services.realtime import queue_change
from studyhall.services.settings_service import get_business_settings

logger = get_logger(__name__)

PAISE = Decimal("0.01")


def _settled_transaction_ids():
    return (
        select(SettlementTransaction.transaction_id)
        .join(Settlement, Settlement.id == SettlementTransaction.settlement_id)
        .where(Settlement.status != SettlementStatus.CANCELLED.value)
    )


def _eligible_query(merchant_id: int):
    return (
        select(Transaction)
        .join(Booking, Booking.id == Transaction.booking_id)
        .join(StudyHall, StudyHall.id == Booking.study_hall_id)
        .where(
            StudyHall.merchant_id == merchant_id,
            Transaction.status == TransactionStatus.COMPLETED.value,
            Transaction.id.not_in(_settled_transaction_ids()),
        )
    )


async def eligible_transactions(db: AsyncSession, merchant_id: int) -> list[Transaction]:
    result = await db.execute(_eligible_query(merchant_id).order_by(Transaction.created_at))
    return list(result.scalars().unique().all())


async def unsettled_summary(db: AsyncSession, merchant_id: int) -> dict:
    eligible = _eligible_query(merchant_id).subquery()
    row = (
        await db.execute(
            select(
                func.count(eligible.c.id),
                func.coalesce(func.sum(eligible.c.amount), 0),
                func.min(eligible.c.created_at),
            )
        )
    ).one()
    return {
        "merchant_id": merchant_id,
        "count": row[0],
        "total_amount": Decimal(str(row[1])).quantize(PAISE),
        "oldest_transaction_at": row[2],
    }


async def _get_merchant(db: AsyncSession, merchant_id: int) -> User:
    merchant = (await db.execute(select(User).where(User.id == merchant_id))).scalar_one_or_none()
    if not merchant or merchant.role != UserRole.MERCHANT.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Merchant {merchant_id} not found",
        )
    return merchant


async def create_settlement(db: AsyncSession, admin: User, data: SettlementCreate) -> Settlement:
    await _get_merchant(db, data.merchant_id)

    requested = set(data.transaction_ids)
    eligible = {t.id: t for t in await eligible_transactions(db, data.merchant_id)}
    ineligible = sorted(requested - eligible.keys())
    if ineligible:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Transactions not eligible for settlement: {ineligible}",
        )

    biz = await get_business_settings(db)
    fee_pct = Decimal(
        data.platform_fee_percentage
        if data.platform_fee_percentage is not None
        else biz.platform_fee_percentage
    )
    chosen = [eligible[tid] for tid in sorted(requested)]
    total = sum((Decimal(t.amount) for t in chosen), Decimal("0"))
    if total < Decimal(biz.minimum_settlement_amount):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Settlement total must be at least Rs. {biz.minimum_settlement_amount}",
        )

    fee = (total * fee_pct / 100).quantize(PAISE, rounding=ROUND_HALF_UP)
    settlement = Settlement(
        merchant_id=data.merchant_id,
        admin_id=admin.id,
        total_booking_amount=total,
        platform_fee_percentage=fee_pct,
        platform_fee_amount=fee,
        net_settlement_amount=total - fee,
        status=SettlementStatus.PENDING.value,
        notes=data.notes,
    )
    settlement.items = [
        SettlementTransaction(
            transaction_id=t.id,
            booking_id=t.booking_id,
            transaction_amount=t.amount,
        )
        for t in chosen
    ]
    db.add(settlement)
    await db.flush()

    logger.info(
        "settlement_created",
        settlement_id=settlement.id,
        merchant_id=data.merchant_id,
        transactions=len(chosen),
        total=str(total),
        fee=str(fee),
    )
    queue_change(db, "settlements", "insert", settlement.id, merchant_id=data.merchant_id)
    return settlement


async def get_settlement(db: AsyncSession, user: User, settlement_id: int) -> Settlement:
    query = select(Settlement).where(Settlement.id == settlement_id)
    if user.role not in STAFF_ROLES:
        query = query.where(Settlement.merchant_id == user.id)
    settlement = (await db.execute(query)).scalar_one_or_none()
    if not settlement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Settlement not found")
    return settlement


async def update_settlement_status(
    db: AsyncSession, user: User, settlement_id: int, data: SettlementStatusUpdate
) -> Settlement:
    settlement = await get_settlement(db, user, settlement_id)
    allowed = SETTLEMENT_TRANSITIONS[settlement.status]
    if data.status not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move settlement from {settlement.status} to {data.status}",
        )

    if data.status == SettlementStatus.PAID.value:
        if not (data.payment_reference or settlement.payment_reference):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A payment reference is required to mark a settlement paid",
            )
        settlement.payment_date = utcnow()

    if data.payment_reference is not None:
        settlement.payment_reference = data.payment_reference
    if data.payment_method is not None:
        settlement.payment_method = data.payment_method
    if data.notes is not None:
        settlement.notes = data.notes
    previous = settlement.status
    settlement.status = data.status
    await db.flush()

    if data.status == SettlementStatus.PAID.value:
        await notify(
            db,
            settlement.merchant_id,
            "Settlement paid",
            f"Settlement #{settlement.id} of Rs. {settlement.net_settlement_amount} was paid "
            f"(ref {settlement.payment_reference}).",
            notification_type=NotificationType.SUCCESS.value,
        )

    logger.info(
        "settlement_status_changed",
        settlement_id=settlement.id,
        from_status=previous,
        to_status=data.status,
        by=user.id,
    )
    queue_change(
        db, "settlements", "update", settlement.id, merchant_id=settlement.merchant_id
    )
    return settlement


async def list_settlements(
    db: AsyncSession,
    user: User,
    merchant_id: Optional[int] = None,
    status_filter: Optional[str] = None,
) -> list[Settlement]:
    query = select(Settlement)
    if user.role in STAFF_ROLES:
        if merchant_id is not None:
            query = query.where(Settlement.merchant_id == merchant_id)
    else:
        query = query.where(Settlement.merchant_id == user.id)
    if status_filter:
        query = query.where(Settlement.status == status_filter)
    result = await db.execute(query.order_by(Settlement.created_at.desc(), Settlement.id.desc()))
    return list(result.scalars().all())
