"""
Aggregates behind the merchant and admin dashboards.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.config import get_settings
from studyhall.db.base import utcnow
from studyhall.models.booking import Booking, BookingStatus
from studyhall.models.study_hall import StudyHall
from studyhall.models.transaction import (
    OPEN_TRANSACTION_STATUSES,
    PaymentMethod,
    Transaction,
    TransactionStatus,
)
from studyhall.models.user import User
from studyhall.services.availability_service import hall_occupancy
from studyhall.services.settlement_service import unsettled_summary

settings = get_settings()


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


async def merchant_summary(
    db: AsyncSession, merchant_id: int, today: Optional[date] = None
) -> dict:
    today = today or date.today()
    halls = (
        await db.execute(select(StudyHall).where(StudyHall.merchant_id == merchant_id))
    ).scalars().unique().all()
    hall_ids = [h.id for h in halls] or [-1]

    total_seats = sum(h.total_seats for h in halls)
    occupied = 0
    for hall in halls:
        occupied += (await hall_occupancy(db, hall, today))["occupied"]

    active_bookings = (
        await db.execute(
            select(func.count(Booking.id)).where(
                Booking.study_hall_id.in_(hall_ids),
                Booking.status.in_((BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)),
            )
        )
    ).scalar_one()

    revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .join(Booking, Booking.id == Transaction.booking_id)
            .where(
                Booking.study_hall_id.in_(hall_ids),
                Transaction.status == TransactionStatus.COMPLETED.value,
            )
        )
    ).scalar_one()

    rated = [h for h in halls if h.total_reviews]
    average_rating = None
    if rated:
        weighted = sum(Decimal(str(h.average_rating)) * h.total_reviews for h in rated)
        average_rating = (weighted / sum(h.total_reviews for h in rated)).quantize(Decimal("0.01"))

    unsettled = await unsettled_summary(db, merchant_id)
    return {
        "merchant_id": merchant_id,
        "study_halls": len(halls),
        "total_seats": total_seats,
        "occupied_today": occupied,
        "occupancy_rate": round(occupied / total_seats * 100, 2) if total_seats else 0.0,
        "active_bookings": active_bookings,
        "completed_revenue": _money(revenue),
        "unsettled_amount": _money(unsettled["total_amount"]),
        "average_rating": average_rating,
    }


async def _grouped_counts(db: AsyncSession, column, count_column) -> dict[str, int]:
    result = await db.execute(select(column, func.count(count_column)).group_by(column))
    return {key: count for key, count in result.all()}


async def admin_summary(db: AsyncSession) -> dict:
    users_by_role = await _grouped_counts(db, User.role, User.id)
    bookings_by_status = await _grouped_counts(db, Booking.status, Booking.id)

    revenue_rows = await db.execute(
        select(Transaction.payment_method, func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.status == TransactionStatus.COMPLETED.value)
        .group_by(Transaction.payment_method)
    )
    revenue_by_method = {method: _money(total) for method, total in revenue_rows.all()}

    pending_offline = (
        await db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.payment_method == PaymentMethod.OFFLINE.value,
                Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
            )
        )
    ).scalar_one()

    cutoff = utcnow() - timedelta(minutes=settings.EKQR_RECOVERY_AGE_MINUTES)
    stuck_qr = (
        await db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.payment_method == PaymentMethod.EKQR.value,
                Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
                Transaction.created_at < cutoff,
            )
        )
    ).scalar_one()

    return {
        "users_by_role": users_by_role,
        "bookings_by_status": bookings_by_status,
        "revenue_by_method": revenue_by_method,
        "pending_offline_payments": pending_offline,
        "stuck_qr_payments": stuck_qr,
    }
