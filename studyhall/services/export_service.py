"""
CSV exports of bookings, transactions and settlements.

Rows are loaded in one query; the response then writes them out line by line.
Visibility follows the same role scoping as the lists. Guest bookings show
the guest email in the student column.
"""

import csv
import io
from datetime import date, datetime, time, timezone
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.models.booking import Booking
from studyhall.models.settlement import Settlement
from studyhall.models.study_hall import StudyHall
from studyhall.models.transaction import Transaction
from studyhall.models.user import STAFF_ROLES, User, UserRole
from studyhall.services import incharge_service

BOOKING_COLUMNS = [
    "booking_id", "created_at", "student_email", "study_hall", "seat", "period",
    "start_date", "end_date", "base_amount", "coupon_code", "coupon_discount",
    "reward_discount", "convenience_fee", "platform_fee", "total_amount",
    "status", "payment_status", "payment_method",
]

TRANSACTION_COLUMNS = [
    "transaction_id", "created_at", "booking_id", "user_id", "amount",
    "payment_method", "status", "provider_order_id", "payment_id", "qr_id",
    "confirmed_by",
]

SETTLEMENT_COLUMNS = [
    "settlement_id", "created_at", "merchant_id", "total_booking_amount",
    "platform_fee_percentage", "platform_fee_amount", "net_settlement_amount",
    "status", "payment_method", "payment_reference", "payment_date", "transactions",
]


def _bounds(start: Optional[date], end: Optional[date]):
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end, time.max, tzinfo=timezone.utc) if end else None
    return lower, upper


def _within(query, column, start: Optional[date], end: Optional[date]):
    lower, upper = _bounds(start, end)
    if lower is not None:
        query = query.where(column >= lower)
    if upper is not None:
        query = query.where(column <= upper)
    return query


async def _hall_scope(db: AsyncSession, user: User, column, query):
    if user.role in STAFF_ROLES:
        return query
    if user.role == UserRole.MERCHANT.value:
        return query.where(column.in_(select(StudyHall.id).where(StudyHall.merchant_id == user.id)))
    if user.role == UserRole.INCHARGE.value:
        return query.where(column.in_(await incharge_service.assigned_hall_ids(db, user) or [-1]))
    return None


def _owner_email(booking: Booking) -> str:
    if booking.user is not None:
        return booking.user.email
    return booking.guest_email or ""


async def booking_rows(
    db: AsyncSession, user: User, start: Optional[date] = None, end: Optional[date] = None
) -> list[list]:
    query = select(Booking)
    scoped = await _hall_scope(db, user, Booking.study_hall_id, query)
    query = scoped if scoped is not None else query.where(Booking.user_id == user.id)
    query = _within(query, Booking.created_at, start, end).order_by(Booking.id)
    result = await db.execute(query)
    return [
        [
            b.id, b.created_at.isoformat(), _owner_email(b), b.study_hall.name, b.seat.seat_label,
            b.booking_period, b.start_date, b.end_date, b.base_amount, b.coupon_code or "",
            b.coupon_discount, b.reward_discount, b.convenience_fee, b.platform_fee,
            b.total_amount, b.status, b.payment_status, b.payment_method,
        ]
        for b in result.scalars().unique().all()
    ]


async def transaction_rows(
    db: AsyncSession, user: User, start: Optional[date] = None, end: Optional[date] = None
) -> list[list]:
    query = select(Transaction).join(Booking, Booking.id == Transaction.booking_id)
    scoped = await _hall_scope(db, user, Booking.study_hall_id, query)
    query = scoped if scoped is not None else query.where(Transaction.user_id == user.id)
    query = _within(query, Transaction.created_at, start, end).order_by(Transaction.id)
    result = await db.execute(query)
    return [
        [
            t.id, t.created_at.isoformat(), t.booking_id, t.user_id or "", t.amount,
            t.payment_method, t.status, t.provider_order_id or "", t.payment_id or "",
            t.qr_id or "", t.confirmed_by or "",
        ]
        for t in result.scalars().unique().all()
    ]


async def settlement_rows(
    db: AsyncSession, user: User, start: Optional[date] = None, end: Optional[date] = None
) -> list[list]:
    query = select(Settlement)
    if user.role not in STAFF_ROLES:
        query = query.where(Settlement.merchant_id == user.id)
    query = _within(query, Settlement.created_at, start, end).order_by(Settlement.id)
    result = await db.execute(query)
    return [
        [
            s.id, s.created_at.isoformat(), s.merchant_id, s.total_booking_amount,
            s.platform_fee_percentage, s.platform_fee_amount, s.net_settlement_amount,
            s.status, s.payment_method or "", s.payment_reference or "",
            s.payment_date.isoformat() if s.payment_date else "", len(s.items),
        ]
        for s in result.scalars().all()
    ]


async def stream_csv(header: list[str], rows: Iterable[list]) -> AsyncIterator[str]:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    yield buffer.getvalue()
    for row in rows:
        buffer.seek(0)
        buffer.truncate(0)
        writer.writerow(row)
        yield buffer.getvalue()


def export_filename(kind: str, today: Optional[date] = None) -> str:
    return f"{kind}_{(today or date.today()).isoformat()}.csv"
