"""
Coupon validation, management and usage recording.

Validation never raises for a bad coupon: it reports `valid=False` with the
first failing reason, checked in a fixed order.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.models.booking import Booking, PaymentStatus
from studyhall.models.coupon import Coupon, CouponAudience, CouponStatus, CouponType, CouponUsage
from studyhall.models.study_hall import StudyHall
from studyhall.models.user import ADMIN_ROLES, User, UserRole
from studyhall.schemas.coupon import CouponCreate

logger = get_logger(__name__)

PAISE = Decimal("0.01")


@dataclass
class CouponCheck:
    valid: bool
    code: str
    discount: Decimal = Decimal("0")
    reason: Optional[str] = None
    coupon: Optional[Coupon] = None

    @property
    def coupon_id(self) -> Optional[int]:
        return self.coupon.id if self.coupon else None


def compute_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if coupon.type == CouponType.FLAT.value:
        discount = min(Decimal(coupon.value), amount)
    else:
        cap = Decimal(coupon.max_discount) if coupon.max_discount else amount
        discount = min(amount * Decimal(coupon.value) / 100, cap)
    return max(Decimal("0"), discount).quantize(PAISE, rounding=ROUND_HALF_UP)


async def get_coupon_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    return result.scalar_one_or_none()


async def _user_usage_count(db: AsyncSession, coupon_id: int, user_id: int) -> int:
    result = await db.execute(
        select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id
        )
    )
    return result.scalar_one()


async def _has_paid_booking(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.user_id == user_id,
            Booking.payment_status == PaymentStatus.PAID.value,
        )
    )
    return result.scalar_one() > 0


async def validate_coupon(
    db: AsyncSession,
    user_id: int,
    code: str,
    booking_amount: Decimal,
    hall: Optional[StudyHall] = None,
    today: Optional[date] = None,
) -> CouponCheck:
    today = today or date.today()
    normalized = code.strip().upper()
    coupon = await get_coupon_by_code(db, normalized)

    def invalid(reason: str) -> CouponCheck:
        return CouponCheck(valid=False, code=normalized, reason=reason, coupon=coupon)

    if coupon is None or coupon.status != CouponStatus.ACTIVE.value:
        return invalid("Invalid or inactive coupon code")
    if coupon.start_date and today < coupon.start_date:
        return invalid("This coupon is not active yet")
    if coupon.end_date and today > coupon.end_date:
        return invalid("This coupon has expired")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return invalid("This coupon has reached its usage limit")
    if await _user_usage_count(db, coupon.id, user_id) >= coupon.user_usage_limit:
        return invalid("You have already used this coupon")
    if coupon.min_booking_amount and Decimal(booking_amount) < Decimal(coupon.min_booking_amount):
        return invalid(f"Minimum booking amount for this coupon is Rs. {coupon.min_booking_amount}")
    if coupon.merchant_id is not None and (hall is None or hall.merchant_id != coupon.merchant_id):
        return invalid("This coupon is not valid for this study hall")
    if coupon.target_audience == CouponAudience.NEW_USERS.value and await _has_paid_booking(
        db, user_id
    ):
        return invalid("This coupon is only for new users")

    return CouponCheck(
        valid=True,
        code=normalized,
        discount=compute_discount(coupon, booking_amount),
        coupon=coupon,
    )


async def create_coupon(db: AsyncSession, actor: User, data: CouponCreate) -> Coupon:
    if await get_coupon_by_code(db, data.code):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Coupon code {data.code} already exists",
        )

    coupon = Coupon(
        **data.model_dump(),
        usage_count=0,
        status=CouponStatus.ACTIVE.value,
        merchant_id=actor.id if actor.role == UserRole.MERCHANT.value else None,
        created_by=actor.id,
    )
    db.add(coupon)
    await db.flush()
    logger.info(
        "coupon_created",
        coupon_id=coupon.id,
        code=coupon.code,
        merchant_id=coupon.merchant_id,
    )
    return coupon


async def list_coupons(db: AsyncSession, actor: User) -> list[Coupon]:
    query = select(Coupon)
    if actor.role not in ADMIN_ROLES:
        query = query.where(Coupon.merchant_id == actor.id)
    result = await db.execute(query.order_by(Coupon.created_at.desc(), Coupon.id.desc()))
    return list(result.scalars().all())


async def set_coupon_status(
    db: AsyncSession, actor: User, coupon_id: int, active: bool
) -> Coupon:
    result = await db.execute(select(Coupon).where(Coupon.id == coupon_id))
    coupon = result.scalar_one_or_none()
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    if actor.role not in ADMIN_ROLES and coupon.merchant_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own coupons",
        )
    coupon.status = CouponStatus.ACTIVE.value if active else CouponStatus.INACTIVE.value
    await db.flush()
    logger.info("coupon_status_changed", coupon_id=coupon.id, status=coupon.status)
    return coupon


async def record_usage(
    db: AsyncSession, booking: Booking
) -> Optional[CouponUsage]:
    """Count a coupon against its limits once the booking is paid."""
    if not booking.coupon_code:
        return None
    coupon = await get_coupon_by_code(db, booking.coupon_code)
    if coupon is None:
        logger.warning("coupon_usage_unknown_code", booking_id=booking.id, code=booking.coupon_code)
        return None

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=booking.user_id,
        booking_id=booking.id,
        discount_amount=booking.coupon_discount,
    )
    db.add(usage)
    await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .values(usage_count=Coupon.usage_count + 1)
    )
    await db.flush()
    logger.info("coupon_usage_recorded", coupon_id=coupon.id, booking_id=booking.id)
    return usage
