"""
Price arithmetic for seat bookings.

Merchants list a price per tier; customers see that price minus the platform
margin. The cheapest tier for the requested number of days wins, then
discounts apply (coupon first, loyalty points on what is left) and fees are
added last. All functions here are pure.
"""

import math
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import HTTPException, status

from studyhall.models.booking import BookingPeriod
from studyhall.models.transaction import ONLINE_METHODS

ZERO = Decimal("0")
PAISE = Decimal("0.01")
RUPEE = Decimal("1")


def to_paise(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(PAISE, rounding=ROUND_HALF_UP)


def to_rupee(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(RUPEE, rounding=ROUND_HALF_UP)


def count_days(start: date, end: date) -> int:
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date cannot be before start date",
        )
    return (end - start).days + 1


def customer_price(merchant_price: Decimal, margin: Decimal) -> Decimal:
    return max(ZERO, Decimal(merchant_price) - Decimal(margin))


@dataclass
class TierTotals:
    daily: Decimal
    weekly: Decimal
    monthly: Decimal


def tier_totals(
    days: int,
    daily_price: Decimal,
    weekly_price: Decimal,
    monthly_price: Decimal,
    margin: Decimal,
) -> TierTotals:
    return TierTotals(
        daily=days * customer_price(daily_price, margin),
        weekly=math.ceil(days / 7) * customer_price(weekly_price, margin),
        monthly=math.ceil(days / 30) * customer_price(monthly_price, margin),
    )


def choose_tier(days: int, totals: TierTotals) -> tuple[str, Decimal]:
    """Daily unless a longer tier is both reachable and cheaper."""
    period, amount = BookingPeriod.DAILY.value, totals.daily
    if days >= 7 and totals.weekly < amount:
        period, amount = BookingPeriod.WEEKLY.value, totals.weekly
    if days >= 30 and totals.monthly < amount:
        period, amount = BookingPeriod.MONTHLY.value, totals.monthly
    return period, amount


def convenience_fee(subtotal: Decimal, payment_method: str, rate: Decimal) -> Decimal:
    """Online rails carry round(subtotal x rate) + Rs 1; offline carries none."""
    if payment_method not in ONLINE_METHODS or subtotal <= 0:
        return ZERO
    return to_rupee(subtotal * rate) + RUPEE


def platform_fee(
    subtotal: Decimal,
    enabled: bool,
    fee_type: str,
    fee_value: Decimal,
) -> Decimal:
    if not enabled or subtotal <= 0 or not fee_value:
        return ZERO
    if fee_type == "flat":
        fee = Decimal(fee_value)
    else:
        fee = subtotal * Decimal(fee_value) / 100
    return min(to_rupee(fee), subtotal)


@dataclass
class PriceBreakdown:
    days: int
    booking_period: str
    daily_total: Decimal
    weekly_total: Decimal
    monthly_total: Decimal
    base_amount: Decimal
    coupon_discount: Decimal
    reward_points_used: int
    reward_discount: Decimal
    subtotal: Decimal
    convenience_fee: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    payment_method: str
    coupon_code: Optional[str] = None
    coupon_error: Optional[str] = None
    reward_error: Optional[str] = None


def price_booking(
    days: int,
    totals: TierTotals,
    payment_method: str,
    gateway_fee_rate: Decimal,
    coupon_discount: Decimal = ZERO,
    reward_points_used: int = 0,
    reward_discount: Decimal = ZERO,
    platform_fee_enabled: bool = False,
    platform_fee_type: str = "percent",
    platform_fee_value: Decimal = ZERO,
) -> PriceBreakdown:
    period, base = choose_tier(days, totals)
    coupon_discount = min(to_paise(coupon_discount), base)
    reward_discount = min(to_paise(reward_discount), base - coupon_discount)
    subtotal = max(ZERO, base - coupon_discount - reward_discount)

    fee = convenience_fee(subtotal, payment_method, gateway_fee_rate)
    p_fee = platform_fee(subtotal, platform_fee_enabled, platform_fee_type, platform_fee_value)

    return PriceBreakdown(
        days=days,
        booking_period=period,
        daily_total=totals.daily,
        weekly_total=totals.weekly,
        monthly_total=totals.monthly,
        base_amount=base,
        coupon_discount=coupon_discount,
        reward_points_used=reward_points_used,
        reward_discount=reward_discount,
        subtotal=subtotal,
        convenience_fee=fee,
        platform_fee=p_fee,
        total_amount=subtotal + fee + p_fee,
        payment_method=payment_method,
    )
