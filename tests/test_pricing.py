"""
Unit tests for booking price arithmetic.
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from studyhall.services.pricing import (
    choose_tier,
    convenience_fee,
    count_days,
    customer_price,
    platform_fee,
    price_booking,
    tier_totals,
)

RATE = Decimal("0.02")
MARGIN = Decimal("100")


def totals(days: int, daily="500", weekly="1500", monthly="4000"):
    return tier_totals(days, Decimal(daily), Decimal(weekly), Decimal(monthly), MARGIN)


def test_count_days_is_inclusive():
    assert count_days(date(2026, 3, 1), date(2026, 3, 1)) == 1
    assert count_days(date(2026, 3, 1), date(2026, 3, 31)) == 31


def test_count_days_rejects_reversed_range():
    with pytest.raises(HTTPException) as exc:
        count_days(date(2026, 3, 5), date(2026, 3, 1))
    assert exc.value.status_code == 400


def test_customer_price_never_negative():
    assert customer_price(Decimal("300"), MARGIN) == Decimal("200")
    assert customer_price(Decimal("50"), MARGIN) == Decimal("0")


def test_tier_totals_round_partial_periods_up():
    result = totals(10, daily="300", weekly="1800", monthly="6000")
    assert result.daily == Decimal("2000")
    assert result.weekly == Decimal("3400")
    assert result.monthly == Decimal("5900")


@pytest.mark.parametrize(
    "days, period, amount",
    [
        (6, "daily", Decimal("2400")),     # weekly is cheaper but not reachable yet
        (7, "weekly", Decimal("1400")),
        (30, "monthly", Decimal("3900")),
    ],
)
def test_choose_tier_picks_cheapest_reachable(days, period, amount):
    assert choose_tier(days, totals(days)) == (period, amount)


def test_choose_tier_keeps_daily_when_cheapest():
    result = totals(10, daily="300", weekly="1800", monthly="6000")
    assert choose_tier(10, result) == ("daily", Decimal("2000"))


def test_convenience_fee_online_only():
    assert convenience_fee(Decimal("600"), "razorpay", RATE) == Decimal("13")
    assert convenience_fee(Decimal("600"), "ekqr", RATE) == Decimal("13")
    assert convenience_fee(Decimal("600"), "offline", RATE) == Decimal("0")
    assert convenience_fee(Decimal("0"), "razorpay", RATE) == Decimal("0")


def test_convenience_fee_rounds_half_up():
    # 625 x 2% = 12.5 -> 13, plus Rs 1
    assert convenience_fee(Decimal("625"), "razorpay", RATE) == Decimal("14")


def test_platform_fee_variants():
    assert platform_fee(Decimal("1000"), True, "percent", Decimal("5")) == Decimal("50")
    assert platform_fee(Decimal("1000"), True, "flat", Decimal("30")) == Decimal("30")
    assert platform_fee(Decimal("1000"), False, "flat", Decimal("30")) == Decimal("0")
    assert platform_fee(Decimal("20"), True, "flat", Decimal("30")) == Decimal("20")


def test_price_booking_applies_discounts_before_fees():
    days = 3
    result = price_booking(
        days,
        totals(days, daily="300", weekly="1800", monthly="6000"),
        "razorpay",
        RATE,
        coupon_discount=Decimal("100"),
        reward_points_used=500,
        reward_discount=Decimal("50"),
    )
    assert result.booking_period == "daily"
    assert result.base_amount == Decimal("600")
    assert result.subtotal == Decimal("450")
    assert result.convenience_fee == Decimal("10")
    assert result.total_amount == Decimal("460")


def test_price_booking_caps_discounts_at_base():
    days = 3
    result = price_booking(
        days,
        totals(days, daily="300", weekly="1800", monthly="6000"),
        "razorpay",
        RATE,
        coupon_discount=Decimal("1000"),
        reward_discount=Decimal("50"),
    )
    assert result.coupon_discount == Decimal("600")
    assert result.reward_discount == Decimal("0")
    assert result.subtotal == Decimal("0")
    assert result.convenience_fee == Decimal("0")
    assert result.total_amount == Decimal("0")


def test_price_booking_with_platform_fee():
    days = 3
    result = price_booking(
        days,
        totals(days, daily="300", weekly="1800", monthly="6000"),
        "offline",
        RATE,
        platform_fee_enabled=True,
        platform_fee_type="percent",
        platform_fee_value=Decimal("5"),
    )
    assert result.convenience_fee == Decimal("0")
    assert result.platform_fee == Decimal("30")
    assert result.total_amount == Decimal("630")
