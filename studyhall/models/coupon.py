"""
Coupon and coupon usage models.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from studyhall.db.base import Base, TimestampMixin, utcnow


class CouponType(str, enum.Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class CouponAudience(str, enum.Enum):
    ALL = "all"
    NEW_USERS = "new_users"


class CouponStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Coupon(Base, TimestampMixin):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    max_discount = Column(Numeric(10, 2), nullable=True)
    min_booking_amount = Column(Numeric(10, 2), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    user_usage_limit = Column(Integer, nullable=False, default=1)
    target_audience = Column(String(20), nullable=False, default=CouponAudience.ALL.value)
    # Merchant coupons only apply to that merchant's study halls
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=CouponStatus.ACTIVE.value)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        CheckConstraint("value > 0", name="check_coupon_value_positive"),
        CheckConstraint("type IN ('flat', 'percentage')", name="check_coupon_type"),
        CheckConstraint("status IN ('active', 'inactive')", name="check_coupon_status"),
        CheckConstraint("usage_count >= 0", name="check_coupon_usage_count"),
    )

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code}, type={self.type}, value={self.value})>"


class CouponUsage(Base):
    __tablename__ = "coupon_usage"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
