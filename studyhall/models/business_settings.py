"""
Platform-wide business settings (a single row).
"""

from sqlalchemy import Boolean, Column, Integer, Numeric, String

from studyhall.db.base import Base, TimestampMixin


class BusinessSettings(Base, TimestampMixin):
    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True)

    # Payment rails
    razorpay_enabled = Column(Boolean, nullable=False, default=True)
    ekqr_enabled = Column(Boolean, nullable=False, default=True)
    offline_enabled = Column(Boolean, nullable=False, default=True)

    # Rewards
    rewards_enabled = Column(Boolean, nullable=False, default=True)
    rewards_conversion_rate = Column(Numeric(6, 2), nullable=False, default=0.10)
    min_redemption_points = Column(Integer, nullable=False, default=10)
    points_per_booking = Column(Integer, nullable=False, default=10)

    # Customer-side platform fee
    platform_fee_enabled = Column(Boolean, nullable=False, default=False)
    platform_fee_type = Column(String(10), nullable=False, default="percent")
    platform_fee_value = Column(Numeric(10, 2), nullable=False, default=0)

    # Settlements
    platform_fee_percentage = Column(Numeric(5, 2), nullable=False, default=10)
    minimum_settlement_amount = Column(Numeric(10, 2), nullable=False, default=0)

    # Reviews with a rating below this wait for moderation; NULL approves all
    auto_approval_threshold = Column(Integer, nullable=True)

    support_email = Column(String(255), nullable=True)
    support_phone = Column(String(20), nullable=True)
