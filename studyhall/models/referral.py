"""
Referral codes and the referrals made with them.

A referral starts pending when a new user applies a code and completes, paying
points to both sides, once the referred user has a paid booking.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class ReferralCodeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ReferralCode(Base, TimestampMixin):
    __tablename__ = "referral_codes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    code = Column(String(20), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default=ReferralCodeStatus.ACTIVE.value)
    total_referrals = Column(Integer, nullable=False, default=0)
    successful_referrals = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive')", name="check_referral_code_status"),
    )


class Referral(Base, TimestampMixin):
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    referral_code_id = Column(Integer, ForeignKey("referral_codes.id"), nullable=False)
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    referee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    referrer_points = Column(Integer, nullable=False)
    referee_points = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ReferralStatus.PENDING.value)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    referral_code = relationship("ReferralCode", lazy="joined")

    __table_args__ = (
        # One code per referee; a second apply of the same code is rejected
        UniqueConstraint("referee_id", "referral_code_id", name="uq_referral_referee_code"),
        CheckConstraint("referrer_id <> referee_id", name="check_referral_not_self"),
        CheckConstraint("status IN ('pending', 'completed')", name="check_referral_status"),
    )
