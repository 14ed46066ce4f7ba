"""
Loyalty reward account and its point ledger.
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from studyhall.db.base import Base, TimestampMixin


class RewardTransactionType(str, enum.Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    RESTORED = "restored"
    ADJUSTED = "adjusted"


class Reward(Base, TimestampMixin):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    total_points = Column(Integer, nullable=False, default=0)
    available_points = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_redeemed = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("available_points >= 0", name="check_reward_available_non_negative"),
    )


class RewardTransaction(Base, TimestampMixin):
    __tablename__ = "reward_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    type = Column(String(20), nullable=False)
    # Signed: negative for redemptions
    points = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
