"""
Merchant settlement models.

A settlement groups completed transactions of one merchant into a single
payout; a transaction belongs to at most one live settlement.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    CANCELLED = "cancelled"


SETTLEMENT_TRANSITIONS = {
    SettlementStatus.PENDING.value: {
        SettlementStatus.PROCESSING.value,
        SettlementStatus.PAID.value,
        SettlementStatus.CANCELLED.value,
    },
    SettlementStatus.PROCESSING.value: {
        SettlementStatus.PAID.value,
        SettlementStatus.CANCELLED.value,
    },
    SettlementStatus.PAID.value: set(),
    SettlementStatus.CANCELLED.value: set(),
}


class Settlement(Base, TimestampMixin):
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_booking_amount = Column(Numeric(12, 2), nullable=False)
    platform_fee_percentage = Column(Numeric(5, 2), nullable=False)
    platform_fee_amount = Column(Numeric(12, 2), nullable=False)
    net_settlement_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=SettlementStatus.PENDING.value)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    items = relationship(
        "SettlementTransaction",
        back_populates="settlement",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'paid', 'cancelled')",
            name="check_settlement_status",
        ),
        CheckConstraint(
            "platform_fee_percentage >= 0 AND platform_fee_percentage <= 100",
            name="check_settlement_fee_percentage",
        ),
    )


class SettlementTransaction(Base):
    __tablename__ = "settlement_transactions"

    id = Column(Integer, primary_key=True, index=True)
    settlement_id = Column(Integer, ForeignKey("settlements.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    transaction_amount = Column(Numeric(10, 2), nullable=False)

    settlement = relationship("Settlement", back_populates="items")

    __table_args__ = (
        UniqueConstraint("settlement_id", "transaction_id", name="uq_settlement_transaction"),
    )
