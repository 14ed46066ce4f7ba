"""
Payment transaction model.

Every booking gets exactly one transaction on the rail the customer picked.
`payment_data` keeps the booking intent snapshot and whatever the provider
sent back, so a payment that completes late can still be reconciled.
"""

import enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class PaymentMethod(str, enum.Enum):
    RAZORPAY = "razorpay"
    EKQR = "ekqr"
    OFFLINE = "offline"


ONLINE_METHODS = (PaymentMethod.RAZORPAY.value, PaymentMethod.EKQR.value)


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


OPEN_TRANSACTION_STATUSES = (
    TransactionStatus.PENDING.value,
    TransactionStatus.PROCESSING.value,
)

# A failed transaction can still complete when the capture arrives late
SETTLEABLE_TRANSACTION_STATUSES = OPEN_TRANSACTION_STATUSES + (TransactionStatus.FAILED.value,)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value)

    provider_order_id = Column(String(100), nullable=True, index=True)
    payment_id = Column(String(100), nullable=True)
    qr_id = Column(String(100), nullable=True, index=True)
    qr_image_url = Column(String(500), nullable=True)
    payment_data = Column(JSON, nullable=False, default=dict)
    confirmed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    booking = relationship("Booking", lazy="joined")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_transaction_amount_non_negative"),
        CheckConstraint(
            "payment_method IN ('razorpay', 'ekqr', 'offline')",
            name="check_transaction_payment_method",
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'refunded')",
            name="check_transaction_status",
        ),
        Index("ix_transactions_method_status", "payment_method", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, booking={self.booking_id}, "
            f"method={self.payment_method}, status={self.status})>"
        )
