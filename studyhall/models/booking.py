"""
Booking model: one seat in one study hall for an inclusive date range.

Key design decisions:
- Pending bookings hold the seat exactly like confirmed ones, so the seat is
  not sold twice while a payment is in flight
- Price components are stored as quoted at creation time
- Status and payment status move independently; a paid booking can still be
  vacated or completed
- Guest bookings carry a name and phone instead of a user, plus a token the
  guest uses to look the booking up
"""

import enum
from datetime import timedelta

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class BookingPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


BLOCKING_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.ACTIVE.value,
)

FINAL_STATUSES = (
    BookingStatus.COMPLETED.value,
    BookingStatus.CANCELLED.value,
    BookingStatus.EXPIRED.value,
)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    # Walk-in bookings made from a hall QR code have guest details instead of an account
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    study_hall_id = Column(Integer, ForeignKey("study_halls.id"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False, index=True)

    booking_period = Column(String(10), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    base_amount = Column(Numeric(10, 2), nullable=False)
    coupon_code = Column(String(50), nullable=True)
    coupon_discount = Column(Numeric(10, 2), nullable=False, default=0)
    reward_points_used = Column(Integer, nullable=False, default=0)
    reward_discount = Column(Numeric(10, 2), nullable=False, default=0)
    convenience_fee = Column(Numeric(10, 2), nullable=False, default=0)
    platform_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    payment_method = Column(String(20), nullable=False)

    is_vacated = Column(Boolean, nullable=False, default=False)
    vacated_on = Column(Date, nullable=True)

    guest_name = Column(String(255), nullable=True)
    guest_phone = Column(String(20), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_token = Column(String(64), nullable=True, unique=True)

    user = relationship("User", lazy="joined")
    study_hall = relationship("StudyHall", lazy="joined")
    seat = relationship("Seat", lazy="joined")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_booking_date_order"),
        CheckConstraint(
            "user_id IS NOT NULL OR guest_name IS NOT NULL", name="check_booking_has_owner"
        ),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'active', 'completed', 'cancelled', 'expired')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid', 'pending', 'paid', 'failed', 'refunded')",
            name="check_booking_payment_status",
        ),
        CheckConstraint(
            "booking_period IN ('daily', 'weekly', 'monthly')", name="check_booking_period"
        ),
        # Overlap lookups filter by seat and date range
        Index("ix_bookings_seat_dates", "seat_id", "start_date", "end_date"),
        Index("ix_bookings_hall_status", "study_hall_id", "status"),
    )

    @property
    def blocks_until(self):
        """Last day on which this booking holds its seat; the vacate date itself is free."""
        if self.is_vacated and self.vacated_on is not None:
            return min(self.end_date, self.vacated_on - timedelta(days=1))
        return self.end_date

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, seat={self.seat_id}, "
            f"{self.start_date}..{self.end_date}, status={self.status})>"
        )
