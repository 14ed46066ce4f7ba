"""
Study hall and seat models.

Seats are materialized rows generated from the hall layout
(rows x seats_per_row). `Seat.version` is bumped by every booking attempt on
the seat so that concurrent attempts on the same seat serialize through an
optimistic check instead of a table lock.
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class StudyHallStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class StudyHall(Base, TimestampMixin):
    __tablename__ = "study_halls"

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)
    formatted_address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    amenities = Column(JSON, nullable=False, default=list)

    rows = Column(Integer, nullable=False)
    seats_per_row = Column(Integer, nullable=False)
    custom_row_names = Column(JSON, nullable=False, default=list)
    total_seats = Column(Integer, nullable=False)

    daily_price = Column(Numeric(10, 2), nullable=False)
    weekly_price = Column(Numeric(10, 2), nullable=False)
    monthly_price = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=StudyHallStatus.ACTIVE.value)
    qr_booking_enabled = Column(Boolean, nullable=False, default=False)
    average_rating = Column(Numeric(3, 2), nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)

    merchant = relationship("User", lazy="joined")
    seats = relationship(
        "Seat",
        back_populates="study_hall",
        cascade="all, delete-orphan",
        order_by="Seat.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("rows > 0", name="check_hall_rows_positive"),
        CheckConstraint("seats_per_row > 0", name="check_hall_seats_per_row_positive"),
        CheckConstraint("daily_price > 0", name="check_hall_daily_price_positive"),
        CheckConstraint("weekly_price > 0", name="check_hall_weekly_price_positive"),
        CheckConstraint("monthly_price > 0", name="check_hall_monthly_price_positive"),
        CheckConstraint(
            "status IN ('active', 'inactive', 'maintenance')", name="check_hall_status"
        ),
        Index("ix_study_halls_status_location", "status", "location"),
    )

    def __repr__(self) -> str:
        return f"<StudyHall(id={self.id}, name={self.name}, seats={self.total_seats})>"


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    study_hall_id = Column(Integer, ForeignKey("study_halls.id"), nullable=False, index=True)
    row_name = Column(String(10), nullable=False)
    seat_number = Column(Integer, nullable=False)
    seat_label = Column(String(20), nullable=False)
    # False while the merchant blocks the seat for maintenance
    is_available = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)

    study_hall = relationship("StudyHall", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("study_hall_id", "seat_label", name="uq_hall_seat_label"),
        CheckConstraint("seat_number > 0", name="check_seat_number_positive"),
    )

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, hall={self.study_hall_id}, label={self.seat_label})>"
