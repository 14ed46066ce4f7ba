"""
Study hall review model. One review per booking.
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text

from studyhall.db.base import Base, TimestampMixin


class ReviewStatus(str, enum.Enum):
    APPROVED = "approved"
    PENDING = "pending"
    HIDDEN = "hidden"


class Review(Base, TimestampMixin):
    __tablename__ = "study_hall_reviews"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    study_hall_id = Column(Integer, ForeignKey("study_halls.id"), nullable=False, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=ReviewStatus.APPROVED.value)
    merchant_response = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_review_rating_range"),
        CheckConstraint(
            "status IN ('approved', 'pending', 'hidden')", name="check_review_status"
        ),
    )
