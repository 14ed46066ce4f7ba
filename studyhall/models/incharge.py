"""
Incharge models: merchant-delegated staff scoped to assigned study halls.
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from studyhall.db.base import Base, TimestampMixin


class InchargeStatus(str, enum.Enum):
    INVITED = "invited"
    ACTIVE = "active"
    INACTIVE = "inactive"


incharge_halls = Table(
    "incharge_halls",
    Base.metadata,
    Column("incharge_id", Integer, ForeignKey("incharges.id"), primary_key=True),
    Column("study_hall_id", Integer, ForeignKey("study_halls.id"), primary_key=True),
)


class Incharge(Base, TimestampMixin):
    __tablename__ = "incharges"

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    mobile = Column(String(20), nullable=False)
    permissions = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=InchargeStatus.INVITED.value)
    invitation_token = Column(String(100), nullable=True, unique=True)
    invitation_sent_at = Column(DateTime(timezone=True), nullable=True)
    account_activated = Column(Boolean, nullable=False, default=False)

    study_halls = relationship("StudyHall", secondary=incharge_halls, lazy="selectin")

    __table_args__ = (
        UniqueConstraint("merchant_id", "email", name="uq_merchant_incharge_email"),
        CheckConstraint(
            "status IN ('invited', 'active', 'inactive')", name="check_incharge_status"
        ),
    )

    @property
    def assigned_study_hall_ids(self) -> list[int]:
        return sorted(hall.id for hall in self.study_halls)


class InchargeActivityLog(Base, TimestampMixin):
    __tablename__ = "incharge_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    incharge_id = Column(Integer, ForeignKey("incharges.id"), nullable=False, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
