"""
User model with role-based access.

One account table serves every actor of the marketplace; the role column
decides which routes a token may reach.
"""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from studyhall.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    STUDENT = "student"
    MERCHANT = "merchant"
    ADMIN = "admin"
    INCHARGE = "incharge"
    TELEMARKETING_EXECUTIVE = "telemarketing_executive"
    PENDING_PAYMENTS_CALLER = "pending_payments_caller"
    CUSTOMER_CARE_EXECUTIVE = "customer_care_executive"
    SETTLEMENT_MANAGER = "settlement_manager"
    GENERAL_ADMINISTRATOR = "general_administrator"
    INSTITUTION = "institution"


# Roles that may read every merchant's bookings and transactions
STAFF_ROLES = frozenset(
    {
        UserRole.ADMIN.value,
        UserRole.GENERAL_ADMINISTRATOR.value,
        UserRole.TELEMARKETING_EXECUTIVE.value,
        UserRole.CUSTOMER_CARE_EXECUTIVE.value,
        UserRole.PENDING_PAYMENTS_CALLER.value,
        UserRole.SETTLEMENT_MANAGER.value,
    }
)

ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.GENERAL_ADMINISTRATOR.value})

SELF_SERVICE_ROLES = frozenset(
    {UserRole.STUDENT.value, UserRole.MERCHANT.value, UserRole.INSTITUTION.value}
)

DASHBOARD_PATHS = {
    UserRole.ADMIN.value: "/admin/dashboard",
    UserRole.MERCHANT.value: "/merchant/dashboard",
    UserRole.STUDENT.value: "/student/dashboard",
    UserRole.INCHARGE.value: "/incharge/dashboard",
    UserRole.TELEMARKETING_EXECUTIVE.value: "/telemarketing/dashboard",
    UserRole.PENDING_PAYMENTS_CALLER.value: "/payments-caller/dashboard",
    UserRole.CUSTOMER_CARE_EXECUTIVE.value: "/customer-care/dashboard",
    UserRole.SETTLEMENT_MANAGER.value: "/settlement-manager/dashboard",
    UserRole.GENERAL_ADMINISTRATOR.value: "/general-admin/dashboard",
    UserRole.INSTITUTION.value: "/institution/dashboard",
}


def dashboard_path(role: str | None) -> str:
    return DASHBOARD_PATHS.get(role or "", "/")


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(40), nullable=False, default=UserRole.STUDENT.value, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN (" + ", ".join(f"'{r.value}'" for r in UserRole) + ")",
            name="check_user_role",
        ),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
