"""Initial schema: accounts, halls and seats, bookings, payments, settlements,
incharges, coupons, rewards, reviews, notifications and business settings.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLES = (
    "student", "merchant", "admin", "incharge", "telemarketing_executive",
    "pending_payments_caller", "customer_care_executive", "settlement_manager",
    "general_administrator", "institution",
)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(40), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN (" + ", ".join(f"'{r}'" for r in ROLES) + ")", name="check_user_role"
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "study_halls",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("formatted_address", sa.String(500), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("rows", sa.Integer(), nullable=False),
        sa.Column("seats_per_row", sa.Integer(), nullable=False),
        sa.Column("custom_row_names", sa.JSON(), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("daily_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("weekly_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=False, server_default="0"),
        sa.Column("total_reviews", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("rows > 0", name="check_hall_rows_positive"),
        sa.CheckConstraint("seats_per_row > 0", name="check_hall_seats_per_row_positive"),
        sa.CheckConstraint("daily_price > 0", name="check_hall_daily_price_positive"),
        sa.CheckConstraint("weekly_price > 0", name="check_hall_weekly_price_positive"),
        sa.CheckConstraint("monthly_price > 0", name="check_hall_monthly_price_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'inactive', 'maintenance')", name="check_hall_status"
        ),
    )
    op.create_index("ix_study_halls_id", "study_halls", ["id"])
    op.create_index("ix_study_halls_merchant_id", "study_halls", ["merchant_id"])
    # Public search filters on status and location
    op.create_index("ix_study_halls_status_location", "study_halls", ["status", "location"])

    op.create_table(
        "seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("study_hall_id", sa.Integer(), sa.ForeignKey("study_halls.id"), nullable=False),
        sa.Column("row_name", sa.String(10), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("seat_label", sa.String(20), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        # Bumped by every booking attempt on the seat (optimistic lock)
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("study_hall_id", "seat_label", name="uq_hall_seat_label"),
        sa.CheckConstraint("seat_number > 0", name="check_seat_number_positive"),
    )
    op.create_index("ix_seats_id", "seats", ["id"])
    op.create_index("ix_seats_study_hall_id", "seats", ["study_hall_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("study_hall_id", sa.Integer(), sa.ForeignKey("study_halls.id"), nullable=False),
        sa.Column("seat_id", sa.Integer(), sa.ForeignKey("seats.id"), nullable=False),
        sa.Column("booking_period", sa.String(10), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("base_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("coupon_code", sa.String(50), nullable=True),
        sa.Column("coupon_discount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("reward_points_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reward_discount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("convenience_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="unpaid"),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("is_vacated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("vacated_on", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date >= start_date", name="check_booking_date_order"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'active', 'completed', 'cancelled', 'expired')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'pending', 'paid', 'failed', 'refunded')",
            name="check_booking_payment_status",
        ),
        sa.CheckConstraint(
            "booking_period IN ('daily', 'weekly', 'monthly')", name="check_booking_period"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_study_hall_id", "bookings", ["study_hall_id"])
    op.create_index("ix_bookings_seat_id", "bookings", ["seat_id"])
    # Overlap check: WHERE seat_id = ? AND start_date <= ? AND end_date >= ?
    op.create_index("ix_bookings_seat_dates", "bookings", ["seat_id", "start_date", "end_date"])
    # Dashboards and lifecycle scan by hall and status
    op.create_index("ix_bookings_hall_status", "bookings", ["study_hall_id", "status"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("provider_order_id", sa.String(100), nullable=True),
        sa.Column("payment_id", sa.String(100), nullable=True),
        sa.Column("qr_id", sa.String(100), nullable=True),
        sa.Column("qr_image_url", sa.String(500), nullable=True),
        sa.Column("payment_data", sa.JSON(), nullable=False),
        sa.Column("confirmed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="check_transaction_amount_non_negative"),
        sa.CheckConstraint(
            "payment_method IN ('razorpay', 'ekqr', 'offline')",
            name="check_transaction_payment_method",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'refunded')",
            name="check_transaction_status",
        ),
    )
    op.create_index("ix_transactions_id", "transactions", ["id"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    # Webhooks look transactions up by provider reference
    op.create_index("ix_transactions_provider_order_id", "transactions", ["provider_order_id"])
    op.create_index("ix_transactions_qr_id", "transactions", ["qr_id"])
    # Recovery job: open QR payments
    op.create_index("ix_transactions_method_status", "transactions", ["payment_method", "status"])

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_booking_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("platform_fee_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("net_settlement_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'paid', 'cancelled')",
            name="check_settlement_status",
        ),
        sa.CheckConstraint(
            "platform_fee_percentage >= 0 AND platform_fee_percentage <= 100",
            name="check_settlement_fee_percentage",
        ),
    )
    op.create_index("ix_settlements_id", "settlements", ["id"])
    op.create_index("ix_settlements_merchant_id", "settlements", ["merchant_id"])

    op.create_table(
        "settlement_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("settlement_id", sa.Integer(), sa.ForeignKey("settlements.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("transaction_amount", sa.Numeric(10, 2), nullable=False),
        sa.UniqueConstraint("settlement_id", "transaction_id", name="uq_settlement_transaction"),
    )
    op.create_index("ix_settlement_transactions_id", "settlement_transactions", ["id"])
    op.create_index(
        "ix_settlement_transactions_settlement_id", "settlement_transactions", ["settlement_id"]
    )

    op.create_table(
        "incharges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("mobile", sa.String(20), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="invited"),
        sa.Column("invitation_token", sa.String(100), nullable=True, unique=True),
        sa.Column("invitation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("account_activated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("merchant_id", "email", name="uq_merchant_incharge_email"),
        sa.CheckConstraint(
            "status IN ('invited', 'active', 'inactive')", name="check_incharge_status"
        ),
    )
    op.create_index("ix_incharges_id", "incharges", ["id"])
    op.create_index("ix_incharges_merchant_id", "incharges", ["merchant_id"])

    op.create_table(
        "incharge_halls",
        sa.Column("incharge_id", sa.Integer(), sa.ForeignKey("incharges.id"), primary_key=True),
        sa.Column("study_hall_id", sa.Integer(), sa.ForeignKey("study_halls.id"), primary_key=True),
    )

    op.create_table(
        "incharge_activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("incharge_id", sa.Integer(), sa.ForeignKey("incharges.id"), nullable=False),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_incharge_activity_logs_id", "incharge_activity_logs", ["id"])
    op.create_index("ix_incharge_activity_logs_incharge_id", "incharge_activity_logs", ["incharge_id"])
    op.create_index("ix_incharge_activity_logs_merchant_id", "incharge_activity_logs", ["merchant_id"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_discount", sa.Numeric(10, 2), nullable=True),
        sa.Column("min_booking_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_usage_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("target_audience", sa.String(20), nullable=False, server_default="all"),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("value > 0", name="check_coupon_value_positive"),
        sa.CheckConstraint("type IN ('flat', 'percentage')", name="check_coupon_type"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="check_coupon_status"),
        sa.CheckConstraint("usage_count >= 0", name="check_coupon_usage_count"),
    )
    op.create_index("ix_coupons_id", "coupons", ["id"])
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)
    op.create_index("ix_coupons_merchant_id", "coupons", ["merchant_id"])

    op.create_table(
        "coupon_usage",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupons.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_coupon_usage_id", "coupon_usage", ["id"])
    # Per-user limit check: WHERE coupon_id = ? AND user_id = ?
    op.create_index("ix_coupon_usage_coupon_id", "coupon_usage", ["coupon_id"])
    op.create_index("ix_coupon_usage_user_id", "coupon_usage", ["user_id"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_redeemed", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("available_points >= 0", name="check_reward_available_non_negative"),
    )
    op.create_index("ix_rewards_id", "rewards", ["id"])

    op.create_table(
        "reward_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_reward_transactions_id", "reward_transactions", ["id"])
    op.create_index("ix_reward_transactions_user_id", "reward_transactions", ["user_id"])

    op.create_table(
        "study_hall_reviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("study_hall_id", sa.Integer(), sa.ForeignKey("study_halls.id"), nullable=False),
        sa.Column("merchant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review_text", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
        sa.Column("merchant_response", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="check_review_rating_range"),
        sa.CheckConstraint(
            "status IN ('approved', 'pending', 'hidden')", name="check_review_status"
        ),
    )
    op.create_index("ix_study_hall_reviews_id", "study_hall_reviews", ["id"])
    op.create_index("ix_study_hall_reviews_user_id", "study_hall_reviews", ["user_id"])
    op.create_index("ix_study_hall_reviews_study_hall_id", "study_hall_reviews", ["study_hall_id"])
    op.create_index("ix_study_hall_reviews_merchant_id", "study_hall_reviews", ["merchant_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="info"),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    # Unread badge: WHERE user_id = ? AND read = false
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])

    op.create_table(
        "business_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("razorpay_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("ekqr_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("offline_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("rewards_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("rewards_conversion_rate", sa.Numeric(6, 2), nullable=False, server_default="0.10"),
        sa.Column("min_redemption_points", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("points_per_booking", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("platform_fee_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("platform_fee_type", sa.String(10), nullable=False, server_default="percent"),
        sa.Column("platform_fee_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("platform_fee_percentage", sa.Numeric(5, 2), nullable=False, server_default="10"),
        sa.Column("minimum_settlement_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("auto_approval_threshold", sa.Integer(), nullable=True),
        sa.Column("support_email", sa.String(255), nullable=True),
        sa.Column("support_phone", sa.String(20), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    for table in (
        "business_settings",
        "notifications",
        "study_hall_reviews",
        "reward_transactions",
        "rewards",
        "coupon_usage",
        "coupons",
        "incharge_activity_logs",
        "incharge_halls",
        "incharges",
        "settlement_transactions",
        "settlements",
        "transactions",
        "bookings",
        "seats",
        "study_halls",
        "users",
    ):
        op.drop_table(table)
