"""Walk-in QR bookings by guests, and the referral program.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.add_column(
        "study_halls",
        sa.Column("qr_booking_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    with op.batch_alter_table("bookings") as batch:
        batch.alter_column("user_id", existing_type=sa.Integer(), nullable=True)
        batch.add_column(sa.Column("guest_name", sa.String(255), nullable=True))
        batch.add_column(sa.Column("guest_phone", sa.String(20), nullable=True))
        batch.add_column(sa.Column("guest_email", sa.String(255), nullable=True))
        batch.add_column(sa.Column("guest_token", sa.String(64), nullable=True))
        batch.create_unique_constraint("uq_bookings_guest_token", ["guest_token"])
        batch.create_check_constraint(
            "check_booking_has_owner", "user_id IS NOT NULL OR guest_name IS NOT NULL"
        )

    with op.batch_alter_table("transactions") as batch:
        batch.alter_column("user_id", existing_type=sa.Integer(), nullable=True)

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("total_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="check_referral_code_status"),
    )
    op.create_index("ix_referral_codes_id", "referral_codes", ["id"])
    op.create_index("ix_referral_codes_code", "referral_codes", ["code"], unique=True)

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("referral_code_id", sa.Integer(), sa.ForeignKey("referral_codes.id"), nullable=False),
        sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("referee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("referrer_points", sa.Integer(), nullable=False),
        sa.Column("referee_points", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("referee_id", "referral_code_id", name="uq_referral_referee_code"),
        sa.CheckConstraint("referrer_id <> referee_id", name="check_referral_not_self"),
        sa.CheckConstraint("status IN ('pending', 'completed')", name="check_referral_status"),
    )
    op.create_index("ix_referrals_id", "referrals", ["id"])
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])
    op.create_index("ix_referrals_referee_id", "referrals", ["referee_id"])


def downgrade() -> None:
    op.drop_table("referrals")
    op.drop_table("referral_codes")

    with op.batch_alter_table("transactions") as batch:
        batch.alter_column("user_id", existing_type=sa.Integer(), nullable=False)

    with op.batch_alter_table("bookings") as batch:
        batch.drop_constraint("check_booking_has_owner", type_="check")
        batch.drop_constraint("uq_bookings_guest_token", type_="unique")
        batch.drop_column("guest_token")
        batch.drop_column("guest_email")
        batch.drop_column("guest_phone")
        batch.drop_column("guest_name")
        batch.alter_column("user_id", existing_type=sa.Integer(), nullable=False)

    op.drop_column("study_halls", "qr_booking_enabled")
