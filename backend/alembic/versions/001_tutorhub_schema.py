# backend/alembic/versions/001_tutorhub_schema.py
"""Initial schema - scheduling, bookings, wallet and payouts

Revision ID: 001_tutorhub_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Enum columns are VARCHAR with CHECK constraints (native_enum=False on the
models) so new statuses never need an ALTER TYPE.
"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_tutorhub_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the TutorHub tables."""
    print("Creating teacher profiles and subject offerings...")

    op.create_table(
        "teacher_profiles",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("user_id", sa.String(26), nullable=False, unique=True),
        sa.Column("display_name", sa.String(120), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Asia/Tashkent"),
        sa.Column("allowed_durations", sa.ARRAY(sa.Integer()), nullable=False),
        sa.Column("instant_confirmation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_notice_minutes", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "min_notice_minutes IS NULL OR min_notice_minutes >= 0",
            name="ck_teacher_profiles_min_notice_non_negative",
        ),
    )

    op.create_table(
        "subject_offerings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "teacher_id",
            sa.String(26),
            sa.ForeignKey("teacher_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("subject_name", sa.String(120), nullable=False),
        sa.Column("price_per_hour", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("price_per_hour >= 0", name="ck_subject_offerings_price_non_negative"),
    )
    op.create_index(
        "idx_subject_offerings_teacher_active", "subject_offerings", ["teacher_id", "is_active"]
    )

    print("Creating availability rules...")

    op.create_table(
        "availability_rules",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "teacher_id",
            sa.String(26),
            sa.ForeignKey("teacher_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("weekday", sa.SmallInteger(), nullable=True),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "kind IN ('RECURRING', 'EXCEPTION')", name="ck_availability_rules_kind_values"
        ),
        sa.CheckConstraint(
            "(kind = 'RECURRING' AND weekday BETWEEN 0 AND 6 AND specific_date IS NULL)"
            " OR (kind = 'EXCEPTION' AND specific_date IS NOT NULL AND weekday IS NULL)",
            name="ck_availability_rules_kind_shape",
        ),
        sa.CheckConstraint(
            "(is_open = false AND start_time IS NULL AND end_time IS NULL)"
            " OR (start_time IS NOT NULL AND end_time IS NOT NULL AND end_time > start_time)",
            name="ck_availability_rules_interval",
        ),
        sa.CheckConstraint(
            "valid_from IS NULL OR valid_until IS NULL OR valid_until >= valid_from",
            name="ck_availability_rules_validity",
        ),
    )
    op.create_index(
        "idx_availability_rules_teacher_kind", "availability_rules", ["teacher_id", "kind"]
    )

    print("Creating bookings...")

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "teacher_id", sa.String(26), sa.ForeignKey("teacher_profiles.id"), nullable=False
        ),
        sa.Column("student_id", sa.String(26), nullable=False),
        sa.Column(
            "subject_offering_id",
            sa.String(26),
            sa.ForeignKey("subject_offerings.id"),
            nullable=False,
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("booking_type", sa.String(20), nullable=False, server_default="SINGLE"),
        sa.Column("price_at_booking", sa.Integer(), nullable=False),
        sa.Column("student_timezone", sa.String(64), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_id", sa.String(26), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_at > start_at", name="ck_bookings_time_order"),
        sa.CheckConstraint("price_at_booking >= 0", name="ck_bookings_price_non_negative"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_bookings_status_values",
        ),
        sa.CheckConstraint(
            "booking_type IN ('TRIAL', 'SINGLE', 'PACKAGE')", name="ck_bookings_type_values"
        ),
    )
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index(
        "idx_bookings_teacher_status_start", "bookings", ["teacher_id", "status", "start_at"]
    )
    op.create_index("idx_bookings_status_end", "bookings", ["status", "end_at"])

    print("Creating wallet ledger and payouts...")

    op.create_table(
        "wallet_entries",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "teacher_id", sa.String(26), sa.ForeignKey("teacher_profiles.id"), nullable=False
        ),
        sa.Column("booking_id", sa.String(26), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("entry_type", sa.String(20), nullable=False, server_default="EARNING"),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("commission", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "reverses_entry_id",
            sa.String(26),
            sa.ForeignKey("wallet_entries.id"),
            nullable=True,
            unique=True,
        ),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("booking_id", "entry_type", name="uq_wallet_entries_booking_type"),
        sa.CheckConstraint(
            "(entry_type = 'EARNING' AND amount >= 0 AND commission >= 0 AND reverses_entry_id IS NULL)"
            " OR (entry_type = 'REVERSAL' AND amount <= 0 AND commission <= 0"
            " AND reverses_entry_id IS NOT NULL)",
            name="ck_wallet_entries_sign",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'AVAILABLE', 'PAID')", name="ck_wallet_entries_status_values"
        ),
    )
    op.create_index(
        "idx_wallet_entries_teacher_status",
        "wallet_entries",
        ["teacher_id", "status", "available_at"],
    )
    op.create_index(
        "idx_wallet_entries_status_available_at", "wallet_entries", ["status", "available_at"]
    )

    op.create_table(
        "payout_requests",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "teacher_id", sa.String(26), sa.ForeignKey("teacher_profiles.id"), nullable=False
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("account_ref", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_id", sa.String(26), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("external_ref", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_payout_requests_amount_positive"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID', 'REJECTED', 'FAILED')",
            name="ck_payout_requests_status_values",
        ),
    )
    op.create_index("ix_payout_requests_status", "payout_requests", ["status"])
    op.create_index(
        "idx_payout_requests_teacher_status", "payout_requests", ["teacher_id", "status"]
    )

    op.create_table(
        "payout_allocations",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "payout_request_id",
            sa.String(26),
            sa.ForeignKey("payout_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "wallet_entry_id", sa.String(26), sa.ForeignKey("wallet_entries.id"), nullable=False
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payout_allocations_amount_positive"),
        sa.UniqueConstraint(
            "payout_request_id", "wallet_entry_id", name="uq_payout_allocations_request_entry"
        ),
    )
    op.create_index("idx_payout_allocations_entry", "payout_allocations", ["wallet_entry_id"])

    print("TutorHub schema created successfully!")


def downgrade() -> None:
    """Drop the TutorHub tables."""
    print("Dropping TutorHub schema...")

    op.drop_index("idx_payout_allocations_entry", table_name="payout_allocations")
    op.drop_table("payout_allocations")

    op.drop_index("idx_payout_requests_teacher_status", table_name="payout_requests")
    op.drop_index("ix_payout_requests_status", table_name="payout_requests")
    op.drop_table("payout_requests")

    op.drop_index("idx_wallet_entries_status_available_at", table_name="wallet_entries")
    op.drop_index("idx_wallet_entries_teacher_status", table_name="wallet_entries")
    op.drop_table("wallet_entries")

    op.drop_index("idx_bookings_status_end", table_name="bookings")
    op.drop_index("idx_bookings_teacher_status_start", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("idx_availability_rules_teacher_kind", table_name="availability_rules")
    op.drop_table("availability_rules")

    op.drop_index("idx_subject_offerings_teacher_active", table_name="subject_offerings")
    op.drop_table("subject_offerings")

    op.drop_table("teacher_profiles")

    print("TutorHub schema dropped successfully!")
