"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Extras catalog
    op.create_table(
        "field_defs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="string"),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pattern", sa.String(500), nullable=True),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("default_value", sa.Text(), nullable=True),
        sa.Column("placeholder", sa.String(255), nullable=True),
        sa.Column("help_text", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=False, server_default="general"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_field_defs_id", "field_defs", ["id"])
    op.create_index("ix_field_defs_key", "field_defs", ["key"], unique=True)
    op.create_index("ix_field_defs_is_active", "field_defs", ["is_active"])
    op.create_index("ix_field_defs_category_sort", "field_defs", ["category", "sort_order"])

    # Reservations
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reservation_number", sa.String(100), nullable=False),
        sa.Column("confirmation_number", sa.String(100), nullable=True),
        sa.Column("channel", sa.String(50), nullable=False, server_default="웹"),
        sa.Column("platform_name", sa.String(50), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("package_type", sa.String(100), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("adult_unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("child_unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("people_adult", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("people_child", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("people_infant", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("korean_name", sa.String(100), nullable=True),
        sa.Column("english_first_name", sa.String(50), nullable=True),
        sa.Column("english_last_name", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("kakao_id", sa.String(100), nullable=True),
        sa.Column("usage_date", sa.Date(), nullable=True),
        sa.Column("usage_time", sa.String(5), nullable=True),
        sa.Column("reservation_datetime", sa.DateTime(), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("review_status", sa.String(20), nullable=False, server_default="needs_review"),
        sa.Column("code_issued", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("extras", sa.JSON(), nullable=False),
        sa.Column("flags", sa.JSON(), nullable=False),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("origin_hash", sa.String(64), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_reservation_number", "reservations", ["reservation_number"])
    op.create_index("ix_reservations_platform_name", "reservations", ["platform_name"])
    op.create_index("ix_reservations_email", "reservations", ["email"])
    op.create_index("ix_reservations_usage_date", "reservations", ["usage_date"])
    op.create_index("ix_reservations_payment_status", "reservations", ["payment_status"])
    op.create_index("ix_reservations_review_status", "reservations", ["review_status"])
    op.create_index("ix_reservations_origin_hash", "reservations", ["origin_hash"])
    op.create_index("ix_reservations_is_deleted", "reservations", ["is_deleted"])
    op.create_index("ix_reservations_created_at", "reservations", ["created_at"])
    # (reservation_number, channel) is unique among live rows only
    op.create_index(
        "uq_reservations_number_channel_live",
        "reservations",
        ["reservation_number", "channel"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
        sqlite_where=sa.text("is_deleted = 0"),
    )

    # Audit trail; booking_id has no foreign key so entries outlive hard deletes
    op.create_table(
        "reservation_audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(100), nullable=False, server_default="system"),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("diff", sa.JSON(), nullable=True),
        sa.Column("previous_values", sa.JSON(), nullable=True),
        sa.Column("current_values", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("request_id", sa.String(150), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_reservation_audits_id", "reservation_audits", ["id"])
    op.create_index("ix_reservation_audits_booking_id", "reservation_audits", ["booking_id"])
    op.create_index("ix_reservation_audits_actor", "reservation_audits", ["actor"])
    op.create_index("ix_reservation_audits_action", "reservation_audits", ["action"])
    op.create_index("ix_reservation_audits_request_id", "reservation_audits", ["request_id"])
    op.create_index("ix_reservation_audits_created_at", "reservation_audits", ["created_at"])
    op.create_index("ix_reservation_audits_booking_created", "reservation_audits", ["booking_id", "created_at"])
    op.create_index("ix_reservation_audits_actor_created", "reservation_audits", ["actor", "created_at"])


def downgrade() -> None:
    op.drop_table("reservation_audits")
    op.drop_table("reservations")
    op.drop_table("field_defs")
