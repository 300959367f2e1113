"""Create parts, engineer stock, adjustments, requests and usage reports.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-02-17 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

REQUEST_STATUSES = ("pending", "approved", "rejected", "delivered", "completed", "cancelled")
QUANTITY_CLASSES = ("STANDARD", "HIGH_VOLUME")


def upgrade() -> None:
    op.create_table(
        "parts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("part_name", sa.String(length=255), nullable=False),
        sa.Column("total_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "quantity_class",
            sa.Enum(*QUANTITY_CLASSES, name="part_quantity_class", native_enum=False),
            nullable=True,
        ),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_parts_part_name", "parts", ["part_name"])

    op.create_table(
        "engineer_stock",
        sa.Column("engineer_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "part_id",
            sa.String(length=64),
            sa.ForeignKey("parts.id", ondelete="RESTRICT"),
            primary_key=True,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_stock", sa.Integer(), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 0", name="ck_engineer_stock_quantity_non_negative"),
    )
    op.create_index("ix_engineer_stock_engineer", "engineer_stock", ["engineer_id"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("engineer_id", sa.String(length=64), nullable=False),
        sa.Column("engineer_name", sa.String(length=255), nullable=True),
        sa.Column("part_id", sa.String(length=64), nullable=False),
        sa.Column("part_name", sa.String(length=255), nullable=True),
        sa.Column("request_id", sa.String(length=36), nullable=True),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("area_group", sa.String(length=128), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("request_id", "part_id", name="uq_stock_adjustments_request_part"),
    )
    op.create_index("ix_stock_adjustments_engineer_id", "stock_adjustments", ["engineer_id"])
    op.create_index("ix_stock_adjustments_part_id", "stock_adjustments", ["part_id"])
    op.create_index("ix_stock_adjustments_request_id", "stock_adjustments", ["request_id"])
    op.create_index("ix_stock_adjustments_engineer_time", "stock_adjustments", ["engineer_id", "timestamp"])

    op.create_table(
        "monthly_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("engineer_id", sa.String(length=64), nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*REQUEST_STATUSES, name="request_status", native_enum=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("delivered_by", sa.String(length=64), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_edited_by", sa.String(length=64), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_monthly_requests_engineer_id", "monthly_requests", ["engineer_id"])
    op.create_index("ix_monthly_requests_status", "monthly_requests", ["status"])
    op.create_index("ix_monthly_requests_engineer_status", "monthly_requests", ["engineer_id", "status"])
    op.create_index("ix_monthly_requests_engineer_period", "monthly_requests", ["engineer_id", "period"])

    op.create_table(
        "usage_reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("engineer_id", sa.String(length=64), nullable=False),
        sa.Column("so_number", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("payload_hash", sa.String(length=64), nullable=True),
        sa.UniqueConstraint("engineer_id", "idempotency_key", name="uq_usage_reports_engineer_idempotency"),
    )
    op.create_index("ix_usage_reports_engineer_id", "usage_reports", ["engineer_id"])
    op.create_index("ix_usage_reports_so_number", "usage_reports", ["so_number"])
    op.create_index("ix_usage_reports_engineer_date", "usage_reports", ["engineer_id", "date"])


def downgrade() -> None:
    op.drop_index("ix_usage_reports_engineer_date", table_name="usage_reports")
    op.drop_index("ix_usage_reports_so_number", table_name="usage_reports")
    op.drop_index("ix_usage_reports_engineer_id", table_name="usage_reports")
    op.drop_table("usage_reports")

    op.drop_index("ix_monthly_requests_engineer_period", table_name="monthly_requests")
    op.drop_index("ix_monthly_requests_engineer_status", table_name="monthly_requests")
    op.drop_index("ix_monthly_requests_status", table_name="monthly_requests")
    op.drop_index("ix_monthly_requests_engineer_id", table_name="monthly_requests")
    op.drop_table("monthly_requests")

    op.drop_index("ix_stock_adjustments_engineer_time", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_request_id", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_part_id", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_engineer_id", table_name="stock_adjustments")
    op.drop_table("stock_adjustments")

    op.drop_index("ix_engineer_stock_engineer", table_name="engineer_stock")
    op.drop_table("engineer_stock")

    op.drop_index("ix_parts_part_name", table_name="parts")
    op.drop_table("parts")
