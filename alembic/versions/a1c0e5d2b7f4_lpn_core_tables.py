"""lpn_core_tables

Revision ID: a1c0e5d2b7f4
Revises:
Create Date: 2026-10-17 09:12:44.118204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c0e5d2b7f4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ---- 主数据 ----
    op.create_table(
        "skus",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku_code", sa.String(64), nullable=False),
        sa.Column("description", sa.String(255)),
        sa.Column("lpn_qty", sa.Integer()),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("attribute1", sa.String(128)),
        sa.Column("attribute2", sa.String(128)),
        _ts("created_at"),
    )
    op.create_index("ix_skus_tenant_code", "skus", ["tenant_id", "sku_code"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
    )

    # ---- 入库 ----
    op.create_table(
        "inbound_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("job_code", sa.String(64), nullable=False),
        sa.Column("delivery_customer_id", sa.Integer(), sa.ForeignKey("customers.id")),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("delivery_customer_reference_number", sa.String(128)),
        sa.Column("ordering_customer_reference_number", sa.String(128)),
        sa.Column("container_number", sa.String(64)),
        sa.Column("expected_date", sa.Date()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_inbound_jobs_tenant_wh", "inbound_jobs", ["tenant_id", "warehouse_id"])

    op.create_table(
        "inbound_product_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "inbound_job_id",
            sa.Integer(),
            sa.ForeignKey("inbound_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sku_id", sa.Integer(), sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("batch_number", sa.String(64)),
        sa.Column("lpn_qty", sa.Integer()),
        sa.Column("expected_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("received_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("attribute1", sa.String(128)),
        sa.Column("attribute2", sa.String(128)),
    )
    op.create_index("ix_inbound_lines_job", "inbound_product_lines", ["inbound_job_id"])

    # ---- 出库 ----
    op.create_table(
        "outbound_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("job_code", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("customer_reference_number", sa.String(128)),
        sa.Column("consignee_reference_number", sa.String(128)),
        sa.Column("container_number", sa.String(64)),
        sa.Column("required_date", sa.Date()),
        sa.Column("vehicle_id", sa.String(64)),
        sa.Column("driver_id", sa.String(64)),
        _ts("dispatched_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_outbound_jobs_tenant_wh", "outbound_jobs", ["tenant_id", "warehouse_id"])

    op.create_table(
        "outbound_product_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "outbound_job_id",
            sa.Integer(),
            sa.ForeignKey("outbound_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sku_id", sa.Integer(), sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("batch_number", sa.String(64)),
        sa.Column("lpn_qty", sa.Integer()),
        sa.Column("required_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("allocated_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("picked_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("attribute1", sa.String(128)),
        sa.Column("attribute2", sa.String(128)),
    )
    op.create_index("ix_outbound_lines_job", "outbound_product_lines", ["outbound_job_id"])

    # ---- 柜 ----
    op.create_table(
        "container_bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("booking_code", sa.String(64), nullable=False),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("customer_reference", sa.String(128)),
        _ts("created_at"),
    )

    op.create_table(
        "container_details",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("container_bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("container_number", sa.String(64)),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'booked'")),
        sa.Column("vehicle_id", sa.String(64)),
        sa.Column("driver_id", sa.String(64)),
        _ts("dispatched_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_container_details_booking", "container_details", ["booking_id"])

    op.create_table(
        "container_stock_allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "container_detail_id",
            sa.Integer(),
            sa.ForeignKey("container_details.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("container_bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stage", sa.String(32)),
        sa.Column("product_lines", sa.JSON(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_container_alloc_detail", "container_stock_allocations", ["container_detail_id"])

    # ---- LPN ----
    op.create_table(
        "put_away_stock",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("lpn_number", sa.String(32), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(64), nullable=False),
        sa.Column("sku_id", sa.Integer(), sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("hu_qty", sa.Integer(), nullable=False),
        sa.Column("provenance_kind", sa.String(16), nullable=False),
        sa.Column("inbound_product_line_id", sa.Integer(), sa.ForeignKey("inbound_product_lines.id")),
        sa.Column("inbound_job_id", sa.Integer()),
        sa.Column(
            "container_stock_allocation_id",
            sa.Integer(),
            sa.ForeignKey("container_stock_allocations.id"),
        ),
        sa.Column("container_line_index", sa.Integer()),
        sa.Column("container_detail_id", sa.Integer()),
        sa.Column(
            "allocation_status",
            sa.String(16),
            nullable=False,
            server_default=sa.text("'available'"),
        ),
        sa.Column("claim_kind", sa.String(16)),
        sa.Column("outbound_product_line_id", sa.Integer(), sa.ForeignKey("outbound_product_lines.id")),
        sa.Column("outbound_job_id", sa.Integer()),
        sa.Column(
            "claim_container_allocation_id",
            sa.Integer(),
            sa.ForeignKey("container_stock_allocations.id"),
        ),
        sa.Column("claim_container_line_index", sa.Integer()),
        sa.Column("claim_container_detail_id", sa.Integer()),
        _ts("allocated_at", nullable=True),
        _ts("picked_at", nullable=True),
        _ts("dispatched_at", nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("lpn_number", name="uq_put_away_stock_lpn_number"),
        sa.CheckConstraint(
            "(provenance_kind = 'INBOUND_LINE' AND inbound_product_line_id IS NOT NULL "
            "AND container_stock_allocation_id IS NULL AND container_line_index IS NULL) "
            "OR (provenance_kind = 'CONTAINER_LINE' AND inbound_product_line_id IS NULL "
            "AND container_stock_allocation_id IS NOT NULL AND container_line_index IS NOT NULL)",
            name="ck_put_away_stock_one_provenance",
        ),
        sa.CheckConstraint("hu_qty >= 0", name="ck_put_away_stock_hu_qty_nonneg"),
    )
    op.create_index("ix_put_away_stock_wh_sku", "put_away_stock", ["tenant_id", "warehouse_id", "sku_id"])
    op.create_index("ix_put_away_stock_inbound_line", "put_away_stock", ["inbound_product_line_id"])
    op.create_index(
        "ix_put_away_stock_container_line",
        "put_away_stock",
        ["container_stock_allocation_id", "container_line_index"],
    )
    op.create_index("ix_put_away_stock_claim_outbound", "put_away_stock", ["outbound_product_line_id"])
    op.create_index(
        "ix_put_away_stock_claim_container",
        "put_away_stock",
        ["claim_container_allocation_id", "claim_container_line_index"],
    )

    op.create_table(
        "pickup_stock",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("demand_kind", sa.String(16), nullable=False),
        sa.Column("outbound_product_line_id", sa.Integer()),
        sa.Column("outbound_job_id", sa.Integer()),
        sa.Column("container_stock_allocation_id", sa.Integer()),
        sa.Column("container_line_index", sa.Integer()),
        sa.Column("container_detail_id", sa.Integer()),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("picked_lpns", sa.JSON(), nullable=False),
        sa.Column("picked_up_qty", sa.Integer(), nullable=False),
        sa.Column("buffer_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_picked_up_qty", sa.Integer(), nullable=False),
        sa.Column("pickup_status", sa.String(16), nullable=False),
        sa.Column("picked_up_by", sa.String(128)),
        sa.Column("notes", sa.Text()),
        _ts("created_at"),
    )
    op.create_index("ix_pickup_stock_outbound_line", "pickup_stock", ["outbound_product_line_id"])
    op.create_index(
        "ix_pickup_stock_container_line",
        "pickup_stock",
        ["container_stock_allocation_id", "container_line_index"],
    )
    op.create_index("ix_pickup_stock_outbound_job", "pickup_stock", ["outbound_job_id"])
    op.create_index("ix_pickup_stock_container_detail", "pickup_stock", ["container_detail_id"])

    op.create_table(
        "lpn_sequences",
        sa.Column("name", sa.String(32), primary_key=True),
        sa.Column("next_value", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("lpn_sequences")
    op.drop_table("pickup_stock")
    op.drop_table("put_away_stock")
    op.drop_table("container_stock_allocations")
    op.drop_table("container_details")
    op.drop_table("container_bookings")
    op.drop_table("outbound_product_lines")
    op.drop_table("outbound_jobs")
    op.drop_table("inbound_product_lines")
    op.drop_table("inbound_jobs")
    op.drop_table("customers")
    op.drop_table("skus")
