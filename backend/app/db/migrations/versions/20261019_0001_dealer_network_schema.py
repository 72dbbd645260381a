"""Dealer network schema: source collections, transfers, forecasts, metrics snapshot.

Revision ID: 0001_dealer_network
Revises: None
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_dealer_network"
down_revision = None
branch_labels = None
depends_on = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "dealerships",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("city", sa.Text(), nullable=False),
        sa.Column("province", sa.Text(), nullable=False),
        sa.Column("coords", _json(), nullable=True),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("dealership_id", sa.String(length=64), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=True),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "vehicles",
        sa.Column("vin", sa.String(length=17), primary_key=True),
        sa.Column("model", sa.Text(), nullable=False),
        sa.Column("color", sa.Text(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("cost_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("dealership_id", sa.String(length=64), nullable=True),
        sa.Column("history", _json(), nullable=False),
        sa.Column("estimated_arrival_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_location", sa.Text(), nullable=True),
    )
    op.create_index("ix_vehicles_dealership_status", "vehicles", ["dealership_id", "status"])

    op.create_table(
        "sales",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("vehicle_id", sa.String(length=17), nullable=False),
        sa.Column("salesperson_id", sa.String(length=64), nullable=False),
        sa.Column("dealership_id", sa.String(length=64), nullable=False),
        sa.Column("customer_first_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("customer_last_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("customer_email", sa.Text(), nullable=False, server_default=""),
        sa.Column("customer_phone", sa.Text(), nullable=False, server_default=""),
        sa.Column("customer_address", sa.Text(), nullable=False, server_default=""),
        sa.Column("sale_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("financing_income", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("insurance_income", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("profit", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sales_timestamp", "sales", ["timestamp"])

    op.create_table(
        "goals",
        sa.Column("id", sa.String(length=160), primary_key=True),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("target", sa.Numeric(14, 2), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
    )

    op.create_table(
        "transfer_requests",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("vehicle_id", sa.String(length=17), nullable=False),
        sa.Column("from_dealership_id", sa.String(length=64), nullable=False),
        sa.Column("to_dealership_id", sa.String(length=64), nullable=False),
        sa.Column("requesting_user_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
    )

    op.create_table(
        "demand_forecasts",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("model", sa.Text(), nullable=False),
        sa.Column("province", sa.Text(), nullable=False),
        sa.Column("forecasted_sales", sa.Integer(), nullable=False),
        sa.Column("last_calculated", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "metrics_snapshots",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("payload", _json(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("metrics_snapshots")
    op.drop_table("demand_forecasts")
    op.drop_table("transfer_requests")
    op.drop_table("goals")
    op.drop_index("ix_sales_timestamp", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_vehicles_dealership_status", table_name="vehicles")
    op.drop_table("vehicles")
    op.drop_table("users")
    op.drop_table("dealerships")
