"""Initial schema: accounts, synced marketplace data, costs and sync log.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False)


def _account_fk():
    return sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False)


def _cascade():
    return sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE")


def upgrade() -> None:
    op.create_table(
        "accounts",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("api_key", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_is_active", "accounts", ["is_active"], unique=False)

    op.create_table(
        "orders",
        _id(),
        _account_fk(),
        sa.Column("order_id", sa.String(255), nullable=False),
        sa.Column("date", sa.String(10), nullable=False, server_default=""),
        sa.Column("nm_id", sa.BigInteger(), nullable=True),
        sa.Column("supplier_article", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("total_price", sa.Float(), nullable=True),
        sa.Column("discount_percent", sa.Float(), nullable=True),
        sa.Column("warehouse_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(100), nullable=True),
        sa.Column("is_cancel", sa.Boolean(), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "order_id", name="uq_order_per_account"),
    )
    op.create_index("ix_orders_account_date", "orders", ["account_id", "date"], unique=False)
    op.create_index("ix_orders_order_id", "orders", ["order_id"], unique=False)

    op.create_table(
        "sales",
        _id(),
        _account_fk(),
        sa.Column("sale_id", sa.String(255), nullable=False),
        sa.Column("date", sa.String(10), nullable=False, server_default=""),
        sa.Column("nm_id", sa.BigInteger(), nullable=True),
        sa.Column("supplier_article", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("price_with_disc", sa.Float(), nullable=True),
        sa.Column("for_pay", sa.Float(), nullable=True),
        sa.Column("finished_price", sa.Float(), nullable=True),
        sa.Column("is_return", sa.Boolean(), nullable=True),
        sa.Column("warehouse_name", sa.String(255), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "sale_id", name="uq_sale_per_account"),
    )
    op.create_index("ix_sales_account_date", "sales", ["account_id", "date"], unique=False)
    op.create_index("ix_sales_sale_id", "sales", ["sale_id"], unique=False)

    op.create_table(
        "stocks",
        _id(),
        _account_fk(),
        sa.Column("warehouse_name", sa.String(255), nullable=True),
        sa.Column("nm_id", sa.BigInteger(), nullable=True),
        sa.Column("supplier_article", sa.String(255), nullable=True),
        sa.Column("subject", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stocks_account_id", "stocks", ["account_id"], unique=False)
    op.create_index("ix_stocks_account_nm", "stocks", ["account_id", "nm_id"], unique=False)

    op.create_table(
        "financial_lines",
        _id(),
        _account_fk(),
        sa.Column("report_id", sa.BigInteger(), nullable=True),
        sa.Column("date_from", sa.String(10), nullable=True),
        sa.Column("date_to", sa.String(10), nullable=True),
        sa.Column("supplier_article", sa.String(255), nullable=True),
        sa.Column("nm_id", sa.BigInteger(), nullable=True),
        sa.Column("subject", sa.String(255), nullable=True),
        sa.Column("retail_amount", sa.Float(), nullable=True),
        sa.Column("return_amount", sa.Float(), nullable=True),
        sa.Column("delivery_amount", sa.Float(), nullable=True),
        sa.Column("storno_delivery_amount", sa.Float(), nullable=True),
        sa.Column("pay_for_seller", sa.Float(), nullable=True),
        sa.Column("penalty", sa.Float(), nullable=True),
        sa.Column("additional_payment", sa.Float(), nullable=True),
        sa.Column("storage_amount", sa.Float(), nullable=True),
        sa.Column("deduction_amount", sa.Float(), nullable=True),
        sa.Column("site_country", sa.String(100), nullable=True),
        sa.Column("warehouse_name", sa.String(255), nullable=True),
        sa.Column("document_date", sa.String(10), nullable=True),
        sa.Column("doc_type_name", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_financial_lines_account_id", "financial_lines", ["account_id"], unique=False)
    op.create_index("ix_financial_lines_account_report", "financial_lines", ["account_id", "report_id"], unique=False)
    op.create_index("ix_financial_lines_account_date", "financial_lines", ["account_id", "date_from"], unique=False)

    op.create_table(
        "campaigns",
        _id(),
        _account_fk(),
        sa.Column("campaign_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(512), nullable=True),
        sa.Column("budget", sa.Float(), nullable=True),
        sa.Column("spent", sa.Float(), nullable=True),
        sa.Column("impressions", sa.BigInteger(), nullable=True),
        sa.Column("clicks", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "campaign_id", name="uq_campaign_per_account"),
    )
    op.create_index("ix_campaigns_account_id", "campaigns", ["account_id"], unique=False)
    op.create_index("ix_campaigns_campaign_id", "campaigns", ["campaign_id"], unique=False)

    op.create_table(
        "costs",
        _id(),
        _account_fk(),
        sa.Column("nm_id", sa.BigInteger(), nullable=False),
        sa.Column("supplier_article", sa.String(255), nullable=True),
        sa.Column("cost", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "nm_id", name="uq_cost_per_product"),
    )
    op.create_index("ix_costs_account_id", "costs", ["account_id"], unique=False)

    op.create_table(
        "sync_log",
        _id(),
        _account_fk(),
        sa.Column("endpoint", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("count", sa.Integer(), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=True),
        _cascade(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sync_log_account_synced_at", "sync_log", ["account_id", "synced_at"], unique=False)
    op.create_index("ix_sync_log_synced_at", "sync_log", ["synced_at"], unique=False)


def downgrade() -> None:
    for table in ("sync_log", "costs", "campaigns", "financial_lines", "stocks", "sales", "orders", "accounts"):
        op.drop_table(table)
