"""
Seller Analytics — Database Models
Every marketplace row is scoped to a seller account and indexed on the
natural key the sync pipeline looks it up by.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, BigInteger, Boolean, DateTime, Uuid,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class SyncStatus(str, enum.Enum):
    OK = "ok"
    ERROR = "error"


class SyncEndpoint(str, enum.Enum):
    ORDERS = "orders"
    SALES = "sales"
    STOCKS = "stocks"
    FINANCIALS = "financials"
    CAMPAIGNS = "campaigns"


# ══════════════════════════════════════════════════════════════════════
#  ACCOUNTS — Connected seller accounts
# ══════════════════════════════════════════════════════════════════════

class Account(Base):
    """A seller's marketplace connection. The API key is stored encrypted."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    # Relationships
    orders: Mapped[list["Order"]] = relationship("Order", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    sales: Mapped[list["Sale"]] = relationship("Sale", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    stocks: Mapped[list["Stock"]] = relationship("Stock", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    financial_lines: Mapped[list["FinancialLine"]] = relationship("FinancialLine", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    campaigns: Mapped[list["Campaign"]] = relationship("Campaign", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    costs: Mapped[list["Cost"]] = relationship("Cost", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    sync_log: Mapped[list["SyncLogEntry"]] = relationship("SyncLogEntry", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_accounts_is_active", "is_active"),
    )


# ══════════════════════════════════════════════════════════════════════
#  ORDERS — Upserted by external order id
# ══════════════════════════════════════════════════════════════════════

class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False, default="")  # YYYY-MM-DD
    nm_id: Mapped[int] = mapped_column(BigInteger, default=0)
    supplier_article: Mapped[str] = mapped_column(String(255), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    total_price: Mapped[float] = mapped_column(Float, default=0.0)
    discount_percent: Mapped[float] = mapped_column(Float, default=0.0)
    warehouse_name: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(100), default="")
    is_cancel: Mapped[bool] = mapped_column(Boolean, default=False)

    account: Mapped["Account"] = relationship("Account", back_populates="orders")

    __table_args__ = (
        UniqueConstraint("account_id", "order_id", name="uq_order_per_account"),
        Index("ix_orders_account_date", "account_id", "date"),
        Index("ix_orders_order_id", "order_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  SALES — Sales and returns, upserted by external sale id
# ══════════════════════════════════════════════════════════════════════

class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    sale_id: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    nm_id: Mapped[int] = mapped_column(BigInteger, default=0)
    supplier_article: Mapped[str] = mapped_column(String(255), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    price_with_disc: Mapped[float] = mapped_column(Float, default=0.0)
    for_pay: Mapped[float] = mapped_column(Float, default=0.0)
    finished_price: Mapped[float] = mapped_column(Float, default=0.0)
    is_return: Mapped[bool] = mapped_column(Boolean, default=False)
    warehouse_name: Mapped[str] = mapped_column(String(255), default="")

    account: Mapped["Account"] = relationship("Account", back_populates="sales")

    __table_args__ = (
        UniqueConstraint("account_id", "sale_id", name="uq_sale_per_account"),
        Index("ix_sales_account_date", "account_id", "date"),
        Index("ix_sales_sale_id", "sale_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  STOCKS — Current snapshot, replaced wholesale on every sync
# ══════════════════════════════════════════════════════════════════════

class Stock(Base):
    __tablename__ = "stocks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    warehouse_name: Mapped[str] = mapped_column(String(255), default="")
    nm_id: Mapped[int] = mapped_column(BigInteger, default=0)
    supplier_article: Mapped[str] = mapped_column(String(255), default="")
    subject: Mapped[str] = mapped_column(String(255), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="stocks")

    __table_args__ = (
        Index("ix_stocks_account_id", "account_id"),
        Index("ix_stocks_account_nm", "account_id", "nm_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  FINANCIAL LINES — Settlement report line items
# ══════════════════════════════════════════════════════════════════════

class FinancialLine(Base):
    """
    One line of a periodic settlement report. The source has no natural key
    per line; rows are deduplicated on (report, product, doc type, article).
    """
    __tablename__ = "financial_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    report_id: Mapped[int] = mapped_column(BigInteger, default=0)
    date_from: Mapped[str] = mapped_column(String(10), default="")
    date_to: Mapped[str] = mapped_column(String(10), default="")
    supplier_article: Mapped[str] = mapped_column(String(255), default="")
    nm_id: Mapped[int] = mapped_column(BigInteger, default=0)
    subject: Mapped[str] = mapped_column(String(255), default="")
    retail_amount: Mapped[float] = mapped_column(Float, default=0.0)
    return_amount: Mapped[float] = mapped_column(Float, default=0.0)
    delivery_amount: Mapped[float] = mapped_column(Float, default=0.0)
    storno_delivery_amount: Mapped[float] = mapped_column(Float, default=0.0)
    pay_for_seller: Mapped[float] = mapped_column(Float, default=0.0)
    penalty: Mapped[float] = mapped_column(Float, default=0.0)
    additional_payment: Mapped[float] = mapped_column(Float, default=0.0)
    storage_amount: Mapped[float] = mapped_column(Float, default=0.0)
    deduction_amount: Mapped[float] = mapped_column(Float, default=0.0)
    site_country: Mapped[str] = mapped_column(String(100), default="")
    warehouse_name: Mapped[str] = mapped_column(String(255), default="")
    document_date: Mapped[str] = mapped_column(String(10), default="")
    doc_type_name: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="financial_lines")

    __table_args__ = (
        Index("ix_financial_lines_account_id", "account_id"),
        Index("ix_financial_lines_account_report", "account_id", "report_id"),
        Index("ix_financial_lines_account_date", "account_id", "date_from"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGNS — Advertising campaigns with lifetime totals
# ══════════════════════════════════════════════════════════════════════

class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    campaign_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(512), default="")
    budget: Mapped[float] = mapped_column(Float, default=0.0)
    spent: Mapped[float] = mapped_column(Float, default=0.0)  # lifetime, not incremental
    impressions: Mapped[int] = mapped_column(BigInteger, default=0)
    clicks: Mapped[int] = mapped_column(BigInteger, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="campaigns")

    __table_args__ = (
        UniqueConstraint("account_id", "campaign_id", name="uq_campaign_per_account"),
        Index("ix_campaigns_account_id", "account_id"),
        Index("ix_campaigns_campaign_id", "campaign_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  COSTS — Seller-entered unit cost per product
# ══════════════════════════════════════════════════════════════════════

class Cost(Base):
    __tablename__ = "costs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    nm_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    supplier_article: Mapped[str] = mapped_column(String(255), default="")
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="costs")

    __table_args__ = (
        UniqueConstraint("account_id", "nm_id", name="uq_cost_per_product"),
        Index("ix_costs_account_id", "account_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  SYNC LOG — Append-only audit of sync phases
# ══════════════════════════════════════════════════════════════════════

class SyncLogEntry(Base):
    """One row per sync phase attempt. Never updated or deleted by the pipeline."""
    __tablename__ = "sync_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # ok | error
    message: Mapped[str] = mapped_column(Text, nullable=True)
    count: Mapped[int] = mapped_column(Integer, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="sync_log")

    __table_args__ = (
        Index("ix_sync_log_account_synced_at", "account_id", "synced_at"),
        Index("ix_sync_log_synced_at", "synced_at"),
    )
