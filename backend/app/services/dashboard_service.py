"""
Dashboard Service — Loads a date window from storage and runs the metrics engine
for it and for the comparison window.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import Order, Sale, FinancialLine, Cost, Campaign
from app.services.metrics_service import (
    compute_metrics, compute_deltas, get_comparison_range_for_dates,
)

logger = logging.getLogger(__name__)


def row_to_dict(obj) -> dict:
    """ORM row -> {column name: value}."""
    return {col.name: getattr(obj, col.name) for col in obj.__table__.columns}


def _scoped(stmt, model, account_id: Optional[uuid.UUID]):
    if account_id is not None:
        stmt = stmt.where(model.account_id == account_id)
    return stmt


async def _fetch(db: AsyncSession, stmt) -> list[dict]:
    result = await db.execute(stmt)
    return [row_to_dict(r) for r in result.scalars().all()]


async def load_metric_inputs(
    db: AsyncSession, account_id: Optional[uuid.UUID], start: date, end: date,
) -> dict[str, list[dict]]:
    """
    Rows feeding one metrics window. Orders and sales are matched on their day,
    settlement lines on the report period start, campaigns on their last update.
    ``account_id=None`` means every account.
    """
    start_s, end_s = start.isoformat(), end.isoformat()
    window_start = datetime.combine(start, time.min)
    window_end = datetime.combine(end + timedelta(days=1), time.min)

    orders = await _fetch(db, _scoped(
        select(Order).where(Order.date >= start_s, Order.date <= end_s), Order, account_id))
    sales = await _fetch(db, _scoped(
        select(Sale).where(Sale.date >= start_s, Sale.date <= end_s), Sale, account_id))
    financials = await _fetch(db, _scoped(
        select(FinancialLine).where(FinancialLine.date_from >= start_s, FinancialLine.date_from <= end_s),
        FinancialLine, account_id))
    costs = await _fetch(db, _scoped(select(Cost), Cost, account_id))
    campaigns = await _fetch(db, _scoped(
        select(Campaign).where(Campaign.updated_at >= window_start, Campaign.updated_at < window_end),
        Campaign, account_id))

    return {
        "orders": orders,
        "sales": sales,
        "financials": financials,
        "costs": costs,
        "campaigns": campaigns,
    }


async def build_dashboard(
    db: AsyncSession,
    account_id: Optional[uuid.UUID],
    start: date,
    end: date,
    compare_start: Optional[date] = None,
    compare_end: Optional[date] = None,
    tax_rate: Optional[float] = None,
) -> dict:
    if end < start:
        raise ValueError("end date is before start date")
    if (compare_start is None) != (compare_end is None):
        raise ValueError("compare_start and compare_end must be given together")
    if compare_start is None:
        compare_start, compare_end = get_comparison_range_for_dates(start, end)
    elif compare_end < compare_start:
        raise ValueError("compare_end is before compare_start")

    rate = get_settings().tax_rate if tax_rate is None else tax_rate

    current = compute_metrics(**await load_metric_inputs(db, account_id, start, end), tax_rate=rate).to_dict()
    previous = compute_metrics(
        **await load_metric_inputs(db, account_id, compare_start, compare_end), tax_rate=rate,
    ).to_dict()

    return {
        "account_id": str(account_id) if account_id else None,
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "comparison_period": {"start": compare_start.isoformat(), "end": compare_end.isoformat()},
        "metrics": current,
        "previous": previous,
        "deltas": compute_deltas(current, previous),
    }


async def load_financial_lines(
    db: AsyncSession, account_id: Optional[uuid.UUID], start: date, end: date,
) -> list[dict]:
    return await _fetch(db, _scoped(
        select(FinancialLine)
        .where(FinancialLine.date_from >= start.isoformat(), FinancialLine.date_from <= end.isoformat())
        .order_by(FinancialLine.date_from),
        FinancialLine, account_id))
