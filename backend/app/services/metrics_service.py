"""
Metrics Service — Folds orders, sales, settlement lines, unit costs and
campaigns into the dashboard KPI set.

Pure functions: no I/O, inputs are never mutated, and the same inputs always
give the same snapshot. Rows are dicts keyed by the ORM column names; missing
numbers count as 0.

Every stage below depends only on values computed before it:
orders -> sales/returns -> COGS -> gross profit -> marketplace expenses ->
ads -> total expenses -> marginal profit -> tax -> profit / ROI.
"""

from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Iterable, Mapping, Tuple

DEFAULT_TAX_RATE = 0.06  # simplified tax system, 6% of revenue


@dataclass(frozen=True)
class MetricsSnapshot:
    # Orders
    orders_revenue: float
    orders_count: int
    cancelled_revenue: float
    cancelled_count: int
    cancel_rate: float
    # Revenue
    sales_revenue: float
    returns_revenue: float
    revenue: float
    avg_check: float
    sales_count: int
    returns_count: int
    return_rate: float
    buyouts_count: int
    buyout_rate: float
    cogs: float
    cogs_percent: float
    avg_cogs: float
    # Gross profit
    gross_profit: float
    gross_profit_percent: float
    # Marketplace expenses
    commission: float
    commission_percent: float
    logistics: float
    logistics_percent: float
    storage: float
    storage_percent: float
    ads: float
    ads_percent: float
    other_services: float
    other_services_percent: float
    compensation: float
    compensation_percent: float
    total_expenses: float
    total_expenses_percent: float
    # Margin & tax
    marginal_profit: float
    marginal_profit_percent: float
    tax: float
    tax_percent: float
    profit: float
    profit_percent: float
    roi: float

    def to_dict(self) -> dict:
        return asdict(self)


def _num(row: Mapping, key: str) -> float:
    return float(row.get(key) or 0)


def _share(value: float, base: float) -> float:
    """value / base × 100, or 0 when the base is not positive."""
    return value / base * 100 if base > 0 else 0.0


def compute_metrics(
    orders: Iterable[Mapping],
    sales: Iterable[Mapping],
    financials: Iterable[Mapping],
    costs: Iterable[Mapping],
    campaigns: Iterable[Mapping],
    tax_rate: float = DEFAULT_TAX_RATE,
) -> MetricsSnapshot:
    orders = list(orders)
    sales = list(sales)
    financials = list(financials)
    campaigns = list(campaigns)
    cost_by_product = {int(c.get("nm_id") or 0): _num(c, "cost") for c in costs}

    # 1. Orders
    active_orders = [o for o in orders if not o.get("is_cancel")]
    cancelled_orders = [o for o in orders if o.get("is_cancel")]
    orders_revenue = sum(_num(o, "total_price") for o in active_orders)
    orders_count = int(sum(_num(o, "quantity") for o in active_orders))
    cancelled_revenue = sum(_num(o, "total_price") for o in cancelled_orders)
    cancelled_count = int(sum(_num(o, "quantity") for o in cancelled_orders))
    cancel_rate = _share(cancelled_count, orders_count + cancelled_count)

    # 2. Sales & returns
    sales_only = [s for s in sales if not s.get("is_return")]
    returns_only = [s for s in sales if s.get("is_return")]
    sales_revenue = sum(_num(s, "price_with_disc") for s in sales_only)
    returns_revenue = sum(_num(s, "price_with_disc") for s in returns_only)
    revenue = sales_revenue - returns_revenue
    sales_count = int(sum(_num(s, "quantity") for s in sales_only))
    returns_count = int(sum(_num(s, "quantity") for s in returns_only))
    return_rate = _share(returns_count, sales_count)
    buyouts_count = sales_count
    buyout_rate = _share(buyouts_count, orders_count + returns_count)
    avg_check = sales_revenue / sales_count if sales_count > 0 else 0.0

    # 3. Cost of goods sold
    cogs = sum(
        cost_by_product.get(int(s.get("nm_id") or 0), 0.0) * _num(s, "quantity")
        for s in sales_only
    )
    cogs_percent = _share(cogs, revenue)
    avg_cogs = cogs / sales_count if sales_count > 0 else 0.0

    # 4. Gross profit
    gross_profit = revenue - cogs
    gross_profit_percent = _share(gross_profit, revenue)

    # 5. Marketplace expenses (settlement lines). Other services are penalties only.
    logistics = sum(_num(f, "delivery_amount") for f in financials)
    storage = sum(_num(f, "storage_amount") for f in financials)
    compensation = sum(_num(f, "additional_payment") for f in financials)
    other_services = sum(_num(f, "penalty") for f in financials)
    seller_payout = sum(_num(s, "for_pay") for s in sales_only)
    commission = max(0.0, revenue - seller_payout - logistics)

    # 6. Advertising
    ads = sum(_num(c, "spent") for c in campaigns)

    # 7. Total expenses
    total_expenses = commission + logistics + storage + ads + other_services - compensation

    # 8. Marginal profit
    marginal_profit = gross_profit - total_expenses

    # 9. Flat-rate tax
    tax = revenue * tax_rate
    tax_percent = tax_rate * 100

    # 10. Net profit
    profit = marginal_profit - tax
    roi = _share(profit, cogs)

    return MetricsSnapshot(
        orders_revenue=orders_revenue,
        orders_count=orders_count,
        cancelled_revenue=cancelled_revenue,
        cancelled_count=cancelled_count,
        cancel_rate=cancel_rate,
        sales_revenue=sales_revenue,
        returns_revenue=returns_revenue,
        revenue=revenue,
        avg_check=avg_check,
        sales_count=sales_count,
        returns_count=returns_count,
        return_rate=return_rate,
        buyouts_count=buyouts_count,
        buyout_rate=buyout_rate,
        cogs=cogs,
        cogs_percent=cogs_percent,
        avg_cogs=avg_cogs,
        gross_profit=gross_profit,
        gross_profit_percent=gross_profit_percent,
        commission=commission,
        commission_percent=_share(commission, revenue),
        logistics=logistics,
        logistics_percent=_share(logistics, revenue),
        storage=storage,
        storage_percent=_share(storage, revenue),
        ads=ads,
        ads_percent=_share(ads, revenue),
        other_services=other_services,
        other_services_percent=_share(other_services, revenue),
        compensation=compensation,
        compensation_percent=_share(compensation, revenue),
        total_expenses=total_expenses,
        total_expenses_percent=_share(total_expenses, revenue),
        marginal_profit=marginal_profit,
        marginal_profit_percent=_share(marginal_profit, revenue),
        tax=tax,
        tax_percent=tax_percent,
        profit=profit,
        profit_percent=_share(profit, revenue),
        roi=roi,
    )


def compute_deltas(current: dict, previous: dict) -> dict:
    """Compute percentage change between two metric dicts."""
    deltas = {}
    for key in current:
        curr = current.get(key, 0)
        prev = previous.get(key, 0)
        if prev != 0:
            deltas[key] = round(((curr - prev) / abs(prev)) * 100, 1)
        else:
            deltas[key] = 0.0 if curr == 0 else 100.0
    return deltas


def get_comparison_range_for_dates(start_date: date, end_date: date) -> Tuple[date, date]:
    """The previous period of the same duration, ending the day before ``start_date``."""
    duration = (end_date - start_date).days + 1
    prev_end = start_date - timedelta(days=1)
    prev_start = prev_end - timedelta(days=duration - 1)
    return prev_start, prev_end
