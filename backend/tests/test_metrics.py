"""
Tests for the metrics engine.
"""

import math
import random
from datetime import date

import pytest

from app.services.metrics_service import (
    compute_metrics, compute_deltas, get_comparison_range_for_dates,
)


def _sale(price, is_return=False, quantity=1, nm_id=100, for_pay=0):
    return {"price_with_disc": price, "is_return": is_return, "quantity": quantity, "nm_id": nm_id, "for_pay": for_pay}


def _metrics(orders=(), sales=(), financials=(), costs=(), campaigns=(), **kw):
    return compute_metrics(orders, sales, financials, costs, campaigns, **kw)


def test_revenue_sums_sales():
    m = _metrics(sales=[_sale(1000), _sale(2000)])
    assert m.revenue == 3000
    assert m.sales_count == 2
    assert m.avg_check == 1500


def test_revenue_subtracts_returns():
    m = _metrics(sales=[_sale(1000), _sale(500, is_return=True)])
    assert m.sales_revenue == 1000
    assert m.returns_revenue == 500
    assert m.revenue == 500
    assert m.return_rate == 100.0


def test_commission_is_residual_of_payout_and_logistics():
    m = _metrics(
        sales=[_sale(10000, for_pay=8000, quantity=1, nm_id=42)],
        costs=[{"nm_id": 42, "cost": 2000}],
        financials=[{
            "delivery_amount": 500, "pay_for_seller": 8000,
            "retail_amount": 10000, "doc_type_name": "sale",
        }],
    )
    assert m.commission == 1500
    assert m.gross_profit == 8000
    assert m.cogs == 2000
    assert m.cogs_percent == pytest.approx(20.0)
    assert m.logistics_percent == pytest.approx(5.0)


def test_commission_never_negative():
    m = _metrics(sales=[_sale(1000, for_pay=1200)], financials=[{"delivery_amount": 100}])
    assert m.commission == 0


def test_full_pipeline_order():
    m = _metrics(
        orders=[{"total_price": 3000, "quantity": 3}, {"total_price": 1000, "quantity": 1, "is_cancel": True}],
        sales=[_sale(2000, quantity=2, for_pay=1500, nm_id=1)],
        financials=[{"delivery_amount": 100, "storage_amount": 50, "penalty": 30, "additional_payment": 20}],
        costs=[{"nm_id": 1, "cost": 300}],
        campaigns=[{"spent": 200}, {"spent": 100}],
        tax_rate=0.06,
    )
    assert m.orders_count == 3 and m.cancelled_count == 1
    assert m.cancel_rate == 25.0
    assert m.buyout_rate == pytest.approx(2 / 3 * 100)
    assert m.cogs == 600
    assert m.commission == 400          # 2000 - 1500 - 100
    assert m.other_services == 30       # penalties only
    assert m.ads == 300
    assert m.total_expenses == 400 + 100 + 50 + 300 + 30 - 20
    assert m.marginal_profit == (2000 - 600) - 860
    assert m.tax == pytest.approx(120)
    assert m.tax_percent == pytest.approx(6.0)
    assert m.profit == pytest.approx(540 - 120)
    assert m.roi == pytest.approx(420 / 600 * 100)


def test_zero_revenue_gives_zero_percentages():
    m = _metrics(
        financials=[{"delivery_amount": 300, "storage_amount": 100, "penalty": 50, "additional_payment": 10}],
        campaigns=[{"spent": 500}],
        costs=[{"nm_id": 1, "cost": 100}],
    )
    assert m.revenue == 0
    for name, value in m.to_dict().items():
        assert not math.isnan(value) and not math.isinf(value), name
        if name.endswith("_percent") and name != "tax_percent":
            assert value == 0, name
    assert m.cancel_rate == 0 and m.return_rate == 0 and m.buyout_rate == 0
    assert m.avg_check == 0 and m.avg_cogs == 0 and m.roi == 0


def test_zero_revenue_with_equal_sales_and_returns():
    m = _metrics(sales=[_sale(700), _sale(700, is_return=True)], costs=[{"nm_id": 100, "cost": 100}])
    assert m.revenue == 0
    assert m.cogs_percent == 0
    assert m.gross_profit_percent == 0
    assert m.profit_percent == 0


def test_order_counts_partition_all_orders():
    orders = [{"total_price": 100 * i, "quantity": 1, "is_cancel": i % 3 == 0} for i in range(1, 31)]
    m = _metrics(orders=orders)
    assert m.orders_count + m.cancelled_count == 30
    assert 0 <= m.cancel_rate <= 100


def test_aggregation_is_order_independent():
    sales = [_sale(100 + i, is_return=(i % 4 == 0), quantity=1 + i % 2) for i in range(40)]
    shuffled = list(sales)
    random.Random(7).shuffle(shuffled)
    a = _metrics(sales=sales)
    b = _metrics(sales=shuffled)
    assert a.revenue == pytest.approx(b.revenue)
    assert a.revenue == pytest.approx(a.sales_revenue - a.returns_revenue)
    assert a.sales_count == b.sales_count


def test_inputs_are_not_mutated():
    sales = [_sale(500)]
    before = [dict(s) for s in sales]
    _metrics(sales=sales)
    assert sales == before


def test_missing_fields_count_as_zero():
    m = _metrics(orders=[{}], sales=[{"is_return": False}], financials=[{}], campaigns=[{}])
    assert m.revenue == 0 and m.orders_count == 0 and m.ads == 0


def test_compute_deltas():
    deltas = compute_deltas(
        {"revenue": 150.0, "ads": 0.0, "profit": 10.0, "tax": 0.0},
        {"revenue": 100.0, "ads": 0.0, "profit": 0.0, "tax": -50.0},
    )
    assert deltas == {"revenue": 50.0, "ads": 0.0, "profit": 100.0, "tax": 100.0}


def test_comparison_range_is_previous_window_of_same_length():
    assert get_comparison_range_for_dates(date(2024, 3, 8), date(2024, 3, 14)) == (date(2024, 3, 1), date(2024, 3, 7))
    assert get_comparison_range_for_dates(date(2024, 3, 1), date(2024, 3, 1)) == (date(2024, 2, 29), date(2024, 2, 29))
