"""
Settlement report views — settlement lines grouped per report and per ISO week.

Both folds work the same way: accumulate per key, then derive
``revenue = sales_revenue - returns_revenue``, then sort newest first.
"""

import logging
from datetime import date
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# The marketplace labels documents in Russian; English labels come from manual imports.
SALE_DOC_TYPES = {"продажа", "sale"}
RETURN_DOC_TYPES = {"возврат", "return"}


def classify_doc_type(doc_type_name: Optional[str]) -> Optional[str]:
    """'sale', 'return', or None for fines, logistics-only lines and the like."""
    name = (doc_type_name or "").strip().lower()
    if name in SALE_DOC_TYPES:
        return "sale"
    if name in RETURN_DOC_TYPES:
        return "return"
    return None


def iso_week_key(day: str) -> Optional[str]:
    """'2024-03-06' -> '2024-W10' (Monday-based ISO week, ISO year)."""
    try:
        iso = date.fromisoformat(day[:10]).isocalendar()
    except (ValueError, TypeError):
        return None
    return f"{iso[0]}-W{iso[1]:02d}"


def _num(row: Mapping, key: str) -> float:
    return float(row.get(key) or 0)


def _add_sale_or_return(summary: dict, row: Mapping) -> None:
    kind = classify_doc_type(row.get("doc_type_name"))
    if kind == "sale":
        summary["sales_revenue"] += _num(row, "retail_amount")
        summary["sales_count"] += 1
    elif kind == "return":
        summary["returns_revenue"] += _num(row, "retail_amount")
        summary["returns_count"] += 1


def group_by_report(rows: Iterable[Mapping]) -> list[dict]:
    summaries: dict[int, dict] = {}
    for row in rows:
        report_id = int(row.get("report_id") or 0)
        summary = summaries.get(report_id)
        if summary is None:
            summary = summaries[report_id] = {
                "report_id": report_id,
                "date_from": row.get("date_from") or "",
                "date_to": row.get("date_to") or "",
                "sales_revenue": 0.0, "returns_revenue": 0.0, "revenue": 0.0,
                "for_pay": 0.0, "logistics": 0.0, "storage": 0.0,
                "penalty": 0.0, "compensation": 0.0,
                "sales_count": 0, "returns_count": 0,
            }
        _add_sale_or_return(summary, row)
        summary["for_pay"] += _num(row, "pay_for_seller")
        summary["logistics"] += _num(row, "delivery_amount")
        summary["storage"] += _num(row, "storage_amount")
        summary["penalty"] += _num(row, "penalty")
        summary["compensation"] += _num(row, "additional_payment")

    result = list(summaries.values())
    for s in result:
        s["revenue"] = s["sales_revenue"] - s["returns_revenue"]
    return sorted(result, key=lambda s: s["date_from"], reverse=True)


def group_by_week(rows: Iterable[Mapping]) -> list[dict]:
    summaries: dict[str, dict] = {}
    skipped = 0
    for row in rows:
        week = iso_week_key(row.get("date_from") or "")
        if week is None:
            skipped += 1
            continue
        summary = summaries.get(week)
        if summary is None:
            summary = summaries[week] = {
                "week": week,
                "sales_revenue": 0.0, "returns_revenue": 0.0, "revenue": 0.0,
                "for_pay": 0.0, "logistics": 0.0,
                "sales_count": 0, "returns_count": 0,
            }
        _add_sale_or_return(summary, row)
        summary["for_pay"] += _num(row, "pay_for_seller")
        summary["logistics"] += _num(row, "delivery_amount")

    if skipped:
        logger.debug(f"group_by_week: {skipped} lines without a usable period start")

    result = list(summaries.values())
    for s in result:
        s["revenue"] = s["sales_revenue"] - s["returns_revenue"]
    return sorted(result, key=lambda s: s["week"], reverse=True)
