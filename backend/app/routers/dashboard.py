"""
Dashboard Router — KPI snapshot for a date window, its comparison window and deltas.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.accounts import get_account_or_404
from app.services.dashboard_service import build_dashboard
from app.utils import parse_date

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_dashboard(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    account_id: Optional[str] = Query(None, description="Omit for all accounts"),
    compare_start: Optional[str] = Query(None),
    compare_end: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Metrics for [start, end] plus the comparison window. Without explicit
    compare dates the previous window of the same length is used.
    """
    start_d = parse_date(start, "start")
    end_d = parse_date(end, "end")
    cmp_start = parse_date(compare_start, "compare_start") if compare_start else None
    cmp_end = parse_date(compare_end, "compare_end") if compare_end else None

    scope = None
    if account_id:
        scope = (await get_account_or_404(db, account_id)).id

    try:
        return await build_dashboard(db, scope, start_d, end_d, cmp_start, cmp_end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
