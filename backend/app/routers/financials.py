"""
Financials Router — Settlement report lines grouped per report and per ISO week.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.accounts import get_account_or_404
from app.services.dashboard_service import load_financial_lines
from app.services.financials_service import group_by_report, group_by_week
from app.utils import parse_date

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load(db: AsyncSession, start: str, end: str, account_id: Optional[str]) -> list[dict]:
    start_d = parse_date(start, "start")
    end_d = parse_date(end, "end")
    if end_d < start_d:
        raise HTTPException(status_code=400, detail="end date is before start date")
    scope = (await get_account_or_404(db, account_id)).id if account_id else None
    return await load_financial_lines(db, scope, start_d, end_d)


@router.get("/reports")
async def financials_by_report(
    start: str = Query(...),
    end: str = Query(...),
    account_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return group_by_report(await _load(db, start, end, account_id))


@router.get("/weeks")
async def financials_by_week(
    start: str = Query(...),
    end: str = Query(...),
    account_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return group_by_week(await _load(db, start, end, account_id))
