"""
Costs Router — Per-product unit costs used for COGS.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.accounts import get_account_or_404
from app.services.costs_service import upsert_cost, bulk_upsert_costs, list_costs

logger = logging.getLogger(__name__)

router = APIRouter()


class CostIn(BaseModel):
    nm_id: int = Field(..., gt=0)
    cost: float = Field(..., ge=0)
    supplier_article: Optional[str] = None


class BulkCostsIn(BaseModel):
    items: list[CostIn]


def _serialize(row) -> dict:
    return {
        "nm_id": row.nm_id,
        "supplier_article": row.supplier_article,
        "cost": row.cost,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/{account_id}")
async def get_costs(account_id: str, db: AsyncSession = Depends(get_db)):
    account = await get_account_or_404(db, account_id)
    return [_serialize(c) for c in await list_costs(db, account.id)]


@router.put("/{account_id}")
async def put_cost(account_id: str, payload: CostIn, db: AsyncSession = Depends(get_db)):
    account = await get_account_or_404(db, account_id)
    try:
        row = await upsert_cost(db, account.id, payload.nm_id, payload.cost, payload.supplier_article)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _serialize(row)


@router.put("/{account_id}/bulk")
async def put_costs_bulk(account_id: str, payload: BulkCostsIn, db: AsyncSession = Depends(get_db)):
    account = await get_account_or_404(db, account_id)
    count = await bulk_upsert_costs(db, account.id, [i.model_dump() for i in payload.items])
    return {"status": "ok", "count": count}
