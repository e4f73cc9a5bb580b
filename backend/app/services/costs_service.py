"""
Costs Service — Seller-entered unit costs (COGS input), one per product.
"""

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Cost
from app.utils import utcnow

logger = logging.getLogger(__name__)


async def upsert_cost(
    db: AsyncSession,
    account_id: uuid.UUID,
    nm_id: int,
    cost: float,
    supplier_article: Optional[str] = None,
) -> Cost:
    """Create or overwrite the unit cost of one product. Caller commits."""
    if cost < 0:
        raise ValueError(f"Unit cost must not be negative (nm_id={nm_id})")

    result = await db.execute(
        select(Cost).where(Cost.account_id == account_id, Cost.nm_id == nm_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = Cost(account_id=account_id, nm_id=nm_id, supplier_article=supplier_article or "", cost=cost)
        db.add(row)
    else:
        row.cost = cost
        if supplier_article is not None:
            row.supplier_article = supplier_article
        row.updated_at = utcnow()
    await db.flush()
    return row


async def bulk_upsert_costs(db: AsyncSession, account_id: uuid.UUID, items: Iterable[dict]) -> int:
    """Upsert a list of {nm_id, cost, supplier_article?} dicts; the last entry per product wins."""
    count = 0
    for item in items:
        await upsert_cost(db, account_id, int(item["nm_id"]), float(item["cost"]), item.get("supplier_article"))
        count += 1
    logger.info(f"Bulk cost upsert for account {account_id}: {count} items")
    return count


async def list_costs(db: AsyncSession, account_id: uuid.UUID) -> list[Cost]:
    result = await db.execute(
        select(Cost).where(Cost.account_id == account_id).order_by(Cost.nm_id)
    )
    return list(result.scalars().all())
