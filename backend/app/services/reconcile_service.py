"""
Reconciliation Service — Merges raw marketplace records into storage.

Identity rules per entity:
  - orders / sales / campaigns: upsert by the external id, scoped to the account
  - financial lines: upsert by (report id, product id, doc type, article)
  - stocks: replace the account's whole snapshot

Records are written in batches of ``upsert_batch_size``; each upsert batch is
its own transaction. The stock replace is one transaction so a failed insert
never leaves the account with a half-deleted snapshot.
"""

import logging
import uuid
from typing import Iterable, Optional, Sequence, Type

from pydantic import ValidationError
from sqlalchemy import select, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import (
    Account, Order, Sale, Stock, FinancialLine, Campaign, SyncLogEntry,
)
from app.schemas import (
    RawRecord, RawOrder, RawSale, RawStock, RawReportLine, CampaignRecord,
)
from app.utils import chunk, utcnow

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Storage failure while merging a batch; aborts the current sync phase."""
    pass


def _batch_size(batch_size: Optional[int]) -> int:
    return batch_size or get_settings().upsert_batch_size


def parse_records(model: Type[RawRecord], rows: Iterable[dict]) -> list[RawRecord]:
    """Validate raw payload rows, dropping (and logging) the ones that cannot be coerced."""
    records = []
    skipped = 0
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            skipped += 1
            logger.debug(f"Skipping malformed {model.__name__}: {e}")
    if skipped:
        logger.warning(f"Skipped {skipped} malformed {model.__name__} rows")
    return records


async def _upsert_by_external_id(
    db: AsyncSession,
    model,
    key_field: str,
    account_id: uuid.UUID,
    rows: Sequence[dict],
    batch_size: Optional[int] = None,
    touch_updated_at: bool = False,
) -> int:
    """Insert-or-overwrite rows keyed by ``key_field`` within one account."""
    key_column = getattr(model, key_field)
    written = 0

    for batch in chunk(rows, _batch_size(batch_size)):
        keys = [r[key_field] for r in batch]
        try:
            result = await db.execute(
                select(model).where(model.account_id == account_id, key_column.in_(keys))
            )
            existing = {getattr(obj, key_field): obj for obj in result.scalars().all()}

            for row in batch:
                if touch_updated_at:
                    row = {**row, "updated_at": utcnow()}
                obj = existing.get(row[key_field])
                if obj is not None:
                    for attr, value in row.items():
                        setattr(obj, attr, value)
                else:
                    obj = model(account_id=account_id, **row)
                    db.add(obj)
                    existing[row[key_field]] = obj
                written += 1
            await db.commit()
        except SQLAlchemyError as e:
            raise ReconciliationError(f"{model.__tablename__} upsert failed: {e}") from e

    return written


def _rows_with_key(records: list[RawRecord], key_field: str, label: str) -> list[dict]:
    rows = []
    for rec in records:
        row = rec.to_row()
        if not row[key_field]:
            logger.warning(f"Skipping {label} without {key_field}")
            continue
        rows.append(row)
    return rows


# ══════════════════════════════════════════════════════════════════════
#  ORDERS / SALES / CAMPAIGNS — upsert by external id
# ══════════════════════════════════════════════════════════════════════

async def upsert_orders(
    db: AsyncSession, account_id: uuid.UUID, raw_rows: Iterable[dict], batch_size: Optional[int] = None,
) -> int:
    rows = _rows_with_key(parse_records(RawOrder, raw_rows), "order_id", "order")
    return await _upsert_by_external_id(db, Order, "order_id", account_id, rows, batch_size)


async def upsert_sales(
    db: AsyncSession, account_id: uuid.UUID, raw_rows: Iterable[dict], batch_size: Optional[int] = None,
) -> int:
    rows = _rows_with_key(parse_records(RawSale, raw_rows), "sale_id", "sale")
    return await _upsert_by_external_id(db, Sale, "sale_id", account_id, rows, batch_size)


async def upsert_campaigns(
    db: AsyncSession, account_id: uuid.UUID, campaigns: Iterable[CampaignRecord], batch_size: Optional[int] = None,
) -> int:
    """Campaign totals are lifetime values from the source, so they overwrite."""
    rows = [c.to_row() for c in campaigns]
    return await _upsert_by_external_id(
        db, Campaign, "campaign_id", account_id, rows, batch_size, touch_updated_at=True,
    )


# ══════════════════════════════════════════════════════════════════════
#  STOCKS — replace the account's snapshot
# ══════════════════════════════════════════════════════════════════════

async def replace_stocks(
    db: AsyncSession, account_id: uuid.UUID, raw_rows: Iterable[dict], batch_size: Optional[int] = None,
) -> int:
    records = parse_records(RawStock, raw_rows)
    now = utcnow()
    try:
        await db.execute(delete(Stock).where(Stock.account_id == account_id))
        for batch in chunk(records, _batch_size(batch_size)):
            db.add_all([Stock(account_id=account_id, updated_at=now, **r.to_row()) for r in batch])
            await db.flush()
        await db.commit()
    except SQLAlchemyError as e:
        raise ReconciliationError(f"stocks replace failed: {e}") from e
    return len(records)


# ══════════════════════════════════════════════════════════════════════
#  FINANCIAL LINES — compound key within a report
# ══════════════════════════════════════════════════════════════════════

def _line_key(row: dict) -> tuple:
    return (row["report_id"], row["nm_id"], row["doc_type_name"], row["supplier_article"])


async def upsert_financial_lines(
    db: AsyncSession, account_id: uuid.UUID, raw_rows: Iterable[dict], batch_size: Optional[int] = None,
) -> int:
    """
    Report lines have no single natural key. A line matches a stored row of the
    same report with equal product id, doc type and article; the earliest
    stored match wins.
    """
    rows = [r.to_row() for r in parse_records(RawReportLine, raw_rows)]
    written = 0

    for batch in chunk(rows, _batch_size(batch_size)):
        report_ids = sorted({r["report_id"] for r in batch})
        try:
            result = await db.execute(
                select(FinancialLine)
                .where(FinancialLine.account_id == account_id, FinancialLine.report_id.in_(report_ids))
                .order_by(FinancialLine.created_at, FinancialLine.id)
            )
            existing: dict[tuple, FinancialLine] = {}
            for line in result.scalars().all():
                existing.setdefault(
                    (line.report_id, line.nm_id, line.doc_type_name, line.supplier_article), line
                )

            for row in batch:
                key = _line_key(row)
                line = existing.get(key)
                if line is not None:
                    for attr, value in row.items():
                        setattr(line, attr, value)
                else:
                    line = FinancialLine(account_id=account_id, **row)
                    db.add(line)
                    existing[key] = line
                written += 1
            await db.commit()
        except SQLAlchemyError as e:
            raise ReconciliationError(f"financial_lines upsert failed: {e}") from e

    return written


# ══════════════════════════════════════════════════════════════════════
#  SYNC LOG / ACCOUNT STAMP
# ══════════════════════════════════════════════════════════════════════

async def log_sync(
    db: AsyncSession,
    account_id: uuid.UUID,
    endpoint: str,
    status: str,
    message: Optional[str] = None,
    count: Optional[int] = None,
) -> None:
    """
    Append a sync log entry. Storage errors are NOT wrapped: if the log itself
    cannot be written, the run has nowhere to report to and must stop.
    """
    db.add(SyncLogEntry(
        account_id=account_id,
        endpoint=endpoint,
        status=status,
        message=message,
        count=count,
        synced_at=utcnow(),
    ))
    await db.commit()


async def mark_synced(db: AsyncSession, account_id: uuid.UUID) -> None:
    await db.execute(
        update(Account).where(Account.id == account_id).values(last_sync_at=utcnow())
    )
    await db.commit()


async def recent_sync_log(db: AsyncSession, account_id: uuid.UUID, limit: int) -> list[SyncLogEntry]:
    """Most recent ``limit`` entries for an account, newest first."""
    result = await db.execute(
        select(SyncLogEntry)
        .where(SyncLogEntry.account_id == account_id)
        .order_by(SyncLogEntry.synced_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
