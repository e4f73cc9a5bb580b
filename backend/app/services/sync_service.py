"""
Sync Service — Pulls one seller account's marketplace data into storage.

Phases run in a fixed order: orders, sales, stocks, financials, campaigns.
A failing phase is rolled back, recorded as an ``error`` log entry and the run
moves on to the next phase. ``last_sync_at`` is stamped after the last phase
whatever the phase outcomes were: it means "attempted at", not "succeeded at".

The fleet driver runs every active account, isolating each account's failure.
The exception is storage itself: if the sync log cannot be written, the whole
fleet run stops.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.crypto import decrypt_value
from app.models import Account, SyncEndpoint, SyncStatus
from app.services.reconcile_service import (
    upsert_orders, upsert_sales, replace_stocks, upsert_financial_lines,
    upsert_campaigns, log_sync, mark_synced,
)
from app.wb_client import WildberriesClient, create_wb_client

logger = logging.getLogger(__name__)


# ── Results ────────────────────────────────────────────────────────────

@dataclass
class PhaseOutcome:
    endpoint: str
    status: str
    count: Optional[int] = None
    message: Optional[str] = None


@dataclass
class AccountSyncResult:
    account_id: uuid.UUID
    account_name: Optional[str] = None
    phases: list[PhaseOutcome] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and all(p.status == SyncStatus.OK.value for p in self.phases)

    def to_dict(self) -> dict:
        return {
            "account_id": str(self.account_id),
            "account_name": self.account_name,
            "ok": self.ok,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 2),
            "phases": [p.__dict__ for p in self.phases],
        }


@dataclass(frozen=True)
class SyncWindow:
    """Lookback windows, fixed at the moment a run starts."""
    today: date
    recent_from: date
    financials_from: date

    @classmethod
    def ending(cls, today: date, settings: Settings) -> "SyncWindow":
        return cls(
            today=today,
            recent_from=today - timedelta(days=settings.recent_lookback_days),
            financials_from=today - timedelta(days=settings.financials_lookback_days),
        )


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


# ── Phases ─────────────────────────────────────────────────────────────
# Each phase returns (rows received, optional note for the log entry).

PhaseResult = tuple[int, Optional[str]]


async def _sync_orders(db, account_id, client: WildberriesClient, window: SyncWindow) -> PhaseResult:
    rows = await client.fetch_orders(window.recent_from)
    await upsert_orders(db, account_id, rows)
    return len(rows), None


async def _sync_sales(db, account_id, client: WildberriesClient, window: SyncWindow) -> PhaseResult:
    rows = await client.fetch_sales(window.recent_from)
    await upsert_sales(db, account_id, rows)
    return len(rows), None


async def _sync_stocks(db, account_id, client: WildberriesClient, window: SyncWindow) -> PhaseResult:
    rows = await client.fetch_stocks(window.recent_from)
    await replace_stocks(db, account_id, rows)
    return len(rows), None


async def _sync_financials(db, account_id, client: WildberriesClient, window: SyncWindow) -> PhaseResult:
    total = 0
    async for page in client.iter_report_pages(window.financials_from, window.today):
        await upsert_financial_lines(db, account_id, page)
        total += len(page)
    return total, None


async def _sync_campaigns(db, account_id, client: WildberriesClient, window: SyncWindow) -> PhaseResult:
    result = await client.fetch_campaigns()
    await upsert_campaigns(db, account_id, result.campaigns)
    note = None
    if result.failures:
        note = f"{len(result.failures)} of {result.batches} stats batches skipped: {result.failures[0].cause}"
    return len(result.campaigns), note


PHASES: list[tuple[SyncEndpoint, Callable[..., Awaitable[PhaseResult]]]] = [
    (SyncEndpoint.ORDERS, _sync_orders),
    (SyncEndpoint.SALES, _sync_sales),
    (SyncEndpoint.STOCKS, _sync_stocks),
    (SyncEndpoint.FINANCIALS, _sync_financials),
    (SyncEndpoint.CAMPAIGNS, _sync_campaigns),
]


# ── One account ────────────────────────────────────────────────────────

async def sync_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    api_key: str,
    *,
    settings: Optional[Settings] = None,
    client: Optional[WildberriesClient] = None,
    today: Optional[date] = None,
) -> AccountSyncResult:
    """
    Run all five phases for one account. Phase failures are logged, never raised;
    a storage failure while writing the log (or the last_sync_at stamp) is raised.
    """
    settings = settings or get_settings()
    window = SyncWindow.ending(today or _utc_today(), settings)
    result = AccountSyncResult(account_id=account_id)
    start = time.time()

    owns_client = client is None
    client = client or create_wb_client(api_key, settings=settings)
    logger.info(f"Sync started for account {account_id} (since {window.recent_from}, reports since {window.financials_from})")

    try:
        for endpoint, phase in PHASES:
            name = endpoint.value
            try:
                count, note = await phase(db, account_id, client, window)
            except Exception as e:
                await db.rollback()
                logger.exception(f"Sync phase '{name}' failed for account {account_id}")
                outcome = PhaseOutcome(name, SyncStatus.ERROR.value, message=str(e) or type(e).__name__)
            else:
                logger.info(f"Sync phase '{name}' ok for account {account_id}: {count} rows")
                outcome = PhaseOutcome(name, SyncStatus.OK.value, count=count, message=note)

            await log_sync(db, account_id, name, outcome.status, message=outcome.message, count=outcome.count)
            result.phases.append(outcome)

        await mark_synced(db, account_id)
    finally:
        if owns_client:
            await client.aclose()

    result.duration_seconds = time.time() - start
    failed = [p.endpoint for p in result.phases if p.status != SyncStatus.OK.value]
    if failed:
        logger.warning(f"Sync finished for account {account_id} with failed phases: {', '.join(failed)}")
    else:
        logger.info(f"Sync finished for account {account_id} in {result.duration_seconds:.1f}s")
    return result


async def sync_account_isolated(
    session_factory: async_sessionmaker,
    account_id: uuid.UUID,
    api_key: str,
    account_name: Optional[str] = None,
    **kwargs,
) -> AccountSyncResult:
    """
    Sync one account in its own session. Anything other than a storage error is
    turned into an ``error`` on the result instead of being raised.
    """
    start = time.time()
    async with session_factory() as db:
        try:
            result = await sync_account(db, account_id, api_key, **kwargs)
        except SQLAlchemyError:
            logger.critical(f"Storage unavailable while syncing account {account_id}; aborting run")
            raise
        except Exception as e:
            logger.exception(f"Sync failed for account {account_id}")
            result = AccountSyncResult(
                account_id=account_id, error=str(e) or type(e).__name__,
                duration_seconds=time.time() - start,
            )
    result.account_name = account_name
    return result


async def sync_account_by_id(session_factory: async_sessionmaker, account_id: uuid.UUID, **kwargs) -> Optional[AccountSyncResult]:
    """Entry point for a manual trigger: look the account up, then sync it."""
    async with session_factory() as db:
        account = await db.get(Account, account_id)
        if account is None:
            logger.warning(f"Sync requested for unknown account {account_id}")
            return None
        name, api_key = account.name, decrypt_value(account.api_key)
    return await sync_account_isolated(session_factory, account_id, api_key, account_name=name, **kwargs)


# ── Fleet ──────────────────────────────────────────────────────────────

async def sync_all_accounts(
    session_factory: async_sessionmaker,
    *,
    settings: Optional[Settings] = None,
    **kwargs,
) -> list[AccountSyncResult]:
    """
    Sync every active account. One account failing never stops the others.
    With fleet_concurrency == 1 accounts run strictly one after another.
    """
    settings = settings or get_settings()
    async with session_factory() as db:
        rows = await db.execute(select(Account).where(Account.is_active.is_(True)).order_by(Account.created_at))
        targets = [(a.id, a.name, decrypt_value(a.api_key)) for a in rows.scalars().all()]

    logger.info(f"Fleet sync started for {len(targets)} active accounts")

    if settings.fleet_concurrency == 1:
        results = []
        for account_id, name, api_key in targets:
            results.append(await sync_account_isolated(
                session_factory, account_id, api_key, account_name=name, settings=settings, **kwargs,
            ))
    else:
        semaphore = asyncio.Semaphore(settings.fleet_concurrency)

        async def _run(account_id, name, api_key):
            async with semaphore:
                return await sync_account_isolated(
                    session_factory, account_id, api_key, account_name=name, settings=settings, **kwargs,
                )

        tasks = [asyncio.create_task(_run(*t)) for t in targets]
        try:
            results = list(await asyncio.gather(*tasks))
        except BaseException:
            # A storage failure aborts the whole run; nothing may outlive it.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    failed = sum(1 for r in results if not r.ok)
    logger.info(f"Fleet sync finished: {len(results) - failed} ok, {failed} with errors")
    return results
