"""
Tests for the sync orchestrator and the fleet driver.
"""

import asyncio
import json
import uuid
from datetime import date
from unittest.mock import patch, AsyncMock

import httpx
import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.models import Account, Order, Sale, Stock, FinancialLine, Campaign, SyncLogEntry
from app.services.reconcile_service import ReconciliationError
from app.services.sync_service import AccountSyncResult, sync_account, sync_all_accounts, sync_account_by_id
from conftest import (
    FakeMarketplace, healthy_routes, fullstats_entry,
    ORDERS_PATH, SALES_PATH, REPORT_PATH, ADVERTS_PATH, FULLSTATS_PATH,
)

TODAY = date(2024, 3, 6)
PHASE_ORDER = ["orders", "sales", "stocks", "financials", "campaigns"]


async def _log(db, account_id):
    result = await db.execute(
        select(SyncLogEntry).where(SyncLogEntry.account_id == account_id).order_by(SyncLogEntry.synced_at)
    )
    return list(result.scalars().all())


async def _count(db, model, account_id):
    stmt = select(func.count()).select_from(model).where(model.account_id == account_id)
    return (await db.execute(stmt)).scalar()


@pytest.mark.anyio
async def test_full_sync_writes_every_phase(db, account_id, settings, marketplace):
    client = marketplace.client(settings)
    result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    assert result.ok
    assert [p.endpoint for p in result.phases] == PHASE_ORDER
    assert [p.count for p in result.phases] == [2, 1, 1, 1, 1]

    entries = await _log(db, account_id)
    assert [e.endpoint for e in entries] == PHASE_ORDER
    assert all(e.status == "ok" for e in entries)

    assert await _count(db, Order, account_id) == 2
    assert await _count(db, Sale, account_id) == 1
    assert await _count(db, Stock, account_id) == 1
    assert await _count(db, FinancialLine, account_id) == 1
    campaign = (await db.execute(select(Campaign))).scalar_one()
    assert (campaign.campaign_id, campaign.name, campaign.budget, campaign.spent) == (9001, "Spring", 500, 5.5)

    assert (await db.get(Account, account_id, populate_existing=True)).last_sync_at is not None


@pytest.mark.anyio
async def test_lookback_windows(db, account_id, settings, marketplace):
    client = marketplace.client(settings)
    await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    assert marketplace.calls_to(ORDERS_PATH)[0].url.params["dateFrom"] == "2024-03-01T00:00:00"
    assert marketplace.calls_to(SALES_PATH)[0].url.params["dateFrom"] == "2024-03-01T00:00:00"
    report_call = marketplace.calls_to(REPORT_PATH)[0]
    assert report_call.url.params["dateFrom"] == "2024-02-05"
    assert report_call.url.params["dateTo"] == "2024-03-06"


@pytest.mark.anyio
async def test_failed_phase_does_not_stop_the_others(db, account_id, settings):
    routes = healthy_routes()
    routes[SALES_PATH] = lambda r: httpx.Response(401, text="token expired")
    fake = FakeMarketplace(routes)
    client = fake.client(settings)

    result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    statuses = {p.endpoint: p.status for p in result.phases}
    assert statuses == {"orders": "ok", "sales": "error", "stocks": "ok", "financials": "ok", "campaigns": "ok"}
    assert not result.ok

    entries = await _log(db, account_id)
    sales_entry = next(e for e in entries if e.endpoint == "sales")
    assert sales_entry.status == "error"
    assert "401" in sales_entry.message
    assert await _count(db, Stock, account_id) == 1


@pytest.mark.anyio
async def test_last_sync_is_stamped_even_when_everything_fails(db, account_id, settings):
    fake = FakeMarketplace({})  # every path answers 404
    client = fake.client(settings)

    result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    assert [p.status for p in result.phases] == ["error"] * 5
    assert len(await _log(db, account_id)) == 5
    assert (await db.get(Account, account_id, populate_existing=True)).last_sync_at is not None


@pytest.mark.anyio
async def test_partial_campaign_batches_log_ok_with_note(db, account_id, settings):
    routes = healthy_routes()
    routes[ADVERTS_PATH] = [{"advertId": i} for i in range(1, 151)]

    def fullstats(request):
        ids = json.loads(request.content)
        if 101 in ids:
            return httpx.Response(400, text="bad batch")
        return httpx.Response(200, json=[fullstats_entry(i) for i in ids])

    routes[FULLSTATS_PATH] = fullstats
    fake = FakeMarketplace(routes)
    client = fake.client(settings)
    result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    campaigns = result.phases[-1]
    assert campaigns.status == "ok"
    assert campaigns.count == 100
    assert campaigns.message.startswith("1 of 2 stats batches skipped")
    assert await _count(db, Campaign, account_id) == 100


@pytest.mark.anyio
async def test_malformed_report_fails_only_financials(db, account_id, settings):
    routes = healthy_routes()
    routes[REPORT_PATH] = {"error": "not an array"}
    fake = FakeMarketplace(routes)
    client = fake.client(settings)
    result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    statuses = [p.status for p in result.phases]
    assert statuses == ["ok", "ok", "ok", "error", "ok"]


@pytest.mark.anyio
async def test_storage_failure_in_upsert_fails_only_that_phase(db, account_id, settings, marketplace):
    client = marketplace.client(settings)
    broken = AsyncMock(side_effect=ReconciliationError("orders upsert failed: database is locked"))
    with patch("app.services.sync_service.upsert_orders", broken):
        result = await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()

    assert [p.status for p in result.phases] == ["error", "ok", "ok", "ok", "ok"]

    entries = await _log(db, account_id)
    assert [e.endpoint for e in entries] == PHASE_ORDER
    assert entries[0].status == "error"
    assert "orders upsert failed" in entries[0].message
    assert await _count(db, Order, account_id) == 0
    assert await _count(db, Sale, account_id) == 1
    assert await _count(db, Campaign, account_id) == 1


@pytest.mark.anyio
async def test_log_write_failure_propagates(db, account_id, settings, marketplace):
    client = marketplace.client(settings)
    broken = AsyncMock(side_effect=OperationalError("INSERT INTO sync_log", {}, Exception("disk full")))
    with patch("app.services.sync_service.log_sync", broken):
        with pytest.raises(SQLAlchemyError):
            await sync_account(db, account_id, "test-key", settings=settings, client=client, today=TODAY)
    await client.aclose()


# ── Fleet ────────────────────────────────────────────────────────────

async def _add_accounts(session_factory, *specs):
    async with session_factory() as db:
        accounts = [Account(name=name, api_key=key, is_active=active) for name, key, active in specs]
        db.add_all(accounts)
        await db.commit()
        return [a.id for a in accounts]


def _factory_for(marketplace, settings, broken_keys=()):
    created = []

    def factory(api_key, settings=None):
        created.append(api_key)
        if api_key in broken_keys:
            raise RuntimeError(f"cannot build client for {api_key}")
        return marketplace.client(settings, api_key=api_key)
    factory.created = created
    return factory


@pytest.mark.anyio
async def test_fleet_isolates_account_failures(session_factory, settings, marketplace):
    good_a, broken, good_b = await _add_accounts(
        session_factory, ("A", "key-a", True), ("Broken", "key-broken", True), ("B", "key-b", True),
    )
    factory = _factory_for(marketplace, settings, broken_keys={"key-broken"})

    with patch("app.services.sync_service.create_wb_client", factory):
        results = await sync_all_accounts(session_factory, settings=settings, today=TODAY)

    by_id = {r.account_id: r for r in results}
    assert by_id[good_a].ok and by_id[good_b].ok
    assert not by_id[broken].ok
    assert "cannot build client" in by_id[broken].error
    assert sorted(factory.created) == ["key-a", "key-b", "key-broken"]

    async with session_factory() as db:
        assert await _count(db, Order, good_b) == 2
        assert len(await _log(db, good_b)) == 5


@pytest.mark.anyio
async def test_fleet_skips_inactive_accounts(session_factory, settings, marketplace):
    active, inactive = await _add_accounts(
        session_factory, ("Active", "key-a", True), ("Paused", "key-p", False),
    )
    factory = _factory_for(marketplace, settings)

    with patch("app.services.sync_service.create_wb_client", factory):
        results = await sync_all_accounts(session_factory, settings=settings, today=TODAY)

    assert [r.account_id for r in results] == [active]
    assert factory.created == ["key-a"]


@pytest.mark.anyio
async def test_fleet_aborts_when_log_store_is_unavailable(session_factory, settings, marketplace):
    await _add_accounts(session_factory, ("A", "key-a", True), ("B", "key-b", True))
    factory = _factory_for(marketplace, settings)
    broken = AsyncMock(side_effect=OperationalError("INSERT INTO sync_log", {}, Exception("db gone")))

    with patch("app.services.sync_service.create_wb_client", factory), \
            patch("app.services.sync_service.log_sync", broken):
        with pytest.raises(SQLAlchemyError):
            await sync_all_accounts(session_factory, settings=settings, today=TODAY)

    assert len(factory.created) == 1


@pytest.mark.anyio
async def test_concurrent_fleet_is_bounded_and_collects_every_account(session_factory, settings):
    ids = await _add_accounts(
        session_factory, ("A", "key-a", True), ("B", "key-b", True), ("C", "key-c", True),
    )
    running = 0
    peak = 0

    async def fake_sync(db, account_id, api_key, **kwargs):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        return AccountSyncResult(account_id=account_id)

    with patch("app.services.sync_service.sync_account", side_effect=fake_sync):
        results = await sync_all_accounts(
            session_factory, settings=settings.model_copy(update={"fleet_concurrency": 2}),
        )

    assert sorted(r.account_id for r in results) == sorted(ids)
    assert {r.account_name for r in results} == {"A", "B", "C"}
    assert peak == 2


@pytest.mark.anyio
async def test_concurrent_fleet_abort_cancels_other_accounts(session_factory, settings):
    await _add_accounts(session_factory, ("A", "key-a", True), ("B", "key-b", True))
    phases_done_by_b = []

    async def fake_sync(db, account_id, api_key, **kwargs):
        if api_key == "key-a":
            await asyncio.sleep(0.01)
            raise OperationalError("INSERT INTO sync_log", {}, Exception("db gone"))
        for endpoint in PHASE_ORDER:
            await asyncio.sleep(0.05)
            phases_done_by_b.append(endpoint)
        return AccountSyncResult(account_id=account_id)

    with patch("app.services.sync_service.sync_account", side_effect=fake_sync):
        with pytest.raises(SQLAlchemyError):
            await sync_all_accounts(
                session_factory, settings=settings.model_copy(update={"fleet_concurrency": 2}),
            )

    # Long enough for B to finish every phase had it been left running.
    await asyncio.sleep(0.4)
    assert phases_done_by_b == []


@pytest.mark.anyio
async def test_sync_account_by_id_unknown_account(session_factory):
    assert await sync_account_by_id(session_factory, uuid.uuid4()) is None
