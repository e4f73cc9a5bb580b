"""
Shared fixtures: an in-memory SQLite database and a fake marketplace API.
"""

import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.models import Account
from app.wb_client import WildberriesClient
import app.models  # noqa: F401


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        environment="development",
        database_url="sqlite+aiosqlite://",
        http_retry_backoff_seconds=0,
    )


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def account(db):
    acc = Account(name="Test shop", api_key="test-key", is_active=True)
    db.add(acc)
    await db.commit()
    return acc


class FakeMarketplace:
    """
    Routes requests by URL path. A route is either a JSON payload (served with
    200) or a callable taking the request and returning an httpx.Response.
    Every request is recorded in ``calls``.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.calls: list[httpx.Request] = []

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text=f"no route for {request.url.path}")
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.url.path == path]

    def client(self, settings: Settings, api_key: str = "test-key") -> WildberriesClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        return WildberriesClient(api_key, settings=settings, http=http)


ORDERS_PATH = "/api/v1/supplier/orders"
SALES_PATH = "/api/v1/supplier/sales"
STOCKS_PATH = "/api/v1/supplier/stocks"
REPORT_PATH = "/api/v5/supplier/reportDetailByPeriod"
ADVERTS_PATH = "/adv/v1/promotion/adverts"
FULLSTATS_PATH = "/adv/v2/fullstats"


def fullstats_entry(advert_id: int, views: int = 10, clicks: int = 2, spent: float = 5.5) -> dict:
    return {
        "advertId": advert_id,
        "days": [{"apps": [{"nm": [{"views": views, "clicks": clicks, "sum": spent}]}]}],
    }


def healthy_routes() -> dict:
    """A marketplace where every endpoint answers with a small valid payload."""
    return {
        ORDERS_PATH: [
            {"orderId": 1, "date": "2024-03-01T10:00:00", "nmId": 100, "totalPrice": 1500, "quantity": 1},
            {"orderId": 2, "date": "2024-03-02T11:00:00", "nmId": 101, "totalPrice": 900, "quantity": 1, "isCancel": True},
        ],
        SALES_PATH: [
            {"saleID": "S1", "date": "2024-03-02T12:00:00", "nmId": 100, "priceWithDisc": 1400, "forPay": 1100, "quantity": 1},
        ],
        STOCKS_PATH: [
            {"warehouseName": "Koledino", "nmId": 100, "supplierArticle": "A-100", "quantity": 7},
        ],
        REPORT_PATH: [
            {"rrd_id": 1, "realizationreport_id": 55, "date_from": "2024-02-26", "date_to": "2024-03-03",
             "nm_id": 100, "doc_type_name": "Продажа", "retail_amount": 1400, "delivery_amount": 80},
        ],
        ADVERTS_PATH: [{"advertId": 9001, "name": "Spring", "dailyBudget": 500}],
        FULLSTATS_PATH: [fullstats_entry(9001)],
    }


@pytest.fixture
def marketplace():
    return FakeMarketplace(healthy_routes())


@pytest.fixture
def account_id(account):
    """The account's id, captured before any rollback expires the instance."""
    return account.id
