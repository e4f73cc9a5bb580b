"""
Seller Analytics — FastAPI Backend
Syncs orders, sales, stocks, settlement reports and ad campaigns from the
Wildberries seller APIs into PostgreSQL and serves the dashboard KPIs.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings
from app.database import init_db, check_db_connection
from app.routers import accounts, costs, dashboard, financials, cron

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Seller Analytics...")
    try:
        await init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Seller Analytics",
    description="Marketplace seller analytics: data sync and profit dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers ─────────────────────────────────────────────────
app.include_router(accounts.router, prefix="/api/accounts", tags=["Accounts"])
app.include_router(costs.router, prefix="/api/costs", tags=["Costs"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(financials.router, prefix="/api/financials", tags=["Financials"])
app.include_router(cron.router, prefix="/api")  # Guarded by CRON_SECRET


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Seller Analytics",
        "database": "connected" if db_ok else "disconnected",
    }
