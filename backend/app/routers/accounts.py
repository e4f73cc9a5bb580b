"""
Accounts Router — Seller account management, manual sync trigger, sync log and stock view.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.crypto import encrypt_value
from app.database import get_db, async_session
from app.models import Account, Stock
from app.services.reconcile_service import recent_sync_log
from app.services.sync_service import sync_account_by_id
from app.utils import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    api_key: str = Field(..., min_length=1)
    is_active: bool = True


class AccountActiveUpdate(BaseModel):
    is_active: bool


def _serialize(account: Account) -> dict:
    # The API key never leaves the server.
    return {
        "id": str(account.id),
        "name": account.name,
        "is_active": account.is_active,
        "last_sync_at": account.last_sync_at.isoformat() if account.last_sync_at else None,
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }


async def get_account_or_404(db: AsyncSession, account_id: str) -> Account:
    account = await db.get(Account, parse_uuid(account_id, "account_id"))
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("")
async def list_accounts(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Account).order_by(Account.created_at))
    return [_serialize(a) for a in result.scalars().all()]


@router.post("", status_code=201)
async def add_account(payload: AccountCreate, db: AsyncSession = Depends(get_db)):
    account = Account(
        name=payload.name.strip(),
        api_key=encrypt_value(payload.api_key.strip()),
        is_active=payload.is_active,
    )
    db.add(account)
    await db.flush()
    logger.info(f"Account added: {account.name} ({account.id})")
    return _serialize(account)


@router.delete("/{account_id}")
async def remove_account(account_id: str, db: AsyncSession = Depends(get_db)):
    """Remove an account together with all of its synced data, costs and log."""
    account = await get_account_or_404(db, account_id)
    await db.delete(account)
    logger.info(f"Account removed: {account.name} ({account.id})")
    return {"status": "deleted", "id": account_id}


@router.patch("/{account_id}/active")
async def set_account_active(
    account_id: str,
    payload: AccountActiveUpdate,
    db: AsyncSession = Depends(get_db),
):
    account = await get_account_or_404(db, account_id)
    account.is_active = payload.is_active
    await db.flush()
    return _serialize(account)


@router.post("/{account_id}/sync", status_code=202)
async def trigger_account_sync(
    account_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Start a sync for one account in the background. Progress shows up in the sync log."""
    account = await get_account_or_404(db, account_id)
    background_tasks.add_task(sync_account_by_id, async_session, account.id)
    return {"status": "accepted", "account_id": str(account.id)}


@router.get("/{account_id}/sync-log")
async def get_sync_log(
    account_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    account = await get_account_or_404(db, account_id)
    entries = await recent_sync_log(db, account.id, limit or get_settings().sync_log_limit)
    return [
        {
            "endpoint": e.endpoint,
            "status": e.status,
            "message": e.message,
            "count": e.count,
            "synced_at": e.synced_at.isoformat() if e.synced_at else None,
        }
        for e in entries
    ]


@router.get("/{account_id}/stocks")
async def get_stocks(account_id: str, db: AsyncSession = Depends(get_db)):
    account = await get_account_or_404(db, account_id)
    result = await db.execute(
        select(Stock)
        .where(Stock.account_id == account.id)
        .order_by(Stock.warehouse_name, Stock.nm_id)
    )
    return [
        {
            "warehouse_name": s.warehouse_name,
            "nm_id": s.nm_id,
            "supplier_article": s.supplier_article,
            "subject": s.subject,
            "quantity": s.quantity,
            "updated_at": s.updated_at.isoformat() if s.updated_at else None,
        }
        for s in result.scalars().all()
    ]
