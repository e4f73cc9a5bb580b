"""
Cron / Scheduled Jobs — Fleet sync endpoint for an external scheduler.

The scheduler sends the shared secret as:
  X-Cron-Secret: <CRON_SECRET>
  OR Authorization: Bearer <CRON_SECRET>

When CRON_SECRET is empty the endpoint is open (local development).
"""

import logging
from fastapi import APIRouter, Depends, Header, HTTPException

from app.config import get_settings
from app.database import async_session
from app.services.sync_service import sync_all_accounts
from app.utils import safe_error_detail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def _require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    authorization: str | None = Header(None),
) -> None:
    secret = get_settings().cron_secret
    if not secret:
        return
    token = x_cron_secret
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if token != secret:
        raise HTTPException(401, "Invalid cron secret")


@router.post("/sync")
async def cron_sync(_: None = Depends(_require_cron_secret)):
    """
    Sync every active account, one after another. Call from the scheduler:
    POST https://your-app/api/cron/sync
    Header: X-Cron-Secret: <CRON_SECRET>
    """
    try:
        results = await sync_all_accounts(async_session)
    except Exception as e:
        logger.exception("Cron fleet sync aborted")
        raise HTTPException(500, safe_error_detail(e, "Fleet sync aborted: storage unavailable."))
    failed = sum(1 for r in results if not r.ok)
    logger.info(f"Cron sync completed: {len(results)} accounts, {failed} with errors")
    return {
        "status": "ok",
        "accounts": len(results),
        "failed": failed,
        "results": [r.to_dict() for r in results],
    }
