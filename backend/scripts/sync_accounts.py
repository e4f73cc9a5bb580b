#!/usr/bin/env python3
"""
Run a sync from the command line, without the web server.

Run from backend directory:
  python scripts/sync_accounts.py                 # every active account
  python scripts/sync_accounts.py --account <id>  # one account
"""

import asyncio
import argparse
import json
import logging
import sys
import uuid
from pathlib import Path

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from app.database import async_session, init_db
from app.services.sync_service import sync_account_by_id, sync_all_accounts


async def main(account: str | None) -> int:
    await init_db()
    if account:
        result = await sync_account_by_id(async_session, uuid.UUID(account))
        if result is None:
            print(f"Account {account} not found")
            return 1
        results = [result]
    else:
        results = await sync_all_accounts(async_session)

    print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
    return 0 if all(r.ok for r in results) else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync marketplace data into the database")
    parser.add_argument("--account", help="Account UUID (default: all active accounts)")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main(args.account)))
