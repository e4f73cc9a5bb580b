#!/usr/bin/env python3
"""
Register a seller account. The API key is read from WB_API_KEY so it stays
out of shell history.

Run from backend directory:
  WB_API_KEY=... python scripts/add_account.py "My shop"
"""

import asyncio
import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


async def main(name: str) -> None:
    from app.crypto import encrypt_value
    from app.database import async_session, init_db
    from app.models import Account

    api_key = os.environ.get("WB_API_KEY", "").strip()
    if not api_key:
        print("Error: set WB_API_KEY to the seller's API token")
        sys.exit(1)

    await init_db()
    async with async_session() as db:
        account = Account(name=name, api_key=encrypt_value(api_key), is_active=True)
        db.add(account)
        await db.commit()
        print(f"Created account {account.name}: {account.id}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Add a seller account")
    parser.add_argument("name")
    asyncio.run(main(parser.parse_args().name))
