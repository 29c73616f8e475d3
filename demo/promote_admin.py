#!/usr/bin/env python3
"""One-time script to promote an account to admin. Run on the server.

Usage:
    python demo/promote_admin.py <username>

Reads DATABASE_URL (and the other settings) from the environment or .env.
"""
import asyncio
import sys

from bank_ledger.database import AsyncSessionLocal, engine
from bank_ledger.services import account_service


async def promote(username: str) -> bool:
    async with AsyncSessionLocal() as s:
        promoted = await account_service.promote_to_admin(s, username)
        print(f"Promoted {username}: {promoted}")
    await engine.dispose()
    return promoted


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: promote_admin.py <username>")
    sys.exit(0 if asyncio.run(promote(sys.argv[1])) else 1)
