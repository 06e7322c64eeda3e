#!/usr/bin/env python3
"""Promote an existing account to ADMINISTRATOR. Run on the server.

Usage:
    DATABASE_URL=sqlite+aiosqlite:///./data/auth.db python demo/promote_admin.py admin@example.com
"""
import asyncio
import os
import sys

from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from authapi.models.account import Account, Role
from authapi.services.account_service import normalize_email


async def promote(email: str) -> int:
    engine = create_async_engine(os.environ["DATABASE_URL"])
    sf = async_sessionmaker(engine, class_=AsyncSession)
    async with sf() as s:
        r = await s.execute(
            update(Account)
            .where(Account.email == normalize_email(email))
            .values(role=Role.ADMINISTRATOR)
        )
        await s.commit()
        print(f"Rows updated: {r.rowcount}")
    await engine.dispose()
    return r.rowcount


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit(__doc__)
    sys.exit(0 if asyncio.run(promote(sys.argv[1])) else 1)
