from __future__ import annotations
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from credit_ledger.db import SessionLocal
from credit_ledger.services.payouts import reconcile_payouts

async def _run(session_factory: async_sessionmaker[AsyncSession] = SessionLocal) -> dict:
    async with session_factory() as session:
        return await reconcile_payouts(session)

def reconcile_payouts_job():
    """Periodic sweep, run from cron: resolves payouts stuck pending or processing."""
    return asyncio.run(_run())
