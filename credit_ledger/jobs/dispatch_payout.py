from __future__ import annotations
import asyncio
from uuid import UUID
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from credit_ledger.db import SessionLocal
from credit_ledger.errors import LedgerError
from credit_ledger.services.payout_provider import PayoutProvider, get_payout_provider
from credit_ledger.services.payouts import dispatch_payout

log = structlog.get_logger()

async def _run(
    payout_id: str,
    provider: PayoutProvider | None = None,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
):
    provider = provider or get_payout_provider()
    if provider is None:
        # stays pending; reconcile_payouts cancels it once it expires
        log.warning("payout_provider_unconfigured", payout_id=payout_id)
        return None
    async with session_factory() as session:
        try:
            p = await dispatch_payout(session, UUID(payout_id), provider)
        except LedgerError as e:
            # cancelled or already settled before the worker picked it up
            log.info("payout_dispatch_skipped", payout_id=payout_id, code=e.code, reason=str(e))
            return None
        return p.status

def dispatch_payout_job(payout_id: str):
    """rq entry point, enqueued once request_payout has committed."""
    return asyncio.run(_run(payout_id))
