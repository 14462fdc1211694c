from __future__ import annotations
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.errors import InvalidSource
from credit_ledger.models.ledger import GENESIS, REDEMPTION, SYSTEM_SOURCES, LedgerEntry
from credit_ledger.services import ledger_store
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.ledger_store import Posting

log = structlog.get_logger()


async def _burn_once(
    session: AsyncSession,
    *,
    account_id: UUID,
    amount: int,
    source: str,
    source_id: str | None,
    description: str | None,
) -> tuple[LedgerEntry, bool]:
    if source_id is not None:
        existing = await ledger_store.find_by_source(session, account_id, source, source_id)
        if existing is not None:
            return existing, False

    # compare-and-decrement on genesis_balance only; earned is never a fallback
    (entry,) = await ledger_store.append(session, Posting(
        account_id=account_id,
        credit_type=GENESIS,
        amount=-amount,
        source=source,
        source_id=source_id,
        description=description,
    ))
    return entry, True


async def burn(
    session: AsyncSession,
    account_id: UUID,
    amount: int,
    source: str = REDEMPTION,
    source_id: str | None = None,
    description: str | None = None,
) -> LedgerEntry:
    """
    Spend Genesis Credit on an in-app redemption.
    Raises InsufficientGenesisBalance rather than going negative.
    A repeated (source, source_id) returns the original entry.
    """
    ledger_store.validate_amount(amount)
    if not source or source in SYSTEM_SOURCES:
        raise InvalidSource(f"Source {source!r} cannot be used to spend credit")

    entry, created = await run_atomic(
        session, _burn_once,
        account_id=account_id, amount=amount, source=source, source_id=source_id, description=description,
    )
    if created:
        log.info("burn_applied", account_id=str(account_id), amount=amount, source=source,
                 source_id=source_id, balance_after=entry.balance_after, entry_id=str(entry.id))
    return entry
