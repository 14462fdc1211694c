from __future__ import annotations
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.errors import InvalidSource
from credit_ledger.models.ledger import EARNED, SYSTEM_SOURCES, LedgerEntry
from credit_ledger.services import ledger_store
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.ledger_store import Posting

log = structlog.get_logger()


def _validate(amount: int, source: str) -> None:
    ledger_store.validate_amount(amount)
    if not source or source in SYSTEM_SOURCES:
        raise InvalidSource(f"Source {source!r} cannot be used to earn credit")


async def apply_earn(
    session: AsyncSession,
    *,
    account_id: UUID,
    amount: int,
    source: str,
    source_id: str | None,
    description: str | None,
) -> tuple[LedgerEntry, bool]:
    """
    Earn step without committing, for callers composing a larger atomic unit.
    Returns (entry, created); created is False when the trigger was already paid.
    """
    _validate(amount, source)
    if source_id is not None:
        existing = await ledger_store.find_by_source(session, account_id, source, source_id)
        if existing is not None:
            return existing, False

    (entry,) = await ledger_store.append(session, Posting(
        account_id=account_id,
        credit_type=EARNED,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        counts_as_earned=True,
    ))
    return entry, True


async def earn(
    session: AsyncSession,
    account_id: UUID,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
) -> LedgerEntry:
    """
    Credit Earned Credit for a reward trigger.
    Idempotent by (account_id, source, source_id): a retried or duplicated trigger
    returns the original entry and changes nothing. Never creates the account.
    """
    _validate(amount, source)
    entry, created = await run_atomic(
        session, apply_earn,
        account_id=account_id, amount=amount, source=source, source_id=source_id, description=description,
    )
    if created:
        log.info("earn_applied", account_id=str(account_id), amount=amount, source=source,
                 source_id=source_id, balance_after=entry.balance_after, entry_id=str(entry.id))
    else:
        log.info("earn_duplicate_ignored", account_id=str(account_id), source=source, source_id=source_id,
                 entry_id=str(entry.id))
    return entry
