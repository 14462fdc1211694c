from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.config import settings
from credit_ledger.errors import AccountNotFound, InvalidAmount, InvalidParameter
from credit_ledger.models.account import Account
from credit_ledger.models.ledger import GENESIS, GENESIS_GRANT, MAX_AMOUNT
from credit_ledger.services import ledger_store
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.ledger_store import Posting

log = structlog.get_logger()


@dataclass(frozen=True)
class Balances:
    account_id: UUID
    genesis_balance: int
    earned_balance: int
    genesis_burned: int
    lifetime_earned: int


async def get_account(session: AsyncSession, account_id: UUID) -> Account:
    acc = await session.scalar(
        select(Account).where(Account.user_id == account_id).execution_options(populate_existing=True)
    )
    if acc is None:
        raise AccountNotFound(f"Account {account_id} not found", account_id=str(account_id))
    return acc


async def get_balances(session: AsyncSession, account_id: UUID) -> Balances:
    """Single-row read: every field comes from the same committed ledger prefix."""
    row = (await session.execute(
        select(
            Account.genesis_balance, Account.earned_balance, Account.genesis_burned, Account.lifetime_earned
        ).where(Account.user_id == account_id)
    )).first()
    if row is None:
        raise AccountNotFound(f"Account {account_id} not found", account_id=str(account_id))
    return Balances(
        account_id=account_id,
        genesis_balance=int(row[0]),
        earned_balance=int(row[1]),
        genesis_burned=int(row[2]),
        lifetime_earned=int(row[3]),
    )


async def _open_account(session: AsyncSession, user_id: UUID, grant: int) -> tuple[Account, bool]:
    existing = await session.get(Account, user_id)
    if existing is not None:
        return existing, False

    session.add(Account(user_id=user_id))
    await session.flush()
    if grant > 0:
        await ledger_store.append(session, Posting(
            account_id=user_id,
            credit_type=GENESIS,
            amount=grant,
            source=GENESIS_GRANT,
            source_id=str(user_id),
            description="Initial Genesis Credit allocation",
        ))
    acc = await get_account(session, user_id)
    return acc, True


async def open_account(session: AsyncSession, user_id: UUID, genesis_grant: int | None = None) -> tuple[Account, bool]:
    """
    Create the account with its one-time genesis allocation.
    Idempotent: an existing account is returned untouched (no re-grant).
    Returns (account, created).
    """
    grant = settings.genesis_initial_grant if genesis_grant is None else genesis_grant
    if not isinstance(grant, int) or isinstance(grant, bool) or grant < 0 or grant > MAX_AMOUNT:
        raise InvalidAmount(f"Genesis grant must be between 0 and {MAX_AMOUNT}")
    acc, created = await run_atomic(session, _open_account, user_id, grant)
    if created:
        log.info("account_opened", account_id=str(user_id), genesis_grant=grant)
    return acc, created


@dataclass(frozen=True)
class AuditReport:
    account_id: UUID
    consistent: bool
    cached: Balances
    replayed: ledger_store.ReplayResult
    mismatches: list[str]


async def audit_account(session: AsyncSession, account_id: UUID) -> AuditReport:
    """Replay the ledger and compare it against the cached balances."""
    cached = await get_balances(session, account_id)
    replayed = await ledger_store.replay(session, account_id)

    mismatches = list(replayed.breaks)
    for name in ("genesis_balance", "earned_balance", "genesis_burned", "lifetime_earned"):
        c, r = getattr(cached, name), getattr(replayed, name)
        if c != r:
            mismatches.append(f"{name}: cached {c} != replayed {r}")

    if mismatches:
        log.error("ledger_audit_mismatch", account_id=str(account_id), mismatches=mismatches)
    return AuditReport(
        account_id=account_id,
        consistent=not mismatches,
        cached=cached,
        replayed=replayed,
        mismatches=mismatches,
    )


MAX_REPUTATION_MULTIPLIER = 5.0


async def _set_multiplier(session: AsyncSession, account_id: UUID, multiplier: float) -> Account:
    row = (await session.execute(
        update(Account)
        .where(Account.user_id == account_id)
        .values(reputation_multiplier=multiplier)
        .returning(Account.user_id)
        .execution_options(synchronize_session=False)
    )).first()
    if row is None:
        raise AccountNotFound(f"Account {account_id} not found", account_id=str(account_id))
    return await get_account(session, account_id)


async def set_reputation_multiplier(session: AsyncSession, account_id: UUID, multiplier: float) -> Account:
    """Scale future contribution awards for this account (1.0 is neutral)."""
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)) or not (
        0 < multiplier <= MAX_REPUTATION_MULTIPLIER
    ):
        raise InvalidParameter(
            f"Reputation multiplier must be in (0, {MAX_REPUTATION_MULTIPLIER}]", multiplier=multiplier
        )
    acc = await run_atomic(session, _set_multiplier, account_id, float(multiplier))
    log.info("reputation_multiplier_set", account_id=str(account_id), multiplier=acc.reputation_multiplier)
    return acc
