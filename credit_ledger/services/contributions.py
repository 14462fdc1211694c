from __future__ import annotations
import math
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.config import settings
from credit_ledger.errors import (
    AccountNotFound,
    ContributionNotFound,
    EarningLimitReached,
    InvalidParameter,
    InvalidStateTransition,
)
from credit_ledger.models.account import Account
from credit_ledger.models.contribution import CONTRIBUTION_TYPES, CreditContribution
from credit_ledger.models.ledger import CONTRIBUTION_VERIFIED, EARNED, LedgerEntry, utcnow
from credit_ledger.services import ledger_store
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.earn import apply_earn

log = structlog.get_logger()

PENDING = "pending"
VERIFIED = "verified"
REJECTED = "rejected"

VERIFY = "verify"
REJECT = "reject"


async def _earned_since(session: AsyncSession, account_id: UUID, since: datetime) -> int:
    total = await session.scalar(
        select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.credit_type == EARNED,
            LedgerEntry.source == CONTRIBUTION_VERIFIED,
            LedgerEntry.created_at >= since,
        )
    )
    return int(total or 0)


async def remaining_allowance(session: AsyncSession, account_id: UUID, now: datetime | None = None) -> int:
    """How much more contribution credit the account may earn right now."""
    now = now or utcnow()
    daily = settings.contribution_daily_cap - await _earned_since(session, account_id, now - timedelta(days=1))
    weekly = settings.contribution_weekly_cap - await _earned_since(session, account_id, now - timedelta(days=7))
    return max(0, min(daily, weekly))


async def get_contribution(session: AsyncSession, contribution_id: UUID, account_id: UUID | None = None) -> CreditContribution:
    q = select(CreditContribution).where(CreditContribution.id == contribution_id).execution_options(
        populate_existing=True
    )
    if account_id is not None:
        q = q.where(CreditContribution.account_id == account_id)
    c = await session.scalar(q)
    if c is None:
        raise ContributionNotFound(f"Contribution {contribution_id} not found")
    return c


async def list_contributions(
    session: AsyncSession, account_id: UUID, status: str | None = None, limit: int = 50
) -> list[CreditContribution]:
    q = select(CreditContribution).where(CreditContribution.account_id == account_id)
    if status:
        q = q.where(CreditContribution.status == status)
    q = q.order_by(CreditContribution.created_at.desc()).limit(limit).execution_options(populate_existing=True)
    return list((await session.execute(q)).scalars().all())


async def _submit(session: AsyncSession, **fields) -> CreditContribution:
    if await session.get(Account, fields["account_id"]) is None:
        raise AccountNotFound(f"Account {fields['account_id']} not found")
    c = CreditContribution(status=PENDING, amount_earned=0, created_at=utcnow(), **fields)
    session.add(c)
    await session.flush()
    return await get_contribution(session, c.id)


async def submit_contribution(
    session: AsyncSession,
    account_id: UUID,
    contribution_type: str,
    amount_requested: int,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> CreditContribution:
    """File a claim. No credit moves until it is verified."""
    if contribution_type not in CONTRIBUTION_TYPES:
        raise InvalidParameter(
            f"Unknown contribution type {contribution_type!r}", contribution_type=contribution_type
        )
    ledger_store.validate_amount(amount_requested)

    c = await run_atomic(
        session, _submit,
        account_id=account_id, contribution_type=contribution_type, amount_requested=amount_requested,
        description=description, reference_type=reference_type, reference_id=reference_id,
    )
    log.info("contribution_submitted", contribution_id=str(c.id), account_id=str(account_id),
             contribution_type=contribution_type, amount_requested=amount_requested)
    return c


async def _decide(
    session: AsyncSession,
    contribution_id: UUID,
    verifier_id: UUID,
    action: str,
    amount_override: int | None,
) -> CreditContribution:
    c = await get_contribution(session, contribution_id)
    if c.status != PENDING:
        raise InvalidStateTransition(
            f"Contribution already {c.status}", current=c.status, target=VERIFIED if action == VERIFY else REJECTED
        )

    now = utcnow()
    awarded = 0
    if action == VERIFY:
        # hold the account row while the cap sums are read
        await ledger_store.lock_account(session, c.account_id)
        multiplier = await session.scalar(
            select(Account.reputation_multiplier).where(Account.user_id == c.account_id)
        )
        wanted = amount_override if amount_override is not None else c.amount_requested
        adjusted = max(1, math.floor(wanted * (multiplier or 1.0)))
        allowance = await remaining_allowance(session, c.account_id, now)
        if allowance <= 0:
            raise EarningLimitReached(account_id=str(c.account_id))
        awarded = min(adjusted, allowance)
        await apply_earn(
            session,
            account_id=c.account_id,
            amount=awarded,
            source=CONTRIBUTION_VERIFIED,
            source_id=str(c.id),
            description=f"Contribution: {c.contribution_type}",
        )

    row = (await session.execute(
        update(CreditContribution)
        .where(CreditContribution.id == contribution_id, CreditContribution.status == PENDING)
        .values(
            status=VERIFIED if action == VERIFY else REJECTED,
            amount_earned=awarded,
            verified_by=verifier_id,
            verified_at=now,
        )
        .returning(CreditContribution.id)
        .execution_options(synchronize_session=False)
    )).first()
    if row is None:
        # decided by someone else since we read it; the rollback undoes the award
        raise InvalidStateTransition("Contribution was decided concurrently")
    return await get_contribution(session, contribution_id)


async def verify_contribution(
    session: AsyncSession,
    contribution_id: UUID,
    verifier_id: UUID,
    action: str = VERIFY,
    amount_override: int | None = None,
) -> CreditContribution:
    """
    Verify or reject a pending claim. Verification credits Earned Credit in the
    same transaction: the claim (or override) is scaled by the account's
    reputation multiplier, floored, then clipped to what the daily and weekly
    caps still allow.
    """
    if action not in (VERIFY, REJECT):
        raise InvalidStateTransition(f"Unknown action {action!r}")
    if amount_override is not None:
        ledger_store.validate_amount(amount_override)

    c = await run_atomic(session, _decide, contribution_id, verifier_id, action, amount_override)
    log.info("contribution_decided", contribution_id=str(c.id), account_id=str(c.account_id),
             status=c.status, amount_earned=c.amount_earned, verified_by=str(verifier_id))
    return c
