from __future__ import annotations
import uuid
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.config import settings
from credit_ledger.errors import (
    GenesisNotWithdrawable,
    InsufficientEarnedBalance,
    InvalidParameter,
    InvalidStateTransition,
    PayoutNotFound,
    ProviderError,
)
from credit_ledger.models.ledger import EARNED, GENESIS, PAYOUT_FAILED_REFUND, PAYOUT_REQUEST, utcnow
from credit_ledger.models.payout import (
    CANCELLED,
    COMPLETED,
    FAILED,
    PENDING,
    PROCESSING,
    Payout,
    PayoutMethod,
)
from credit_ledger.services import ledger_store
from credit_ledger.services.accounts import get_balances
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.ledger_store import Posting
from credit_ledger.services.payout_methods import default_payout_method, get_payout_method
from credit_ledger.services.payout_provider import FAILED as OUTCOME_FAILED
from credit_ledger.services.payout_provider import SUCCEEDED as OUTCOME_SUCCEEDED
from credit_ledger.services.payout_provider import PayoutProvider

log = structlog.get_logger()


# ---------- reads ----------

async def get_payout(session: AsyncSession, payout_id: UUID, account_id: UUID | None = None) -> Payout:
    q = select(Payout).where(Payout.id == payout_id).execution_options(populate_existing=True)
    if account_id is not None:
        q = q.where(Payout.account_id == account_id)
    p = await session.scalar(q)
    if p is None:
        raise PayoutNotFound(f"Payout {payout_id} not found")
    return p


async def list_payouts(
    session: AsyncSession, account_id: UUID, status: str | None = None, limit: int = 50
) -> list[Payout]:
    q = select(Payout).where(Payout.account_id == account_id)
    if status:
        q = q.where(Payout.status == status)
    q = q.order_by(Payout.created_at.desc()).limit(limit).execution_options(populate_existing=True)
    return list((await session.execute(q)).scalars().all())


# ---------- request ----------

async def _request_once(
    session: AsyncSession, *, account_id: UUID, amount: int, payout_method_id: UUID | None
) -> Payout:
    if payout_method_id is not None:
        method_id = (await get_payout_method(session, account_id, payout_method_id)).id
    else:
        default = await default_payout_method(session, account_id)
        method_id = default.id if default else None

    payout_id = uuid.uuid4()
    try:
        await ledger_store.append(session, Posting(
            account_id=account_id,
            credit_type=EARNED,
            amount=-amount,
            source=PAYOUT_REQUEST,
            source_id=str(payout_id),
            description=f"Payout request of {amount} Earned Credit",
        ))
    except InsufficientEarnedBalance:
        bal = await get_balances(session, account_id)
        if bal.earned_balance + bal.genesis_balance >= amount:
            raise GenesisNotWithdrawable(account_id=str(account_id), requested=amount)
        raise

    now = utcnow()
    payout = Payout(
        id=payout_id,
        account_id=account_id,
        amount=amount,
        status=PENDING,
        payout_method_id=method_id,
        created_at=now,
        updated_at=now,
    )
    session.add(payout)
    await session.flush()
    return await get_payout(session, payout_id)


async def request_payout(
    session: AsyncSession,
    account_id: UUID,
    amount: int,
    payout_method_id: UUID | None = None,
    credit_type: str = EARNED,
) -> Payout:
    """
    Reserve Earned Credit for a withdrawal: debit, payout_request entry and a
    pending Payout in one transaction. Not idempotent; every call is a new request.
    """
    if credit_type == GENESIS:
        raise GenesisNotWithdrawable()
    if credit_type != EARNED:
        raise InvalidParameter(f"Unknown credit type {credit_type!r}", credit_type=credit_type)
    ledger_store.validate_amount(amount)

    payout = await run_atomic(
        session, _request_once, account_id=account_id, amount=amount, payout_method_id=payout_method_id
    )
    log.info("payout_requested", payout_id=str(payout.id), account_id=str(account_id), amount=amount,
             payout_method_id=str(payout.payout_method_id) if payout.payout_method_id else None)
    return payout


# ---------- state machine ----------

async def _transition(
    session: AsyncSession,
    payout_id: UUID,
    from_statuses: tuple[str, ...],
    to_status: str,
    *,
    refund: bool = False,
    error_message: str | None = None,
) -> Payout:
    """
    Compare-and-swap on status: exactly one caller can move a payout out of a
    given state, so a provider callback racing a cancel has a single winner.
    """
    now = utcnow()
    values: dict = {"status": to_status, "updated_at": now}
    if to_status == COMPLETED:
        values["completed_at"] = now
    if error_message:
        values["error_message"] = error_message[:255]

    row = (await session.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.status.in_(from_statuses))
        .values(**values)
        .returning(Payout.id)
        .execution_options(synchronize_session=False)
    )).first()
    if row is None:
        current = await session.scalar(select(Payout.status).where(Payout.id == payout_id))
        if current is None:
            raise PayoutNotFound(f"Payout {payout_id} not found")
        raise InvalidStateTransition(
            f"Cannot move payout from {current} to {to_status}", current=current, target=to_status
        )

    payout = await get_payout(session, payout_id)
    if refund:
        await ledger_store.append(session, Posting(
            account_id=payout.account_id,
            credit_type=EARNED,
            amount=payout.amount,
            source=PAYOUT_FAILED_REFUND,
            source_id=str(payout.id),
            description=f"Refund of {to_status} payout",
        ))
    return payout


def _log_transition(payout: Payout, from_hint: str) -> None:
    log.info("payout_transition", payout_id=str(payout.id), account_id=str(payout.account_id),
             from_status=from_hint, to_status=payout.status, amount=payout.amount)


async def _mark_processing_once(session: AsyncSession, payout_id: UUID) -> tuple[Payout, bool]:
    try:
        return await _transition(session, payout_id, (PENDING,), PROCESSING), True
    except InvalidStateTransition as e:
        if e.context.get("current") == PROCESSING:
            return await get_payout(session, payout_id), False
        raise


async def mark_processing(session: AsyncSession, payout_id: UUID) -> Payout:
    """pending -> processing; a no-op when already processing."""
    payout, moved = await run_atomic(session, _mark_processing_once, payout_id)
    if moved:
        _log_transition(payout, PENDING)
    return payout


async def mark_completed(session: AsyncSession, payout_id: UUID) -> Payout:
    """processing -> completed. Funds left the balance at request time, so no ledger entry."""
    payout = await run_atomic(session, _transition, payout_id, (PROCESSING,), COMPLETED)
    _log_transition(payout, PROCESSING)
    return payout


async def mark_failed(session: AsyncSession, payout_id: UUID, reason: str | None = None) -> Payout:
    """pending|processing -> failed, returning the reserved amount with a refund entry."""
    payout = await run_atomic(
        session, _transition, payout_id, (PENDING, PROCESSING), FAILED, refund=True, error_message=reason
    )
    _log_transition(payout, "pending|processing")
    return payout


async def cancel_payout(
    session: AsyncSession, payout_id: UUID, account_id: UUID | None = None, reason: str | None = None
) -> Payout:
    """pending -> cancelled with refund. Once handed to the provider only settlement can end it."""
    if account_id is not None:
        await get_payout(session, payout_id, account_id)
    payout = await run_atomic(
        session, _transition, payout_id, (PENDING,), CANCELLED, refund=True, error_message=reason
    )
    _log_transition(payout, PENDING)
    return payout


# ---------- provider hand-off ----------

async def _begin_dispatch(session: AsyncSession, payout_id: UUID) -> tuple[Payout, str | None]:
    payout, _moved = await _mark_processing_once(session, payout_id)
    method_ref = None
    if payout.payout_method_id is not None:
        method = await session.get(PayoutMethod, payout.payout_method_id)
        method_ref = method.provider_method_id if method else None
    return payout, method_ref


async def _attach_reference(session: AsyncSession, payout_id: UUID, provider_reference: str) -> Payout:
    await session.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.provider_reference.is_(None))
        .values(provider_reference=provider_reference, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return await get_payout(session, payout_id)


async def dispatch_payout(session: AsyncSession, payout_id: UUID, provider: PayoutProvider) -> Payout:
    """
    Hand a pending payout to the provider. The status change commits first; the
    provider call runs with no transaction open; a provider error fails the
    payout and refunds it.
    """
    payout, method_ref = await run_atomic(session, _begin_dispatch, payout_id)
    if payout.provider_reference:
        return payout
    if method_ref is None:
        return await mark_failed(session, payout_id, reason="No payout method on file")

    try:
        ref = provider.create_payout(
            method_ref,
            payout.amount,
            idempotency_key=f"payout:{payout.id}",
            metadata={"payout_id": str(payout.id), "account_id": str(payout.account_id)},
        )
    except ProviderError as e:
        log.warning("payout_provider_error", payout_id=str(payout_id), error=str(e))
        return await mark_failed(session, payout_id, reason=str(e))

    payout = await run_atomic(session, _attach_reference, payout_id, ref)
    if payout.status != PROCESSING:
        log.error("payout_reference_after_resolution", payout_id=str(payout_id), status=payout.status,
                  provider_reference=ref)
    else:
        log.info("payout_dispatched", payout_id=str(payout_id), provider_reference=ref)
    return payout


async def on_payout_settled(
    session: AsyncSession,
    provider_reference: str,
    outcome: str,
    *,
    payout_id: UUID | None = None,
    failure_message: str | None = None,
) -> Payout:
    """Provider callback: succeeded -> completed, failed -> failed (with refund)."""
    payout = await session.scalar(select(Payout).where(Payout.provider_reference == provider_reference))
    if payout is None and payout_id is not None:
        # callback raced ahead of _attach_reference
        payout = await session.get(Payout, payout_id)
    if payout is None:
        raise PayoutNotFound(f"No payout for provider reference {provider_reference}")
    await session.commit()

    if outcome == OUTCOME_SUCCEEDED:
        return await mark_completed(session, payout.id)
    if outcome == OUTCOME_FAILED:
        return await mark_failed(session, payout.id, reason=failure_message or "Payout failed at provider")
    raise ValueError(f"unknown payout outcome {outcome!r}")


# ---------- reconciliation ----------

async def _stale_ids(session: AsyncSession, status: str, older_than: datetime) -> list[UUID]:
    return list((await session.execute(
        select(Payout.id).where(Payout.status == status, Payout.updated_at < older_than).order_by(Payout.updated_at)
    )).scalars().all())


async def reconcile_payouts(session: AsyncSession, now: datetime | None = None) -> dict:
    """
    Resolve payouts stuck at either side of the provider boundary:
      - processing longer than the settlement timeout -> failed + refund
      - pending longer than the hand-off timeout     -> cancelled + refund
    A payout that settles concurrently wins; we skip it.
    """
    now = now or utcnow()
    processing_cutoff = now - timedelta(minutes=settings.payout_processing_timeout_minutes)
    pending_cutoff = now - timedelta(minutes=settings.payout_pending_timeout_minutes)

    stuck = await _stale_ids(session, PROCESSING, processing_cutoff)
    expired = await _stale_ids(session, PENDING, pending_cutoff)
    await session.commit()

    failed = cancelled = skipped = 0
    for pid in stuck:
        try:
            await run_atomic(
                session, _transition, pid, (PROCESSING,), FAILED,
                refund=True, error_message="Timed out waiting for provider settlement",
            )
            failed += 1
        except InvalidStateTransition:
            skipped += 1
    for pid in expired:
        try:
            await run_atomic(
                session, _transition, pid, (PENDING,), CANCELLED,
                refund=True, error_message="Expired before hand-off to provider",
            )
            cancelled += 1
        except InvalidStateTransition:
            skipped += 1

    result = {"failed": failed, "cancelled": cancelled, "skipped": skipped}
    log.info("payouts_reconciled", **result)
    return result
