from __future__ import annotations
import uuid
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.errors import (
    GenesisNotTransferable,
    InsufficientEarnedBalance,
    InvalidStateTransition,
    SelfTransferNotAllowed,
)
from credit_ledger.models.ledger import EARNED, TRANSFER_IN, TRANSFER_OUT, LedgerEntry
from credit_ledger.services import ledger_store
from credit_ledger.services.accounts import get_balances
from credit_ledger.services.atomic import run_atomic
from credit_ledger.services.ledger_store import Posting

log = structlog.get_logger()


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    sender_id: UUID
    recipient_id: UUID
    amount: int
    sender_entry: LedgerEntry
    recipient_entry: LedgerEntry
    created: bool = True


async def _existing_transfer(
    session: AsyncSession, sender_id: UUID, recipient_id: UUID, amount: int, transfer_id: str
) -> TransferResult | None:
    out_e = await ledger_store.find_by_source(session, sender_id, TRANSFER_OUT, transfer_id)
    if out_e is None:
        return None
    in_e = await ledger_store.find_by_source(session, recipient_id, TRANSFER_IN, transfer_id)
    if in_e is None or -int(out_e.amount) != amount:
        raise InvalidStateTransition(f"Transfer id {transfer_id} was already used for a different transfer")
    return TransferResult(
        transfer_id=transfer_id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        amount=amount,
        sender_entry=out_e,
        recipient_entry=in_e,
        created=False,
    )


async def _transfer_once(
    session: AsyncSession,
    *,
    sender_id: UUID,
    recipient_id: UUID,
    amount: int,
    note: str | None,
    transfer_id: str,
) -> TransferResult:
    existing = await _existing_transfer(session, sender_id, recipient_id, amount, transfer_id)
    if existing is not None:
        return existing

    try:
        out_e, in_e = await ledger_store.append(
            session,
            Posting(
                account_id=sender_id,
                credit_type=EARNED,
                amount=-amount,
                source=TRANSFER_OUT,
                source_id=transfer_id,
                description=note or f"Sent {amount} credits",
            ),
            Posting(
                account_id=recipient_id,
                credit_type=EARNED,
                amount=amount,
                source=TRANSFER_IN,
                source_id=transfer_id,
                description=note or f"Received {amount} credits",
            ),
        )
    except InsufficientEarnedBalance:
        bal = await get_balances(session, sender_id)
        if bal.earned_balance + bal.genesis_balance >= amount:
            raise GenesisNotTransferable(account_id=str(sender_id), requested=amount)
        raise
    return TransferResult(
        transfer_id=transfer_id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        amount=amount,
        sender_entry=out_e,
        recipient_entry=in_e,
    )


async def transfer(
    session: AsyncSession,
    sender_id: UUID,
    recipient_id: UUID,
    amount: int,
    note: str | None = None,
    transfer_id: str | None = None,
) -> TransferResult:
    """
    Move Earned Credit between two accounts as one atomic unit: a transfer_out on
    the sender and a transfer_in on the recipient sharing the transfer id. Genesis
    Credit is never transferable. Passing the same transfer_id again is a no-op
    that returns the original result.
    """
    if sender_id == recipient_id:
        raise SelfTransferNotAllowed()
    ledger_store.validate_amount(amount)
    transfer_id = transfer_id or str(uuid.uuid4())

    result = await run_atomic(
        session, _transfer_once,
        sender_id=sender_id, recipient_id=recipient_id, amount=amount, note=note, transfer_id=transfer_id,
    )
    if result.created:
        log.info("transfer_applied", transfer_id=transfer_id, sender_id=str(sender_id),
                 recipient_id=str(recipient_id), amount=amount,
                 sender_balance_after=result.sender_entry.balance_after,
                 recipient_balance_after=result.recipient_entry.balance_after)
    return result
