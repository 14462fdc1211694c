from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.errors import AccountNotFound, InsufficientEarnedBalance, InsufficientGenesisBalance, InvalidAmount
from credit_ledger.models.account import Account
from credit_ledger.models.ledger import (
    CREDIT_TYPES,
    NON_EARNING_CREDITS,
    EARNED,
    GENESIS,
    GENESIS_GRANT,
    MAX_AMOUNT,
    LedgerEntry,
    utcnow,
)


@dataclass(frozen=True)
class Posting:
    """One balance change to write: amount > 0 credits, amount < 0 debits."""
    account_id: UUID
    credit_type: str
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    counts_as_earned: bool = False  # bumps lifetime_earned (Earn Engine credits only)

    def __post_init__(self):
        if self.credit_type not in CREDIT_TYPES:
            raise ValueError(f"unknown credit_type {self.credit_type!r}")
        if not isinstance(self.amount, int) or self.amount == 0:
            raise ValueError("posting amount must be a non-zero int")
        if self.credit_type == GENESIS and self.amount > 0 and self.source != GENESIS_GRANT:
            raise ValueError("genesis credit is only ever granted at account creation")


# ---------- validation / locking ----------

def validate_amount(amount) -> int:
    """Positive whole credits no larger than MAX_AMOUNT; bools are not amounts."""
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0 or amount > MAX_AMOUNT:
        raise InvalidAmount()
    return amount


async def lock_account(session: AsyncSession, account_id: UUID) -> None:
    """
    Take the account row lock for the rest of the transaction with a no-op
    update, so reads that decide a posting (cap sums) see no concurrent writer.
    """
    row = (await session.execute(
        update(Account)
        .where(Account.user_id == account_id)
        .values(ledger_seq=Account.ledger_seq)
        .returning(Account.user_id)
        .execution_options(synchronize_session=False)
    )).first()
    if row is None:
        raise AccountNotFound(f"Account {account_id} not found", account_id=str(account_id))


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands timestamps back naive; they are stored as UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _next_entry_at(last: datetime | None) -> datetime:
    now = utcnow()
    if last is None:
        return now
    return max(now, _as_utc(last) + timedelta(microseconds=1))


# ---------- append ----------

async def _post(session: AsyncSession, p: Posting) -> LedgerEntry:
    """
    Compare-and-swap the account row, then write the entry with the values the
    update returned. The row stays locked until commit, so seq order is balance
    order, and created_at is stamped under the same lock so it follows seq.
    """
    values: dict = {"ledger_seq": Account.ledger_seq + 1}
    stmt = update(Account).where(Account.user_id == p.account_id)

    if p.credit_type == GENESIS:
        balance_col = Account.genesis_balance
        values["genesis_balance"] = Account.genesis_balance + p.amount
        if p.amount < 0:
            values["genesis_burned"] = Account.genesis_burned - p.amount
            stmt = stmt.where(Account.genesis_balance >= -p.amount)
    else:
        balance_col = Account.earned_balance
        values["earned_balance"] = Account.earned_balance + p.amount
        if p.amount < 0:
            stmt = stmt.where(Account.earned_balance >= -p.amount)
        elif p.counts_as_earned:
            values["lifetime_earned"] = Account.lifetime_earned + p.amount

    # last_entry_at is not in `values`, so RETURNING hands back the previous entry's stamp
    row = (await session.execute(
        stmt.values(**values)
        .returning(balance_col, Account.ledger_seq, Account.last_entry_at)
        .execution_options(synchronize_session=False)
    )).first()

    if row is None:
        exists = await session.scalar(select(Account.user_id).where(Account.user_id == p.account_id))
        if exists is None:
            raise AccountNotFound(f"Account {p.account_id} not found", account_id=str(p.account_id))
        if p.credit_type == GENESIS:
            raise InsufficientGenesisBalance(account_id=str(p.account_id), requested=-p.amount)
        raise InsufficientEarnedBalance(account_id=str(p.account_id), requested=-p.amount)

    balance_after, seq = int(row[0]), int(row[1])
    created_at = _next_entry_at(row[2])
    await session.execute(
        update(Account)
        .where(Account.user_id == p.account_id)
        .values(last_entry_at=created_at, updated_at=created_at)
        .execution_options(synchronize_session=False)
    )

    entry = LedgerEntry(
        account_id=p.account_id,
        seq=seq,
        credit_type=p.credit_type,
        amount=p.amount,
        balance_after=balance_after,
        description=p.description,
        source=p.source,
        source_id=p.source_id,
        created_at=created_at,
    )
    session.add(entry)
    return entry


async def append(session: AsyncSession, *postings: Posting) -> list[LedgerEntry]:
    """
    Write postings inside the caller's transaction (see services.atomic.run_atomic).
    Rows are touched in ascending account id order so two multi-account writers
    never wait on each other in opposite orders. Returns entries in argument order.
    """
    written: list[LedgerEntry | None] = [None] * len(postings)
    for i in sorted(range(len(postings)), key=lambda i: str(postings[i].account_id)):
        written[i] = await _post(session, postings[i])
    await session.flush()
    return [e for e in written if e is not None]


# ---------- read ----------

async def find_by_source(session: AsyncSession, account_id: UUID, source: str, source_id: str) -> LedgerEntry | None:
    return await session.scalar(
        select(LedgerEntry).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.source == source,
            LedgerEntry.source_id == source_id,
        )
    )


async def query(
    session: AsyncSession,
    account_id: UUID,
    *,
    credit_type: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    after_seq: int | None = None,
    before_seq: int | None = None,
    limit: int | None = None,
    newest_first: bool = False,
) -> list[LedgerEntry]:
    """Entries for one account ordered by seq; `after_seq`/`before_seq` are the resume cursors."""
    q = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
    if credit_type:
        q = q.where(LedgerEntry.credit_type == credit_type)
    if since is not None:
        q = q.where(LedgerEntry.created_at >= since)
    if until is not None:
        q = q.where(LedgerEntry.created_at < until)
    if after_seq is not None:
        q = q.where(LedgerEntry.seq > after_seq)
    if before_seq is not None:
        q = q.where(LedgerEntry.seq < before_seq)
    q = q.order_by(LedgerEntry.seq.desc() if newest_first else LedgerEntry.seq.asc())
    if limit is not None:
        q = q.limit(limit)
    return list((await session.execute(q)).scalars().all())


async def iter_entries(
    session: AsyncSession,
    account_id: UUID,
    *,
    credit_type: str | None = None,
    after_seq: int = 0,
    page_size: int = 500,
) -> AsyncIterator[LedgerEntry]:
    """Oldest-to-newest walk in pages; restart by passing the last seen seq."""
    cursor = after_seq
    while True:
        page = await query(session, account_id, credit_type=credit_type, after_seq=cursor, limit=page_size)
        for e in page:
            yield e
        if len(page) < page_size:
            return
        cursor = page[-1].seq


# ---------- replay / audit ----------

@dataclass
class ReplayResult:
    account_id: UUID
    genesis_balance: int = 0
    earned_balance: int = 0
    genesis_burned: int = 0
    lifetime_earned: int = 0
    entries: int = 0
    last_seq: int = 0
    breaks: list[str] = field(default_factory=list)

    @property
    def chain_ok(self) -> bool:
        return not self.breaks


async def replay(session: AsyncSession, account_id: UUID) -> ReplayResult:
    """Rebuild the cached balances from the ledger alone and check the balance_after chain."""
    r = ReplayResult(account_id=account_id)
    running = {GENESIS: 0, EARNED: 0}
    prev_at = None
    async for e in iter_entries(session, account_id):
        r.entries += 1
        if e.seq != r.last_seq + 1:
            r.breaks.append(f"seq gap: {r.last_seq} -> {e.seq}")
        at = _as_utc(e.created_at)
        if prev_at is not None and at < prev_at:
            r.breaks.append(f"seq {e.seq}: created_at earlier than seq {r.last_seq}")
        r.last_seq = e.seq
        prev_at = at

        running[e.credit_type] += int(e.amount)
        if running[e.credit_type] != int(e.balance_after):
            r.breaks.append(
                f"seq {e.seq}: {e.credit_type} balance_after {e.balance_after} != replayed {running[e.credit_type]}"
            )
            running[e.credit_type] = int(e.balance_after)
        if running[e.credit_type] < 0:
            r.breaks.append(f"seq {e.seq}: {e.credit_type} balance negative")

        if e.credit_type == GENESIS and e.amount < 0:
            r.genesis_burned += -int(e.amount)
        if e.credit_type == EARNED and e.amount > 0 and e.source not in NON_EARNING_CREDITS:
            r.lifetime_earned += int(e.amount)

    r.genesis_balance = running[GENESIS]
    r.earned_balance = running[EARNED]
    return r
