from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index, Uuid
from credit_ledger.db import Base

GENESIS = "genesis"
EARNED = "earned"
CREDIT_TYPES = (GENESIS, EARNED)

# largest single posting, grant or payout
MAX_AMOUNT = 10**12

# sources
GENESIS_GRANT = "genesis_grant"
PROJECT_CREATE = "project_create"
APPLICATION_ACCEPTED = "application_accepted"
REWARD = "reward"
ADMIN_AWARD = "admin_award"
CONTRIBUTION_VERIFIED = "contribution_verified"
REDEMPTION = "redemption"
TRANSFER_IN = "transfer_in"
TRANSFER_OUT = "transfer_out"
PAYOUT_REQUEST = "payout_request"
PAYOUT_FAILED_REFUND = "payout_failed_refund"

EARN_SOURCES = (PROJECT_CREATE, APPLICATION_ACCEPTED, REWARD, ADMIN_AWARD, CONTRIBUTION_VERIFIED)
# written only by the engines that own them; never accepted from callers
SYSTEM_SOURCES = (GENESIS_GRANT, TRANSFER_IN, TRANSFER_OUT, PAYOUT_REQUEST, PAYOUT_FAILED_REFUND)
# earned credits that move existing credit around rather than minting it
NON_EARNING_CREDITS = (TRANSFER_IN, PAYOUT_FAILED_REFUND)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEntry(Base):
    """
    Append-only, one row per balance-affecting event.
    Sign convention: amount > 0 credits, amount < 0 debits the `credit_type` balance.
    balance_after is the resulting balance of that credit_type, taken from the
    same row update that produced it; seq orders entries per account.
    Idempotency: (account_id, source, source_id) is unique.
    """
    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.user_id", ondelete="RESTRICT"), index=True, nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    credit_type: Mapped[str] = mapped_column(String(16), nullable=False)  # genesis | earned
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "seq", name="uq_ledger_entries_account_seq"),
        UniqueConstraint("account_id", "source", "source_id", name="uq_ledger_entries_source"),
        CheckConstraint("amount <> 0", name="ck_ledger_entries_amount_nonzero"),
        CheckConstraint("balance_after >= 0", name="ck_ledger_entries_balance_nonneg"),
        CheckConstraint("credit_type IN ('genesis','earned')", name="ck_ledger_entries_credit_type"),
        Index("ix_ledger_entries_account_type_seq", "account_id", "credit_type", "seq"),
    )
