from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, Float, DateTime, CheckConstraint, Uuid, func, text
from credit_ledger.db import Base

class Account(Base):
    """
    Balance cache, one row per user. A strict projection of `ledger_entries`:
    every write goes through the ledger store's compare-and-swap update, in the
    same transaction as the entry it mirrors.
      - genesis_balance + genesis_burned is fixed after the initial grant
      - earned_balance == Σ(earned entries)
      - ledger_seq is the seq of the newest entry (orders the account's ledger)
      - last_entry_at is the created_at of the newest entry; it only moves forward
    """
    __tablename__ = "accounts"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)  # owned by the identity service

    genesis_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    earned_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    genesis_burned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ledger_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_entry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # scales verified contribution awards before the caps apply
    reputation_multiplier: Mapped[float] = mapped_column(
        Float, nullable=False, default=1.0, server_default=text("1.0")
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("genesis_balance >= 0", name="ck_accounts_genesis_nonneg"),
        CheckConstraint("earned_balance >= 0", name="ck_accounts_earned_nonneg"),
        CheckConstraint("genesis_burned >= 0", name="ck_accounts_burned_nonneg"),
        CheckConstraint("lifetime_earned >= 0", name="ck_accounts_lifetime_nonneg"),
        CheckConstraint("reputation_multiplier > 0", name="ck_accounts_multiplier_pos"),
    )
