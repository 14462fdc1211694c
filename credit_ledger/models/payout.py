from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Uuid, func, text
from credit_ledger.db import Base
from credit_ledger.models.ledger import utcnow

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"
TERMINAL_STATUSES = (COMPLETED, FAILED, CANCELLED)

METHOD_TYPES = ("bank_account", "debit_card", "apple_pay")


class Payout(Base):
    """
    One withdrawal request. Funds are reserved (earned_balance debited) when the
    row is created; failed/cancelled payouts are refunded by a new ledger entry.
      pending -> processing -> completed | failed
      pending -> cancelled | failed
    """
    __tablename__ = "payouts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.user_id", ondelete="RESTRICT"), index=True, nullable=False
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PENDING)
    payout_method_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("payout_methods.id", ondelete="SET NULL"), nullable=True
    )
    provider_reference: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)  # e.g. po_...
    error_message: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payouts_amount_pos"),
        CheckConstraint(
            "status IN ('pending','processing','completed','failed','cancelled')", name="ck_payouts_status"
        ),
        Index("ix_payouts_status_updated", "status", "updated_at"),
    )


class PayoutMethod(Base):
    """Provider-backed destination. Only the opaque provider id and a display label are stored."""
    __tablename__ = "payout_methods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.user_id", ondelete="CASCADE"), index=True, nullable=False
    )
    provider_method_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # ba_..., card_...
    method_type: Mapped[str] = mapped_column(String(16), nullable=False)  # bank_account | debit_card | apple_pay
    brand: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        # at most one default per account
        Index(
            "uq_payout_methods_one_default", "account_id", unique=True,
            postgresql_where=text("is_default"), sqlite_where=text("is_default"),
        ),
    )
