from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, DateTime, ForeignKey, CheckConstraint, Uuid, Text
from credit_ledger.db import Base
from credit_ledger.models.ledger import utcnow

CONTRIBUTION_TYPES = ("project_work", "event_hosting", "event_participation", "mentorship", "community_help")


class CreditContribution(Base):
    __tablename__ = "credit_contributions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.user_id", ondelete="CASCADE"), index=True, nullable=False
    )
    contribution_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # project | event
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount_requested: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending | verified | rejected
    verified_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_requested > 0", name="ck_contrib_amount_pos"),
        CheckConstraint("status IN ('pending','verified','rejected')", name="ck_contrib_status"),
    )
