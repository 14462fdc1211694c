from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("genesis_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("earned_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("genesis_burned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("ledger_seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_entry_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reputation_multiplier", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("genesis_balance >= 0", name="ck_accounts_genesis_nonneg"),
        sa.CheckConstraint("earned_balance >= 0", name="ck_accounts_earned_nonneg"),
        sa.CheckConstraint("genesis_burned >= 0", name="ck_accounts_burned_nonneg"),
        sa.CheckConstraint("lifetime_earned >= 0", name="ck_accounts_lifetime_nonneg"),
        sa.CheckConstraint("reputation_multiplier > 0", name="ck_accounts_multiplier_pos"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.user_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("credit_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("account_id", "seq", name="uq_ledger_entries_account_seq"),
        sa.UniqueConstraint("account_id", "source", "source_id", name="uq_ledger_entries_source"),
        sa.CheckConstraint("amount <> 0", name="ck_ledger_entries_amount_nonzero"),
        sa.CheckConstraint("balance_after >= 0", name="ck_ledger_entries_balance_nonneg"),
        sa.CheckConstraint("credit_type IN ('genesis','earned')", name="ck_ledger_entries_credit_type"),
    )
    op.create_index("ix_ledger_entries_account_id", "ledger_entries", ["account_id"])
    op.create_index("ix_ledger_entries_account_type_seq", "ledger_entries", ["account_id", "credit_type", "seq"])

    op.create_table(
        "payout_methods",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider_method_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("method_type", sa.String(length=16), nullable=False),
        sa.Column("brand", sa.String(length=32), nullable=True),
        sa.Column("last_four", sa.String(length=4), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_payout_methods_account_id", "payout_methods", ["account_id"])
    op.create_index(
        "uq_payout_methods_one_default", "payout_methods", ["account_id"],
        unique=True, postgresql_where=sa.text("is_default"),
    )

    op.create_table(
        "payouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.user_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("payout_method_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payout_methods.id", ondelete="SET NULL"), nullable=True),
        sa.Column("provider_reference", sa.String(length=64), nullable=True, unique=True),
        sa.Column("error_message", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_payouts_amount_pos"),
        sa.CheckConstraint(
            "status IN ('pending','processing','completed','failed','cancelled')", name="ck_payouts_status"
        ),
    )
    op.create_index("ix_payouts_account_id", "payouts", ["account_id"])
    op.create_index("ix_payouts_status_updated", "payouts", ["status", "updated_at"])

    op.create_table(
        "credit_contributions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("contribution_type", sa.String(length=32), nullable=False),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("amount_requested", sa.BigInteger(), nullable=False),
        sa.Column("amount_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verified_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("amount_requested > 0", name="ck_contrib_amount_pos"),
        sa.CheckConstraint("status IN ('pending','verified','rejected')", name="ck_contrib_status"),
    )
    op.create_index("ix_credit_contributions_account_id", "credit_contributions", ["account_id"])

def downgrade() -> None:
    op.drop_index("ix_credit_contributions_account_id", table_name="credit_contributions")
    op.drop_table("credit_contributions")
    op.drop_index("ix_payouts_status_updated", table_name="payouts")
    op.drop_index("ix_payouts_account_id", table_name="payouts")
    op.drop_table("payouts")
    op.drop_index("uq_payout_methods_one_default", table_name="payout_methods")
    op.drop_index("ix_payout_methods_account_id", table_name="payout_methods")
    op.drop_table("payout_methods")
    op.drop_index("ix_ledger_entries_account_type_seq", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_account_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("accounts")
