from __future__ import annotations


class LedgerError(Exception):
    """
    Base for every error the credit engines raise on purpose.
    `code` is stable and machine-readable; `status_code` is what the API returns.
    """
    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str | None = None, **context):
        super().__init__(message or self.default_message())
        self.context = context

    def default_message(self) -> str:
        return self.code.replace("_", " ")

    @property
    def message(self) -> str:
        return str(self)


# ---------- validation (terminal, never retried) ----------

class InvalidAmount(LedgerError):
    code = "invalid_amount"

    def default_message(self) -> str:
        return "Amount must be a positive whole number of credits"


class InvalidParameter(LedgerError):
    """Unknown enum-like value (credit type, contribution type, multiplier)."""
    code = "invalid_parameter"


class SelfTransferNotAllowed(LedgerError):
    code = "self_transfer_not_allowed"

    def default_message(self) -> str:
        return "Cannot transfer credits to yourself"


class InsufficientGenesisBalance(LedgerError):
    code = "insufficient_genesis_balance"
    status_code = 402

    def default_message(self) -> str:
        return "Not enough Genesis Credit"


class InsufficientEarnedBalance(LedgerError):
    code = "insufficient_earned_balance"
    status_code = 402

    def default_message(self) -> str:
        return "Not enough Earned Credit"


class GenesisNotWithdrawable(InsufficientEarnedBalance):
    code = "genesis_not_withdrawable"

    def default_message(self) -> str:
        return "Genesis Credit cannot be withdrawn; only Earned Credit can be paid out"


class GenesisNotTransferable(InsufficientEarnedBalance):
    code = "genesis_not_transferable"

    def default_message(self) -> str:
        return "Genesis Credit cannot be transferred; only Earned Credit can be sent"


class EarningLimitReached(LedgerError):
    code = "earning_limit_reached"
    status_code = 429

    def default_message(self) -> str:
        return "Daily or weekly earning limit reached"


# ---------- lookups ----------

class AccountNotFound(LedgerError):
    code = "account_not_found"
    status_code = 404


class PayoutNotFound(LedgerError):
    code = "payout_not_found"
    status_code = 404


class PayoutMethodNotFound(LedgerError):
    code = "payout_method_not_found"
    status_code = 404


class ContributionNotFound(LedgerError):
    code = "contribution_not_found"
    status_code = 404


# ---------- state machine ----------

class InvalidStateTransition(LedgerError):
    code = "invalid_state_transition"
    status_code = 409


# ---------- transient / external ----------

class ConcurrencyConflict(LedgerError):
    """Raised after the bounded retry budget is spent; callers may retry later."""
    code = "concurrency_conflict"
    status_code = 503


class ProviderError(LedgerError):
    """Opaque failure from the payout provider. Resolved into a failed payout, never left dangling."""
    code = "provider_error"
    status_code = 502


class InvalidSource(LedgerError):
    code = "invalid_source"

    def default_message(self) -> str:
        return "This source is reserved for internal ledger operations"
