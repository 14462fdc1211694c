from __future__ import annotations
from typing import Protocol

import stripe
import structlog

from credit_ledger.config import settings
from credit_ledger.errors import ProviderError

log = structlog.get_logger()

SUCCEEDED = "succeeded"
FAILED = "failed"


class PayoutProvider(Protocol):
    def create_payout(self, provider_method_id: str, amount: int, *, idempotency_key: str, metadata: dict | None = None) -> str:
        """Start a real-money transfer for `amount` credits; returns the provider's reference."""
        ...


class StripePayoutProvider:
    """
    Sends payouts through Stripe. Amounts are Earned Credit; 1 credit =
    CREDIT_VALUE_USD_CENTS cents. Settlement arrives later on /stripe/webhook.
    """

    def __init__(self, api_key: str | None = None, cents_per_credit: int | None = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.cents_per_credit = max(1, cents_per_credit or settings.credit_value_usd_cents)

    def create_payout(self, provider_method_id: str, amount: int, *, idempotency_key: str, metadata: dict | None = None) -> str:
        if not self.api_key:
            raise ProviderError("Stripe not configured")
        stripe.api_key = self.api_key
        try:
            po = stripe.Payout.create(
                amount=int(amount * self.cents_per_credit),
                currency="usd",
                destination=provider_method_id,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            log.warning("stripe_payout_error", error=str(e), idempotency_key=idempotency_key)
            raise ProviderError(f"Payout provider rejected the request: {e.user_message or e}") from e
        return po["id"]


def get_payout_provider() -> PayoutProvider | None:
    """Configured provider, or None when payouts should stay pending."""
    if not settings.stripe_secret_key:
        return None
    return StripePayoutProvider()
