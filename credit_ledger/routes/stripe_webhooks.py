from __future__ import annotations
from uuid import UUID
import stripe
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from credit_ledger.config import settings
from credit_ledger.db import get_session
from credit_ledger.errors import InvalidStateTransition, PayoutNotFound
from credit_ledger.services.payout_provider import FAILED, SUCCEEDED
from credit_ledger.services.payouts import on_payout_settled

log = structlog.get_logger()

router = APIRouter(tags=["stripe"])

PAYOUT_EVENTS = {
    "payout.paid": SUCCEEDED,
    "payout.failed": FAILED,
    "payout.canceled": FAILED,
}

def _payout_id(obj) -> UUID | None:
    raw = (obj.get("metadata") or {}).get("payout_id")
    try:
        return UUID(raw) if raw else None
    except ValueError:
        return None

@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_session),
):
    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload.decode("utf-8"),
            sig_header=stripe_signature or "",
            secret=settings.stripe_webhook_secret,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook: {e}")

    outcome = PAYOUT_EVENTS.get(event["type"])
    if outcome is None:
        return {"ignored": event["type"]}

    po = event["data"]["object"]
    try:
        p = await on_payout_settled(
            db,
            po["id"],
            outcome,
            payout_id=_payout_id(po),
            failure_message=po.get("failure_message"),
        )
    except InvalidStateTransition as e:
        # redelivery, or a cancel/reconcile got there first
        log.info("stripe_payout_event_duplicate", event_type=event["type"], provider_reference=po["id"], reason=str(e))
        return {"ok": True, "duplicate": True}
    except PayoutNotFound:
        log.warning("stripe_payout_event_unknown", event_type=event["type"], provider_reference=po["id"])
        return {"ignored": event["type"]}
    return {"ok": True, "payout_id": str(p.id), "status": p.status}
