from __future__ import annotations
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, Query
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db import get_session
from credit_ledger.auth_deps import get_current_user_id, require_internal
from credit_ledger.jobs.dispatch_payout import dispatch_payout_job
from credit_ledger.queue import get_queue
from credit_ledger.schemas.payout import FailPayoutRequest, PayoutPublic, PayoutRequest, ReconcileResponse
from credit_ledger.services.payouts import cancel_payout, list_payouts, mark_failed, reconcile_payouts, request_payout

log = structlog.get_logger()

router = APIRouter(prefix="/payouts", tags=["payouts"])
internal_router = APIRouter(prefix="/internal/payouts", tags=["internal"], dependencies=[Depends(require_internal)])

@router.post("", response_model=PayoutPublic, status_code=201)
async def create_payout(
    payload: PayoutRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    q: Queue = Depends(get_queue),
):
    p = await request_payout(
        session, user_id, payload.amount, payout_method_id=payload.payout_method_id, credit_type=payload.credit_type
    )
    # committed above; the worker hands it to the provider outside this transaction
    q.enqueue(dispatch_payout_job, str(p.id), job_timeout=60)
    return p

@router.get("", response_model=list[PayoutPublic])
async def my_payouts(
    status: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await list_payouts(session, user_id, status=status, limit=limit)

@router.post("/{payout_id}/cancel", response_model=PayoutPublic)
async def cancel(
    payout_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await cancel_payout(session, payout_id, account_id=user_id, reason="Cancelled by user")

@internal_router.post("/{payout_id}/fail", response_model=PayoutPublic)
async def fail(payout_id: UUID, payload: FailPayoutRequest, session: AsyncSession = Depends(get_session)):
    return await mark_failed(session, payout_id, reason=payload.reason)

@internal_router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(session: AsyncSession = Depends(get_session)):
    return await reconcile_payouts(session)
