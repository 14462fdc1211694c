from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db import get_session
from credit_ledger.auth_deps import get_current_user_id, require_internal
from credit_ledger.schemas.contribution import (
    ContributionPublic,
    SubmitContributionRequest,
    VerifyContributionRequest,
)
from credit_ledger.services.contributions import list_contributions, submit_contribution, verify_contribution

router = APIRouter(prefix="/contributions", tags=["contributions"])
internal_router = APIRouter(prefix="/internal/contributions", tags=["internal"], dependencies=[Depends(require_internal)])

@router.post("", response_model=ContributionPublic, status_code=201)
async def submit(
    payload: SubmitContributionRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await submit_contribution(
        session,
        user_id,
        payload.contribution_type,
        payload.amount_requested,
        description=payload.description,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
    )

@router.get("", response_model=list[ContributionPublic])
async def mine(
    status: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await list_contributions(session, user_id, status=status, limit=limit)

@internal_router.post("/{contribution_id}/verify", response_model=ContributionPublic)
async def verify(contribution_id: UUID, payload: VerifyContributionRequest, session: AsyncSession = Depends(get_session)):
    """Project owners / admins decide a claim; verification credits Earned Credit."""
    return await verify_contribution(
        session,
        contribution_id,
        payload.verifier_id,
        action=payload.action,
        amount_override=payload.amount_override,
    )
