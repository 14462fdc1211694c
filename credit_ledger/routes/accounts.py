from __future__ import annotations
from datetime import datetime
from typing import Literal
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.config import settings
from credit_ledger.db import get_session
from credit_ledger.auth_deps import get_current_user_id, require_internal
from credit_ledger.schemas.account import (
    AuditResponse,
    BalancesPublic,
    OpenAccountRequest,
    OpenAccountResponse,
    ReputationMultiplierRequest,
    ReputationMultiplierResponse,
)
from credit_ledger.schemas.ledger import LedgerEntryPublic, LedgerPage
from credit_ledger.services import ledger_store
from credit_ledger.services.accounts import audit_account, get_balances, open_account, set_reputation_multiplier

router = APIRouter(prefix="/accounts", tags=["accounts"])
internal_router = APIRouter(prefix="/internal/accounts", tags=["internal"], dependencies=[Depends(require_internal)])

@router.get("/me", response_model=BalancesPublic)
async def my_balances(session: AsyncSession = Depends(get_session), user_id: UUID = Depends(get_current_user_id)):
    return BalancesPublic.model_validate(await get_balances(session, user_id))

@router.get("/me/ledger", response_model=LedgerPage)
async def my_ledger(
    credit_type: Literal["genesis", "earned"] | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    cursor: int | None = Query(None, ge=0, description="seq of the last entry already seen"),
    limit: int = Query(50, ge=1),
    order: Literal["asc", "desc"] = "desc",
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    # existence check so an unknown account is a 404, not an empty page
    await get_balances(session, user_id)
    limit = min(limit, settings.ledger_page_max)
    newest_first = order == "desc"
    rows = await ledger_store.query(
        session,
        user_id,
        credit_type=credit_type,
        since=since,
        until=until,
        after_seq=cursor if not newest_first else None,
        before_seq=cursor if newest_first else None,
        limit=limit,
        newest_first=newest_first,
    )
    return LedgerPage(
        entries=[LedgerEntryPublic.model_validate(r) for r in rows],
        next_cursor=rows[-1].seq if len(rows) == limit else None,
    )

@internal_router.post("", response_model=OpenAccountResponse)
async def create_account(payload: OpenAccountRequest, session: AsyncSession = Depends(get_session)):
    _acc, created = await open_account(session, payload.user_id, payload.genesis_grant)
    bal = await get_balances(session, payload.user_id)
    return OpenAccountResponse(balances=BalancesPublic.model_validate(bal), created=created)

@internal_router.get("/{account_id}/audit", response_model=AuditResponse)
async def audit(account_id: UUID, session: AsyncSession = Depends(get_session)):
    report = await audit_account(session, account_id)
    r = report.replayed
    return AuditResponse(
        account_id=account_id,
        consistent=report.consistent,
        cached=BalancesPublic.model_validate(report.cached),
        replayed_genesis_balance=r.genesis_balance,
        replayed_earned_balance=r.earned_balance,
        replayed_genesis_burned=r.genesis_burned,
        replayed_lifetime_earned=r.lifetime_earned,
        entries=r.entries,
        mismatches=report.mismatches,
    )

@internal_router.put("/{account_id}/reputation-multiplier", response_model=ReputationMultiplierResponse)
async def put_reputation_multiplier(
    account_id: UUID, payload: ReputationMultiplierRequest, session: AsyncSession = Depends(get_session)
):
    acc = await set_reputation_multiplier(session, account_id, payload.multiplier)
    return ReputationMultiplierResponse(account_id=acc.user_id, reputation_multiplier=acc.reputation_multiplier)
