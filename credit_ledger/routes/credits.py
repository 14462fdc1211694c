from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db import get_session
from credit_ledger.auth_deps import get_current_user_id, require_internal
from credit_ledger.schemas.credits import BurnRequest, EarnRequest, TransferRequest, TransferResponse
from credit_ledger.schemas.ledger import LedgerEntryPublic
from credit_ledger.services.burn import burn
from credit_ledger.services.earn import earn
from credit_ledger.services.transfer import transfer

router = APIRouter(prefix="/credits", tags=["credits"])
internal_router = APIRouter(prefix="/internal/credits", tags=["internal"], dependencies=[Depends(require_internal)])

@internal_router.post("/earn", response_model=LedgerEntryPublic)
async def earn_credits(payload: EarnRequest, session: AsyncSession = Depends(get_session)):
    """Called by the services that own reward triggers (projects, applications, admin awards)."""
    return await earn(
        session,
        payload.account_id,
        payload.amount,
        payload.source,
        source_id=payload.source_id,
        description=payload.description,
    )

@router.post("/burn", response_model=LedgerEntryPublic)
async def burn_credits(
    payload: BurnRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await burn(
        session,
        user_id,
        payload.amount,
        source=payload.source,
        source_id=payload.source_id,
        description=payload.description,
    )

@router.post("/transfer", response_model=TransferResponse)
async def transfer_credits(
    payload: TransferRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    r = await transfer(
        session,
        user_id,
        payload.recipient_id,
        payload.amount,
        note=payload.note,
        transfer_id=payload.transfer_id,
    )
    return TransferResponse(
        transfer_id=r.transfer_id,
        sender_id=r.sender_id,
        recipient_id=r.recipient_id,
        amount=r.amount,
        sender_entry=LedgerEntryPublic.model_validate(r.sender_entry),
        recipient_entry=LedgerEntryPublic.model_validate(r.recipient_entry),
        created=r.created,
    )
