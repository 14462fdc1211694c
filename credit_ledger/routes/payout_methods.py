from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db import get_session
from credit_ledger.auth_deps import get_current_user_id
from credit_ledger.schemas.payout import AddPayoutMethodRequest, PayoutMethodPublic
from credit_ledger.services.payout_methods import (
    add_payout_method,
    delete_payout_method,
    list_payout_methods,
    set_default_payout_method,
)

router = APIRouter(prefix="/payout-methods", tags=["payout-methods"])

@router.get("", response_model=list[PayoutMethodPublic])
async def my_methods(session: AsyncSession = Depends(get_session), user_id: UUID = Depends(get_current_user_id)):
    return await list_payout_methods(session, user_id)

@router.post("", response_model=PayoutMethodPublic, status_code=201)
async def add_method(
    payload: AddPayoutMethodRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    """provider_method_id comes from the client-side Stripe flow; no card or bank numbers reach us."""
    return await add_payout_method(
        session,
        user_id,
        payload.provider_method_id,
        payload.method_type,
        brand=payload.brand,
        last_four=payload.last_four,
        is_default=payload.is_default,
    )

@router.post("/{method_id}/default", response_model=PayoutMethodPublic)
async def make_default(
    method_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await set_default_payout_method(session, user_id, method_id)

@router.delete("/{method_id}", status_code=204)
async def remove_method(
    method_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    await delete_payout_method(session, user_id, method_id)
    return Response(status_code=204)
