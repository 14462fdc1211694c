from __future__ import annotations
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.errors import AccountNotFound, PayoutMethodNotFound
from credit_ledger.models.account import Account
from credit_ledger.models.payout import Payout, PayoutMethod
from credit_ledger.services.atomic import run_atomic

log = structlog.get_logger()


async def list_payout_methods(session: AsyncSession, account_id: UUID) -> list[PayoutMethod]:
    return list((await session.execute(
        select(PayoutMethod)
        .where(PayoutMethod.account_id == account_id)
        .order_by(PayoutMethod.is_default.desc(), PayoutMethod.created_at.asc())
        .execution_options(populate_existing=True)
    )).scalars().all())


async def get_payout_method(session: AsyncSession, account_id: UUID, method_id: UUID) -> PayoutMethod:
    m = await session.scalar(
        select(PayoutMethod)
        .where(PayoutMethod.id == method_id, PayoutMethod.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    if m is None:
        raise PayoutMethodNotFound(f"Payout method {method_id} not found")
    return m


async def default_payout_method(session: AsyncSession, account_id: UUID) -> PayoutMethod | None:
    return await session.scalar(
        select(PayoutMethod).where(PayoutMethod.account_id == account_id, PayoutMethod.is_default.is_(True))
        .execution_options(populate_existing=True)
    )


async def _clear_default(session: AsyncSession, account_id: UUID) -> None:
    await session.execute(
        update(PayoutMethod)
        .where(PayoutMethod.account_id == account_id, PayoutMethod.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )


async def _add(
    session: AsyncSession,
    *,
    account_id: UUID,
    provider_method_id: str,
    method_type: str,
    brand: str | None,
    last_four: str | None,
    is_default: bool,
) -> PayoutMethod:
    if await session.get(Account, account_id) is None:
        raise AccountNotFound(f"Account {account_id} not found")

    existing = await session.scalar(
        select(PayoutMethod).where(PayoutMethod.provider_method_id == provider_method_id)
    )
    if existing is not None:
        # re-syncing the same provider method is a no-op; another account's method is invisible
        if existing.account_id != account_id:
            raise PayoutMethodNotFound("Payout method is not available")
        return existing

    has_any = await session.scalar(select(PayoutMethod.id).where(PayoutMethod.account_id == account_id).limit(1))
    make_default = is_default or has_any is None
    if make_default:
        await _clear_default(session, account_id)

    m = PayoutMethod(
        account_id=account_id,
        provider_method_id=provider_method_id,
        method_type=method_type,
        brand=brand,
        last_four=last_four,
        is_default=make_default,
    )
    session.add(m)
    await session.flush()
    return await get_payout_method(session, account_id, m.id)


async def add_payout_method(
    session: AsyncSession,
    account_id: UUID,
    provider_method_id: str,
    method_type: str,
    brand: str | None = None,
    last_four: str | None = None,
    is_default: bool = False,
) -> PayoutMethod:
    """Register a provider-side method. The account's first method becomes its default."""
    m = await run_atomic(
        session, _add,
        account_id=account_id, provider_method_id=provider_method_id, method_type=method_type,
        brand=brand, last_four=last_four, is_default=is_default,
    )
    log.info("payout_method_added", account_id=str(account_id), method_id=str(m.id), is_default=m.is_default)
    return m


async def _set_default(session: AsyncSession, account_id: UUID, method_id: UUID) -> PayoutMethod:
    await get_payout_method(session, account_id, method_id)
    await _clear_default(session, account_id)
    await session.execute(
        update(PayoutMethod)
        .where(PayoutMethod.id == method_id)
        .values(is_default=True)
        .execution_options(synchronize_session=False)
    )
    return await get_payout_method(session, account_id, method_id)


async def set_default_payout_method(session: AsyncSession, account_id: UUID, method_id: UUID) -> PayoutMethod:
    """Make one method the default, clearing any other default in the same transaction."""
    m = await run_atomic(session, _set_default, account_id, method_id)
    log.info("payout_method_default_set", account_id=str(account_id), method_id=str(method_id))
    return m


async def _delete(session: AsyncSession, account_id: UUID, method_id: UUID) -> None:
    m = await get_payout_method(session, account_id, method_id)
    # payouts not yet handed off lose their destination and will fail with a refund on dispatch
    await session.execute(
        update(Payout)
        .where(Payout.payout_method_id == method_id)
        .values(payout_method_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.delete(m)
    await session.flush()


async def delete_payout_method(session: AsyncSession, account_id: UUID, method_id: UUID) -> None:
    await run_atomic(session, _delete, account_id, method_id)
    log.info("payout_method_deleted", account_id=str(account_id), method_id=str(method_id))
