from __future__ import annotations
import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.config import settings
from credit_ledger.errors import ConcurrencyConflict

log = structlog.get_logger()

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_transient(exc: DBAPIError) -> bool:
    """
    Errors that mean "someone else wrote first":
      - IntegrityError: lost a race on a unique index (dedup key, ledger seq)
      - OperationalError: lock timeouts / SQLite "database is locked"
      - serialization failures and deadlocks reported by PostgreSQL
    """
    if isinstance(exc, (IntegrityError, OperationalError)):
        return True
    return _sqlstate(exc) in _RETRYABLE_SQLSTATES


def _backoff_seconds(attempt: int) -> float:
    base = settings.ledger_retry_base_delay_ms / 1000.0
    delay = base * (2 ** (attempt - 1))
    return delay * (0.5 + random.random() * 0.5)


async def run_atomic(
    session: AsyncSession,
    op: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Run `op(session, ...)` as one transaction and commit it.
    Transient conflicts roll back and re-drive the whole unit; ledger errors
    (validation, insufficient balance, bad transitions) roll back and propagate.
    """
    attempts = max(1, settings.ledger_retry_attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = await op(session, *args, **kwargs)
            await session.commit()
            return result
        except DBAPIError as e:
            await session.rollback()
            if not is_transient(e):
                raise
            if attempt == attempts:
                log.error("atomic_retry_exhausted", op=op.__name__, attempts=attempts, error=str(e.orig))
                raise ConcurrencyConflict(
                    f"Could not complete {op.__name__} after {attempts} attempts; please retry"
                ) from e
            log.warning("atomic_retry", op=op.__name__, attempt=attempt, error=str(e.orig))
            await asyncio.sleep(_backoff_seconds(attempt))
        except Exception:
            await session.rollback()
            raise
    raise AssertionError("unreachable")
