import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("INTERNAL_API_TOKEN", "test-internal-token")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("LEDGER_RETRY_BASE_DELAY_MS", "5")
os.environ.setdefault("LEDGER_RETRY_ATTEMPTS", "8")

import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from credit_ledger.config import settings
from credit_ledger.db import Base, get_session
from credit_ledger.errors import ProviderError
from credit_ledger.main import app
from credit_ledger.queue import get_queue
from credit_ledger.security import make_access_token
from credit_ledger.services.accounts import open_account
import credit_ledger.models.account  # noqa: F401  register tables
import credit_ledger.models.ledger  # noqa: F401
import credit_ledger.models.payout  # noqa: F401
import credit_ledger.models.contribution  # noqa: F401

INTERNAL = {"X-Internal-Token": settings.internal_api_token}


def auth_headers(user_id) -> dict:
    return {"Authorization": f"Bearer {make_access_token(str(user_id))}"}


class FakeProvider:
    """Stands in for Stripe: hands out po_ references or fails on demand."""

    def __init__(self, fail_with: str | None = None):
        self.fail_with = fail_with
        self.calls = []

    def create_payout(self, provider_method_id, amount, *, idempotency_key, metadata=None):
        self.calls.append({
            "provider_method_id": provider_method_id,
            "amount": amount,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        if self.fail_with:
            raise ProviderError(self.fail_with)
        return f"po_test_{len(self.calls)}"


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, fn, *args, **kwargs):
        self.jobs.append((fn, args, kwargs))


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/ledger.db")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def make_account(session):
    async def _make(genesis_grant: int | None = None):
        user_id = uuid.uuid4()
        await open_account(session, user_id, genesis_grant)
        return user_id
    return _make


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest_asyncio.fixture
async def client(session_factory, fake_queue):
    async def _get_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_queue] = lambda: fake_queue
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
