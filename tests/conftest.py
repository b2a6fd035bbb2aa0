import asyncio
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Callable

_TEST_DB = Path(tempfile.gettempdir()) / "payout_ledger_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")
os.environ.setdefault("DATABASE_NULL_POOL", "true")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.enums import Role
from payout_ledger.core.security import Actor, create_access_token
from payout_ledger.db.base import Base
from payout_ledger.db.session import AsyncSessionLocal, engine
from payout_ledger.main import app

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest_asyncio.fixture(scope="function", autouse=True)
async def reset_schema() -> AsyncGenerator[None, None]:
    """Ensure test isolation by rebuilding the schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def sample_provider_id() -> str:
    return "prov_test_001"


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(actor_id="admin_test_001", role=Role.ADMIN)


@pytest.fixture
def provider_actor(sample_provider_id: str) -> Actor:
    return Actor(actor_id=sample_provider_id, role=Role.PROVIDER)


@pytest.fixture
def auth_headers() -> Callable[[str, Role], dict]:
    def _headers(actor_id: str, role: Role = Role.PROVIDER) -> dict:
        return {"Authorization": f"Bearer {create_access_token(actor_id, role)}"}

    return _headers


@pytest.fixture
def provider_headers(auth_headers, sample_provider_id: str) -> dict:
    return auth_headers(sample_provider_id, Role.PROVIDER)


@pytest.fixture
def admin_headers(auth_headers) -> dict:
    return auth_headers("admin_test_001", Role.ADMIN)


@pytest.fixture
def sample_booking_event_data(sample_provider_id: str) -> dict:
    return {
        "event_id": "evt_test_001",
        "event_type": "booking_paid",
        "provider_id": sample_provider_id,
        "amount": "1000.00",
        "fee": "100.00",
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "currency": "USD",
    }


@pytest.fixture
def sample_refund_event_data(sample_provider_id: str) -> dict:
    return {
        "event_id": "evt_refund_001",
        "event_type": "booking_refunded",
        "provider_id": sample_provider_id,
        "amount": "50.00",
        "fee": "0.00",
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "currency": "USD",
    }

