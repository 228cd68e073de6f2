"""Pytest fixtures for gateway orchestrator tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gateway_orchestrator.database import create_schema, make_session_factory
from gateway_orchestrator.models import PaymentGateway
from gateway_orchestrator.providers import ADAPTER_CLASSES, StubProviderAdapter
from gateway_orchestrator.services import StatusProbe
from gateway_orchestrator.types import ConfigStatus, Provider

# In-memory SQLite shared by every session of a test. Sessions are not
# reset on return so interleaved sessions never roll back each other.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

WEBHOOK_SECRET = "whsec_test"

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_stub(provider: Provider, **kwargs: Any) -> StubProviderAdapter:
    """Stub adapter carrying the real adapter's name, currencies and countries."""
    cls = ADAPTER_CLASSES[provider]
    kwargs.setdefault("display_name", cls.display_name)
    kwargs.setdefault("supported_currencies", cls.supported_currencies)
    kwargs.setdefault("supported_countries", cls.supported_countries)
    kwargs.setdefault("credential_env_vars", cls.credential_env_vars)
    kwargs.setdefault("secret", WEBHOOK_SECRET)
    return StubProviderAdapter(provider, **kwargs)


async def add_gateway(
    session: AsyncSession,
    provider: Provider,
    *,
    created_offset: int = 0,
    **overrides: Any,
) -> PaymentGateway:
    """Insert a gateway row with explicit ordering and counters.

    created_offset is in minutes after BASE_TIME; the caller commits.
    """
    values: dict[str, Any] = {
        "provider": provider,
        "display_name": provider.value.title(),
        "is_enabled": True,
        "is_test_mode": True,
        "is_primary": False,
        "supported_currencies": ["USD", "EUR", "INR"],
        "supported_countries": [],
        "config_status": ConfigStatus.CONFIGURED,
        "total_transactions": 0,
        "successful_transactions": 0,
        "failed_transactions": 0,
        "total_revenue": Decimal("0"),
        "metadata_json": {},
        "created_at": BASE_TIME + timedelta(minutes=created_offset),
        "updated_at": BASE_TIME + timedelta(minutes=created_offset),
    }
    values.update(overrides)
    gateway = PaymentGateway(**values)
    session.add(gateway)
    await session.flush()
    return gateway


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        pool_reset_on_return=None,
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def stub_adapters() -> dict[Provider, StubProviderAdapter]:
    """One configured stub per provider."""
    return {provider: make_stub(provider) for provider in Provider}


@pytest.fixture
def probe(
    session_factory: async_sessionmaker[AsyncSession],
    stub_adapters: dict[Provider, StubProviderAdapter],
) -> StatusProbe:
    return StatusProbe(session_factory, stub_adapters, timeout=0.5)
