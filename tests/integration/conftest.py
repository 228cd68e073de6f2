"""Integration test fixtures: the full HTTP stack over an in-memory database."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from gateway_orchestrator.api.app import bootstrap_gateways, create_app
from gateway_orchestrator.config import Principal, Settings
from gateway_orchestrator.providers import StubProviderAdapter, sign_payload
from gateway_orchestrator.types import Provider

from tests.conftest import WEBHOOK_SECRET

ADMIN_TOKEN = "admin-token"
VIEWER_TOKEN = "viewer-token"

ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}
VIEWER_HEADERS = {"Authorization": f"Bearer {VIEWER_TOKEN}"}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        probe_timeout_seconds=0.5,
        charge_timeout_seconds=0.5,
        background_tasks_enabled=False,
        default_primary_provider="cashfree",
        api_tokens={
            ADMIN_TOKEN: Principal(actor="ops@example.com", role="admin"),
            VIEWER_TOKEN: Principal(actor="support@example.com", role="viewer"),
        },
    )


@pytest_asyncio.fixture
async def app(
    settings: Settings,
    engine: AsyncEngine,
    stub_adapters: dict[Provider, StubProviderAdapter],
) -> FastAPI:
    """Application wired to the test database with every gateway bootstrapped."""
    app = create_app(settings, engine=engine, adapters=stub_adapters)
    await bootstrap_gateways(
        app.state.session_factory, stub_adapters, settings.default_primary_provider
    )
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def signed_webhook(payload: dict[str, Any], secret: str = WEBHOOK_SECRET) -> dict[str, Any]:
    """Request kwargs for a stub webhook signed with ``secret``."""
    body = json.dumps(payload).encode()
    return {
        "content": body,
        "headers": {
            "Content-Type": "application/json",
            StubProviderAdapter.signature_header: sign_payload(secret, body),
        },
    }
