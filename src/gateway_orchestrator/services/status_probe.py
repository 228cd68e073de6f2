"""Provider health probing.

Calls ProviderAdapter.probe() under a bounded timeout, classifies the result
and caches it on the gateway row. Checkout never waits on this: the selector
only reads the cached configStatus.

Concurrency:
- One asyncio.Lock per provider serializes probes of the same provider.
- Different providers are probed concurrently.
- No database session is held open across the network call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway_orchestrator.database import get_session
from gateway_orchestrator.errors import (
    ConfigurationError,
    ConnectivityError,
    NotFoundError,
    ProviderError,
)
from gateway_orchestrator.models import PaymentGateway, utcnow
from gateway_orchestrator.providers.base import ProviderAdapter
from gateway_orchestrator.services.registry import GatewayRegistry, parse_provider
from gateway_orchestrator.types import ConfigStatus, Provider

logger = logging.getLogger(__name__)

CONNECTIVITY_MESSAGE = "connectivity timeout"


@dataclass(frozen=True)
class ProbeOutcome:
    """Classified result of a connection test."""

    provider: Provider
    status: ConfigStatus
    message: str

    @property
    def success(self) -> bool:
        return self.status is ConfigStatus.CONFIGURED


class StatusProbe:
    """Tests provider credentials and persists the classification."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        adapters: Mapping[Provider, ProviderAdapter],
        timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.adapters = adapters
        self.timeout = timeout
        self._locks: dict[Provider, asyncio.Lock] = {}

    def _lock(self, provider: Provider) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = self._locks[provider] = asyncio.Lock()
        return lock

    def _adapter(self, provider: Provider) -> ProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise NotFoundError(f"No adapter for {provider.value}", provider=provider.value)
        return adapter

    async def classify(self, provider: Provider, *, test_mode: bool) -> ProbeOutcome:
        """Run the adapter probe and map the result onto a ConfigStatus.

        Adapter failures never propagate: they become ``error`` or
        ``not_configured`` outcomes.
        """
        adapter = self._adapter(provider)

        missing = adapter.missing_credentials()
        if missing:
            return ProbeOutcome(
                provider,
                ConfigStatus.NOT_CONFIGURED,
                f"Missing environment variables: {', '.join(missing)}",
            )

        try:
            result = await asyncio.wait_for(adapter.probe(test_mode=test_mode), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s probe timed out after %.1fs", provider.value, self.timeout)
            return ProbeOutcome(provider, ConfigStatus.ERROR, CONNECTIVITY_MESSAGE)
        except ConnectivityError as exc:
            logger.warning("%s probe failed: %s", provider.value, exc.message)
            return ProbeOutcome(provider, ConfigStatus.ERROR, CONNECTIVITY_MESSAGE)
        except (ConfigurationError, ProviderError) as exc:
            logger.warning("%s credentials rejected: %s", provider.value, exc.message)
            return ProbeOutcome(provider, ConfigStatus.ERROR, exc.message)
        except Exception as exc:
            logger.exception("%s probe raised unexpectedly", provider.value)
            return ProbeOutcome(
                provider, ConfigStatus.ERROR, f"Unexpected probe failure: {type(exc).__name__}"
            )

        if not result.ok:
            return ProbeOutcome(provider, ConfigStatus.ERROR, result.message or "Probe failed")
        return ProbeOutcome(
            provider, ConfigStatus.CONFIGURED, result.message or "Connection successful"
        )

    async def _run(self, provider: Provider, *, stamp: bool) -> tuple[ProbeOutcome, PaymentGateway]:
        async with self._lock(provider):
            async with get_session(self.session_factory) as session:
                gateway = await GatewayRegistry(session).get(provider)
                test_mode = gateway.is_test_mode

            outcome = await self.classify(provider, test_mode=test_mode)

            async with get_session(self.session_factory) as session:
                gateway = await GatewayRegistry(session).record_status(
                    provider,
                    outcome.status,
                    outcome.message,
                    checked_at=utcnow() if stamp else None,
                )
        logger.info("%s status: %s (%s)", provider.value, outcome.status.value, outcome.message)
        return outcome, gateway

    async def test(self, provider: str | Provider) -> ProbeOutcome:
        """Test a provider connection and persist the classification.

        Raises:
            NotFoundError: unknown provider.
        """
        outcome, _ = await self._run(parse_provider(provider), stamp=False)
        return outcome

    async def refresh(self, provider: str | Provider) -> PaymentGateway:
        """Probe a provider and stamp lastStatusCheck.

        Raises:
            NotFoundError: unknown provider.
        """
        _, gateway = await self._run(parse_provider(provider), stamp=True)
        return gateway

    async def refresh_all(self) -> list[PaymentGateway]:
        """Refresh every gateway concurrently.

        A provider whose refresh fails is logged and left out of the result;
        the others are still returned.
        """
        async with get_session(self.session_factory) as session:
            providers = [g.provider for g in await GatewayRegistry(session).list()]
        results = await asyncio.gather(
            *(self.refresh(p) for p in providers), return_exceptions=True
        )

        refreshed: list[PaymentGateway] = []
        for provider, result in zip(providers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Refresh of %s failed: %s", provider.value, result, exc_info=result
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                refreshed.append(result)
        return refreshed
