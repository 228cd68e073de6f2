"""Admin configuration service.

The only mutator of registry state on behalf of admins. Every mutation:
- runs as one unit of work (commit on success, rollback on any error),
- writes one GatewayConfigChange audit row per changed field,
- logs provider/field/before/after/actor,
- records the acting admin in lastConfiguredBy.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gateway_orchestrator.config import Principal
from gateway_orchestrator.models import GatewayConfigChange, GatewayTransaction, PaymentGateway
from gateway_orchestrator.services.ledger import GatewayStats, TransactionLedger
from gateway_orchestrator.services.registry import GatewayRegistry, parse_provider
from gateway_orchestrator.services.status_probe import ProbeOutcome, StatusProbe
from gateway_orchestrator.types import Provider

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Provider):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


class AdminConfigService:
    """Admin operations over gateways, bound to one request session."""

    def __init__(self, session: AsyncSession, probe: StatusProbe | None = None):
        self.session = session
        self.probe = probe
        self.registry = GatewayRegistry(session)
        self.ledger = TransactionLedger(session)

    async def _audit(
        self, provider: Provider, field: str, before: Any, after: Any, actor: Principal
    ) -> None:
        self.session.add(
            GatewayConfigChange(
                provider=provider,
                field=field,
                before=_jsonable(before),
                after=_jsonable(after),
                actor=actor.actor,
            )
        )
        logger.info(
            "Gateway config change: provider=%s field=%s before=%r after=%r actor=%s",
            provider.value,
            field,
            _jsonable(before),
            _jsonable(after),
            actor.actor,
        )

    async def list_gateways(self) -> list[PaymentGateway]:
        return await self.registry.list()

    async def get_gateway(self, provider: str) -> PaymentGateway:
        return await self.registry.get(provider)

    async def update_gateway(
        self,
        provider: str,
        patch: Mapping[str, Any],
        actor: Principal,
        *,
        expected_version: int | None = None,
    ) -> PaymentGateway:
        """Apply an admin patch.

        Raises:
            ValidationError: unknown provider, forbidden key or bad value.
            ConflictError: stale expected_version.
        """
        try:
            gateway, changes = await self.registry.update(
                provider, patch, expected_version=expected_version, actor=actor.actor
            )
            for field, (before, after) in changes.items():
                await self._audit(gateway.provider, field, before, after, actor)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return gateway

    async def set_primary(self, provider: str, actor: Principal) -> PaymentGateway:
        """Promote a gateway to primary.

        Raises:
            ValidationError: unknown provider.
            GatewayDisabledError: target disabled.
        """
        try:
            previous = await self.registry.primary()
            gateway = await self.registry.set_primary(provider, actor=actor.actor)
            before = previous.provider if previous is not None else None
            if before is not gateway.provider:
                await self._audit(gateway.provider, "is_primary", before, gateway.provider, actor)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return gateway

    def _require_probe(self) -> StatusProbe:
        if self.probe is None:
            raise RuntimeError("AdminConfigService was created without a StatusProbe")
        return self.probe

    async def test_connection(self, provider: str, actor: Principal) -> ProbeOutcome:
        resolved = parse_provider(provider)
        logger.info("Connection test for %s requested by %s", resolved.value, actor.actor)
        return await self._require_probe().test(resolved)

    async def refresh_status(self, provider: str, actor: Principal) -> PaymentGateway:
        resolved = parse_provider(provider)
        logger.info("Status refresh for %s requested by %s", resolved.value, actor.actor)
        return await self._require_probe().refresh(resolved)

    async def stats(self, provider: str) -> tuple[PaymentGateway, GatewayStats]:
        gateway = await self.registry.get(provider)
        return gateway, await self.ledger.stats(gateway)

    async def transactions(self, provider: str, limit: int = 50) -> list[GatewayTransaction]:
        gateway = await self.registry.get(provider)
        return await self.ledger.list_transactions(gateway.id, limit=limit)

    async def config_history(self, provider: str, limit: int = 50) -> list[GatewayConfigChange]:
        """Audit trail of a gateway, newest first."""
        resolved = parse_provider(provider)
        result = await self.session.execute(
            select(GatewayConfigChange)
            .where(GatewayConfigChange.provider == resolved)
            .order_by(GatewayConfigChange.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
