"""Inbound provider webhooks."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gateway_orchestrator.errors import NotFoundError, ValidationError
from gateway_orchestrator.models import GatewayTransaction
from gateway_orchestrator.providers.base import ProviderAdapter, WebhookOutcome
from gateway_orchestrator.providers.http import verify_signature
from gateway_orchestrator.services.ledger import TransactionLedger
from gateway_orchestrator.services.registry import GatewayRegistry, parse_provider
from gateway_orchestrator.types import Provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    """What a webhook delivery did.

    result is one of: processed, duplicate, ignored.
    """

    provider: Provider
    result: str
    transaction: GatewayTransaction | None = None
    outcome: WebhookOutcome | None = None


class WebhookProcessor:
    """Verifies a webhook and reconciles the transaction it reports."""

    def __init__(self, session: AsyncSession, adapters: Mapping[Provider, ProviderAdapter]):
        self.session = session
        self.adapters = adapters

    async def handle(
        self, provider: str, body: bytes, signature: str | None
    ) -> WebhookResult:
        """Process one delivery. Does not commit.

        Raises:
            NotFoundError: unknown provider or transaction.
            ValidationError: missing secret, bad signature or malformed body.
            ConflictError: the transaction already has a different outcome.
        """
        resolved = parse_provider(provider)
        adapter = self.adapters.get(resolved)
        if adapter is None:
            raise NotFoundError(f"No adapter for {resolved.value}", provider=resolved.value)

        secret = adapter.webhook_secret()
        if not secret:
            raise ValidationError(
                f"Webhook secret for {resolved.value} is not configured", provider=resolved.value
            )
        if not verify_signature(secret, body, signature):
            logger.warning("Rejected %s webhook with invalid signature", resolved.value)
            raise ValidationError("Invalid webhook signature", provider=resolved.value)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Webhook body is not valid JSON", provider=resolved.value) from exc
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object", provider=resolved.value)

        outcome = adapter.parse_webhook(payload)
        if outcome is None:
            logger.info("Ignoring %s webhook event", resolved.value)
            return WebhookResult(provider=resolved, result="ignored")

        gateway = await GatewayRegistry(self.session).get(resolved)
        finalized = await TransactionLedger(self.session).finalize(
            outcome.transaction_id,
            outcome.status,
            gateway_id=gateway.id,
            provider_reference=outcome.provider_reference,
            error_message=outcome.error_message,
        )
        return WebhookResult(
            provider=resolved,
            result="processed" if finalized.changed else "duplicate",
            transaction=finalized.transaction,
            outcome=outcome,
        )
