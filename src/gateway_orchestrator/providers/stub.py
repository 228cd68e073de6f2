"""Stub provider adapter for local development and testing.

Never talks to the network. Outcomes, failures and latency are configurable
so the orchestration paths (probe classification, timeouts, webhook races)
can be exercised without provider accounts.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from gateway_orchestrator.errors import ConfigurationError
from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    ProbeResult,
    RefundResult,
    WebhookOutcome,
)
from gateway_orchestrator.providers.http import dig
from gateway_orchestrator.types import Provider, TransactionStatus

_STUB_EVENTS = {
    "payment.succeeded": TransactionStatus.SUCCEEDED,
    "payment.failed": TransactionStatus.FAILED,
}


class StubProviderAdapter:
    """Stub adapter standing in for any provider.

    Webhook payloads use a neutral shape:
        {"type": "payment.succeeded" | "payment.failed",
         "data": {"transaction_id": ..., "reference": ..., "error": ...}}
    """

    signature_header = "X-Webhook-Signature"

    def __init__(
        self,
        provider: Provider,
        *,
        display_name: str | None = None,
        supported_currencies: tuple[str, ...] = ("USD", "EUR", "GBP", "INR"),
        supported_countries: tuple[str, ...] = (),
        credential_env_vars: tuple[str, ...] = (),
        configured: bool = True,
        outcome: TransactionStatus = TransactionStatus.SUCCEEDED,
        probe_error: Exception | None = None,
        charge_error: Exception | None = None,
        probe_delay: float = 0.0,
        charge_delay: float = 0.0,
        secret: str | None = None,
    ):
        """Initialize stub adapter.

        Args:
            provider: Provider this stub impersonates.
            configured: If False, every credential variable is reported missing.
            outcome: Status returned by charge(); PENDING waits for a webhook.
            probe_error: Raised by probe() when set.
            charge_error: Raised by charge() when set.
            probe_delay: Seconds probe() sleeps before answering.
            charge_delay: Seconds charge() sleeps before answering.
            secret: Webhook signing secret.
        """
        self.provider = provider
        self.display_name = display_name or provider.value.title()
        self.supported_currencies = supported_currencies
        self.supported_countries = supported_countries
        self.credential_env_vars = credential_env_vars or (f"{provider.value.upper()}_API_KEY",)
        self.configured = configured
        self.outcome = outcome
        self.probe_error = probe_error
        self.charge_error = charge_error
        self.probe_delay = probe_delay
        self.charge_delay = charge_delay
        self.secret = secret

        # In-memory tracking
        self.charges: dict[str, ChargeRequest] = {}
        self.refunds: list[str] = []
        self.probe_calls = 0
        self.active_probes = 0
        self.max_active_probes = 0

    def missing_credentials(self) -> list[str]:
        return [] if self.configured else list(self.credential_env_vars)

    async def probe(self, *, test_mode: bool) -> ProbeResult:
        self.probe_calls += 1
        self.active_probes += 1
        self.max_active_probes = max(self.max_active_probes, self.active_probes)
        try:
            if self.probe_delay:
                await asyncio.sleep(self.probe_delay)
            missing = self.missing_credentials()
            if missing:
                raise ConfigurationError(
                    f"Missing environment variables: {', '.join(missing)}",
                    provider=self.provider.value,
                )
            if self.probe_error is not None:
                raise self.probe_error
            return ProbeResult(ok=True, message="Connection successful")
        finally:
            self.active_probes -= 1

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        if self.charge_delay:
            await asyncio.sleep(self.charge_delay)
        if self.charge_error is not None:
            raise self.charge_error
        self.charges[request.transaction_id] = request
        return ChargeResult(
            provider_reference=f"{self.provider.value}_stub_{uuid.uuid4().hex[:12]}",
            status=self.outcome,
            message=f"{self.display_name} stub {self.outcome.value}",
        )

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
        currency: str | None = None,
        *,
        test_mode: bool,
    ) -> RefundResult:
        self.refunds.append(provider_reference)
        return RefundResult(
            refund_reference=f"{self.provider.value}_refund_{uuid.uuid4().hex[:12]}",
            accepted=True,
            message="stub refund accepted",
        )

    def webhook_secret(self) -> str | None:
        return self.secret

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        status = _STUB_EVENTS.get(str(payload.get("type", "")))
        transaction_id = dig(payload, "data", "transaction_id")
        if status is None or not transaction_id:
            return None
        return WebhookOutcome(
            transaction_id=str(transaction_id),
            status=status,
            provider_reference=dig(payload, "data", "reference"),
            error_message=dig(payload, "data", "error"),
        )
