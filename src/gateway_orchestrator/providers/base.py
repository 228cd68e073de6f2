"""Base protocol and types for payment provider adapters.

All provider adapters must implement the ProviderAdapter protocol. The
orchestrator uses these adapters without knowing provider-specific details;
every provider failure surfaces as one of the errors in
gateway_orchestrator.errors.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from gateway_orchestrator.types import Provider, TransactionStatus


@dataclass(frozen=True)
class ProbeResult:
    """Result of a credential-validating probe call."""

    ok: bool
    message: str = ""


@dataclass(frozen=True)
class ChargeRequest:
    """A charge to submit to a provider.

    transaction_id is our merchant reference; providers echo it back in
    webhooks so the ledger can match the outcome.
    """

    transaction_id: str
    amount: Decimal
    currency: str
    test_mode: bool = True
    customer_email: str | None = None
    customer_name: str | None = None
    payment_method: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChargeResult:
    """Result of submitting a charge."""

    provider_reference: str
    status: TransactionStatus
    message: str = ""
    redirect_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund request."""

    refund_reference: str
    accepted: bool
    message: str = ""


@dataclass(frozen=True)
class WebhookOutcome:
    """Transaction outcome extracted from a provider webhook payload."""

    transaction_id: str
    status: TransactionStatus
    provider_reference: str | None = None
    error_message: str | None = None


class ProviderAdapter(Protocol):
    """Protocol for payment provider adapters.

    Each provider has its own adapter implementing this protocol.
    """

    provider: Provider
    display_name: str
    supported_currencies: tuple[str, ...]
    supported_countries: tuple[str, ...]
    credential_env_vars: tuple[str, ...]
    signature_header: str

    def missing_credentials(self) -> list[str]:
        """Names of required credential variables that are not set."""
        ...

    async def probe(self, *, test_mode: bool) -> ProbeResult:
        """Validate credentials with a lightweight call.

        Raises:
            ConfigurationError: credentials missing or rejected.
            ConnectivityError: network failure or timeout.
        """
        ...

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        """Submit a charge.

        Raises:
            ConfigurationError, ConnectivityError, ProviderError
        """
        ...

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
        currency: str | None = None,
        *,
        test_mode: bool,
    ) -> RefundResult:
        """Refund a previously captured charge, fully or partially."""
        ...

    def webhook_secret(self) -> str | None:
        """Secret used to verify inbound webhooks, if configured."""
        ...

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        """Extract a transaction outcome; None for event types we ignore."""
        ...


class CredentialSource:
    """Reads provider credentials from a fixed set of environment variables."""

    def __init__(self, names: tuple[str, ...], environ: Mapping[str, str] | None = None):
        self.names = names
        self._environ = environ

    def _env(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def missing(self) -> list[str]:
        env = self._env()
        return [name for name in self.names if not env.get(name)]

    def get(self, name: str) -> str:
        return self._env().get(name, "")


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to the smallest currency unit (cents, paise)."""
    return int((amount * 100).quantize(Decimal("1")))
