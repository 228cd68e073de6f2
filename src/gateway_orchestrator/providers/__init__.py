"""Payment provider adapters."""

from __future__ import annotations

import os
from collections.abc import Mapping

import httpx

from gateway_orchestrator.config import Settings
from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    ProbeResult,
    ProviderAdapter,
    RefundResult,
    WebhookOutcome,
)
from gateway_orchestrator.providers.cashfree import CashfreeAdapter
from gateway_orchestrator.providers.http import HttpProviderAdapter, sign_payload, verify_signature
from gateway_orchestrator.providers.paypal import PayPalAdapter
from gateway_orchestrator.providers.razorpay import RazorpayAdapter
from gateway_orchestrator.providers.stripe import StripeAdapter
from gateway_orchestrator.providers.stub import StubProviderAdapter
from gateway_orchestrator.types import Provider

ADAPTER_CLASSES: dict[Provider, type[HttpProviderAdapter]] = {
    Provider.STRIPE: StripeAdapter,
    Provider.PAYPAL: PayPalAdapter,
    Provider.RAZORPAY: RazorpayAdapter,
    Provider.CASHFREE: CashfreeAdapter,
}


def build_adapters(
    settings: Settings,
    *,
    environ: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[Provider, ProviderAdapter]:
    """Create one adapter per known provider.

    PAYMENT_ADAPTERS=stub swaps every provider for a StubProviderAdapter
    carrying the live adapter's name, currencies and countries.
    """
    env = environ if environ is not None else os.environ
    adapters: dict[Provider, ProviderAdapter] = {}
    for provider, cls in ADAPTER_CLASSES.items():
        if settings.payment_adapters == "stub":
            adapters[provider] = StubProviderAdapter(
                provider,
                display_name=cls.display_name,
                supported_currencies=cls.supported_currencies,
                supported_countries=cls.supported_countries,
                credential_env_vars=cls.credential_env_vars,
                secret=env.get(cls.webhook_secret_env) or None,
            )
        else:
            adapters[provider] = cls(
                environ=environ,
                transport=transport,
                timeout=settings.charge_timeout_seconds,
            )
    return adapters


__all__ = [
    "ADAPTER_CLASSES",
    "build_adapters",
    "ChargeRequest",
    "ChargeResult",
    "ProbeResult",
    "ProviderAdapter",
    "RefundResult",
    "WebhookOutcome",
    "CashfreeAdapter",
    "PayPalAdapter",
    "RazorpayAdapter",
    "StripeAdapter",
    "StubProviderAdapter",
    "sign_payload",
    "verify_signature",
]
