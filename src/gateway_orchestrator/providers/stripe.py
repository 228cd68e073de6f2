"""Stripe adapter (PaymentIntents API)."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import httpx

from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    RefundResult,
    WebhookOutcome,
    to_minor_units,
)
from gateway_orchestrator.providers.http import HttpProviderAdapter, dig
from gateway_orchestrator.types import Provider, TransactionStatus

_INTENT_STATUS = {
    "succeeded": TransactionStatus.SUCCEEDED,
    "canceled": TransactionStatus.FAILED,
}


class StripeAdapter(HttpProviderAdapter):
    """Stripe payment intents.

    Stripe has no separate sandbox host; test mode is implied by the key
    prefix (sk_test_ / sk_live_).
    """

    provider = Provider.STRIPE
    display_name = "Stripe"
    supported_currencies = ("USD", "EUR", "GBP", "INR", "CAD", "AUD")
    supported_countries = ()
    credential_env_vars = ("STRIPE_SECRET_KEY",)
    webhook_secret_env = "STRIPE_WEBHOOK_SECRET"
    signature_header = "Stripe-Signature"

    live_base_url = "https://api.stripe.com"

    probe_method = "GET"
    probe_path = "/v1/balance"

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials.get('STRIPE_SECRET_KEY')}"}

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        data: dict[str, Any] = {
            "amount": to_minor_units(request.amount),
            "currency": request.currency.lower(),
            "metadata[transaction_id]": request.transaction_id,
        }
        if request.customer_email:
            data["receipt_email"] = request.customer_email
        if request.description:
            data["description"] = request.description
        if request.payment_method:
            data["payment_method"] = request.payment_method
            data["confirm"] = "true"

        body = await self.request(
            "POST",
            "/v1/payment_intents",
            test_mode=request.test_mode,
            headers={"Idempotency-Key": request.transaction_id},
            data=data,
        )

        status = _INTENT_STATUS.get(body.get("status", ""), TransactionStatus.PENDING)
        if body.get("status") == "requires_payment_method" and body.get("last_payment_error"):
            status = TransactionStatus.FAILED

        return ChargeResult(
            provider_reference=str(body.get("id", "")),
            status=status,
            message=str(dig(body, "last_payment_error", "message") or ""),
            redirect_url=dig(body, "next_action", "redirect_to_url", "url"),
            raw=body,
        )

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
        currency: str | None = None,
        *,
        test_mode: bool,
    ) -> RefundResult:
        data: dict[str, Any] = {"payment_intent": provider_reference}
        if amount is not None:
            data["amount"] = to_minor_units(amount)
        body = await self.request("POST", "/v1/refunds", test_mode=test_mode, data=data)
        return RefundResult(
            refund_reference=str(body.get("id", "")),
            accepted=body.get("status") in ("succeeded", "pending"),
            message=str(body.get("status", "")),
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        event_type = payload.get("type")
        intent = dig(payload, "data", "object")
        transaction_id = dig(intent, "metadata", "transaction_id")
        if not transaction_id:
            return None

        if event_type == "payment_intent.succeeded":
            status = TransactionStatus.SUCCEEDED
        elif event_type in ("payment_intent.payment_failed", "payment_intent.canceled"):
            status = TransactionStatus.FAILED
        else:
            return None

        return WebhookOutcome(
            transaction_id=str(transaction_id),
            status=status,
            provider_reference=dig(intent, "id"),
            error_message=dig(intent, "last_payment_error", "message"),
        )
