"""Razorpay adapter (Orders API)."""

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
from gateway_orchestrator.providers.http import HttpProviderAdapter, basic_auth, dig
from gateway_orchestrator.types import Provider, TransactionStatus


class RazorpayAdapter(HttpProviderAdapter):
    """Razorpay orders.

    An order is created server side; the customer pays through Razorpay
    Checkout and the outcome arrives as a payment.captured / payment.failed
    webhook.
    """

    provider = Provider.RAZORPAY
    display_name = "Razorpay"
    supported_currencies = ("INR", "USD")
    supported_countries = ("IN", "US")
    credential_env_vars = ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET")
    webhook_secret_env = "RAZORPAY_WEBHOOK_SECRET"
    signature_header = "X-Razorpay-Signature"

    live_base_url = "https://api.razorpay.com"

    probe_method = "GET"
    probe_path = "/v1/orders?count=1"

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        return {
            "Authorization": basic_auth(
                self.credentials.get("RAZORPAY_KEY_ID"),
                self.credentials.get("RAZORPAY_KEY_SECRET"),
            )
        }

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        notes: dict[str, Any] = {"transaction_id": request.transaction_id}
        if request.customer_email:
            notes["customer_email"] = request.customer_email
        if request.customer_name:
            notes["customer_name"] = request.customer_name

        body = await self.request(
            "POST",
            "/v1/orders",
            test_mode=request.test_mode,
            json={
                "amount": to_minor_units(request.amount),
                "currency": request.currency.upper(),
                "receipt": request.transaction_id,
                "notes": notes,
            },
        )

        status = TransactionStatus.SUCCEEDED if body.get("status") == "paid" else TransactionStatus.PENDING
        return ChargeResult(
            provider_reference=str(body.get("id", "")),
            status=status,
            message=str(body.get("status", "")),
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
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = to_minor_units(amount)
        body = await self.request(
            "POST",
            f"/v1/payments/{provider_reference}/refund",
            test_mode=test_mode,
            json=payload,
        )
        return RefundResult(
            refund_reference=str(body.get("id", "")),
            accepted=body.get("status") in ("processed", "pending"),
            message=str(body.get("status", "")),
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        event = payload.get("event")
        payment = dig(payload, "payload", "payment", "entity")
        order = dig(payload, "payload", "order", "entity")
        transaction_id = dig(payment, "notes", "transaction_id") or dig(order, "receipt")
        if not transaction_id:
            return None

        if event in ("payment.captured", "order.paid"):
            status = TransactionStatus.SUCCEEDED
        elif event == "payment.failed":
            status = TransactionStatus.FAILED
        else:
            return None

        return WebhookOutcome(
            transaction_id=str(transaction_id),
            status=status,
            provider_reference=dig(payment, "id") or dig(order, "id"),
            error_message=dig(payment, "error_description"),
        )
