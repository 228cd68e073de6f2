"""Cashfree adapter (PG Orders API)."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from uuid import uuid4

import httpx

from gateway_orchestrator.errors import ProviderError, ValidationError
from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    ProbeResult,
    RefundResult,
    WebhookOutcome,
)
from gateway_orchestrator.providers.http import HttpProviderAdapter, dig
from gateway_orchestrator.types import Provider, TransactionStatus

API_VERSION = "2023-08-01"

_ORDER_STATUS = {
    "PAID": TransactionStatus.SUCCEEDED,
    "EXPIRED": TransactionStatus.FAILED,
    "TERMINATED": TransactionStatus.FAILED,
}


class CashfreeAdapter(HttpProviderAdapter):
    """Cashfree payment gateway orders.

    Webhooks are signed with the client secret, so the webhook secret is
    CASHFREE_SECRET_KEY rather than a dedicated variable.
    """

    provider = Provider.CASHFREE
    display_name = "Cashfree"
    supported_currencies = ("INR", "USD", "EUR", "GBP")
    supported_countries = ("IN", "US", "GB", "EU")
    credential_env_vars = ("CASHFREE_APP_ID", "CASHFREE_SECRET_KEY")
    webhook_secret_env = "CASHFREE_SECRET_KEY"
    signature_header = "x-webhook-signature"

    live_base_url = "https://api.cashfree.com/pg"
    sandbox_base_url = "https://sandbox.cashfree.com/pg"

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        return {
            "x-client-id": self.credentials.get("CASHFREE_APP_ID"),
            "x-client-secret": self.credentials.get("CASHFREE_SECRET_KEY"),
            "x-api-version": API_VERSION,
        }

    async def probe(self, *, test_mode: bool) -> ProbeResult:
        # Looking up an order that cannot exist: 404 means the keys were accepted.
        try:
            await self.request("GET", f"/orders/probe_{uuid4().hex[:12]}", test_mode=test_mode)
        except ProviderError as exc:
            if exc.status_code != 404:
                raise
        return ProbeResult(ok=True, message="Connection successful")

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        customer: dict[str, Any] = {
            "customer_id": (request.customer_email or request.transaction_id).replace("@", "_"),
            "customer_phone": str(request.metadata.get("customer_phone", "9999999999")),
        }
        if request.customer_email:
            customer["customer_email"] = request.customer_email
        if request.customer_name:
            customer["customer_name"] = request.customer_name

        body = await self.request(
            "POST",
            "/orders",
            test_mode=request.test_mode,
            json={
                "order_id": request.transaction_id,
                "order_amount": float(request.amount),
                "order_currency": request.currency.upper(),
                "customer_details": customer,
                "order_note": request.description or "",
            },
        )

        return ChargeResult(
            provider_reference=str(body.get("cf_order_id") or body.get("order_id") or ""),
            status=_ORDER_STATUS.get(body.get("order_status", ""), TransactionStatus.PENDING),
            message=str(body.get("order_status", "")),
            redirect_url=body.get("payment_link"),
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
        if amount is None:
            raise ValidationError("Cashfree refunds require an amount", provider=self.provider.value)
        body = await self.request(
            "POST",
            f"/orders/{provider_reference}/refunds",
            test_mode=test_mode,
            json={"refund_amount": float(amount), "refund_id": f"refund_{uuid4().hex[:16]}"},
        )
        return RefundResult(
            refund_reference=str(body.get("refund_id", "")),
            accepted=body.get("refund_status") in ("SUCCESS", "PENDING"),
            message=str(body.get("refund_status", "")),
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        event_type = payload.get("type")
        transaction_id = dig(payload, "data", "order", "order_id")
        if not transaction_id:
            return None

        if event_type == "PAYMENT_SUCCESS_WEBHOOK":
            status = TransactionStatus.SUCCEEDED
        elif event_type in ("PAYMENT_FAILED_WEBHOOK", "PAYMENT_USER_DROPPED_WEBHOOK"):
            status = TransactionStatus.FAILED
        else:
            return None

        reference = dig(payload, "data", "payment", "cf_payment_id")
        return WebhookOutcome(
            transaction_id=str(transaction_id),
            status=status,
            provider_reference=str(reference) if reference is not None else None,
            error_message=dig(payload, "data", "payment", "payment_message"),
        )
