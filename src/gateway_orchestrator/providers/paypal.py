"""PayPal adapter (Orders v2 API)."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import httpx

from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    ProbeResult,
    RefundResult,
    WebhookOutcome,
)
from gateway_orchestrator.providers.http import HttpProviderAdapter, basic_auth, dig
from gateway_orchestrator.types import Provider, TransactionStatus

_ORDER_STATUS = {
    "COMPLETED": TransactionStatus.SUCCEEDED,
    "VOIDED": TransactionStatus.FAILED,
}


class PayPalAdapter(HttpProviderAdapter):
    """PayPal checkout orders authenticated with an OAuth client-credentials token."""

    provider = Provider.PAYPAL
    display_name = "PayPal"
    supported_currencies = ("USD", "EUR", "GBP", "INR")
    supported_countries = ("US", "GB", "EU", "IN")
    credential_env_vars = ("PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET")
    webhook_secret_env = "PAYPAL_WEBHOOK_SECRET"
    signature_header = "Paypal-Transmission-Sig"

    live_base_url = "https://api-m.paypal.com"
    sandbox_base_url = "https://api-m.sandbox.paypal.com"

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            "/v1/oauth2/token",
            headers={
                "Authorization": basic_auth(
                    self.credentials.get("PAYPAL_CLIENT_ID"),
                    self.credentials.get("PAYPAL_CLIENT_SECRET"),
                )
            },
            data={"grant_type": "client_credentials"},
        )
        body = self.check_response(response)
        return str(body.get("access_token", ""))

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._access_token(client)}"}

    async def probe(self, *, test_mode: bool) -> ProbeResult:
        async with self.connect(test_mode) as client:
            await self._access_token(client)
        return ProbeResult(ok=True, message="Connection successful")

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        purchase_unit: dict[str, Any] = {
            "custom_id": request.transaction_id,
            "amount": {
                "currency_code": request.currency.upper(),
                "value": f"{request.amount:.2f}",
            },
        }
        if request.description:
            purchase_unit["description"] = request.description

        body = await self.request(
            "POST",
            "/v2/checkout/orders",
            test_mode=request.test_mode,
            headers={"PayPal-Request-Id": request.transaction_id},
            json={"intent": "CAPTURE", "purchase_units": [purchase_unit]},
        )

        approve = next(
            (
                link.get("href")
                for link in body.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        return ChargeResult(
            provider_reference=str(body.get("id", "")),
            status=_ORDER_STATUS.get(body.get("status", ""), TransactionStatus.PENDING),
            message=str(body.get("status", "")),
            redirect_url=approve,
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
        if amount is not None and currency:
            payload["amount"] = {"value": f"{amount:.2f}", "currency_code": currency.upper()}
        body = await self.request(
            "POST",
            f"/v2/payments/captures/{provider_reference}/refund",
            test_mode=test_mode,
            json=payload,
        )
        return RefundResult(
            refund_reference=str(body.get("id", "")),
            accepted=body.get("status") in ("COMPLETED", "PENDING"),
            message=str(body.get("status", "")),
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        event_type = payload.get("event_type")
        transaction_id = dig(payload, "resource", "custom_id")
        if not transaction_id:
            return None

        if event_type == "PAYMENT.CAPTURE.COMPLETED":
            status = TransactionStatus.SUCCEEDED
        elif event_type in ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"):
            status = TransactionStatus.FAILED
        else:
            return None

        return WebhookOutcome(
            transaction_id=str(transaction_id),
            status=status,
            provider_reference=dig(payload, "resource", "id"),
            error_message=dig(payload, "resource", "status_details", "reason"),
        )
