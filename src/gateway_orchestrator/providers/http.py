"""Shared HTTP plumbing for REST-based provider adapters.

Translates transport and HTTP failures into the shared error taxonomy:
- timeouts and network errors -> ConnectivityError
- 401/403 -> ConfigurationError (credentials rejected)
- 5xx -> ConnectivityError (provider unavailable, retryable)
- other 4xx -> ProviderError
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import httpx

from gateway_orchestrator.errors import (
    ConfigurationError,
    ConnectivityError,
    ProviderError,
)
from gateway_orchestrator.providers.base import (
    ChargeRequest,
    ChargeResult,
    CredentialSource,
    ProbeResult,
    RefundResult,
    WebhookOutcome,
)
from gateway_orchestrator.types import Provider

logger = logging.getLogger(__name__)


class HttpProviderAdapter:
    """Base class for adapters that talk to a provider's REST API."""

    provider: Provider
    display_name: str
    supported_currencies: tuple[str, ...] = ()
    supported_countries: tuple[str, ...] = ()
    credential_env_vars: tuple[str, ...] = ()
    webhook_secret_env: str = ""
    signature_header: str = "X-Webhook-Signature"

    live_base_url: str = ""
    sandbox_base_url: str = ""

    probe_method: str = "GET"
    probe_path: str = "/"

    def __init__(
        self,
        *,
        environ: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        """Initialize adapter.

        Args:
            environ: Credential source; defaults to os.environ.
            transport: Optional httpx transport (tests use httpx.MockTransport).
            timeout: Per-request timeout in seconds.
        """
        self.credentials = CredentialSource(self.credential_env_vars, environ)
        self._environ = environ
        self._transport = transport
        self._timeout = timeout

    def missing_credentials(self) -> list[str]:
        return self.credentials.missing()

    def webhook_secret(self) -> str | None:
        if not self.webhook_secret_env:
            return None
        return self.credentials.get(self.webhook_secret_env) or None

    def base_url(self, test_mode: bool) -> str:
        if test_mode and self.sandbox_base_url:
            return self.sandbox_base_url
        return self.live_base_url

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        """Headers authenticating a request; may call the provider (OAuth)."""
        return {}

    @asynccontextmanager
    async def connect(self, test_mode: bool) -> AsyncIterator[httpx.AsyncClient]:
        """Open a client, mapping transport failures to ConnectivityError."""
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                provider=self.provider.value,
            )
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url(test_mode),
                transport=self._transport,
                timeout=self._timeout,
            ) as client:
                yield client
        except httpx.TimeoutException as exc:
            raise ConnectivityError(provider=self.provider.value) from exc
        except httpx.TransportError as exc:
            logger.warning("%s transport error: %s", self.provider.value, exc)
            raise ConnectivityError(provider=self.provider.value) from exc

    async def request(
        self,
        method: str,
        path: str,
        *,
        test_mode: bool,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body."""
        async with self.connect(test_mode) as client:
            merged = {**await self.auth_headers(client), **(headers or {})}
            response = await client.request(method, path, headers=merged, **kwargs)
            return self.check_response(response)

    def check_response(self, response: httpx.Response) -> dict[str, Any]:
        """Raise the matching taxonomy error for a non-2xx response."""
        status = response.status_code
        if status in (401, 403):
            raise ConfigurationError(self.error_reason(response), provider=self.provider.value)
        if status >= 500:
            raise ConnectivityError(
                f"{self.display_name} unavailable (HTTP {status})",
                provider=self.provider.value,
            )
        if status >= 400:
            raise ProviderError(
                self.error_reason(response),
                provider=self.provider.value,
                status_code=status,
            )
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}

    def error_reason(self, response: httpx.Response) -> str:
        """Best-effort human readable reason from an error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                reason = error.get("description") or error.get("message")
                if reason:
                    return str(reason)
            for key in ("error_description", "message", "error"):
                if isinstance(body.get(key), str) and body[key]:
                    return body[key]
        return f"HTTP {response.status_code}"

    async def probe(self, *, test_mode: bool) -> ProbeResult:
        await self.request(self.probe_method, self.probe_path, test_mode=test_mode)
        return ProbeResult(ok=True, message="Connection successful")

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        raise NotImplementedError

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
        currency: str | None = None,
        *,
        test_mode: bool,
    ) -> RefundResult:
        raise NotImplementedError

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookOutcome | None:
        raise NotImplementedError


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of a raw webhook body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time comparison of a webhook signature."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip())


def dig(payload: Any, *path: str) -> Any:
    """Walk nested dicts, returning None when a key is missing or a node is not a dict."""
    node: Any = payload
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def basic_auth(username: str, password: str) -> str:
    """Value of an HTTP Basic Authorization header."""
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"
