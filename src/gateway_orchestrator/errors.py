"""Error taxonomy for the gateway orchestration layer.

Configuration and connectivity errors are recovered locally and cached as
gateway status. Validation, not-found and conflict errors are returned to the
caller with a precise reason. NoAvailableGatewayError is what checkout sees
when nothing can take the payment.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all expected orchestration failures."""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, *, provider: str | None = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ConfigurationError(GatewayError):
    """Credentials are missing or were rejected by the provider."""

    code = "CONFIGURATION_ERROR"


class ConnectivityError(GatewayError):
    """Network failure or timeout talking to a provider. Retryable."""

    code = "CONNECTIVITY_ERROR"

    def __init__(self, message: str = "connectivity timeout", *, provider: str | None = None):
        super().__init__(message, provider=provider)


class ProviderError(GatewayError):
    """The provider rejected a request for a reason other than credentials."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider=provider)


class ValidationError(GatewayError):
    """Bad input, rejected before any mutation."""

    code = "VALIDATION_ERROR"


class GatewayDisabledError(ValidationError):
    """A disabled gateway cannot become primary."""

    code = "GATEWAY_DISABLED"


class NotFoundError(GatewayError):
    """The requested gateway or transaction does not exist."""

    code = "NOT_FOUND"


class ConflictError(GatewayError):
    """Concurrent writes disagree; the first terminal write wins."""

    code = "CONFLICT"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        current: str | None = None,
        requested: str | None = None,
    ):
        self.current = current
        self.requested = requested
        super().__init__(message, provider=provider)


class NoAvailableGatewayError(GatewayError):
    """No eligible gateway for a checkout."""

    code = "NO_AVAILABLE_GATEWAY"
    public_message = "payment temporarily unavailable"
