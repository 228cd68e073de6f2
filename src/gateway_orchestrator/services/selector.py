"""Gateway selection for checkout.

Pure function over registry snapshots: no I/O, no randomness. The same
snapshots and context always produce the same gateway.
"""

from __future__ import annotations

from collections.abc import Iterable

from gateway_orchestrator.errors import NoAvailableGatewayError, ValidationError
from gateway_orchestrator.types import GatewaySnapshot, Provider


class GatewaySelector:
    """Chooses the gateway that should take a payment.

    Rules, in order:
    1. An explicit provider is used only if it is eligible.
    2. Eligible = enabled, configured, supports the currency, and lists the
       country (or lists no countries at all).
    3. The primary wins if eligible.
    4. Otherwise highest success rate; ties by earliest creation, then
       provider name.
    """

    @staticmethod
    def ranking_key(gateway: GatewaySnapshot) -> tuple[float, object, str]:
        """Sort key: best success rate first, then oldest, then name."""
        return (-gateway.success_rate, gateway.created_at, gateway.provider.value)

    @classmethod
    def eligible(
        cls,
        gateways: Iterable[GatewaySnapshot],
        currency: str,
        country: str | None = None,
    ) -> list[GatewaySnapshot]:
        """Eligible gateways in ranking order."""
        candidates = [
            g for g in gateways if g.is_available and g.supports(currency, country)
        ]
        return sorted(candidates, key=cls.ranking_key)

    @classmethod
    def select(
        cls,
        gateways: Iterable[GatewaySnapshot],
        currency: str,
        country: str | None = None,
        explicit_provider: str | Provider | None = None,
    ) -> GatewaySnapshot:
        """Select a gateway for a transaction.

        Raises:
            ValidationError: currency missing or explicit provider unknown.
            NoAvailableGatewayError: nothing eligible.
        """
        if not currency or not currency.strip():
            raise ValidationError("currency is required")
        currency = currency.strip().upper()
        country = country.strip().upper() if country and country.strip() else None

        snapshots = list(gateways)

        if explicit_provider is not None:
            provider = Provider.parse(explicit_provider)
            if provider is None:
                raise ValidationError(f"Unknown payment provider: {explicit_provider}")
            for gateway in snapshots:
                if (
                    gateway.provider is provider
                    and gateway.is_available
                    and gateway.supports(currency, country)
                ):
                    return gateway
            raise NoAvailableGatewayError(
                f"{provider.value} cannot take {currency} payments"
                + (f" from {country}" if country else ""),
                provider=provider.value,
            )

        eligible = cls.eligible(snapshots, currency, country)
        if not eligible:
            raise NoAvailableGatewayError(
                f"No gateway available for {currency}" + (f" in {country}" if country else "")
            )

        for gateway in eligible:
            if gateway.is_primary:
                return gateway
        return eligible[0]
