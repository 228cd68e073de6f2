"""Checkout flow: select a gateway, record the attempt, charge, finalize."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway_orchestrator.database import get_session
from gateway_orchestrator.errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    NoAvailableGatewayError,
    ProviderError,
)
from gateway_orchestrator.models import GatewayTransaction
from gateway_orchestrator.providers.base import ChargeRequest, ChargeResult, ProviderAdapter
from gateway_orchestrator.services.ledger import (
    TIMEOUT_ERROR_CODE,
    TransactionLedger,
    parse_amount,
)
from gateway_orchestrator.services.registry import GatewayRegistry
from gateway_orchestrator.services.selector import GatewaySelector
from gateway_orchestrator.types import GatewaySnapshot, Provider, TransactionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    """Stored transaction plus what the storefront needs to continue."""

    transaction: GatewayTransaction
    provider: Provider
    redirect_url: str | None = None


class CheckoutService:
    """Takes a payment through the selected gateway.

    The attempt is committed as pending before the provider is called, so a
    crash mid-call leaves a row the reconciliation sweep can expire.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        adapters: Mapping[Provider, ProviderAdapter],
        charge_timeout: float = 30.0,
    ):
        self.session_factory = session_factory
        self.adapters = adapters
        self.charge_timeout = charge_timeout

    async def charge(
        self,
        amount: Decimal | str | int,
        currency: str,
        country: str | None = None,
        provider: str | None = None,
        *,
        payment_method: str | None = None,
        customer_email: str | None = None,
        customer_name: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CheckoutResult:
        """Charge a customer.

        Raises:
            ValidationError: bad amount, currency or provider name.
            NoAvailableGatewayError: no eligible gateway.
        """
        amount = parse_amount(amount)

        async with get_session(self.session_factory) as session:
            snapshots = await GatewayRegistry(session).snapshots()

        gateway = GatewaySelector.select(snapshots, currency, country, provider)
        adapter = self.adapters.get(gateway.provider)
        if adapter is None:
            raise NoAvailableGatewayError(
                f"No adapter for {gateway.provider.value}", provider=gateway.provider.value
            )

        async with get_session(self.session_factory) as session:
            transaction = await TransactionLedger(session).record_attempt(
                gateway.id,
                amount,
                currency,
                payment_method=payment_method,
                customer_email=customer_email,
                customer_name=customer_name,
            )

        request = ChargeRequest(
            transaction_id=transaction.transaction_id,
            amount=transaction.amount,
            currency=transaction.currency,
            test_mode=gateway.is_test_mode,
            customer_email=customer_email,
            customer_name=customer_name,
            payment_method=payment_method,
            description=description,
            metadata=metadata or {},
        )

        result: ChargeResult | None = None
        error_code: str | None = None
        error_message: str | None = None
        try:
            result = await asyncio.wait_for(adapter.charge(request), self.charge_timeout)
        except asyncio.TimeoutError:
            error_code = TIMEOUT_ERROR_CODE
            error_message = f"Provider did not answer within {self.charge_timeout:g}s"
        except (ConnectivityError, ConfigurationError, ProviderError) as exc:
            error_code = exc.code.lower()
            error_message = exc.message

        if result is None:
            logger.warning(
                "Charge %s via %s failed: %s",
                transaction.transaction_id,
                gateway.provider.value,
                error_message,
            )
            stored = await self._finalize(
                gateway,
                transaction.transaction_id,
                TransactionStatus.FAILED,
                error_code=error_code,
                error_message=error_message,
            )
            return CheckoutResult(transaction=stored, provider=gateway.provider)

        if result.status.is_terminal:
            failed = result.status is TransactionStatus.FAILED
            stored = await self._finalize(
                gateway,
                transaction.transaction_id,
                result.status,
                provider_reference=result.provider_reference or None,
                error_code="declined" if failed else None,
                error_message=(result.message or None) if failed else None,
            )
        else:
            async with get_session(self.session_factory) as session:
                stored = await TransactionLedger(session).attach_reference(
                    transaction.transaction_id,
                    result.provider_reference,
                    gateway_id=gateway.id,
                )

        return CheckoutResult(
            transaction=stored,
            provider=gateway.provider,
            redirect_url=result.redirect_url,
        )

    async def _finalize(
        self,
        gateway: GatewaySnapshot,
        transaction_id: str,
        status: TransactionStatus,
        **kwargs: Any,
    ) -> GatewayTransaction:
        try:
            async with get_session(self.session_factory) as session:
                outcome = await TransactionLedger(session).finalize(
                    transaction_id, status, gateway_id=gateway.id, **kwargs
                )
            return outcome.transaction
        except ConflictError as exc:
            # A webhook finalized the transaction first; keep its outcome.
            logger.warning(
                "Charge %s already %s, provider reported %s",
                transaction_id,
                exc.current,
                exc.requested,
            )
            async with get_session(self.session_factory) as session:
                return await TransactionLedger(session).get_transaction(
                    transaction_id, gateway.id
                )
