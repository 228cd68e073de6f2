"""Pydantic schemas for API request/response models.

JSON on the wire is camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gateway_orchestrator.models import GatewayConfigChange, PaymentGateway
from gateway_orchestrator.types import TransactionStatus, success_rate


class CamelModel(BaseModel):
    """Base schema serializing to camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Gateway schemas
# ============================================================================


class GatewayResponse(CamelModel):
    """Schema for gateway response."""

    id: UUID
    provider: str
    display_name: str
    is_enabled: bool
    is_test_mode: bool
    is_primary: bool
    supported_currencies: list[str]
    supported_countries: list[str]
    config_status: str
    last_status_check: datetime | None = None
    status_message: str | None = None
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    total_revenue: Decimal
    success_rate: float
    webhook_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_configured_by: str | None = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_model(cls, gateway: PaymentGateway) -> GatewayResponse:
        return cls(
            id=gateway.id,
            provider=gateway.provider.value,
            display_name=gateway.display_name,
            is_enabled=gateway.is_enabled,
            is_test_mode=gateway.is_test_mode,
            is_primary=gateway.is_primary,
            supported_currencies=list(gateway.supported_currencies or []),
            supported_countries=list(gateway.supported_countries or []),
            config_status=gateway.config_status.value,
            last_status_check=gateway.last_status_check,
            status_message=gateway.status_message,
            total_transactions=gateway.total_transactions,
            successful_transactions=gateway.successful_transactions,
            failed_transactions=gateway.failed_transactions,
            total_revenue=gateway.total_revenue,
            success_rate=success_rate(
                gateway.successful_transactions, gateway.total_transactions
            ),
            webhook_url=gateway.webhook_url,
            metadata=dict(gateway.metadata_json or {}),
            last_configured_by=gateway.last_configured_by,
            created_at=gateway.created_at,
            updated_at=gateway.updated_at,
            version=gateway.version,
        )


class GatewayUpdate(CamelModel):
    """Schema for an admin patch. Unknown keys (including isPrimary) are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    is_enabled: bool | None = None
    is_test_mode: bool | None = None
    display_name: str | None = Field(default=None, min_length=1, max_length=100)
    webhook_url: str | None = None
    metadata: dict[str, Any] | None = None
    expected_version: int | None = None

    def patch(self) -> dict[str, Any]:
        """Fields the client actually sent, minus the concurrency marker."""
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class StatusResponse(CamelModel):
    """Schema for a status refresh result."""

    provider: str
    config_status: str
    status_message: str | None = None
    last_status_check: datetime | None = None


class ConnectionTestResponse(CamelModel):
    """Schema for a connection test result."""

    success: bool
    message: str


class ConfigChangeResponse(CamelModel):
    """Schema for an audit trail entry."""

    id: UUID
    provider: str
    field: str
    before: Any = None
    after: Any = None
    actor: str
    created_at: datetime

    @classmethod
    def from_model(cls, change: GatewayConfigChange) -> ConfigChangeResponse:
        return cls(
            id=change.id,
            provider=change.provider.value,
            field=change.field,
            before=change.before,
            after=change.after,
            actor=change.actor,
            created_at=change.created_at,
        )


# ============================================================================
# Transaction schemas
# ============================================================================


class TransactionResponse(CamelModel):
    """Schema for transaction response."""

    id: UUID
    transaction_id: str
    gateway_id: UUID
    provider_reference: str | None = None
    amount: Decimal
    currency: str
    status: TransactionStatus
    payment_method: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime
    finalized_at: datetime | None = None


class TransactionListResponse(CamelModel):
    """Schema for listing transactions."""

    items: list[TransactionResponse]
    total: int


class GatewayStatsSummary(CamelModel):
    """Counters of one gateway."""

    total: int
    successful: int
    failed: int
    revenue: Decimal
    success_rate: float


class GatewayStatsResponse(CamelModel):
    """Schema for gateway statistics."""

    gateway: GatewayResponse
    stats: GatewayStatsSummary
    recent_transactions: list[TransactionResponse]


# ============================================================================
# Checkout schemas
# ============================================================================


class ChargeCreate(CamelModel):
    """Schema for creating a charge."""

    amount: Decimal
    currency: str = Field(min_length=3, max_length=3)
    country: str | None = Field(default=None, min_length=2, max_length=2)
    provider: str | None = None
    payment_method: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChargeResponse(TransactionResponse):
    """Schema for a charge result."""

    provider: str
    redirect_url: str | None = None


# ============================================================================
# Webhook schemas
# ============================================================================


class WebhookResponse(CamelModel):
    """Schema for a webhook acknowledgement."""

    provider: str
    result: str
    transaction_id: str | None = None
    status: str | None = None
