"""Payment gateway models.

Covers the persisted state of the orchestration layer:
- Gateways (one row per provider, with cached health and counters)
- Gateway transactions (one row per charge attempt)
- Configuration changes (admin audit trail)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from gateway_orchestrator.models.base import Base, JSONType, TimestampMixin, UTCDateTime, utcnow
from gateway_orchestrator.types import ConfigStatus, Provider, TransactionStatus


def _enum_column(enum_cls: type, name: str) -> SAEnum:
    """Non-native enum stored by value, validated at the storage boundary."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class PaymentGateway(TimestampMixin, Base):
    """Configuration and running statistics for one payment provider.

    At most one row has is_primary = true. Rows are never deleted; a provider
    can only be disabled.
    """

    __tablename__ = "payment_gateway"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    provider: Mapped[Provider] = mapped_column(
        _enum_column(Provider, "payment_provider"), nullable=False
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_test_mode: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_primary: Mapped[bool] = mapped_column(nullable=False, default=False)

    supported_currencies: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    supported_countries: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    config_status: Mapped[ConfigStatus] = mapped_column(
        _enum_column(ConfigStatus, "gateway_config_status"),
        nullable=False,
        default=ConfigStatus.NOT_CONFIGURED,
    )
    last_status_check: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )

    webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    last_configured_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("provider", name="payment_gateway_provider_uq"),
        CheckConstraint(
            "total_transactions >= 0 AND successful_transactions >= 0 "
            "AND failed_transactions >= 0",
            name="payment_gateway_counters_ck",
        ),
        CheckConstraint("total_revenue >= 0", name="payment_gateway_revenue_ck"),
    )


class GatewayTransaction(TimestampMixin, Base):
    """One charge attempt against a gateway.

    Created as pending; moved to a terminal status exactly once, either by
    the synchronous provider response, a webhook, or the stale-pending sweep.
    """

    __tablename__ = "gateway_transaction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    gateway_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_gateway.id"), nullable=False
    )
    provider_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum_column(TransactionStatus, "gateway_transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint("gateway_id", "transaction_id", name="gateway_transaction_ref_uq"),
        CheckConstraint("amount > 0", name="gateway_transaction_amount_ck"),
        Index("gateway_transaction_by_status", "status", "created_at"),
        Index("gateway_transaction_by_ref", "transaction_id"),
    )


class GatewayConfigChange(TimestampMixin, Base):
    """Audit trail of admin changes to gateway configuration."""

    __tablename__ = "gateway_config_change"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    provider: Mapped[Provider] = mapped_column(
        _enum_column(Provider, "payment_provider"), nullable=False
    )
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    before: Mapped[Any] = mapped_column(JSONType, nullable=True)
    after: Mapped[Any] = mapped_column(JSONType, nullable=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (Index("gateway_config_change_by_provider", "provider", "created_at"),)
