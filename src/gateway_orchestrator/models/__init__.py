"""ORM models."""

from gateway_orchestrator.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from gateway_orchestrator.models.gateway import (
    GatewayConfigChange,
    GatewayTransaction,
    PaymentGateway,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    "PaymentGateway",
    "GatewayTransaction",
    "GatewayConfigChange",
]
