"""Orchestration services."""

from gateway_orchestrator.services.admin import AdminConfigService
from gateway_orchestrator.services.checkout import CheckoutResult, CheckoutService
from gateway_orchestrator.services.ledger import (
    FinalizeResult,
    GatewayStats,
    TransactionLedger,
)
from gateway_orchestrator.services.maintenance import GatewayMaintenance
from gateway_orchestrator.services.registry import GatewayRegistry
from gateway_orchestrator.services.selector import GatewaySelector
from gateway_orchestrator.services.status_probe import ProbeOutcome, StatusProbe
from gateway_orchestrator.services.webhooks import WebhookProcessor, WebhookResult

__all__ = [
    "AdminConfigService",
    "CheckoutResult",
    "CheckoutService",
    "FinalizeResult",
    "GatewayStats",
    "TransactionLedger",
    "GatewayMaintenance",
    "GatewayRegistry",
    "GatewaySelector",
    "ProbeOutcome",
    "StatusProbe",
    "WebhookProcessor",
    "WebhookResult",
]
