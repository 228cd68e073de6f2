"""API routes."""

from gateway_orchestrator.api.routes.gateways import router as gateways_router
from gateway_orchestrator.api.routes.health import router as health_router
from gateway_orchestrator.api.routes.payments import router as payments_router
from gateway_orchestrator.api.routes.webhooks import router as webhooks_router

__all__ = ["gateways_router", "health_router", "payments_router", "webhooks_router"]
