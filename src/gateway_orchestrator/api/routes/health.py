"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from gateway_orchestrator.api.dependencies import DbSession
from gateway_orchestrator.services import GatewayRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class GatewayAvailability(BaseModel):
    """How many gateways checkout could currently use."""

    total: int
    available: int
    primary: str | None = None


class HealthResponse(BaseModel):
    """Health check response.

    status is "degraded" when the database is unreachable or no gateway is
    enabled and configured.
    """

    status: str
    timestamp: datetime
    database: str
    gateways: GatewayAvailability | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check database reachability and cached gateway availability."""
    gateways: GatewayAvailability | None = None
    try:
        snapshots = await GatewayRegistry(db).snapshots()
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        database = "unhealthy"
    else:
        database = "healthy"
        primary = next((g for g in snapshots if g.is_primary), None)
        gateways = GatewayAvailability(
            total=len(snapshots),
            available=sum(1 for g in snapshots if g.is_available),
            primary=primary.provider.value if primary is not None else None,
        )

    healthy = database == "healthy" and gateways is not None and gateways.available > 0
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        gateways=gateways,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
