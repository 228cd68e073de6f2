"""Admin gateway configuration endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query, status

from gateway_orchestrator.api.dependencies import AdminPrincipal, AdminService
from gateway_orchestrator.api.schemas import (
    ConfigChangeResponse,
    ConnectionTestResponse,
    GatewayResponse,
    GatewayStatsResponse,
    GatewayStatsSummary,
    GatewayUpdate,
    StatusResponse,
    TransactionListResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/gateways", tags=["gateways"])


@router.get("", response_model=list[GatewayResponse])
async def list_gateways(
    service: AdminService,
    principal: AdminPrincipal,
) -> list[GatewayResponse]:
    """List gateways, primary first."""
    return [GatewayResponse.from_model(g) for g in await service.list_gateways()]


@router.get("/{provider}", response_model=GatewayResponse)
async def get_gateway(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
) -> GatewayResponse:
    """Get one gateway."""
    return GatewayResponse.from_model(await service.get_gateway(provider))


@router.put("/{provider}", response_model=GatewayResponse)
async def update_gateway(
    provider: str,
    body: GatewayUpdate,
    service: AdminService,
    principal: AdminPrincipal,
) -> GatewayResponse:
    """Update gateway settings.

    isPrimary cannot be set here; use POST /gateways/{provider}/primary.
    """
    gateway = await service.update_gateway(
        provider,
        body.patch(),
        principal,
        expected_version=body.expected_version,
    )
    return GatewayResponse.from_model(gateway)


@router.post("/{provider}/primary", response_model=GatewayResponse)
async def set_primary(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
) -> GatewayResponse:
    """Make this gateway the primary one."""
    return GatewayResponse.from_model(await service.set_primary(provider, principal))


@router.post("/{provider}/refresh", response_model=StatusResponse)
async def refresh_status(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
) -> StatusResponse:
    """Probe the provider and store the result."""
    gateway = await service.refresh_status(provider, principal)
    return StatusResponse(
        provider=gateway.provider.value,
        config_status=gateway.config_status.value,
        status_message=gateway.status_message,
        last_status_check=gateway.last_status_check,
    )


@router.post("/{provider}/test", response_model=ConnectionTestResponse)
async def test_connection(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
) -> ConnectionTestResponse:
    """Test the provider connection."""
    outcome = await service.test_connection(provider, principal)
    return ConnectionTestResponse(success=outcome.success, message=outcome.message)


@router.get("/{provider}/stats", response_model=GatewayStatsResponse)
async def gateway_stats(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
) -> GatewayStatsResponse:
    """Counters, success rate and recent transactions."""
    gateway, stats = await service.stats(provider)
    return GatewayStatsResponse(
        gateway=GatewayResponse.from_model(gateway),
        stats=GatewayStatsSummary(
            total=stats.total,
            successful=stats.successful,
            failed=stats.failed,
            revenue=stats.revenue,
            success_rate=stats.success_rate,
        ),
        recent_transactions=[
            TransactionResponse.model_validate(t) for t in stats.recent_transactions
        ],
    )


@router.get(
    "/{provider}/transactions",
    response_model=TransactionListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_transactions(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> TransactionListResponse:
    """Most recent transactions of a gateway."""
    transactions = await service.transactions(provider, limit=limit)
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in transactions],
        total=len(transactions),
    )


@router.get("/{provider}/history", response_model=list[ConfigChangeResponse])
async def config_history(
    provider: str,
    service: AdminService,
    principal: AdminPrincipal,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[ConfigChangeResponse]:
    """Audit trail of configuration changes."""
    return [
        ConfigChangeResponse.from_model(c)
        for c in await service.config_history(provider, limit=limit)
    ]
