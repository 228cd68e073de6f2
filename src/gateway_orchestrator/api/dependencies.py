"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator, Mapping
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gateway_orchestrator.config import Principal, Settings
from gateway_orchestrator.providers.base import ProviderAdapter
from gateway_orchestrator.services import (
    AdminConfigService,
    CheckoutService,
    StatusProbe,
    WebhookProcessor,
)
from gateway_orchestrator.types import Provider


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_adapters(request: Request) -> Mapping[Provider, ProviderAdapter]:
    return request.app.state.adapters


def get_status_probe(request: Request) -> StatusProbe:
    return request.app.state.status_probe


def get_principal(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> Principal:
    """Resolve the bearer token to a principal."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    scheme, _, token = authorization.partition(" ")
    principal = settings.api_tokens.get(token.strip()) if scheme.lower() == "bearer" else None
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Only admins may read or change gateway configuration."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return principal


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
Adapters = Annotated[Mapping[Provider, ProviderAdapter], Depends(get_adapters)]
Probe = Annotated[StatusProbe, Depends(get_status_probe)]


def get_admin_service(db: DbSession, probe: Probe) -> AdminConfigService:
    return AdminConfigService(db, probe)


def get_checkout_service(request: Request, adapters: Adapters) -> CheckoutService:
    return CheckoutService(
        request.app.state.session_factory,
        adapters,
        charge_timeout=request.app.state.settings.charge_timeout_seconds,
    )


def get_webhook_processor(db: DbSession, adapters: Adapters) -> WebhookProcessor:
    return WebhookProcessor(db, adapters)


AdminService = Annotated[AdminConfigService, Depends(get_admin_service)]
Checkout = Annotated[CheckoutService, Depends(get_checkout_service)]
Webhooks = Annotated[WebhookProcessor, Depends(get_webhook_processor)]
