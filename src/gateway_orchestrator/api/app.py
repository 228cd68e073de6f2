"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from gateway_orchestrator.api.routes import (
    gateways_router,
    health_router,
    payments_router,
    webhooks_router,
)
from gateway_orchestrator.config import Settings, get_settings
from gateway_orchestrator.database import create_schema, get_engine, get_session, make_session_factory
from gateway_orchestrator.errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    GatewayDisabledError,
    GatewayError,
    NoAvailableGatewayError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from gateway_orchestrator.providers import build_adapters
from gateway_orchestrator.providers.base import ProviderAdapter
from gateway_orchestrator.services import GatewayMaintenance, GatewayRegistry, StatusProbe
from gateway_orchestrator.types import Provider

logger = logging.getLogger(__name__)

# Most specific first: GatewayDisabledError is a ValidationError.
ERROR_STATUS: list[tuple[type[GatewayError], int]] = [
    (GatewayDisabledError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NoAvailableGatewayError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConnectivityError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: GatewayError) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def bootstrap_gateways(
    session_factory: async_sessionmaker[AsyncSession],
    adapters: Mapping[Provider, ProviderAdapter],
    default_primary: str | None,
) -> None:
    """Repair the single-primary invariant, then create missing gateway rows."""
    async with get_session(session_factory) as session:
        registry = GatewayRegistry(session)
        await registry.repair_primary()
        created = await registry.bootstrap(adapters.values(), default_primary)
    if created:
        logger.info("Bootstrapped gateways: %s", ", ".join(p.value for p in created))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    session_factory = app.state.session_factory

    # Startup
    if settings.auto_create_schema:
        await create_schema(app.state.engine)
    await bootstrap_gateways(session_factory, app.state.adapters, settings.default_primary_provider)

    maintenance: GatewayMaintenance | None = None
    if settings.background_tasks_enabled:
        maintenance = GatewayMaintenance(
            session_factory,
            app.state.status_probe,
            grace=timedelta(minutes=settings.pending_grace_minutes),
            sweep_interval=settings.sweep_interval_seconds,
            refresh_interval=settings.status_refresh_interval_seconds,
        )
        maintenance.start()
    app.state.maintenance = maintenance

    yield

    # Shutdown
    if maintenance is not None:
        await maintenance.stop()
    await app.state.engine.dispose()


def create_app(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    adapters: Mapping[Provider, ProviderAdapter] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    engine = engine or get_engine(settings)
    session_factory = make_session_factory(engine)
    if adapters is None:
        adapters = build_adapters(settings)

    app = FastAPI(
        title="Payment Gateway Orchestrator",
        description="Multi-provider payment gateway registry, selection and ledger",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.adapters = adapters
    app.state.status_probe = StatusProbe(
        session_factory, adapters, timeout=settings.probe_timeout_seconds
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        """Map the error taxonomy onto HTTP status codes."""
        code = status_for(exc)
        detail = exc.public_message if isinstance(exc, NoAvailableGatewayError) else exc.message
        if code >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, code, exc.message)
        content = {"detail": detail, "code": exc.code}
        if exc.provider:
            content["provider"] = exc.provider
        return JSONResponse(status_code=code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed requests are validation errors, not 422s."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request",
                "code": ValidationError.code,
                "errors": [
                    {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
                    for error in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(gateways_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)

    return app
