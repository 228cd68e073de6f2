"""Gateway registry: the persisted set of payment gateways.

Owns the single-primary invariant. The only path that sets is_primary is
set_primary(), which demotes and promotes in one UPDATE statement guarded by
the target being enabled, so concurrent calls always leave exactly one
primary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, exists, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from gateway_orchestrator.errors import (
    ConflictError,
    GatewayDisabledError,
    NotFoundError,
    ValidationError,
)
from gateway_orchestrator.models import PaymentGateway, UTCDateTime, utcnow
from gateway_orchestrator.providers.base import ProviderAdapter
from gateway_orchestrator.types import ConfigStatus, GatewaySnapshot, Provider

logger = logging.getLogger(__name__)

# Patch key -> (model attribute, accepted types, nullable)
UPDATABLE_FIELDS: dict[str, tuple[str, tuple[type, ...], bool]] = {
    "is_enabled": ("is_enabled", (bool,), False),
    "is_test_mode": ("is_test_mode", (bool,), False),
    "display_name": ("display_name", (str,), False),
    "webhook_url": ("webhook_url", (str,), True),
    "metadata": ("metadata_json", (dict,), False),
}

FieldChange = tuple[Any, Any]


def parse_provider(value: str | Provider, error: type[Exception] = NotFoundError) -> Provider:
    """Resolve a provider name, raising ``error`` for unknown names."""
    provider = Provider.parse(value)
    if provider is None:
        raise error(f"Unknown payment provider: {value}")
    return provider


def to_snapshot(gateway: PaymentGateway) -> GatewaySnapshot:
    """Immutable copy of a gateway row."""
    return GatewaySnapshot(
        id=gateway.id,
        provider=gateway.provider,
        display_name=gateway.display_name,
        is_enabled=gateway.is_enabled,
        is_test_mode=gateway.is_test_mode,
        is_primary=gateway.is_primary,
        config_status=gateway.config_status,
        supported_currencies=frozenset(c.upper() for c in gateway.supported_currencies or ()),
        supported_countries=frozenset(c.upper() for c in gateway.supported_countries or ()),
        total_transactions=gateway.total_transactions,
        successful_transactions=gateway.successful_transactions,
        failed_transactions=gateway.failed_transactions,
        total_revenue=gateway.total_revenue,
        created_at=gateway.created_at,
    )


class GatewayRegistry:
    """Persistence operations on PaymentGateway rows.

    The registry never commits; callers own the unit of work.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, provider: Provider) -> PaymentGateway | None:
        result = await self.session.execute(
            select(PaymentGateway)
            .where(PaymentGateway.provider == provider)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, provider: str | Provider) -> PaymentGateway:
        """Get a gateway by provider name.

        Raises:
            NotFoundError: unknown provider or no row for it.
        """
        resolved = parse_provider(provider)
        gateway = await self._find(resolved)
        if gateway is None:
            raise NotFoundError(f"Gateway {resolved.value} not found", provider=resolved.value)
        return gateway

    async def get_by_id(self, gateway_id: Any) -> PaymentGateway:
        gateway = await self.session.get(PaymentGateway, gateway_id, populate_existing=True)
        if gateway is None:
            raise NotFoundError(f"Gateway {gateway_id} not found")
        return gateway

    async def list(self) -> list[PaymentGateway]:
        """All gateways, primary first, then creation order."""
        result = await self.session.execute(
            select(PaymentGateway)
            .order_by(
                PaymentGateway.is_primary.desc(),
                PaymentGateway.created_at,
                PaymentGateway.provider,
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def snapshots(self) -> list[GatewaySnapshot]:
        return [to_snapshot(gateway) for gateway in await self.list()]

    async def primary(self) -> PaymentGateway | None:
        result = await self.session.execute(
            select(PaymentGateway)
            .where(PaymentGateway.is_primary.is_(True))
            .order_by(PaymentGateway.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def update(
        self,
        provider: str | Provider,
        patch: Mapping[str, Any],
        *,
        expected_version: int | None = None,
        actor: str | None = None,
    ) -> tuple[PaymentGateway, dict[str, FieldChange]]:
        """Apply an admin patch to a gateway.

        Returns the refreshed gateway and the changed fields as
        ``{field: (before, after)}``. An empty patch, or one that changes
        nothing, leaves the row (and its version) untouched.

        Raises:
            ValidationError: unknown provider, unknown or forbidden key, bad value.
            ConflictError: expected_version is stale.
        """
        resolved = parse_provider(provider, ValidationError)

        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(unknown)}", provider=resolved.value
            )

        for key, value in patch.items():
            _, accepted, nullable = UPDATABLE_FIELDS[key]
            if value is None and nullable:
                continue
            if not isinstance(value, accepted):
                raise ValidationError(f"Invalid value for {key}", provider=resolved.value)
            if key == "display_name" and not value.strip():
                raise ValidationError("display_name must not be empty", provider=resolved.value)

        gateway = await self._find(resolved)
        if gateway is None:
            raise ValidationError(f"Gateway {resolved.value} not found", provider=resolved.value)

        current_version = gateway.version
        if expected_version is not None and expected_version != current_version:
            raise ConflictError(
                f"Gateway {resolved.value} was modified concurrently",
                provider=resolved.value,
                current=str(current_version),
                requested=str(expected_version),
            )

        changes: dict[str, FieldChange] = {}
        values: dict[str, Any] = {}
        for key, value in patch.items():
            attr = UPDATABLE_FIELDS[key][0]
            before = getattr(gateway, attr)
            if before != value:
                changes[key] = (before, value)
                values[attr] = value

        if not changes:
            return gateway, changes

        if actor is not None:
            values["last_configured_by"] = actor

        result = await self.session.execute(
            update(PaymentGateway)
            .where(
                PaymentGateway.id == gateway.id,
                PaymentGateway.version == current_version,
            )
            .values(
                **values,
                version=PaymentGateway.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Gateway {resolved.value} was modified concurrently",
                provider=resolved.value,
                current=None,
                requested=str(current_version),
            )

        return await self.get(resolved), changes

    async def set_primary(self, provider: str | Provider, *, actor: str | None = None) -> PaymentGateway:
        """Make ``provider`` the single primary gateway.

        Raises:
            ValidationError: unknown provider.
            GatewayDisabledError: target is disabled; nothing changes.
        """
        resolved = parse_provider(provider, ValidationError)
        target = await self._find(resolved)
        if target is None:
            raise ValidationError(f"Gateway {resolved.value} not found", provider=resolved.value)
        if not target.is_enabled:
            raise GatewayDisabledError(
                f"Gateway {resolved.value} is disabled and cannot be primary",
                provider=resolved.value,
            )

        now = utcnow()
        candidate = aliased(PaymentGateway)
        is_target = PaymentGateway.provider == resolved
        changes_flag = or_(
            and_(is_target, PaymentGateway.is_primary.is_(False)),
            and_(~is_target, PaymentGateway.is_primary.is_(True)),
        )
        if actor is not None:
            configured_by = case((is_target, actor), else_=PaymentGateway.last_configured_by)
        else:
            configured_by = PaymentGateway.last_configured_by

        # Every row is written, so a concurrent promotion re-evaluates each row
        # against the committed state and exactly one primary survives.
        result = await self.session.execute(
            update(PaymentGateway)
            .where(
                exists().where(
                    candidate.provider == resolved,
                    candidate.is_enabled.is_(True),
                )
            )
            .values(
                is_primary=case((is_target, True), else_=False),
                version=case(
                    (changes_flag, PaymentGateway.version + 1),
                    else_=PaymentGateway.version,
                ),
                updated_at=case(
                    (changes_flag, literal(now, UTCDateTime())),
                    else_=PaymentGateway.updated_at,
                ),
                last_configured_by=configured_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise GatewayDisabledError(
                f"Gateway {resolved.value} is disabled and cannot be primary",
                provider=resolved.value,
            )

        logger.info("Primary gateway set to %s", resolved.value)
        return await self.get(resolved)

    async def record_status(
        self,
        provider: str | Provider,
        status: ConfigStatus,
        message: str | None,
        checked_at: datetime | None = None,
    ) -> PaymentGateway:
        """Persist a probe classification; checked_at also stamps lastStatusCheck."""
        gateway = await self.get(provider)
        values: dict[str, Any] = {
            "config_status": status,
            "status_message": message,
            "version": PaymentGateway.version + 1,
            "updated_at": utcnow(),
        }
        if checked_at is not None:
            values["last_status_check"] = checked_at

        await self.session.execute(
            update(PaymentGateway)
            .where(PaymentGateway.id == gateway.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self.get(gateway.provider)

    async def bootstrap(
        self,
        adapters: Iterable[ProviderAdapter],
        default_primary: str | Provider | None = None,
    ) -> list[Provider]:
        """Insert a row for every known provider that has none.

        New rows start enabled only when credentials are present, in test
        mode, with a configuration status derived from the credential check.
        Existing rows are left alone. The default primary is promoted only
        when no primary exists and it is enabled.

        Returns the providers that were created.
        """
        created: list[Provider] = []
        now = utcnow()
        for adapter in adapters:
            if await self._find(adapter.provider) is not None:
                continue

            missing = adapter.missing_credentials()
            gateway = PaymentGateway(
                provider=adapter.provider,
                display_name=adapter.display_name,
                is_enabled=not missing,
                is_test_mode=True,
                is_primary=False,
                supported_currencies=list(adapter.supported_currencies),
                supported_countries=list(adapter.supported_countries),
                config_status=ConfigStatus.NOT_CONFIGURED if missing else ConfigStatus.CONFIGURED,
                status_message=(
                    f"Missing environment variables: {', '.join(missing)}"
                    if missing
                    else "Configuration validated successfully"
                ),
                last_status_check=now,
                metadata_json={},
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(gateway)
            except IntegrityError:
                # Another instance bootstrapped the same provider first.
                logger.info("Gateway %s already initialized", adapter.provider.value)
                continue
            created.append(adapter.provider)
            logger.info("Initialized %s gateway", adapter.display_name)

        if default_primary is not None and await self.primary() is None:
            resolved = Provider.parse(default_primary)
            target = await self._find(resolved) if resolved else None
            if target is not None and target.is_enabled:
                await self.set_primary(resolved)

        return created

    async def repair_primary(self) -> PaymentGateway | None:
        """Demote all but one primary if the invariant was broken.

        Keeps the most recently updated primary; ties go to the earliest
        created, then provider name. Returns the surviving primary.
        """
        result = await self.session.execute(
            select(PaymentGateway)
            .where(PaymentGateway.is_primary.is_(True))
            .order_by(
                PaymentGateway.updated_at.desc(),
                PaymentGateway.created_at,
                PaymentGateway.provider,
            )
        )
        primaries = list(result.scalars().all())
        if len(primaries) <= 1:
            return primaries[0] if primaries else None

        keep, demoted = primaries[0], primaries[1:]
        logger.warning(
            "Found %d primary gateways; keeping %s, demoting %s",
            len(primaries),
            keep.provider.value,
            ", ".join(g.provider.value for g in demoted),
        )
        await self.session.execute(
            update(PaymentGateway)
            .where(PaymentGateway.id.in_([g.id for g in demoted]))
            .values(
                is_primary=False,
                version=PaymentGateway.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return await self.get(keep.provider)
