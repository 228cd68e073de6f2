"""Tests for the gateway registry.

Tests verify:
1. Single-primary invariant, including concurrent promotions
2. Disabled or unknown targets are rejected without side effects
3. Admin patches: allowed fields, versioning, optimistic concurrency
4. Bootstrap idempotence and startup self-heal
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from gateway_orchestrator.database import get_session
from gateway_orchestrator.errors import (
    ConflictError,
    GatewayDisabledError,
    NotFoundError,
    ValidationError,
)
from gateway_orchestrator.models import PaymentGateway
from gateway_orchestrator.services import GatewayRegistry
from gateway_orchestrator.types import ConfigStatus, Provider

from tests.conftest import BASE_TIME, add_gateway, make_stub

pytestmark = pytest.mark.asyncio


async def primaries(session) -> list[Provider]:
    result = await session.execute(
        select(PaymentGateway.provider).where(PaymentGateway.is_primary.is_(True))
    )
    return sorted(result.scalars().all(), key=lambda p: p.value)


class TestSetPrimary:
    """setPrimary keeps exactly one primary."""

    async def test_promotes_target_and_demotes_previous(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await add_gateway(session, Provider.PAYPAL, created_offset=1)
        await session.commit()

        gateway = await GatewayRegistry(session).set_primary("paypal")
        await session.commit()

        assert gateway.is_primary is True
        assert await primaries(session) == [Provider.PAYPAL]

    async def test_bumps_version_of_changed_rows_only(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await add_gateway(session, Provider.PAYPAL, created_offset=1)
        await add_gateway(session, Provider.CASHFREE, created_offset=2)
        await session.commit()

        registry = GatewayRegistry(session)
        await registry.set_primary(Provider.PAYPAL)
        await session.commit()

        assert (await registry.get("stripe")).version == 2
        assert (await registry.get("paypal")).version == 2
        assert (await registry.get("cashfree")).version == 1

    async def test_setting_current_primary_again_is_stable(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await session.commit()

        registry = GatewayRegistry(session)
        await registry.set_primary("stripe")
        await session.commit()

        gateway = await registry.get("stripe")
        assert gateway.is_primary is True
        assert gateway.version == 1

    async def test_disabled_target_rejected_and_state_unchanged(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await add_gateway(session, Provider.PAYPAL, is_enabled=False)
        await session.commit()

        with pytest.raises(GatewayDisabledError):
            await GatewayRegistry(session).set_primary("paypal")

        assert await primaries(session) == [Provider.STRIPE]

    async def test_disabled_error_is_a_validation_error(self):
        assert issubclass(GatewayDisabledError, ValidationError)

    async def test_unknown_provider_is_validation_error(self, session):
        with pytest.raises(ValidationError):
            await GatewayRegistry(session).set_primary("adyen")

    async def test_concurrent_promotions_leave_exactly_one_primary(self, session, session_factory):
        for offset, provider in enumerate(Provider):
            await add_gateway(session, provider, created_offset=offset)
        await session.commit()

        async def promote(provider: Provider) -> None:
            async with get_session(session_factory) as s:
                await GatewayRegistry(s).set_primary(provider)

        await asyncio.gather(*(promote(p) for p in list(Provider) * 3))

        async with session_factory() as check:
            assert len(await primaries(check)) == 1


class TestUpdate:
    """Admin patches."""

    async def test_applies_allowed_fields_and_reports_changes(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        gateway, changes = await GatewayRegistry(session).update(
            "stripe",
            {"is_test_mode": False, "display_name": "Stripe Live", "webhook_url": "https://x/wh"},
            actor="ops@example.com",
        )
        await session.commit()

        assert gateway.is_test_mode is False
        assert gateway.display_name == "Stripe Live"
        assert gateway.webhook_url == "https://x/wh"
        assert gateway.last_configured_by == "ops@example.com"
        assert gateway.version == 2
        assert changes["is_test_mode"] == (True, False)
        assert set(changes) == {"is_test_mode", "display_name", "webhook_url"}

    async def test_metadata_maps_to_json_column(self, session):
        await add_gateway(session, Provider.CASHFREE)
        await session.commit()

        gateway, _ = await GatewayRegistry(session).update(
            "cashfree", {"metadata": {"merchant": "m-1"}}
        )

        assert gateway.metadata_json == {"merchant": "m-1"}

    async def test_is_primary_is_forbidden(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        with pytest.raises(ValidationError):
            await GatewayRegistry(session).update("stripe", {"is_primary": True})

        assert await primaries(session) == []

    async def test_unknown_key_rejected(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        with pytest.raises(ValidationError):
            await GatewayRegistry(session).update("stripe", {"api_key": "sk_live"})

    async def test_wrong_type_rejected(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        with pytest.raises(ValidationError):
            await GatewayRegistry(session).update("stripe", {"is_enabled": "yes"})

    async def test_unknown_provider_rejected(self, session):
        with pytest.raises(ValidationError):
            await GatewayRegistry(session).update("adyen", {"is_enabled": True})

    async def test_stale_expected_version_conflicts(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()
        registry = GatewayRegistry(session)
        await registry.update("stripe", {"is_enabled": False}, expected_version=1)
        await session.commit()

        with pytest.raises(ConflictError):
            await registry.update("stripe", {"is_enabled": True}, expected_version=1)

    async def test_no_op_patch_keeps_version(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        gateway, changes = await GatewayRegistry(session).update("stripe", {"is_enabled": True})

        assert changes == {}
        assert gateway.version == 1

    async def test_disabling_primary_keeps_flag(self, session):
        """The selector ignores a disabled primary; the flag itself stays."""
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await session.commit()

        gateway, _ = await GatewayRegistry(session).update("stripe", {"is_enabled": False})

        assert gateway.is_enabled is False
        assert gateway.is_primary is True


class TestReads:
    """get, list and snapshots."""

    async def test_get_unknown_provider_not_found(self, session):
        with pytest.raises(NotFoundError):
            await GatewayRegistry(session).get("adyen")

    async def test_get_known_provider_without_row_not_found(self, session):
        with pytest.raises(NotFoundError):
            await GatewayRegistry(session).get("stripe")

    async def test_list_orders_primary_first_then_creation(self, session):
        await add_gateway(session, Provider.STRIPE, created_offset=0)
        await add_gateway(session, Provider.PAYPAL, created_offset=1)
        await add_gateway(session, Provider.CASHFREE, created_offset=2, is_primary=True)
        await session.commit()

        gateways = await GatewayRegistry(session).list()

        assert [g.provider for g in gateways] == [
            Provider.CASHFREE,
            Provider.STRIPE,
            Provider.PAYPAL,
        ]

    async def test_snapshots_are_immutable_copies(self, session):
        await add_gateway(session, Provider.RAZORPAY, supported_currencies=["inr", "usd"])
        await session.commit()

        (snap,) = await GatewayRegistry(session).snapshots()

        assert snap.supported_currencies == frozenset({"INR", "USD"})
        with pytest.raises(AttributeError):
            snap.is_enabled = False


class TestBootstrap:
    """Startup initialization."""

    async def test_creates_rows_from_credentials(self, session):
        adapters = [
            make_stub(Provider.STRIPE),
            make_stub(Provider.PAYPAL, configured=False),
        ]

        created = await GatewayRegistry(session).bootstrap(adapters)
        await session.commit()

        assert created == [Provider.STRIPE, Provider.PAYPAL]
        registry = GatewayRegistry(session)
        stripe = await registry.get("stripe")
        paypal = await registry.get("paypal")
        assert stripe.is_enabled is True
        assert stripe.is_test_mode is True
        assert stripe.config_status is ConfigStatus.CONFIGURED
        assert paypal.is_enabled is False
        assert paypal.config_status is ConfigStatus.NOT_CONFIGURED
        assert "PAYPAL_CLIENT_ID" in paypal.status_message
        assert "PAYPAL_CLIENT_SECRET" in paypal.status_message

    async def test_is_idempotent(self, session, stub_adapters):
        registry = GatewayRegistry(session)
        await registry.bootstrap(stub_adapters.values(), "cashfree")
        await session.commit()

        created = await registry.bootstrap(stub_adapters.values(), "cashfree")
        await session.commit()

        count = await session.scalar(select(func.count()).select_from(PaymentGateway))
        assert created == []
        assert count == len(Provider)
        assert await primaries(session) == [Provider.CASHFREE]

    async def test_disabled_default_primary_not_promoted(self, session):
        adapters = [make_stub(Provider.CASHFREE, configured=False), make_stub(Provider.STRIPE)]

        await GatewayRegistry(session).bootstrap(adapters, "cashfree")
        await session.commit()

        assert await primaries(session) == []

    async def test_existing_primary_not_replaced(self, session, stub_adapters):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await session.commit()

        await GatewayRegistry(session).bootstrap(stub_adapters.values(), "cashfree")
        await session.commit()

        assert await primaries(session) == [Provider.STRIPE]


class TestRepairPrimary:
    """Startup self-heal."""

    async def test_keeps_most_recently_updated(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True, created_offset=0)
        await add_gateway(session, Provider.PAYPAL, is_primary=True, created_offset=5)
        await add_gateway(session, Provider.CASHFREE, is_primary=True, created_offset=2)
        await session.commit()

        kept = await GatewayRegistry(session).repair_primary()
        await session.commit()

        assert kept.provider is Provider.PAYPAL
        assert await primaries(session) == [Provider.PAYPAL]

    async def test_ties_keep_earliest_created(self, session):
        await add_gateway(
            session, Provider.STRIPE, is_primary=True, created_offset=3, updated_at=BASE_TIME
        )
        await add_gateway(
            session, Provider.PAYPAL, is_primary=True, created_offset=1, updated_at=BASE_TIME
        )
        await session.commit()

        kept = await GatewayRegistry(session).repair_primary()

        assert kept.provider is Provider.PAYPAL

    async def test_single_primary_untouched(self, session):
        await add_gateway(session, Provider.STRIPE, is_primary=True)
        await session.commit()

        kept = await GatewayRegistry(session).repair_primary()

        assert kept.provider is Provider.STRIPE
        assert kept.version == 1

    async def test_no_primary_returns_none(self, session):
        await add_gateway(session, Provider.STRIPE)
        await session.commit()

        assert await GatewayRegistry(session).repair_primary() is None
