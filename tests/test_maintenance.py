"""Tests for background maintenance jobs."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from gateway_orchestrator.database import get_session
from gateway_orchestrator.services import GatewayMaintenance, GatewayRegistry, TransactionLedger
from gateway_orchestrator.types import ConfigStatus, Provider, TransactionStatus

from tests.conftest import add_gateway

pytestmark = pytest.mark.asyncio


class TestGatewayMaintenance:
    """Sweep and refresh jobs."""

    async def test_sweep_once_expires_stale_pending(self, session, session_factory, probe):
        gateway = await add_gateway(session, Provider.STRIPE)
        await session.commit()
        async with get_session(session_factory) as s:
            await TransactionLedger(s).record_attempt(
                gateway.id, "10", "USD", transaction_id="txn_stale"
            )

        # A zero grace period makes every pending row stale.
        maintenance = GatewayMaintenance(session_factory, probe, grace=timedelta(0))
        expired = await maintenance.sweep_once()

        assert expired == 1
        async with session_factory() as s:
            txn = await TransactionLedger(s).get_transaction("txn_stale")
        assert txn.status is TransactionStatus.FAILED
        assert txn.error_code == "timeout"

    async def test_refresh_once_probes_every_gateway(
        self, session, session_factory, probe, stub_adapters
    ):
        stub_adapters[Provider.PAYPAL].configured = False
        await add_gateway(session, Provider.STRIPE)
        await add_gateway(session, Provider.PAYPAL, created_offset=1)
        await session.commit()

        refreshed = await GatewayMaintenance(session_factory, probe).refresh_once()

        assert refreshed == 2
        async with session_factory() as s:
            paypal = await GatewayRegistry(s).get("paypal")
        assert paypal.config_status is ConfigStatus.NOT_CONFIGURED
        assert paypal.last_status_check is not None

    async def test_start_runs_sweep_and_stop_cancels(self, session, session_factory, probe):
        gateway = await add_gateway(session, Provider.STRIPE)
        await session.commit()
        async with get_session(session_factory) as s:
            await TransactionLedger(s).record_attempt(
                gateway.id, "10", "USD", transaction_id="txn_bg"
            )

        maintenance = GatewayMaintenance(
            session_factory,
            probe,
            grace=timedelta(0),
            sweep_interval=60,
            refresh_interval=60,
        )
        maintenance.start()
        await asyncio.sleep(0.1)
        await maintenance.stop()

        async with session_factory() as s:
            txn = await TransactionLedger(s).get_transaction("txn_bg")
        assert txn.status is TransactionStatus.FAILED

    async def test_stop_without_start_is_noop(self, session_factory, probe):
        await GatewayMaintenance(session_factory, probe).stop()
