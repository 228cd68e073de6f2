"""Background maintenance: stale-pending sweep and periodic status refresh."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway_orchestrator.database import get_session
from gateway_orchestrator.services.ledger import TransactionLedger
from gateway_orchestrator.services.status_probe import StatusProbe

logger = logging.getLogger(__name__)


class GatewayMaintenance:
    """Runs the reconciliation sweep and status refresh off the request path.

    A failed run is logged and retried on the next tick; the loop only stops
    on cancellation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        probe: StatusProbe,
        *,
        grace: timedelta = timedelta(minutes=30),
        sweep_interval: float = 300.0,
        refresh_interval: float = 900.0,
    ):
        self.session_factory = session_factory
        self.probe = probe
        self.grace = grace
        self.sweep_interval = sweep_interval
        self.refresh_interval = refresh_interval
        self._task: asyncio.Task[None] | None = None

    async def sweep_once(self) -> int:
        async with get_session(self.session_factory) as session:
            return await TransactionLedger(session).expire_stale_pending(self.grace)

    async def refresh_once(self) -> int:
        return len(await self.probe.refresh_all())

    async def run(self) -> None:
        """Loop forever, running each job when its interval has elapsed."""
        next_sweep = time.monotonic()
        next_refresh = time.monotonic() + self.refresh_interval
        while True:
            now = time.monotonic()
            if now >= next_sweep:
                next_sweep = now + self.sweep_interval
                try:
                    await self.sweep_once()
                except Exception:
                    logger.exception("Stale pending sweep failed")
            if now >= next_refresh:
                next_refresh = now + self.refresh_interval
                try:
                    await self.refresh_once()
                except Exception:
                    logger.exception("Gateway status refresh failed")
            await asyncio.sleep(max(0.0, min(next_sweep, next_refresh) - time.monotonic()))

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="gateway-maintenance")
            logger.info(
                "Gateway maintenance started (sweep every %ss, refresh every %ss)",
                self.sweep_interval,
                self.refresh_interval,
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Gateway maintenance stopped")
