"""Fast work tick and slow lease/resync tick."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .config import MAINTENANCE_INTERVAL_MS
from .context import CoordinationContext
from .driver import ResourceDriver
from .entitlement import EntitlementManager
from .events import EventType
from .lease import LeaseManager
from .mode import ModeController
from .native import NativeCommands

logger = logging.getLogger(__name__)

TickHandler = Callable[[], Awaitable[None]]


class PeriodicTask:
    """Calls ``handler`` every ``interval_ms`` on its own asyncio task.

    The sleep starts after the handler returns, so a slow handler delays the
    next tick instead of stacking another one on top of it.
    """

    def __init__(self, name: str, interval_ms: int, handler: TickHandler) -> None:
        self.name = name
        self.interval_ms = interval_ms
        self.handler = handler
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"tick:{self.name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                await self.handler()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s tick failed", self.name)


class PollScheduler:
    def __init__(
        self,
        ctx: CoordinationContext,
        leases: LeaseManager,
        mode: ModeController,
        native: NativeCommands,
        driver: ResourceDriver,
        *,
        entitlement: EntitlementManager | None = None,
        maintenance_interval_ms: int = MAINTENANCE_INTERVAL_MS,
    ) -> None:
        self.ctx = ctx
        self.entitlement = entitlement
        self.leases = leases
        self.mode = mode
        self.native = native
        self.driver = driver
        self.fast = PeriodicTask("fast", ctx.cadence_ms, self.fast_tick)
        self.maintenance = PeriodicTask("maintenance", maintenance_interval_ms, self.maintenance_tick)
        ctx.bus.subscribe(EventType.entitlement_changed, self._on_entitlement_changed)

    @property
    def is_running(self) -> bool:
        return self.fast.is_running or self.maintenance.is_running

    async def start(self) -> None:
        await self._cancel_timers()
        logger.info("Auto Accept: monitoring session")
        await self.maintenance_tick()
        await self.fast_tick()
        self.fast.interval_ms = self.ctx.cadence_ms
        self.fast.start()
        self.maintenance.start()

    async def stop(self) -> None:
        await self._cancel_timers()
        try:
            async with self.ctx.driver_lock:
                await self.driver.stop()
        except Exception:
            logger.debug("CDP stop during shutdown failed", exc_info=True)
        logger.info("Auto Accept: polling stopped")

    async def set_cadence(self, ms: int) -> None:
        """Swap the fast timer for one at the new interval."""
        self.ctx.cadence_ms = ms
        if self.fast.interval_ms == ms and self.fast.is_running:
            return
        was_running = self.fast.is_running
        await self.fast.stop()
        self.fast.interval_ms = ms
        if was_running:
            self.fast.start()
            logger.info("Poll frequency updated to %dms", ms)

    async def fast_tick(self) -> None:
        if not self.ctx.enabled:
            return
        try:
            await self.native.run_accept_commands()
        except Exception:
            logger.debug("Accept commands failed", exc_info=True)

    async def maintenance_tick(self) -> None:
        if not self.ctx.enabled:
            return
        if self.entitlement is not None:
            try:
                await self.entitlement.check_trial_expiration()
            except Exception:
                logger.warning("Trial expiry check failed", exc_info=True)
        try:
            result = await self.leases.try_acquire_or_renew(
                self.ctx.lease_key, self.ctx.instance_id, self.ctx.now(),
            )
        except Exception:
            logger.warning("Lease renewal failed; will retry next tick", exc_info=True)
            return
        self.ctx.locked_out = self.leases.locked_out
        if not result.is_leader:
            return
        await self.mode.sync()

    async def _cancel_timers(self) -> None:
        await self.fast.stop()
        await self.maintenance.stop()

    async def _on_entitlement_changed(self, payload: dict) -> None:
        if self.fast.interval_ms != self.ctx.cadence_ms:
            await self.set_cadence(self.ctx.cadence_ms)
