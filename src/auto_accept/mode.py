"""Off / Simple / Background mode and what it asks of the driver."""

from __future__ import annotations

import logging

from .context import CoordinationContext
from .driver import ResourceDriver
from .events import EventType
from .exceptions import ProFeatureRequired, ResourceUnavailable
from .models import DriverConfig, ModeState, ToggleResult

logger = logging.getLogger(__name__)


class ModeController:
    def __init__(self, ctx: CoordinationContext, driver: ResourceDriver) -> None:
        self.ctx = ctx
        self.driver = driver
        self._mismatch_logged = False
        ctx.bus.subscribe(EventType.entitlement_changed, self._on_entitlement_changed)

    @property
    def state(self) -> ModeState:
        """The requested mode, as persisted."""
        if not self.ctx.enabled:
            return ModeState.off
        return ModeState.background if self.ctx.background_mode else ModeState.simple

    @property
    def effective_state(self) -> ModeState:
        """What the driver is told. Background without entitlement runs as Simple."""
        state = self.state
        if state == ModeState.background and not self.ctx.has_pro_access():
            return ModeState.simple
        return state

    def driver_config(self, state: ModeState | None = None) -> DriverConfig:
        state = state or self.effective_state
        return DriverConfig(
            is_pro=self.ctx.has_pro_access(),
            is_background_mode=state == ModeState.background,
            poll_interval=self.ctx.cadence_ms,
            ide=self.ctx.ide,
            banned_commands=list(self.ctx.banned_commands),
        )

    # ── Transitions ───────────────────────────────────────────────────────

    async def enable(self) -> ModeState:
        await self.ctx.save_enabled(True)
        logger.info("Auto Accept enabled (%s mode)", self.state.value)
        return self.state

    async def disable(self) -> ModeState:
        await self.ctx.save_enabled(False)
        logger.info("Auto Accept disabled")
        return self.state

    async def toggle_background(self) -> ToggleResult:
        return await self.request_background(not self.ctx.background_mode)

    async def request_background(self, on: bool) -> ToggleResult:
        if not self.ctx.has_pro_access():
            raise ProFeatureRequired("Background Mode")

        if on and not self.ctx.background_mode:
            if not await self.driver_available():
                logger.info("Background Mode requires CDP; requesting setup")
                await self.ctx.bus.publish(EventType.setup_requested, {"reason": "background_mode"})
                return ToggleResult.deferred

        if on == self.ctx.background_mode:
            return ToggleResult.applied

        await self.ctx.save_background_mode(on)
        self._mismatch_logged = False
        logger.info("Background mode toggled: %s", on)

        if self.ctx.enabled:
            if not on:
                await self._stop_driver()
            await self.sync()
            if on and not self.ctx.background_mode:
                await self.ctx.bus.publish(EventType.setup_requested, {"reason": "background_mode"})
                return ToggleResult.deferred
        if not on:
            try:
                await self.driver.hide_overlay()
            except Exception:
                logger.debug("Hiding overlay failed", exc_info=True)
        await self.ctx.bus.publish(EventType.mode_changed, {"reason": "background_toggled"})
        return ToggleResult.applied

    async def on_driver_unavailable(self) -> None:
        """The driver went away: Background falls back to Simple."""
        if not self.ctx.background_mode:
            return
        logger.warning("CDP unavailable; falling back to Simple mode")
        await self.ctx.save_background_mode(False)
        await self.ctx.bus.publish(EventType.mode_changed, {"reason": "driver_unavailable"})

    # ── Driving ───────────────────────────────────────────────────────────

    async def sync(self) -> ModeState:
        """Push the effective mode to the driver.

        ``start`` is re-issued every time, since cadence, entitlement or the
        banned list may have changed since the last tick.
        """
        state = self.effective_state
        if self.ctx.locked_out:
            return state

        if state == ModeState.off:
            await self._stop_driver()
            return state

        if self.state == ModeState.background and state == ModeState.simple:
            if not self._mismatch_logged:
                logger.warning("Background mode needs Pro access; driving in Simple mode")
                self._mismatch_logged = True
        else:
            self._mismatch_logged = False

        if state == ModeState.background and not await self.driver_available():
            await self.on_driver_unavailable()
            state = self.effective_state

        logger.debug("CDP: syncing sessions (mode: %s)", state.value)
        try:
            async with self.ctx.driver_lock:
                await self.driver.start(self.driver_config(state))
        except ResourceUnavailable as e:
            logger.info("CDP: %s", e)
            if state == ModeState.background:
                await self.on_driver_unavailable()
                state = self.effective_state
        except Exception as e:
            logger.warning("CDP: sync error: %s", e)
        return state

    async def driver_available(self) -> bool:
        try:
            return bool(await self.driver.is_available())
        except Exception:
            logger.debug("CDP availability check failed", exc_info=True)
            return False

    async def _stop_driver(self) -> None:
        try:
            async with self.ctx.driver_lock:
                await self.driver.stop()
        except Exception:
            logger.debug("CDP stop failed", exc_info=True)

    async def _on_entitlement_changed(self, payload: dict) -> None:
        try:
            await self.driver.set_pro_status(bool(payload.get("has_pro_access")))
        except Exception:
            logger.debug("Pushing Pro status to CDP failed", exc_info=True)
