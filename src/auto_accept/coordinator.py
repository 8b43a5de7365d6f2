"""Wires the components together and exposes the command surface."""

from __future__ import annotations

import asyncio
import logging

from .config import REVERIFY_INTERVAL_MS
from .context import CoordinationContext
from .driver import ResourceDriver
from .entitlement import EntitlementManager
from .events import EventType
from .exceptions import ProFeatureRequired
from .lease import LeaseManager
from .license import LicenseVerifier
from .mode import ModeController
from .models import RetryOutcome, StatusSnapshot, ToggleResult
from .native import NativeCommands
from .scheduler import PeriodicTask, PollScheduler

logger = logging.getLogger(__name__)


class Coordinator:
    def __init__(
        self,
        ctx: CoordinationContext,
        driver: ResourceDriver,
        verifier: LicenseVerifier,
        *,
        native: NativeCommands | None = None,
        entitlement: EntitlementManager | None = None,
        reverify_interval_ms: int = REVERIFY_INTERVAL_MS,
        maintenance_interval_ms: int | None = None,
    ) -> None:
        self.ctx = ctx
        self.driver = driver
        self.verifier = verifier
        self.entitlement = entitlement or EntitlementManager(ctx, verifier)
        self.leases = LeaseManager(ctx.kv, bus=ctx.bus)
        self.mode = ModeController(ctx, driver)
        self.native = native or NativeCommands(ctx.ide)
        scheduler_kwargs = {"entitlement": self.entitlement}
        if maintenance_interval_ms is not None:
            scheduler_kwargs["maintenance_interval_ms"] = maintenance_interval_ms
        self.scheduler = PollScheduler(ctx, self.leases, self.mode, self.native, driver, **scheduler_kwargs)
        self.hourly = PeriodicTask("reverify", reverify_interval_ms, self.hourly_check)
        self._startup_verify: asyncio.Task | None = None

        for event in (
            EventType.entitlement_changed,
            EventType.trial_started,
            EventType.trial_expired,
            EventType.leader_changed,
            EventType.mode_changed,
        ):
            ctx.bus.subscribe(event, self._refresh_status)
        ctx.bus.subscribe(EventType.pro_activated, self._on_pro_activated)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def startup(self) -> StatusSnapshot:
        await self.ctx.load()
        await self.entitlement.load()
        logger.info(
            "Auto Accept: activating (ide=%s, instance=%s)", self.ctx.ide, self.ctx.instance_id,
        )
        await self.entitlement.check_trial_expiration()
        self._startup_verify = asyncio.create_task(self._safe_reverify())
        self.hourly.start()
        if self.ctx.enabled:
            await self.scheduler.start()
        return await self.publish_status()

    async def shutdown(self) -> None:
        self.entitlement.retry.cancel()
        if self._startup_verify is not None and not self._startup_verify.done():
            self._startup_verify.cancel()
        await self.hourly.stop()
        await self.scheduler.stop()

    async def hourly_check(self) -> None:
        await self.entitlement.check_trial_expiration()
        await self._safe_reverify()

    async def _safe_reverify(self) -> bool:
        try:
            return await self.entitlement.reverify()
        except Exception:
            logger.warning("License re-verification failed", exc_info=True)
            return False

    # ── Commands ──────────────────────────────────────────────────────────

    async def enable(self) -> StatusSnapshot:
        if self.ctx.enabled:
            return await self.publish_status()
        state = self.entitlement.state
        if not state.is_entitled and not self.entitlement.has_trial_started():
            await self.entitlement.start_trial()
        await self.mode.enable()
        await self.scheduler.start()
        return await self.publish_status()

    async def disable(self) -> StatusSnapshot:
        await self.mode.disable()
        await self.scheduler.stop()
        return await self.publish_status()

    async def toggle(self) -> StatusSnapshot:
        if self.ctx.enabled:
            return await self.disable()
        return await self.enable()

    async def set_cadence(self, ms: int) -> StatusSnapshot:
        if not self.entitlement.has_pro_access():
            raise ProFeatureRequired("Custom poll frequency")
        cadence = await self.entitlement.set_cadence(ms)
        if self.ctx.enabled:
            await self.scheduler.set_cadence(cadence)
            await self.mode.sync()
        return await self.publish_status()

    async def toggle_background(self) -> ToggleResult:
        result = await self.mode.toggle_background()
        await self.publish_status()
        return result

    async def request_background(self, on: bool) -> ToggleResult:
        result = await self.mode.request_background(on)
        await self.publish_status()
        return result

    async def set_banned_patterns(self, patterns: list[str]) -> list[str]:
        if not self.entitlement.has_pro_access():
            raise ProFeatureRequired("Banned command customization")
        await self.ctx.save_banned_commands(patterns)
        logger.info("Banned commands updated: %d patterns", len(patterns))
        if self.ctx.enabled:
            await self.mode.sync()
        return list(self.ctx.banned_commands)

    async def force_reverify(self) -> StatusSnapshot:
        await self._safe_reverify()
        return await self.publish_status()

    async def activate_pro(self) -> RetryOutcome | None:
        return await self.entitlement.activate()

    async def handle_paid_activation(self) -> None:
        if not self.ctx.entitlement.is_entitled:
            logger.info("Paid activation requested but Pro is not verified")
            return
        if not await self.mode.driver_available():
            await self.ctx.bus.publish(EventType.setup_requested, {"reason": "paid_activation"})
        if self.ctx.enabled:
            await self.scheduler.start()

    async def cancel_subscription(self) -> bool:
        return await self.verifier.cancel_subscription(await self.entitlement.user_id())

    async def set_focus(self, focused: bool) -> int:
        """Push window focus to the driver; returns away actions reported on return."""
        try:
            await self.driver.set_focus_state(focused)
        except Exception:
            logger.debug("Pushing focus state failed", exc_info=True)
        if not focused or not self.ctx.enabled:
            return 0
        try:
            count = await self.driver.get_away_actions()
        except Exception:
            logger.debug("Reading away actions failed", exc_info=True)
            return 0
        if count > 0:
            logger.info("Handled %d action(s) while the window was unfocused", count)
            await self.ctx.bus.publish(EventType.away_actions, {"count": count})
        return count

    # ── Status ────────────────────────────────────────────────────────────

    def status(self) -> StatusSnapshot:
        ent = self.ctx.entitlement
        return StatusSnapshot(
            enabled=self.ctx.enabled,
            leader=self.ctx.enabled and self.leases.is_leader,
            background_mode=self.ctx.background_mode,
            cadence_ms=self.ctx.cadence_ms,
            trial_days_left=0 if ent.is_entitled else self.entitlement.trial_days_left(),
            connection_count=self.driver.get_connection_count(),
            mode=self.mode.state,
            is_entitled=ent.is_entitled,
            plan=ent.plan,
        )

    async def publish_status(self) -> StatusSnapshot:
        snapshot = self.status()
        await self.ctx.bus.publish(EventType.status_changed, snapshot.model_dump(mode="json"))
        return snapshot

    async def _refresh_status(self, payload: dict) -> None:
        await self.publish_status()

    async def _on_pro_activated(self, payload: dict) -> None:
        await self.handle_paid_activation()
