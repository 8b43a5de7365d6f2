"""Entitlement state: trial, paid license, and the poll cadence they allow."""

from __future__ import annotations

import logging
import uuid

from .config import BASE_CADENCE_MS, DEFAULT_PRO_CADENCE_MS, MAX_CADENCE_MS, MIN_CADENCE_MS
from .context import CoordinationContext
from .events import EventType
from .license import LicenseVerifier
from .models import EntitlementState, Plan, RetryOutcome
from .retry import VerificationRetryEngine
from .storage import FREQ_KEY, PLAN_KEY, PRO_KEY, TRIAL_NOTIFIED_KEY, TRIAL_START_KEY, USER_ID_KEY
from .trial import is_trial_active, is_trial_expired, trial_days_left

logger = logging.getLogger(__name__)


def _to_int(value: object, default: int | None) -> int | None:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp_cadence(ms: object) -> int:
    value = _to_int(ms, DEFAULT_PRO_CADENCE_MS)
    return min(MAX_CADENCE_MS, max(MIN_CADENCE_MS, value))


class EntitlementManager:
    def __init__(
        self,
        ctx: CoordinationContext,
        verifier: LicenseVerifier,
        retry: VerificationRetryEngine | None = None,
    ) -> None:
        self.ctx = ctx
        self.verifier = verifier
        self.retry = retry or VerificationRetryEngine(name="Pro activation")

    @property
    def state(self) -> EntitlementState:
        return self.ctx.entitlement

    # ── Persistence ───────────────────────────────────────────────────────

    async def load(self) -> EntitlementState:
        kv = self.ctx.kv
        self.ctx.entitlement = EntitlementState(
            is_entitled=bool(await kv.get(PRO_KEY, False)),
            trial_start=_to_int(await kv.get(TRIAL_START_KEY, None), None),
            trial_notified=bool(await kv.get(TRIAL_NOTIFIED_KEY, False)),
            plan=await kv.get(PLAN_KEY, Plan.none.value),
        )
        self.ctx.cadence_ms = await self.poll_cadence()
        return self.ctx.entitlement

    async def user_id(self) -> str:
        user_id = await self.ctx.kv.get(USER_ID_KEY, None)
        if not user_id:
            user_id = str(uuid.uuid4())
            await self.ctx.kv.set(USER_ID_KEY, user_id)
        return str(user_id)

    # ── Queries ───────────────────────────────────────────────────────────

    def has_pro_access(self) -> bool:
        return self.ctx.has_pro_access()

    def trial_active(self) -> bool:
        return is_trial_active(self.state.trial_start, self.ctx.now())

    def trial_days_left(self) -> int:
        return trial_days_left(self.state.trial_start, self.ctx.now())

    def has_trial_started(self) -> bool:
        return self.state.trial_start is not None

    async def poll_cadence(self) -> int:
        if not self.has_pro_access():
            return BASE_CADENCE_MS
        return clamp_cadence(await self.ctx.kv.get(FREQ_KEY, DEFAULT_PRO_CADENCE_MS))

    # ── Mutations ─────────────────────────────────────────────────────────

    async def start_trial(self) -> None:
        now = self.ctx.now()
        self.state.trial_start = now
        await self.ctx.kv.set(TRIAL_START_KEY, now)
        logger.info("%d-day trial started", trial_days_left(now, now))
        self.ctx.cadence_ms = await self.poll_cadence()
        await self.ctx.bus.publish(EventType.trial_started, {"trial_start": now})

    async def set_entitled(self, value: bool, plan: Plan | None = None) -> bool:
        """Persist entitlement. Returns True if anything changed."""
        state = self.state
        was_entitled = state.is_entitled
        plan_changed = plan is not None and plan != state.plan

        state.is_entitled = value
        await self.ctx.kv.set(PRO_KEY, value)
        if plan is not None:
            state.plan = plan
            await self.ctx.kv.set(PLAN_KEY, plan.value)
        if value and not was_entitled:
            # An upgrade re-arms the trial-expiry notice for any later trial.
            state.trial_notified = False
            await self.ctx.kv.set(TRIAL_NOTIFIED_KEY, False)

        if was_entitled == value and not plan_changed:
            return False

        # Without entitlement or trial this drops to the base tier; the stored
        # custom cadence is kept for a later upgrade.
        self.ctx.cadence_ms = await self.poll_cadence()
        await self.ctx.bus.publish(
            EventType.entitlement_changed,
            {"is_entitled": value, "plan": state.plan.value, "has_pro_access": self.has_pro_access()},
        )
        if value and not was_entitled:
            await self.ctx.bus.publish(EventType.pro_activated, {"plan": state.plan.value})
        return True

    async def set_cadence(self, ms: int) -> int:
        cadence = clamp_cadence(ms)
        await self.ctx.kv.set(FREQ_KEY, cadence)
        self.ctx.cadence_ms = cadence
        return cadence

    # ── Checks ────────────────────────────────────────────────────────────

    async def check_trial_expiration(self) -> bool:
        """Publish the trial-expired event once per expiry. Returns True if it fired."""
        state = self.state
        if state.is_entitled or state.trial_notified:
            return False
        if not is_trial_expired(state.trial_start, self.ctx.now()):
            return False
        state.trial_notified = True
        await self.ctx.kv.set(TRIAL_NOTIFIED_KEY, True)
        self.ctx.cadence_ms = await self.poll_cadence()
        logger.info("Pro trial has ended; basic mode still works")
        await self.ctx.bus.publish(EventType.trial_expired, {"trial_start": state.trial_start})
        await self.ctx.bus.publish(
            EventType.entitlement_changed,
            {"is_entitled": False, "plan": state.plan.value, "has_pro_access": self.has_pro_access()},
        )
        return True

    async def reverify(self) -> bool:
        """Re-check the license. Returns True if entitlement changed."""
        result = await self.verifier.verify(await self.user_id())
        if result.is_entitled == self.state.is_entitled:
            if result.plan != Plan.none and result.plan != self.state.plan:
                self.state.plan = result.plan
                await self.ctx.kv.set(PLAN_KEY, result.plan.value)
            return False
        logger.info("License re-verification: entitlement is now %s", result.is_entitled)
        plan = result.plan if result.is_entitled else Plan.none
        return await self.set_entitled(result.is_entitled, plan)

    async def activate(self) -> RetryOutcome | None:
        """Verify once, then keep polling in the background until confirmed.

        Returns ``succeeded`` when the first check passes, otherwise None and
        the outcome arrives later as a ``pro_activated`` or
        ``verification_exhausted`` event.
        """
        logger.info("Pro activation: starting verification")
        user_id = await self.user_id()
        result = await self.verifier.verify(user_id)
        if result.is_entitled:
            # Manual confirmation beats any polling still in flight.
            self.retry.cancel()
            await self.set_entitled(True, result.plan)
            logger.info("Pro activation: success")
            return RetryOutcome.succeeded

        logger.info("Pro activation: license not found yet, polling in background")

        async def probe() -> bool:
            polled = await self.verifier.verify(user_id)
            if polled.is_entitled:
                await self.set_entitled(True, polled.plan)
            return polled.is_entitled

        async def on_outcome(outcome: RetryOutcome) -> None:
            if outcome == RetryOutcome.exhausted:
                await self.ctx.bus.publish(
                    EventType.verification_exhausted, {"attempts": self.retry.session.max_attempts},
                )

        self.retry.start(probe, on_outcome)
        return None
