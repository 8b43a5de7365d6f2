"""In-memory stand-ins for the store, clock, driver and licensing backend."""

from __future__ import annotations

import asyncio
import copy

from auto_accept.exceptions import ResourceUnavailable
from auto_accept.models import DriverConfig, LicenseResult, Plan


class MemoryKV:
    """DurableKV fake. Every call yields once so concurrent callers interleave."""

    def __init__(self, data: dict | None = None) -> None:
        self.data: dict = dict(data or {})
        self.writes: list[tuple[str, object]] = []

    async def get(self, key, default=None):
        await asyncio.sleep(0)
        return copy.deepcopy(self.data.get(key, default))

    async def set(self, key, value) -> None:
        await asyncio.sleep(0)
        self.data[key] = copy.deepcopy(value)
        self.writes.append((key, value))


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeDriver:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.calls: list[str] = []
        self.configs: list[DriverConfig] = []
        self.focused: bool | None = None
        self.away_actions = 0
        self.pro_status: bool | None = None
        self.fail_start = False
        self.unreachable = False

    async def is_available(self) -> bool:
        return self.available

    async def start(self, config: DriverConfig) -> None:
        self.calls.append("start")
        if self.unreachable:
            raise ResourceUnavailable("no CDP endpoint")
        if self.fail_start:
            raise RuntimeError("driver exploded")
        self.configs.append(config)

    async def stop(self) -> None:
        self.calls.append("stop")

    def get_connection_count(self) -> int:
        return 1 if self.configs and self.calls[-1] == "start" else 0

    async def set_focus_state(self, focused: bool) -> None:
        self.focused = focused

    async def get_away_actions(self) -> int:
        count, self.away_actions = self.away_actions, 0
        return count

    async def set_pro_status(self, is_pro: bool) -> None:
        self.pro_status = is_pro

    async def hide_overlay(self) -> None:
        self.calls.append("hide_overlay")


class FakeVerifier:
    """Answers from a scripted list; the last answer repeats."""

    def __init__(self, *answers: bool, plan: Plan = Plan.lifetime) -> None:
        self.answers = list(answers) or [False]
        self.plan = plan
        self.calls = 0
        self.cancelled: list[str] = []

    async def verify(self, user_id):
        idx = min(self.calls, len(self.answers) - 1)
        self.calls += 1
        entitled = self.answers[idx]
        return LicenseResult(is_entitled=entitled, plan=self.plan if entitled else Plan.none)

    async def cancel_subscription(self, user_id: str) -> bool:
        self.cancelled.append(user_id)
        return True
