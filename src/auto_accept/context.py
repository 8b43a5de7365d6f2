"""Shared in-process coordination state."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from .config import BASE_CADENCE_MS, DEFAULT_BANNED_COMMANDS
from .events import EventBus
from .models import EntitlementState
from .storage import BACKGROUND_MODE_KEY, BANNED_COMMANDS_KEY, ENABLED_KEY, DurableKV, lease_key
from .trial import has_pro_access


def now_ms() -> int:
    return int(time.time() * 1000)


def new_instance_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class CoordinationContext:
    """One value owned by the coordinator and handed to each component.

    Durable fields are rebuilt from the store by ``load()``; everything else
    lives only as long as this process.
    """

    kv: DurableKV
    ide: str = "Code"
    instance_id: str = field(default_factory=new_instance_id)
    clock: Callable[[], int] = now_ms
    bus: EventBus = field(default_factory=EventBus)

    enabled: bool = False
    background_mode: bool = False
    cadence_ms: int = BASE_CADENCE_MS
    banned_commands: list[str] = field(default_factory=lambda: list(DEFAULT_BANNED_COMMANDS))
    entitlement: EntitlementState = field(default_factory=EntitlementState)
    locked_out: bool = False
    driver_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def lease_key(self) -> str:
        return lease_key(self.ide)

    def now(self) -> int:
        return self.clock()

    def has_pro_access(self) -> bool:
        return has_pro_access(self.entitlement, self.now())

    async def load(self) -> None:
        self.enabled = bool(await self.kv.get(ENABLED_KEY, False))
        self.background_mode = bool(await self.kv.get(BACKGROUND_MODE_KEY, False))
        banned = await self.kv.get(BANNED_COMMANDS_KEY, None)
        if isinstance(banned, list):
            self.banned_commands = [str(p) for p in banned]
        else:
            self.banned_commands = list(DEFAULT_BANNED_COMMANDS)

    async def save_enabled(self, value: bool) -> None:
        self.enabled = value
        await self.kv.set(ENABLED_KEY, value)

    async def save_background_mode(self, value: bool) -> None:
        self.background_mode = value
        await self.kv.set(BACKGROUND_MODE_KEY, value)

    async def save_banned_commands(self, patterns: list[str]) -> None:
        self.banned_commands = list(patterns)
        await self.kv.set(BANNED_COMMANDS_KEY, self.banned_commands)
