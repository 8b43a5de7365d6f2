"""Heartbeat lease deciding which instance drives the debugging session.

Every instance calls ``try_acquire_or_renew`` once per maintenance tick. The
store has no compare-and-swap, so two instances that both see a stale lease
may both write and both believe they lead until the next tick, when the one
whose write was overwritten sees a fresh foreign holder and stands by.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .config import LEASE_TTL_MS
from .events import EventBus, EventType
from .models import Lease, LeaseResult
from .storage import DurableKV

logger = logging.getLogger(__name__)


class LeaseManager:
    def __init__(self, kv: DurableKV, *, ttl_ms: int = LEASE_TTL_MS, bus: EventBus | None = None) -> None:
        self.kv = kv
        self.ttl_ms = ttl_ms
        self.bus = bus
        self._is_leader: bool | None = None

    @property
    def is_leader(self) -> bool:
        return bool(self._is_leader)

    @property
    def locked_out(self) -> bool:
        return self._is_leader is False

    async def read(self, domain_key: str) -> Lease | None:
        raw = await self.kv.get(domain_key, None)
        if not isinstance(raw, dict):
            return None
        try:
            return Lease.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring malformed lease under %s", domain_key)
            return None

    async def try_acquire_or_renew(self, domain_key: str, self_id: str, now: int) -> LeaseResult:
        lease = await self.read(domain_key)

        if lease is None or lease.is_stale(now, self.ttl_ms):
            acquired = Lease(holder_id=self_id, acquired_at=now, last_heartbeat=now)
            await self.kv.set(domain_key, acquired.model_dump())
            return await self._settle(True, self_id)

        if lease.holder_id == self_id:
            lease.last_heartbeat = now
            await self.kv.set(domain_key, lease.model_dump())
            return await self._settle(True, self_id)

        # A fresh lease held by someone else is left untouched.
        return await self._settle(False, lease.holder_id)

    async def _settle(self, is_leader: bool, holder_id: str) -> LeaseResult:
        changed = self._is_leader != is_leader
        self._is_leader = is_leader
        if changed:
            if is_leader:
                logger.info("CDP control: lock acquired, resuming control")
            else:
                logger.info("CDP control: locked by another instance (%s), standby mode", holder_id)
            if self.bus is not None:
                await self.bus.publish(EventType.leader_changed, {"leader": is_leader, "holder_id": holder_id})
        return LeaseResult(is_leader=is_leader, holder_id=holder_id, changed=changed)
