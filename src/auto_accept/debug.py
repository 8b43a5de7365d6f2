"""CLI utility for inspecting coordination state without the service.

Examples:
  auto-accept-debug status
  auto-accept-debug lease --ide cursor
  auto-accept-debug trial
  auto-accept-debug verify
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from pydantic import ValidationError

from .config import LEASE_TTL_MS
from .context import CoordinationContext, now_ms
from .entitlement import EntitlementManager
from .license import LicenseVerifier
from .models import Lease
from .native import detect_ide
from .storage import SQLiteKV, lease_key
from .trial import is_trial_active, trial_days_left

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def describe_lease(raw: object, now: int, ttl_ms: int = LEASE_TTL_MS) -> str:
    try:
        lease = Lease.model_validate(raw)
    except ValidationError:
        return "Lease: none"
    state = "fresh" if lease.is_fresh(now, ttl_ms) else "stale"
    return f"Lease: {lease.holder_id} ({state}, heartbeat {lease.age(now) / 1000:.1f}s ago)"


async def _load(db: str | None, ide: str) -> tuple[CoordinationContext, EntitlementManager]:
    ctx = CoordinationContext(kv=SQLiteKV(db), ide=ide)
    await ctx.load()
    manager = EntitlementManager(ctx, LicenseVerifier())
    await manager.load()
    return ctx, manager


def cmd_status(db: str | None, ide: str) -> None:
    async def run() -> dict:
        ctx, manager = await _load(db, ide)
        return {
            "enabled": ctx.enabled,
            "background_mode": ctx.background_mode,
            "cadence_ms": ctx.cadence_ms,
            "has_pro_access": manager.has_pro_access(),
            "entitlement": ctx.entitlement.model_dump(mode="json"),
            "banned_commands": len(ctx.banned_commands),
        }

    print(json.dumps(asyncio.run(run()), indent=2))


def cmd_lease(db: str | None, ide: str) -> None:
    kv = SQLiteKV(db)
    print(describe_lease(kv.get_sync(lease_key(ide)), now_ms()))


def cmd_trial(db: str | None, ide: str) -> None:
    async def run() -> None:
        ctx, _ = await _load(db, ide)
        start = ctx.entitlement.trial_start
        if start is None:
            print("Trial: not started")
            return
        now = now_ms()
        active = is_trial_active(start, now)
        print(f"Trial: {'active' if active else 'expired'} ({trial_days_left(start, now)}d left)")
        print(f"Expiry notified: {ctx.entitlement.trial_notified}")

    asyncio.run(run())


def cmd_verify(db: str | None, ide: str) -> None:
    async def run() -> None:
        _, manager = await _load(db, ide)
        user_id = await manager.user_id()
        result = await manager.verifier.verify(user_id)
        print(f"User: {user_id}")
        print(f"Entitled: {result.is_entitled} (plan: {result.plan.value})")

    asyncio.run(run())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="auto-accept-debug", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--db", default=None, help="Path to the state database")
    parser.add_argument("--ide", default="code", help="IDE whose lease to inspect (code, cursor, antigravity)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show persisted coordination state")
    sub.add_parser("lease", help="Show the current lease holder")
    sub.add_parser("trial", help="Show trial state")
    sub.add_parser("verify", help="Run one license check against the backend")
    return parser


COMMANDS = {
    "status": cmd_status,
    "lease": cmd_lease,
    "trial": cmd_trial,
    "verify": cmd_verify,
}


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    COMMANDS[args.command](args.db, detect_ide(args.ide))
