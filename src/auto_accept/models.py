"""Coordination data model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Plan(str, Enum):
    none = "none"
    monthly = "monthly"
    lifetime = "lifetime"

    @classmethod
    def parse(cls, value: object) -> "Plan":
        """Map a backend or stored plan string onto a Plan, defaulting to none."""
        if isinstance(value, Plan):
            return value
        raw = str(value or "").strip().lower()
        # Older backends reported recurring plans as "pro".
        if raw == "pro":
            return cls.monthly
        try:
            return cls(raw)
        except ValueError:
            return cls.none


class ModeState(str, Enum):
    off = "off"
    simple = "simple"
    background = "background"


class ToggleResult(str, Enum):
    applied = "applied"
    deferred = "deferred"


class RetryOutcome(str, Enum):
    succeeded = "succeeded"
    exhausted = "exhausted"
    cancelled = "cancelled"


class Lease(BaseModel):
    holder_id: str
    acquired_at: int
    last_heartbeat: int

    def age(self, now: int) -> int:
        return now - self.last_heartbeat

    def is_fresh(self, now: int, ttl_ms: int) -> bool:
        return self.age(now) < ttl_ms

    def is_stale(self, now: int, ttl_ms: int) -> bool:
        return self.age(now) > ttl_ms


class LeaseResult(BaseModel):
    is_leader: bool
    holder_id: str | None = None
    changed: bool = False


class EntitlementState(BaseModel):
    is_entitled: bool = False
    trial_start: int | None = None
    trial_notified: bool = False
    plan: Plan = Plan.none

    @field_validator("plan", mode="before")
    @classmethod
    def normalize_plan(cls, v: object) -> Plan:
        return Plan.parse(v)


class RetrySession(BaseModel):
    attempts: int = 0
    max_attempts: int = Field(ge=1)
    interval_ms: int = Field(ge=1)
    active: bool = False


class LicenseResult(BaseModel):
    is_entitled: bool = False
    plan: Plan = Plan.none


class DriverConfig(BaseModel):
    is_pro: bool
    is_background_mode: bool
    poll_interval: int
    ide: str
    banned_commands: list[str] = Field(default_factory=list)


class StatusSnapshot(BaseModel):
    enabled: bool
    leader: bool
    background_mode: bool
    cadence_ms: int
    trial_days_left: int
    connection_count: int
    mode: ModeState = ModeState.off
    is_entitled: bool = False
    plan: Plan = Plan.none


class CadenceRequest(BaseModel):
    cadence_ms: int = Field(ge=1)


class BannedCommandsRequest(BaseModel):
    patterns: list[str] = Field(default_factory=list)

    @field_validator("patterns", mode="before")
    @classmethod
    def strip_blank(cls, v: object) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(p).strip() for p in v if str(p).strip()]


class BackgroundRequest(BaseModel):
    on: bool


class FocusRequest(BaseModel):
    focused: bool
