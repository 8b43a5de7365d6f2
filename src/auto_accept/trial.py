"""Trial arithmetic. Pure functions of stored state and the current time (ms)."""

from __future__ import annotations

import math

from .config import DAY_MS, TRIAL_DURATION_MS
from .models import EntitlementState


def is_trial_active(trial_start: int | None, now: int, duration_ms: int = TRIAL_DURATION_MS) -> bool:
    if trial_start is None:
        return False
    return (now - trial_start) < duration_ms


def is_trial_expired(trial_start: int | None, now: int, duration_ms: int = TRIAL_DURATION_MS) -> bool:
    return trial_start is not None and not is_trial_active(trial_start, now, duration_ms)


def trial_days_left(trial_start: int | None, now: int, duration_ms: int = TRIAL_DURATION_MS) -> int:
    if trial_start is None:
        return 0
    remaining = duration_ms - (now - trial_start)
    return max(0, math.ceil(remaining / DAY_MS))


def has_pro_access(state: EntitlementState, now: int) -> bool:
    return state.is_entitled or is_trial_active(state.trial_start, now)
