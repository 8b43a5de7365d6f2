"""In-process publish/subscribe for coordination events.

Components subscribe to the event types they care about instead of being
called back by name. Handlers may be plain functions or coroutines; they are
awaited in subscription order, and a failing handler is logged without
stopping delivery to the rest.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    entitlement_changed = "entitlement_changed"
    pro_activated = "pro_activated"
    trial_started = "trial_started"
    trial_expired = "trial_expired"
    verification_exhausted = "verification_exhausted"
    leader_changed = "leader_changed"
    setup_requested = "setup_requested"
    mode_changed = "mode_changed"
    away_actions = "away_actions"
    status_changed = "status_changed"


EventHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


class EventBus:
    def __init__(self, *, max_history: int = 200) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._history: list[tuple[EventType, dict[str, Any]]] = []
        self._max_history = max_history

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        data = dict(payload or {})
        self._history.append((event_type, data))
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s failed", event_type.value)

    def history(self, event_type: EventType | None = None) -> list[dict[str, Any]]:
        return [p for t, p in self._history if event_type is None or t == event_type]
