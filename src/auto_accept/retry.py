"""Bounded "ask again until it says yes or we give up" polling."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

from .config import MAX_VERIFY_ATTEMPTS, VERIFY_INTERVAL_MS
from .models import RetryOutcome, RetrySession

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]
OutcomeHandler = Callable[[RetryOutcome], Awaitable[None] | None]


class VerificationRetryEngine:
    """Runs one probe session at a time.

    Each tick waits ``interval_ms`` and then counts an attempt. Once the count
    passes ``max_attempts`` the session ends as exhausted, so a probe that
    always fails is called exactly ``max_attempts`` times. Each session
    reports exactly one outcome: succeeded, exhausted or cancelled.
    """

    def __init__(
        self,
        *,
        interval_ms: int = VERIFY_INTERVAL_MS,
        max_attempts: int = MAX_VERIFY_ATTEMPTS,
        name: str = "verification",
    ) -> None:
        self.name = name
        self.session = RetrySession(max_attempts=max_attempts, interval_ms=interval_ms)
        self._task: asyncio.Task | None = None
        self._outcome: asyncio.Future | None = None
        self._on_outcome: OutcomeHandler | None = None
        self._handler_tasks: set[asyncio.Future] = set()

    @property
    def is_active(self) -> bool:
        return self.session.active

    @property
    def attempts(self) -> int:
        return self.session.attempts

    def start(self, probe: Probe, on_outcome: OutcomeHandler | None = None) -> None:
        self.cancel()
        # Claimed before the first await so a concurrent start sees it.
        self.session.attempts = 0
        self.session.active = True
        outcome = asyncio.get_running_loop().create_future()
        self._outcome = outcome
        self._on_outcome = on_outcome
        logger.info(
            "%s polling: checking every %.0fs for up to %d attempts",
            self.name, self.session.interval_ms / 1000, self.session.max_attempts,
        )
        self._task = asyncio.create_task(self._run(probe, outcome))

    def cancel(self) -> None:
        if not self.session.active:
            return
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        handler = self._resolve(RetryOutcome.cancelled)
        logger.info("%s polling: cancelled after %d attempts", self.name, self.session.attempts)
        if handler is not None:
            try:
                result = handler(RetryOutcome.cancelled)
                if inspect.isawaitable(result):
                    pending = asyncio.ensure_future(result)
                    self._handler_tasks.add(pending)
                    pending.add_done_callback(self._handler_tasks.discard)
            except Exception:
                logger.exception("%s outcome handler failed", self.name)

    async def wait(self) -> RetryOutcome | None:
        if self._outcome is None:
            return None
        return await asyncio.shield(self._outcome)

    async def _run(self, probe: Probe, outcome: asyncio.Future) -> None:
        interval = self.session.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.session.attempts += 1
            if self.session.attempts > self.session.max_attempts:
                logger.info("%s polling: max attempts reached", self.name)
                result = RetryOutcome.exhausted
                break
            logger.debug("%s polling: attempt %d/%d", self.name, self.session.attempts, self.session.max_attempts)
            try:
                ok = await probe()
            except Exception:
                logger.warning("%s probe failed", self.name, exc_info=True)
                ok = False
            if outcome.done():
                return
            if ok:
                logger.info("%s polling: confirmed on attempt %d", self.name, self.session.attempts)
                result = RetryOutcome.succeeded
                break

        self._task = None
        handler = self._resolve(result)
        if handler is None:
            return
        try:
            maybe = handler(result)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:
            logger.exception("%s outcome handler failed", self.name)

    def _resolve(self, result: RetryOutcome) -> OutcomeHandler | None:
        """Mark the current session finished; hand back its handler once."""
        self.session.active = False
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(result)
        handler, self._on_outcome = self._on_outcome, None
        return handler
