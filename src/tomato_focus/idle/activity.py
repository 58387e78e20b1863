# src/tomato_focus/idle/activity.py

from __future__ import annotations

"""
Activity-based idle detection.

Connectors call record_activity() whenever the user does something. run()
polls the time since the last activity and emits "idle" / "active" to
listeners on every transition. query_state() answers a one-off question with
its own threshold.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Callable

from ..core.ports import IdleListener, IdleState

logger = logging.getLogger(__name__)


class ActivityIdleProvider:
    def __init__(
            self,
            *,
            threshold_seconds: int = 60,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold_seconds = max(15, int(threshold_seconds))
        self._clock = clock
        self._last_activity = clock()
        self._state: IdleState = "active"
        self._listeners: list[IdleListener] = []

    def on_change(self, listener: IdleListener) -> None:
        self._listeners.append(listener)

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def _state_for(self, threshold_seconds: int) -> IdleState:
        return "idle" if self._clock() - self._last_activity >= threshold_seconds else "active"

    async def query_state(self, threshold_seconds: int) -> IdleState:
        return self._state_for(threshold_seconds)

    async def poll_once(self) -> IdleState | None:
        """Emit a transition if one happened since the last poll; return it."""
        current = self._state_for(self.threshold_seconds)
        if current == self._state:
            return None

        self._state = current
        logger.info("Idle state changed: %s", current)
        for listener in list(self._listeners):
            try:
                result = listener(current)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Idle listener failed state=%s", current)
        return current

    async def run(self, *, interval_seconds: float = 15.0) -> None:
        sleep_s = max(0.5, float(interval_seconds))
        while True:
            await self.poll_once()
            await asyncio.sleep(sleep_s)
