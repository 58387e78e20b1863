# src/tomato_focus/notifications/fanout.py

from __future__ import annotations

import logging

from ..core.ports import Notifier

logger = logging.getLogger(__name__)


class FanoutNotifier:
    """Delivers to every backend; one failing backend does not block the others."""

    def __init__(self, notifiers: list[Notifier]) -> None:
        self.notifiers = list(notifiers)

    async def show(self, title: str, message: str) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.show(title, message)
            except Exception:
                logger.exception("Notifier %s failed", type(notifier).__name__)
