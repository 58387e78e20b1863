# src/tomato_focus/notifications/console.py

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from datetime import datetime

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleNotifier:
    """Prints notifications to the terminal, optionally with a bell."""

    def __init__(self, *, bell: Callable[[], bool] | None = None, stream=None) -> None:
        # bell() is read per call so the play_sound setting can change at runtime.
        self._bell = bell
        self._stream = stream

    async def show(self, title: str, message: str) -> None:
        stream = self._stream or sys.stdout
        ring = "\a" if self._bell is not None and self._bell() else ""
        stream.write(f"{ring}[{_ts_local()}] [{title}] {message}\n")
        stream.flush()
        logger.debug("Console notification: %s", message)
