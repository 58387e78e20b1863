# src/tomato_focus/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the app, restores the session, then runs:
- the durable alarm scheduler loop,
- the idle detection loop,
- the console REPL (optional; otherwise waits for SIGINT/SIGTERM).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import AppContext, create_app
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(app: AppContext, background: list[asyncio.Task]) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    for task in background:
        task.cancel()
    for task in background:
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task

    # KV store and scheduler use short-lived sqlite connections per call.
    try:
        app.kv.close()
    except Exception:
        logger.debug("KV close failed.", exc_info=True)

    for notifier in app.notifier.notifiers:
        close = getattr(notifier, "close", None)
        if close is None:
            continue
        try:
            await close()
        except Exception:
            logger.debug("Notifier close failed.", exc_info=True)


async def _run(app: AppContext) -> None:
    settings = app.settings
    await app.controller.init()

    background = [
        asyncio.create_task(
            app.scheduler.run(interval_seconds=settings.scheduler_poll_seconds), name="alarm-scheduler"
        ),
        asyncio.create_task(app.idle.run(interval_seconds=settings.idle_poll_seconds), name="idle-poll"),
    ]

    # Use an Event so we can wait without a busy loop.
    stop_main = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_main.set)
        except (NotImplementedError, RuntimeError):
            # Some platforms (Windows) do not support loop signal handlers.
            pass

    try:
        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(app), name="console")
            stopper = asyncio.create_task(stop_main.wait(), name="stop-wait")
            _, pending = await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
        else:
            logger.info("Console disabled. Running scheduler only. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        await _shutdown(app, background)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s... log=%s", settings.app_name, log_file)

    app = create_app(settings=settings)
    try:
        asyncio.run(_run(app))
    except KeyboardInterrupt:
        pass
    logger.info("Bye.")


if __name__ == "__main__":
    main()
