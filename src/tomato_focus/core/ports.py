# src/tomato_focus/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The session controller and the sync orchestrator depend on Protocols instead of
concrete implementations. This keeps storage/scheduling/notification backends
swappable and makes testing easier.
"""

from typing import Any, Awaitable, Callable, Iterable, Literal, Protocol

IdleState = Literal["active", "idle"]

AlarmListener = Callable[[str], Awaitable[None] | None]
IdleListener = Callable[[IdleState], Awaitable[None] | None]


class KeyValueStore(Protocol):
    """Durable get/set of JSON-serializable blobs; survives process restarts."""

    async def get(self, keys: Iterable[str]) -> dict[str, Any]: ...
    async def set(self, entries: dict[str, Any]) -> None: ...


class Scheduler(Protocol):
    """
    Durable alarms.

    create(name, at=ts)             -> fire once at (or after) the timestamp
    create(name, every_minutes=n)   -> fire periodically
    A second create() with the same name replaces the previous alarm.
    Listeners receive the alarm name, even for alarms that came due while the
    process was not running.
    """

    async def create(
            self,
            name: str,
            *,
            at: float | None = None,
            every_minutes: float | None = None,
    ) -> None: ...

    async def clear(self, name: str) -> None: ...
    async def clear_all(self) -> None: ...
    def on_alarm(self, listener: AlarmListener) -> None: ...


class IdleProvider(Protocol):
    """Coarse user-activity transitions, independent of process lifetime."""

    async def query_state(self, threshold_seconds: int) -> IdleState: ...
    def on_change(self, listener: IdleListener) -> None: ...


class Notifier(Protocol):
    """Fire-and-forget user notification (console, Matrix room, ...)."""

    async def show(self, title: str, message: str) -> None: ...


class IssueFetcher(Protocol):
    """External work-item source used by the sync orchestrator."""

    async def fetch_assigned_issues(self, settings: Any) -> Any: ...
