# src/tomato_focus/core/state_machine.py

from __future__ import annotations

"""
Session transitions as pure functions.

States are {Work, ShortBreak, LongBreak} x {Running, Paused}; the cycle has no
terminal state. The controller applies the returned transition, the functions
here never touch persistence or alarms.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .state import SessionState, TimerSettings


@dataclass(slots=True, frozen=True)
class SessionTransition:
    session_type: str  # the kind that just ended: "Work" | "Break"
    is_work_session: bool
    time_left: int
    current_session: int
    is_running: bool


def is_long_break_session(current_session: int, settings: TimerSettings) -> bool:
    return current_session % settings.long_break_interval == 0


def session_duration_seconds(
        *,
        is_work_session: bool,
        current_session: int,
        settings: TimerSettings,
) -> int:
    """Full length of the given session kind under the given settings."""
    if is_work_session:
        return settings.work_duration * 60
    if is_long_break_session(current_session, settings):
        return settings.long_break * 60
    return settings.short_break * 60


def next_session_on_complete(state: SessionState) -> SessionTransition:
    """
    Work  -> ShortBreak / LongBreak (same session index)
    Break -> Work (session index + 1)
    Running afterwards iff settings.auto_start.
    """
    settings = state.settings

    if state.is_work_session:
        long_break = is_long_break_session(state.current_session, settings)
        return SessionTransition(
            session_type="Work",
            is_work_session=False,
            time_left=(settings.long_break if long_break else settings.short_break) * 60,
            current_session=state.current_session,
            is_running=settings.auto_start,
        )

    return SessionTransition(
        session_type="Break",
        is_work_session=True,
        time_left=settings.work_duration * 60,
        current_session=state.current_session + 1,
        is_running=settings.auto_start,
    )


def skip_break_transition(state: SessionState) -> SessionTransition | None:
    """Break-complete branch on user request; None during a work session."""
    if state.is_work_session:
        return None

    return SessionTransition(
        session_type="Break",
        is_work_session=True,
        time_left=state.settings.work_duration * 60,
        current_session=state.current_session + 1,
        is_running=state.settings.auto_start or state.is_running,
    )
