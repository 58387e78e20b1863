# src/tomato_focus/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from .bootstrap import AppContext

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[["AppContext", list[str]], Awaitable[str]]
CommandHandler3 = Callable[["AppContext", list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /start, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        app: AppContext,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(app, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(app, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting helpers ----


def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def format_state(state: dict[str, Any]) -> str:
    settings = state.get("settings") or {}
    stats = state.get("statistics") or {}
    if state.get("is_work_session", True):
        kind = "Work"
    elif state.get("current_session", 1) % max(1, int(settings.get("long_break_interval") or 4)) == 0:
        kind = "Long break"
    else:
        kind = "Short break"

    current = state.get("current_task_id")
    task_title = next((t["title"] for t in state.get("tasks") or [] if t.get("id") == current), None)

    return (
        f"{kind} #{state.get('current_session', 1)} "
        f"{format_clock(state.get('time_left', 0))} "
        f"({'running' if state.get('is_running') else 'paused'})\n"
        f"  Today: {stats.get('completed_today', 0)} pomodoros, {stats.get('focus_time_today', 0)} min focus\n"
        f"  Current task: {task_title or '-'}"
    )


def _reply(resp: dict[str, Any], ok: str | None = None) -> str:
    if "error" in resp:
        return f"Error: {resp['error']}"
    if ok is not None:
        return ok
    return format_state(resp.get("state") or {})


def _resolve_task_ids(app: AppContext, tokens: list[str]) -> list[str]:
    """Accept full ids or unique id prefixes."""
    known = [t.id for t in app.controller.state.tasks]
    out: list[str] = []
    for token in tokens:
        matches = [tid for tid in known if tid.startswith(token)]
        out.append(matches[0] if len(matches) == 1 else token)
    return out


def _parse_setting(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    key = key.strip().replace("-", "_")
    if not key or not sep:
        raise ValueError(f"Expected key=value, got {raw!r}")
    return key, value.strip()


# ---- timer commands ----


async def cmd_help(app: AppContext, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(app: AppContext, args: list[str]) -> str:
    resp = await app.controller.handle({"action": "get_state"})
    return format_state(resp["state"])


async def cmd_start(app: AppContext, args: list[str]) -> str:
    return _reply(await app.controller.handle({"action": "start"}))


async def cmd_pause(app: AppContext, args: list[str]) -> str:
    return _reply(await app.controller.handle({"action": "pause"}))


async def cmd_toggle(app: AppContext, args: list[str]) -> str:
    return _reply(await app.controller.handle({"action": "toggle"}))


async def cmd_reset(app: AppContext, args: list[str]) -> str:
    return _reply(await app.controller.handle({"action": "reset"}))


async def cmd_skip(app: AppContext, args: list[str]) -> str:
    if app.controller.state.is_work_session:
        return "Nothing to skip: a work session is active."
    return _reply(await app.controller.handle({"action": "skip_break"}))


async def cmd_quick(app: AppContext, args: list[str]) -> str:
    if not args:
        return "Usage: /quick <minutes>"
    return _reply(await app.controller.handle({"action": "start_quick_timer", "minutes": args[0]}))


async def cmd_set(app: AppContext, args: list[str]) -> str:
    """
    /set                          -> show current settings
    /set work_duration=30 ...     -> update one or more settings
    """
    if not args:
        settings = app.controller.state.settings.to_dict()
        settings["jira_token"] = "***" if settings.get("jira_token") else ""
        return "Settings:\n" + "\n".join(f"  {k} = {v}" for k, v in settings.items())

    try:
        updates = dict(_parse_setting(a) for a in args)
    except ValueError as e:
        return f"Error: {e}"
    return _reply(await app.controller.handle({"action": "save_settings", "settings": updates}))


# ---- task commands ----


async def cmd_tasks(app: AppContext, args: list[str]) -> str:
    resp = await app.controller.handle({"action": "get_tasks"})
    tasks = resp.get("tasks") or []
    show_all = bool(args and args[0].lower() == "all")
    if not show_all and app.controller.state.ui_preferences.get("hide_completed"):
        tasks = [t for t in tasks if not t["is_completed"]]
    if not tasks:
        return "No tasks."

    current = app.controller.state.current_task_id
    lines = ["Tasks:"]
    for t in tasks:
        mark = "x" if t["is_completed"] else " "
        focus = " *" if t["id"] == current else ""
        lines.append(
            f"  [{mark}] {t['id'][:8]} {t['title']} "
            f"({t['completed_pomodoros']}/{t['estimated_pomodoros']}){focus}"
        )
    return "\n".join(lines)


async def cmd_add(app: AppContext, args: list[str]) -> str:
    """
    /add <title>            -> new task, 1 pomodoro estimate
    /add <title> ~3         -> new task with an estimate
    """
    if not args:
        return "Usage: /add <title> [~estimate]"

    estimate = 1
    if args[-1].startswith("~") and args[-1][1:].isdigit():
        estimate = int(args[-1][1:])
        args = args[:-1]

    resp = await app.controller.handle(
        {"action": "create_task", "task": {"title": " ".join(args), "estimated_pomodoros": estimate}}
    )
    if "error" in resp:
        return f"Error: {resp['error']}"
    task = resp["task"]
    return f"Task added: {task['id'][:8]} {task['title']}"


async def cmd_done(app: AppContext, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task-id> [...]"
    ids = _resolve_task_ids(app, args)
    return _reply(await app.controller.handle({"action": "complete_tasks", "task_ids": ids}), f"Completed: {len(ids)}")


async def cmd_delete(app: AppContext, args: list[str]) -> str:
    if not args:
        return "Usage: /del <task-id> [...]"
    ids = _resolve_task_ids(app, args)
    return _reply(await app.controller.handle({"action": "delete_tasks", "task_ids": ids}), f"Deleted: {len(ids)}")


async def cmd_focus(app: AppContext, args: list[str]) -> str:
    """
    /focus <task-id>  -> pomodoros completed from now on count for this task
    /focus none       -> no current task
    """
    if not args or args[0].lower() in ("none", "-", "off"):
        return _reply(await app.controller.handle({"action": "set_current_task", "task_id": None}), "Current task cleared.")
    task_id = _resolve_task_ids(app, args[:1])[0]
    return _reply(await app.controller.handle({"action": "set_current_task", "task_id": task_id}))


async def cmd_clear_done(app: AppContext, args: list[str]) -> str:
    return _reply(await app.controller.handle({"action": "clear_completed_tasks"}), "Completed tasks removed.")


async def cmd_hide(app: AppContext, args: list[str]) -> str:
    if not args or args[0].lower() not in ("on", "off"):
        hidden = app.controller.state.ui_preferences.get("hide_completed")
        return f"Completed tasks are {'hidden' if hidden else 'shown'}. Use /hide on or /hide off."
    hide = args[0].lower() == "on"
    resp = await app.controller.handle({"action": "update_ui_preferences", "ui_preferences": {"hide_completed": hide}})
    return _reply(resp, f"Completed tasks {'hidden' if hide else 'shown'}.")


# ---- statistics / sync / export ----


async def cmd_stats(app: AppContext, args: list[str]) -> str:
    resp = await app.controller.handle({"action": "get_statistics_history"})
    history = resp.get("history") or {}
    if not history:
        return "No statistics yet."
    lines = ["Statistics (last 30 days):"]
    for day in sorted(history, reverse=True):
        entry = history[day] or {}
        lines.append(
            f"  {day}: {entry.get('completed_today', 0)} pomodoros, {entry.get('focus_time_today', 0)} min"
        )
    return "\n".join(lines)


async def cmd_clear_stats(app: AppContext, args: list[str]) -> str:
    if not args or args[0].lower() != "yes":
        return "This deletes all statistics. Confirm with /clear-stats yes"
    return _reply(await app.controller.handle({"action": "clear_statistics"}), "Statistics cleared.")


async def cmd_sync(app: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[JIRA] Importing assigned issues...")
    resp = await app.controller.handle({"action": "import_now"})
    if "error" in resp:
        return f"Jira sync failed: {resp['error']}"
    return (
        f"Imported {resp['imported_count']} of {resp['total_issues']} issue(s)"
        + (f", {resp['mapping_errors']} could not be read." if resp.get("mapping_errors") else ".")
    )


async def cmd_export(app: AppContext, args: list[str]) -> str:
    """
    /export         -> print the export document
    /export <path>  -> write it to a file
    """
    resp = await app.controller.handle({"action": "export_user_data"})
    if "error" in resp:
        return f"Error: {resp['error']}"
    text = json.dumps(resp["data"], ensure_ascii=False, indent=2)
    if not args:
        return text

    path = Path(args[0]).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, "utf-8")
    except OSError as e:
        logger.warning("Export to %s failed: %r", path, e)
        return f"Export failed: {e}"
    return f"Exported to {path}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show the timer, today's stats and the current task.", aliases=["s"])
registry.register("start", cmd_start, help_text="Start the countdown.")
registry.register("pause", cmd_pause, help_text="Pause the countdown.")
registry.register("toggle", cmd_toggle, help_text="Start or pause.", aliases=["t"])
registry.register("reset", cmd_reset, help_text="Back to work session #1.")
registry.register("skip", cmd_skip, help_text="Skip the current break.")
registry.register("quick", cmd_quick, help_text="Start a quick work timer: /quick <minutes>.")
registry.register("set", cmd_set, help_text="Show or change settings: /set key=value ...")
registry.register("tasks", cmd_tasks, help_text="List tasks (/tasks all includes hidden completed ones).")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [~estimate].")
registry.register("done", cmd_done, help_text="Complete tasks: /done <id> [...].")
registry.register("del", cmd_delete, help_text="Delete tasks: /del <id> [...].")
registry.register("focus", cmd_focus, help_text="Set the current task: /focus <id> | /focus none.")
registry.register("clear-done", cmd_clear_done, help_text="Remove completed tasks.")
registry.register("hide", cmd_hide, help_text="Hide completed tasks in /tasks: /hide on | /hide off.")
registry.register("stats", cmd_stats, help_text="Show the statistics history.")
registry.register("clear-stats", cmd_clear_stats, help_text="Delete all statistics.")
registry.register("sync", cmd_sync, help_text="Import assigned Jira issues now.")
registry.register("export", cmd_export, help_text="Export user data as JSON: /export [path].")
