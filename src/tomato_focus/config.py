# src/tomato_focus/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- User-facing timer preferences live in the persisted session state, not here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

ENV_PREFIX = "TOMATO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    state_db_path: Path
    matrix_store_path: Path

    # ---- Scheduling / idle ----
    scheduler_poll_seconds: float
    idle_threshold_seconds: int
    idle_poll_seconds: float

    # ---- Jira ----
    jira_timeout_seconds: float
    jira_max_results: int
    jira_allowed_hosts: List[str]

    # ---- Matrix notifications ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_room_id: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "Tomato Focus") or "Tomato Focus"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tomato"))
        state_db_path = _env_path(_k("STATE_DB_PATH"), data_dir / "state.sqlite3")
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        scheduler_poll_seconds = _env_float(_k("SCHEDULER_POLL_SECONDS"), 1.0)
        idle_threshold_seconds = _env_int(_k("IDLE_THRESHOLD_SECONDS"), 60)
        idle_poll_seconds = _env_float(_k("IDLE_POLL_SECONDS"), 15.0)

        jira_timeout_seconds = _env_float(_k("JIRA_TIMEOUT_SECONDS"), 20.0)
        jira_max_results = _env_int(_k("JIRA_MAX_RESULTS"), 100)
        jira_allowed_hosts = [h.lower() for h in _env_list(_k("JIRA_ALLOWED_HOSTS"), [])]

        matrix_homeserver = _env(_k("MATRIX_HOMESERVER"), "").strip()
        matrix_user_id = _env(_k("MATRIX_USER_ID"), "").strip()
        matrix_password = _env(_k("MATRIX_PASSWORD"), "").strip()
        matrix_room_id = _env(_k("MATRIX_ROOM_ID"), "").strip()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            data_dir=data_dir,
            state_db_path=state_db_path,
            matrix_store_path=matrix_store_path,
            scheduler_poll_seconds=scheduler_poll_seconds,
            idle_threshold_seconds=idle_threshold_seconds,
            idle_poll_seconds=idle_poll_seconds,
            jira_timeout_seconds=jira_timeout_seconds,
            jira_max_results=jira_max_results,
            jira_allowed_hosts=jira_allowed_hosts,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_room_id=matrix_room_id,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
