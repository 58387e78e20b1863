# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (Matrix password, session files). Use .env (local, gitignored).

Timer preferences and Jira credentials are NOT environment settings: they are
saved with the session state and changed at runtime (/set key=value).
"""

ENV_VARS = {
    # App / logging
    "TOMATO_APP_NAME": "App display name (default: Tomato Focus).",
    "TOMATO_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "TOMATO_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    "TOMATO_MATRIX_ENABLED": "Also send notifications to a Matrix room (true/false).",
    # Paths (gitignored)
    "TOMATO_DATA_DIR": "Local data directory (default: .local/tomato).",
    "TOMATO_STATE_DB_PATH": "SQLite file for state and alarms (default: <data_dir>/state.sqlite3).",
    "TOMATO_MATRIX_STORE_PATH": "Matrix session dir (default: <data_dir>/matrix_store).",
    # Scheduling / idle
    "TOMATO_SCHEDULER_POLL_SECONDS": "How often due alarms are checked (default: 1.0).",
    "TOMATO_IDLE_THRESHOLD_SECONDS": "No input for this long counts as idle (default: 60, min 15).",
    "TOMATO_IDLE_POLL_SECONDS": "How often the idle state is re-evaluated (default: 15).",
    # Jira
    "TOMATO_JIRA_TIMEOUT_SECONDS": "Hard deadline for one Jira request (default: 20).",
    "TOMATO_JIRA_MAX_RESULTS": "Max issues fetched per sync (default: 100).",
    "TOMATO_JIRA_ALLOWED_HOSTS": "Self-hosted Jira hosts allowed for sync (comma/space separated).",
    # Matrix
    "TOMATO_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "TOMATO_MATRIX_USER_ID": "Matrix user ID used to send notifications.",
    "TOMATO_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "TOMATO_MATRIX_ROOM_ID": "Room that receives notifications.",
}
