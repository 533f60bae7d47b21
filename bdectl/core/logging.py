"""JSONL run log for bdectl commands."""

import json
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any


# Log level ordering
LOG_LEVELS = {"debug": 0, "info": 1, "warning": 2, "error": 3}


def default_log_base() -> Path:
    """Base log directory: %ProgramData%\\bdectl\\logs, else ~/var/log/bdectl."""
    program_data = os.environ.get("PROGRAMDATA")
    if program_data:
        return Path(program_data) / "bdectl" / "logs"
    home = Path(os.environ.get("HOME", "/tmp"))
    return home / "var" / "log" / "bdectl"


def get_log_path(script_name: str, base_path: Path | None = None) -> Path:
    """
    Get the log file path for a script.

    Args:
        script_name: Name of the script (without .py extension)
        base_path: Base directory for logs (default: default_log_base())

    Returns:
        Path to the log file: {base}/{date}/{script}.jsonl
    """
    if base_path is None:
        base_path = default_log_base()

    today = date.today().isoformat()
    return base_path / today / f"{script_name}.jsonl"


class ScriptLogger:
    """
    JSONL logger for a command run.

    Every entry carries the run_id and the fields bound at construction
    (for enable: mount_point and force), so entries from interleaved runs
    on the same day can be told apart. Changes made to the system are
    written with action() and marked "kind": "action".
    """

    def __init__(self, script_name: str, log_path: Path | None = None, **fields: Any):
        self.script_name = script_name
        self.log_path = log_path or get_log_path(script_name)
        self.run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        self.fields = fields
        self._file = None

    def _ensure_file(self) -> None:
        if self._file is None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.log_path, "a", encoding="utf-8")

    def _log(self, level: str, message: str, kind: str = "event", **extra: Any) -> None:
        self._ensure_file()
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "kind": kind,
            "script": self.script_name,
            "run_id": self.run_id,
            **self.fields,
            "message": message,
            **extra,
        }
        self._file.write(json.dumps(entry, default=str) + "\n")
        self._file.flush()

    def debug(self, message: str, **extra: Any) -> None:
        self._log("debug", message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self._log("info", message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self._log("warning", message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self._log("error", message, **extra)

    def action(self, message: str, **extra: Any) -> None:
        """Record a change made to the volume or TPM."""
        self._log("info", message, kind="action", **extra)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "ScriptLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def query_logs(
    base_path: Path,
    script: str,
    log_date: date | None = None,
    min_level: str = "debug",
    limit: int | None = None,
    actions_only: bool = False,
) -> list[dict[str, Any]]:
    """
    Query log entries.

    Args:
        base_path: Base directory for logs
        script: Script name to query
        log_date: Date to query (default: today)
        min_level: Minimum log level to include
        limit: Maximum number of entries to return
        actions_only: Only entries written with ScriptLogger.action()

    Returns:
        List of log entries matching criteria
    """
    if log_date is None:
        log_date = date.today()

    log_file = base_path / log_date.isoformat() / f"{script}.jsonl"

    if not log_file.exists():
        return []

    min_level_num = LOG_LEVELS.get(min_level, 0)
    results = []

    with open(log_file, encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if LOG_LEVELS.get(entry.get("level", "debug"), 0) < min_level_num:
                continue
            if actions_only and entry.get("kind") != "action":
                continue
            results.append(entry)
            if limit and len(results) >= limit:
                break

    return results
