"""Centralized logging configuration using Loguru.

Usage:
    from buildflow.utils.logging import logger
    logger.info("Message")
    logger.debug("Debug message")  # Only shows if BUILDFLOW_LOG_LEVEL=DEBUG

Environment Variables:
    BUILDFLOW_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    BUILDFLOW_LOG_JSON: 0|1 (default: 0, human-readable)
    BUILDFLOW_LOG_FILE: path to log file (optional, always NDJSON)
    BUILDFLOW_RUN_ID: correlation ID shared with spawned tools
"""

import json
import os
import sys
import uuid
from pathlib import Path

from loguru import logger

logger.remove()

# Numeric levels for NDJSON records
JSON_LEVELS = {
    "TRACE": 10,
    "DEBUG": 20,
    "INFO": 30,
    "SUCCESS": 30,
    "WARNING": 40,
    "ERROR": 50,
    "CRITICAL": 60,
}

_log_level = os.environ.get("BUILDFLOW_LOG_LEVEL", "INFO").upper()
_json_mode = os.environ.get("BUILDFLOW_LOG_JSON", "0") == "1"
_log_file = os.environ.get("BUILDFLOW_LOG_FILE")
_run_id = os.environ.get("BUILDFLOW_RUN_ID") or str(uuid.uuid4())


def _json_record(record) -> dict:
    """Flatten a loguru record into a single JSON-serializable dict."""
    entry = {
        "level": JSON_LEVELS.get(record["level"].name, 30),
        "time": int(record["time"].timestamp() * 1000),
        "msg": record["message"],
        "pid": record["process"].id,
        "run_id": record["extra"].get("run_id", _run_id),
    }

    for key, value in record["extra"].items():
        if key != "run_id":
            entry[key] = value if isinstance(value, (str, int, float, bool)) else str(value)

    if record["exception"]:
        entry["err"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else "Error",
            "message": str(record["exception"].value) if record["exception"].value else "",
        }
    return entry


def json_sink(message):
    """Write one NDJSON line per record to stdout.

    Never call logger.* inside a sink - causes infinite recursion.
    """
    sys.stdout.write(json.dumps(_json_record(message.record)) + "\n")
    sys.stdout.flush()


_human_format = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> - "
    "<level>{message}</level>"
)

logger.level("DEBUG", color="<blue>")
logger.level("INFO", color="<white>")
logger.level("WARNING", color="<yellow>")
logger.level("ERROR", color="<red>")
logger.level("CRITICAL", color="<red><bold>")

# Tracked so the stderr handler can be swapped for the Rich live display
_human_handler_id: int | None = None

if _json_mode:
    logger.add(json_sink, level=_log_level, colorize=False)
else:
    _human_handler_id = logger.add(
        sys.stderr,
        level=_log_level,
        format=_human_format,
        colorize=None,
    )

if _log_file:

    def _file_json_sink(message):
        """Append NDJSON records to the configured log file."""
        with open(_log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(_json_record(message.record)) + "\n")

    logger.add(_file_json_sink, level="DEBUG")


def configure_file_logging(log_dir: Path, level: str = "DEBUG") -> int:
    """Add a rotating human-readable log file under ``log_dir``.

    Returns:
        The loguru handler ID (pass to ``logger.remove`` to detach).
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    return logger.add(
        log_dir / "buildflow.log",
        rotation="10 MB",
        retention="7 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    )


def swap_to_rich_sink(rich_sink_fn) -> int | None:
    """Route human-readable logs through a Rich console while Live is active.

    Logs written straight to stderr get overwritten by Live's refresh.

    Returns:
        The new handler ID, or None if in JSON mode (no swap needed).
    """
    global _human_handler_id

    if _json_mode or _human_handler_id is None:
        return None

    logger.remove(_human_handler_id)
    _human_handler_id = None

    return logger.add(
        rich_sink_fn,
        level=_log_level,
        format=_human_format,
        colorize=True,
    )


def restore_stderr_sink(rich_handler_id: int | None) -> None:
    """Restore the default stderr handler after the Rich live display ends."""
    global _human_handler_id

    if _json_mode or rich_handler_id is None:
        return

    try:
        logger.remove(rich_handler_id)
    except ValueError:
        pass  # Already removed

    _human_handler_id = logger.add(
        sys.stderr,
        level=_log_level,
        format=_human_format,
        colorize=None,
    )


def get_subprocess_env() -> dict:
    """Environment for spawned tools, carrying BUILDFLOW_RUN_ID."""
    env = os.environ.copy()
    env["BUILDFLOW_RUN_ID"] = _run_id
    return env


__all__ = [
    "logger",
    "configure_file_logging",
    "get_subprocess_env",
    "swap_to_rich_sink",
    "restore_stderr_sink",
]
