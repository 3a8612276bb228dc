"""buildflow utilities package."""

from .constants import (
    COVERAGE_DIR,
    DEFAULT_ALIAS,
    DEFAULT_BUILD_FILE,
    DEFAULT_TASK_TIMEOUT,
    ERROR_LOG_FILE,
    STATE_DIR,
)
from .error_handler import handle_exceptions
from .exit_codes import ExitCodes
from .helpers import format_duration, save_json_file
from .logging import logger

__all__ = [
    "COVERAGE_DIR",
    "DEFAULT_ALIAS",
    "DEFAULT_BUILD_FILE",
    "DEFAULT_TASK_TIMEOUT",
    "ERROR_LOG_FILE",
    "STATE_DIR",
    "handle_exceptions",
    "ExitCodes",
    "format_duration",
    "save_json_file",
    "logger",
]
