"""Centralized exit codes for the buildflow CLI."""


class ExitCodes:
    """Standard exit codes for buildflow CLI commands."""

    SUCCESS = 0

    TASK_FAILED = 1

    CONFIG_ERROR = 2

    INTERRUPTED = 130

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get human-readable description for an exit code."""
        descriptions = {
            cls.SUCCESS: "Success - every task succeeded",
            cls.TASK_FAILED: "One or more tasks failed or were aborted",
            cls.CONFIG_ERROR: "Build file or alias resolution error - no task was run",
            cls.INTERRUPTED: "Run stopped by user",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")
