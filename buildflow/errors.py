"""Exception hierarchy for buildflow.

Resolution errors are configuration bugs: they are raised before any task runs
and are never retried. ``TaskFailure`` and ``TaskTimeout`` describe failed task
outcomes and are recorded in the run report rather than propagated.
"""


class BuildflowError(Exception):
    """Base class for every buildflow error."""


class ConfigError(BuildflowError):
    """Raised when the build file or a task configuration is invalid."""

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source


class ResolutionError(BuildflowError):
    """Raised when a requested name cannot be turned into an execution plan."""


class UnknownTaskError(ResolutionError):
    """Raised when a task (or task target) is not registered."""

    def __init__(self, name: str, referenced_by: str | None = None) -> None:
        where = f" (referenced by alias '{referenced_by}')" if referenced_by else ""
        super().__init__(f"Task '{name}' is not registered{where}.")
        self.name = name
        self.referenced_by = referenced_by


class UnknownAliasError(ResolutionError):
    """Raised when a requested alias is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Alias '{name}' is not registered.")
        self.name = name


class CyclicAliasError(ResolutionError):
    """Raised when alias expansion revisits an alias that is still being expanded."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Cyclic alias definition: {' -> '.join(cycle)}")
        self.cycle = cycle


class TaskFailure(BuildflowError):
    """A task reported failure; ``diagnostics`` is kept verbatim for reporting."""

    def __init__(self, task: str, diagnostics: str = "") -> None:
        super().__init__(f"Task '{task}' failed" + (f": {diagnostics}" if diagnostics else ""))
        self.task = task
        self.diagnostics = diagnostics


class TaskTimeout(TaskFailure):
    """An asynchronous task did not resolve within its time budget."""

    def __init__(self, task: str, timeout: float) -> None:
        super().__init__(task, f"Timeout: task did not complete within {timeout:g}s")
        self.timeout = timeout


class CoverageError(BuildflowError):
    """A coverage payload could not be interpreted."""
