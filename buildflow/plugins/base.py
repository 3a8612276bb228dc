"""Uniform contract for external collaborators.

Every collaborator (bundler, minifier, style compiler, archiver, linter, test
harness, dev server) is wrapped as a :class:`PluginAdapter`::

    adapter.run(config, context) -> Outcome | AsyncHandle

Synchronous adapters return a final Outcome. Asynchronous adapters return an
:class:`AsyncHandle` that resolves exactly once; the runner waits on it with a
timeout.
"""

import asyncio
import concurrent.futures
import inspect
import threading
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from buildflow.errors import ConfigError
from buildflow.events import CoverageReported, EventBus, LogMessage
from buildflow.pipeline.structures import ExecutionMode, Outcome, TaskId
from buildflow.utils.logging import logger


def coerce_outcome(value: Any) -> Outcome:
    """Normalize an adapter's return value into an :class:`Outcome`.

    ``None`` and ``True`` mean success, ``False`` means failure, an Outcome is
    returned as-is and anything else is kept as success detail. An Outcome still
    pending or running is a failure.
    """
    if isinstance(value, Outcome):
        if not value.status.is_terminal:
            return Outcome.failed(f"Task reported non-terminal state '{value.status.value}'")
        return value
    if value is None or value is True:
        return Outcome.succeeded()
    if value is False:
        return Outcome.failed("Task returned false")
    return Outcome.succeeded(detail=value)


class AsyncHandle:
    """Pending result of an asynchronous task with resolve-once semantics.

    Either resolved explicitly (``resolve`` / ``succeed`` / ``fail``, safe to call
    from any thread) or bound to a coroutine with :meth:`from_coroutine`, whose
    return value resolves the handle. Only the first resolution counts; later
    ones are ignored and reported as ``False``.
    """

    def __init__(self):
        self._future: concurrent.futures.Future = concurrent.futures.Future()
        self._lock = threading.Lock()
        self._coroutine: Awaitable[Any] | None = None
        self._task: asyncio.Task | None = None

    @classmethod
    def from_coroutine(cls, coroutine: Awaitable[Any]) -> "AsyncHandle":
        handle = cls()
        handle._coroutine = coroutine
        return handle

    def resolve(self, outcome: Outcome) -> bool:
        """Resolve the handle; returns False if it was already resolved."""
        with self._lock:
            if self._future.done():
                logger.debug("Ignoring second resolution of an async handle")
                return False
            self._future.set_result(coerce_outcome(outcome))
            return True

    def succeed(self, detail: Any = None) -> bool:
        return self.resolve(Outcome.succeeded(detail))

    def fail(self, diagnostics: str = "") -> bool:
        return self.resolve(Outcome.failed(diagnostics))

    @property
    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> Outcome:
        """Block until resolved (for callers outside an event loop)."""
        return self._future.result(timeout=timeout)

    async def _drive(self) -> None:
        try:
            value = await self._coroutine
        except Exception as e:
            self.resolve(Outcome.failed(f"{type(e).__name__}: {e}"))
        else:
            self.resolve(coerce_outcome(value))

    async def wait(self) -> Outcome:
        """Await resolution.

        Cancelling this wait (e.g. on timeout) leaves the underlying work
        running; cleanup is the collaborator's responsibility.
        """
        if self._coroutine is not None and self._task is None:
            self._task = asyncio.ensure_future(self._drive())
        return await asyncio.shield(asyncio.wrap_future(self._future))


@dataclass
class TaskContext:
    """Per-invocation context handed to adapters alongside their configuration."""

    task: TaskId
    bus: EventBus
    root: Path = field(default_factory=Path.cwd)
    settings: Mapping[str, Any] = field(default_factory=dict)
    timeout: float | None = None
    verbose: bool = False

    def resolve_path(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path

    def log(self, message: str, is_error: bool = False) -> None:
        """Publish collaborator output on the bus and to the log."""
        if is_error:
            logger.warning(f"[{self.task}] {message}")
        else:
            logger.debug(f"[{self.task}] {message}")
        self.bus.publish(LogMessage(message=message, is_error=is_error))

    def publish_coverage(self, payload: dict[str, Any]) -> None:
        self.bus.publish(CoverageReported(source=self.task, payload=payload))


class PluginAdapter(ABC):
    """Base class for adapters.

    Subclasses declare their configuration schema through ``required`` and
    ``optional`` key names; ``options`` is always allowed. The schema is checked
    by :meth:`validate` when the registry is built, before any task runs.
    """

    name: ClassVar[str] = ""
    mode: ClassVar[ExecutionMode] = ExecutionMode.SYNC
    required: ClassVar[tuple[str, ...]] = ()
    optional: ClassVar[tuple[str, ...]] = ()

    def validate(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        """Check ``config`` against the declared schema.

        Raises:
            ConfigError: On missing or unknown keys, or a failed :meth:`check`.
        """
        missing = [key for key in self.required if key not in config]
        if missing:
            raise ConfigError(f"Task '{task_id}' ({self.name}) is missing required keys: {missing}")

        allowed = set(self.required) | set(self.optional) | {"options"}
        unknown = sorted(set(config) - allowed)
        if unknown:
            raise ConfigError(f"Task '{task_id}' ({self.name}) has unknown keys: {unknown}")

        self.check(task_id, config)

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        """Adapter-specific validation hook; raise ConfigError to reject."""

    @abstractmethod
    def run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome | AsyncHandle | Any:
        """Run the collaborator once."""

    def __repr__(self):
        return f"{type(self).__name__}(name='{self.name}', mode={self.mode.value})"


class FunctionAdapter(PluginAdapter):
    """Wraps a plain callable ``func(config, context)`` as an adapter.

    Coroutine functions are run asynchronously; other callables synchronously.
    """

    def __init__(self, func: Callable[..., Any], name: str | None = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "function")
        self.mode = ExecutionMode.ASYNC if inspect.iscoroutinefunction(func) else ExecutionMode.SYNC

    def validate(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        pass

    def run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome | AsyncHandle | Any:
        result = self.func(config, context)
        if self.mode is ExecutionMode.ASYNC:
            return AsyncHandle.from_coroutine(result)
        return result
