"""Event bus for run observers.

Decouples plan execution from presentation and coverage collection. Every event
name has exactly one payload dataclass. Delivery is synchronous, serialized in
publish order, and subscribers must handle their own exceptions: an exception
raised by a subscriber propagates to the publisher.
"""

import sys
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, TextIO

from buildflow.pipeline.structures import ExecutionPlan, Outcome, RunReport, TaskId
from buildflow.utils.logging import logger


@dataclass(frozen=True)
class Event:
    """Base class for bus events; ``name`` is the channel subscribers listen on."""
    name: ClassVar[str] = ""


@dataclass(frozen=True)
class RunStarted(Event):
    name: ClassVar[str] = "run:start"
    plan: ExecutionPlan


@dataclass(frozen=True)
class RunFinished(Event):
    name: ClassVar[str] = "run:end"
    report: RunReport


@dataclass(frozen=True)
class TaskStarted(Event):
    name: ClassVar[str] = "task:start"
    task: TaskId
    index: int
    total: int


@dataclass(frozen=True)
class TaskFinished(Event):
    name: ClassVar[str] = "task:end"
    task: TaskId
    outcome: Outcome
    elapsed: float


@dataclass(frozen=True)
class CoverageReported(Event):
    """Raw per-file instrumentation counters emitted by a test harness."""
    name: ClassVar[str] = "coverage"
    source: TaskId
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LogMessage(Event):
    """Free-form output from a collaborator."""
    name: ClassVar[str] = "log"
    message: str
    is_error: bool = False


EVENT_TYPES: dict[str, type[Event]] = {
    cls.name: cls
    for cls in (RunStarted, RunFinished, TaskStarted, TaskFinished, CoverageReported, LogMessage)
}

Handler = Callable[[Any], None]


class EventBus:
    """Process-wide publish/subscribe channel.

    Created when the orchestrator starts; ``close`` drops all subscribers.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.RLock()
        self._closed = False

    @staticmethod
    def _channel(event: str | type[Event]) -> str:
        name = event if isinstance(event, str) else event.name
        if name not in EVENT_TYPES:
            raise ValueError(f"Unknown event name: '{name}'")
        return name

    def subscribe(self, event: str | type[Event], handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for an event name or event class.

        Returns:
            A callable that removes the subscription.
        """
        channel = self._channel(event)
        with self._lock:
            self._subscribers[channel].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._subscribers[channel]:
                    self._subscribers[channel].remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every subscriber of its channel, in subscription order."""
        expected = EVENT_TYPES.get(event.name)
        if expected is None or not isinstance(event, expected):
            raise TypeError(f"Event '{event.name}' must be a {expected.__name__ if expected else 'known event'}")

        with self._lock:
            if self._closed:
                logger.debug(f"Dropping '{event.name}' event published after bus close")
                return
            handlers = list(self._subscribers[event.name])
            for handler in handlers:
                handler(event)

    def subscriber_count(self, event: str | type[Event]) -> int:
        with self._lock:
            return len(self._subscribers[self._channel(event)])

    def close(self) -> None:
        """Tear down the bus; later publishes are dropped."""
        with self._lock:
            self._subscribers.clear()
            self._closed = True


class ConsoleLogger:
    """ASCII-safe plain console subscriber.

    Used when stdout is not a TTY or the Rich live display is disabled.
    Every line, quiet or not, also goes to ``log_file`` when one is given.
    """

    def __init__(self, quiet: bool = False, log_file: Path | None = None):
        self.quiet = quiet
        self.log_file: TextIO | None = None
        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self.log_file = open(log_file, "w", encoding="utf-8", buffering=1)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(TaskStarted, self.on_task_start)
        bus.subscribe(TaskFinished, self.on_task_end)
        bus.subscribe(LogMessage, self.on_log)

    def close(self) -> None:
        if self.log_file:
            self.log_file.close()
            self.log_file = None

    def _write(self, text: str, is_error: bool = False, always: bool = False) -> None:
        if self.log_file:
            self.log_file.write(text + "\n")
        if always or not self.quiet:
            print(text, file=sys.stderr if is_error else sys.stdout, flush=True)

    def on_task_start(self, event: TaskStarted) -> None:
        self._write(f"\n[Task {event.index}/{event.total}] {event.task}")

    def on_task_end(self, event: TaskFinished) -> None:
        outcome = event.outcome
        if outcome.success:
            self._write(f"[OK] {event.task} completed in {event.elapsed:.1f}s")
            return

        label = outcome.status.value.upper()
        self._write(f"[{label}] {event.task}", is_error=True, always=True)
        if outcome.diagnostics:
            display = outcome.diagnostics.strip()[:200]
            if len(outcome.diagnostics.strip()) > 200:
                display += "..."
            self._write(f"  Error: {display}", is_error=True, always=True)

    def on_log(self, event: LogMessage) -> None:
        self._write(event.message, is_error=event.is_error, always=event.is_error)
