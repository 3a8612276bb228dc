"""Data contracts for plan execution."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskState(Enum):
    """Lifecycle state of one task invocation inside a plan."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.ABORTED)


class ExecutionMode(Enum):
    """How an adapter signals completion."""
    SYNC = "sync"
    ASYNC = "async"


@dataclass(frozen=True, order=True)
class TaskId:
    """Identity of a concrete task invocation: task name plus optional target."""
    name: str
    target: str | None = None

    @classmethod
    def parse(cls, ref: str) -> "TaskId":
        """Parse ``name`` or ``name:target``."""
        name, sep, target = ref.partition(":")
        return cls(name, target if sep else None)

    def __str__(self) -> str:
        return f"{self.name}:{self.target}" if self.target else self.name


@dataclass(frozen=True)
class ExecutionPlan:
    """Flattened, ordered task identities produced by resolving one or more names."""
    tasks: tuple[TaskId, ...]
    requested: tuple[str, ...] = ()
    best_effort: bool = False

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)


@dataclass(frozen=True)
class Outcome:
    """Result of a single task invocation.

    ``diagnostics`` carries collaborator output verbatim; it is empty on success.
    """
    status: TaskState
    diagnostics: str = ""
    detail: Any = None

    @classmethod
    def succeeded(cls, detail: Any = None) -> "Outcome":
        return cls(TaskState.SUCCEEDED, detail=detail)

    @classmethod
    def failed(cls, diagnostics: str = "", detail: Any = None) -> "Outcome":
        return cls(TaskState.FAILED, diagnostics=diagnostics, detail=detail)

    @classmethod
    def aborted(cls, reason: str = "") -> "Outcome":
        return cls(TaskState.ABORTED, diagnostics=reason)

    @property
    def success(self) -> bool:
        return self.status == TaskState.SUCCEEDED


@dataclass
class TaskResult:
    """Outcome of one plan entry plus its timing."""
    task: TaskId
    outcome: Outcome
    elapsed: float = 0.0

    @property
    def status(self) -> TaskState:
        return self.outcome.status

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "task": str(self.task),
            "status": self.outcome.status.value,
            "diagnostics": self.outcome.diagnostics,
            "elapsed": round(self.elapsed, 3),
        }


@dataclass
class RunReport:
    """Per-task results in execution order plus the overall status."""
    results: list[TaskResult] = field(default_factory=list)
    elapsed: float = 0.0
    interrupted: bool = False

    @property
    def overall(self) -> TaskState:
        if self.results and all(r.outcome.success for r in self.results):
            return TaskState.SUCCEEDED
        if not self.results and not self.interrupted:
            return TaskState.SUCCEEDED
        return TaskState.FAILED

    @property
    def success(self) -> bool:
        return self.overall == TaskState.SUCCEEDED

    @property
    def statuses(self) -> list[TaskState]:
        return [r.status for r in self.results]

    def by_status(self, status: TaskState) -> list[TaskResult]:
        return [r for r in self.results if r.status == status]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "overall": self.overall.value,
            "elapsed": round(self.elapsed, 3),
            "interrupted": self.interrupted,
            "results": [r.to_dict() for r in self.results],
        }
