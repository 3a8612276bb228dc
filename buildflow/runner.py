"""Sequential execution of resolved plans.

Tasks run one at a time on a single asyncio event loop. Asynchronous tasks are
awaited (with a timeout) before the next task is dispatched; a timed-out task is
recorded as failed but its collaborator is left running.
"""

import asyncio
import signal
import sys
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from buildflow.config_runtime import timeout_for
from buildflow.errors import TaskFailure, TaskTimeout
from buildflow.events import EventBus, RunFinished, RunStarted, TaskFinished, TaskStarted
from buildflow.pipeline.structures import (
    ExecutionMode,
    ExecutionPlan,
    Outcome,
    RunReport,
    TaskResult,
    TaskState,
)
from buildflow.plugins import AsyncHandle, TaskContext, coerce_outcome
from buildflow.registry import Task, TaskRegistry
from buildflow.utils.constants import DEFAULT_TASK_TIMEOUT
from buildflow.utils.logging import logger


class TaskRunner:
    """Runs an :class:`ExecutionPlan` and enforces the continue/abort policy.

    After the first failed task every task that has not started is aborted,
    unless the plan is best-effort. A stop request aborts the remainder of any
    plan once the current task has finished.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        bus: EventBus,
        root: Path | None = None,
        settings: Mapping[str, Any] | None = None,
        default_timeout: float | None = None,
        verbose: bool = False,
    ):
        self.registry = registry
        self.bus = bus
        self.root = root or Path.cwd()
        self.settings = settings or {}
        self.default_timeout = default_timeout
        self.verbose = verbose
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Ask the runner to abort the rest of the plan (safe from signal handlers)."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def timeout_for(self, task: Task) -> float:
        """Task timeout, else runtime per-task/default setting, else the built-in default."""
        if task.timeout is not None:
            return task.timeout
        if self.default_timeout is not None:
            return self.default_timeout
        if self.settings:
            return timeout_for(dict(self.settings), task.id.name)
        return float(DEFAULT_TASK_TIMEOUT)

    def execute(self, plan: ExecutionPlan) -> RunReport:
        """Run ``plan`` to completion on a fresh event loop."""
        return asyncio.run(self.execute_async(plan))

    async def execute_async(self, plan: ExecutionPlan) -> RunReport:
        """Run ``plan`` on the current event loop."""
        report = RunReport()
        start_time = time.time()
        abort_reason: str | None = None
        total = len(plan)

        logger.info(
            f"Running {total} tasks for {', '.join(plan.requested) or '<plan>'}"
            + (" (best effort)" if plan.best_effort else "")
        )
        self.bus.publish(RunStarted(plan=plan))

        for index, task_id in enumerate(plan, start=1):
            if abort_reason is None and self.stop_requested:
                abort_reason = "Interrupted"
                report.interrupted = True

            if abort_reason is not None:
                logger.debug(f"Aborting {task_id}: {abort_reason}")
                report.results.append(TaskResult(task=task_id, outcome=Outcome.aborted(abort_reason)))
                continue

            task = self.registry.get(task_id)
            self.bus.publish(TaskStarted(task=task_id, index=index, total=total))

            task_start = time.time()
            outcome = await self._invoke(task)
            elapsed = time.time() - task_start

            report.results.append(TaskResult(task=task_id, outcome=outcome, elapsed=elapsed))
            self.bus.publish(TaskFinished(task=task_id, outcome=outcome, elapsed=elapsed))

            if outcome.status is TaskState.FAILED:
                first_line = outcome.diagnostics.splitlines()[0] if outcome.diagnostics else "no diagnostics"
                logger.debug(f"Task {task_id} failed: {first_line}")
                if not plan.best_effort:
                    abort_reason = f"Aborted after failure of {task_id}"
            else:
                logger.debug(f"Task {task_id} succeeded in {elapsed:.1f}s")

        report.elapsed = time.time() - start_time
        logger.info(f"Run finished: {report.overall.value} in {report.elapsed:.1f}s")
        self.bus.publish(RunFinished(report=report))
        return report

    def _context(self, task: Task, timeout: float | None) -> TaskContext:
        return TaskContext(
            task=task.id,
            bus=self.bus,
            root=self.root,
            settings=self.settings,
            timeout=timeout,
            verbose=self.verbose,
        )

    async def _invoke(self, task: Task) -> Outcome:
        timeout = self.timeout_for(task) if task.mode is ExecutionMode.ASYNC else None
        context = self._context(task, timeout)

        try:
            result = task.adapter.run(task.config, context)
        except Exception as e:
            return self._exception_outcome(task, e)

        if task.mode is ExecutionMode.SYNC:
            if isinstance(result, AsyncHandle):
                return Outcome.failed(f"Task {task.id} is declared sync but its adapter returned an async handle")
            return coerce_outcome(result)

        if not isinstance(result, AsyncHandle):
            logger.debug(f"Async task {task.id} completed synchronously")
            return coerce_outcome(result)

        try:
            return await asyncio.wait_for(result.wait(), timeout=timeout)
        except TimeoutError:
            failure = TaskTimeout(str(task.id), timeout)
            logger.warning(str(failure))
            return Outcome.failed(failure.diagnostics, detail=failure)
        except Exception as e:
            return self._exception_outcome(task, e)

    @staticmethod
    def _exception_outcome(task: Task, error: Exception) -> Outcome:
        failure = TaskFailure(str(task.id), f"{type(error).__name__}: {error}")
        logger.opt(exception=error).debug(f"Adapter for {task.id} raised")
        return Outcome.failed(failure.diagnostics, detail=failure)


@contextmanager
def interrupt_guard(runner: TaskRunner) -> Iterator[None]:
    """Route Ctrl+C / SIGTERM to ``runner.request_stop`` while the block runs.

    The task in flight finishes; the rest of the plan is aborted.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        print("\n[INFO] Interrupt received, stopping after the current task...", file=sys.stderr)
        runner.request_stop()

    previous = {signal.SIGINT: signal.signal(signal.SIGINT, handler)}
    if sys.platform != "win32":
        previous[signal.SIGTERM] = signal.signal(signal.SIGTERM, handler)
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)
