"""Rich-based live renderer for task progress."""
import sys
import time
from pathlib import Path
from typing import TextIO

from rich.console import Console, ConsoleOptions, RenderResult
from rich.live import Live
from rich.table import Table

from buildflow.events import EventBus, LogMessage, RunFinished, RunStarted, TaskFinished, TaskStarted

from .structures import TaskState
from .ui import BUILDFLOW_THEME, STATE_STYLES


class DynamicTable:
    """Wrapper that builds a fresh table on each Rich render cycle.

    Rich calls __rich_console__ on each refresh (4x/second), so running tasks
    show a ticking timer.
    """

    def __init__(self, renderer: "RichRenderer"):
        self.renderer = renderer

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        yield self.renderer._build_live_table()


class RichRenderer:
    """Live task table driven by bus events.

    In a TTY the table stays at the bottom and collaborator output is printed
    above it; otherwise output falls back to plain lines.
    """

    # Failure diagnostics shown inline; the full text is in the final summary
    MAX_DIAGNOSTIC_CHARS = 200

    def __init__(self, quiet: bool = False, log_file: Path | None = None):
        self.quiet = quiet
        self.log_file: TextIO | None = None
        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self.log_file = open(log_file, 'w', encoding='utf-8', buffering=1)

        self.is_tty = sys.stdout.isatty()
        self.console = Console(theme=BUILDFLOW_THEME, force_terminal=self.is_tty)

        self._rows: list[dict] = []
        self._current: int | None = None
        self._live: Live | None = None

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(RunStarted, self.on_run_start)
        bus.subscribe(TaskStarted, self.on_task_start)
        bus.subscribe(TaskFinished, self.on_task_end)
        bus.subscribe(RunFinished, self.on_run_end)
        bus.subscribe(LogMessage, self.on_log)

    def _build_live_table(self) -> Table:
        table = Table(title="Build Progress", expand=True)
        table.add_column("Task", style="cyan", no_wrap=True)
        table.add_column("Status", width=12)
        table.add_column("Time", justify="right", width=8)

        now = time.time()
        for info in self._rows:
            state: TaskState = info['state']
            if state is TaskState.RUNNING:
                time_str = f"{now - info['start_time']:.1f}s"
            elif info.get('elapsed', 0) > 0:
                time_str = f"{info['elapsed']:.1f}s"
            else:
                time_str = "-"
            style = STATE_STYLES[state]
            table.add_row(info['label'], f"[{style}]{state.value}[/{style}]", time_str)

        return table

    def _write(self, text: str, is_error: bool = False):
        """Central output handler."""
        if self.quiet and not is_error:
            return

        if self.log_file:
            self.log_file.write(text + "\n")

        if self._live:
            self._live.console.print(text, style="bold red" if is_error else None, markup=False)
        else:
            print(text, file=sys.stderr if is_error else sys.stdout, flush=True)

    def start(self):
        """Start the live display (call before the plan runs)."""
        if self.is_tty and not self.quiet:
            self._live = Live(DynamicTable(self), refresh_per_second=4, console=self.console)
            self._live.__enter__()

    def stop(self):
        """Stop the live display and close the log file."""
        if self._live:
            self._live.__exit__(None, None, None)
            self._live = None
        if self.log_file:
            self.log_file.close()
            self.log_file = None

    def on_run_start(self, event: RunStarted) -> None:
        self._rows = [{'label': str(task), 'state': TaskState.PENDING} for task in event.plan]
        self._current = None
        self.start()

    def on_task_start(self, event: TaskStarted) -> None:
        self._current = event.index - 1
        if 0 <= self._current < len(self._rows):
            self._rows[self._current].update(state=TaskState.RUNNING, start_time=time.time())
        if not self._live:
            self._write(f"\n[Task {event.index}/{event.total}] {event.task}")

    def on_task_end(self, event: TaskFinished) -> None:
        if self._current is not None and 0 <= self._current < len(self._rows):
            self._rows[self._current].update(state=event.outcome.status, elapsed=event.elapsed)
        self._current = None

        if event.outcome.success:
            if not self._live:
                self._write(f"[OK] {event.task} completed in {event.elapsed:.1f}s")
            return

        self._write(f"[FAILED] {event.task}", is_error=True)
        diagnostics = event.outcome.diagnostics.strip()
        if diagnostics:
            if len(diagnostics) > self.MAX_DIAGNOSTIC_CHARS:
                diagnostics = diagnostics[:self.MAX_DIAGNOSTIC_CHARS] + "..."
            self._write(f"  Error: {diagnostics}", is_error=True)

    def on_run_end(self, event: RunFinished) -> None:
        for row, result in zip(self._rows, event.report.results):
            row['state'] = result.status
        self.stop()

    def on_log(self, event: LogMessage) -> None:
        self._write(event.message, is_error=event.is_error)
