"""Central UI handler for buildflow.

Single source of truth for Rich console styling. Import this instead of
instantiating Console() in every command file.

Usage:
    from buildflow.pipeline.ui import console, print_error

    console.print("[success]Build passed[/success]")
    print_error("Build file not found")
"""

import sys

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from buildflow.pipeline.structures import RunReport, TaskState
from buildflow.utils.helpers import format_duration

BUILDFLOW_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "aborted": "yellow",
    "task": "bold magenta",
    "path": "bold cyan",
    "dim": "dim white",
})

STATE_STYLES = {
    TaskState.PENDING: "dim",
    TaskState.RUNNING: "info",
    TaskState.SUCCEEDED: "success",
    TaskState.FAILED: "error",
    TaskState.ABORTED: "aborted",
}

# Single console instance - import this, don't create your own
console = Console(
    theme=BUILDFLOW_THEME,
    force_terminal=sys.stdout.isatty()
)


def print_error(msg: str) -> None:
    console.print(f"[error]ERROR:[/error] {escape(msg)}")


def print_warning(msg: str) -> None:
    console.print(f"[warning]WARNING:[/warning] {escape(msg)}")


def print_status_panel(
    status: str,
    message: str,
    detail: str,
    level: str = "info"
) -> None:
    """Print a status panel with colored border.

    Args:
        status: Status label (e.g., "SUCCEEDED", "FAILED")
        message: Main message line
        detail: Additional detail line
        level: One of "error", "warning", "success", "info"
    """
    style_map = {
        "error": ("bold red", "red"),
        "warning": ("bold yellow", "yellow"),
        "success": ("bold green", "green"),
        "info": ("bold cyan", "cyan"),
    }
    text_style, border_style = style_map.get(level, ("white", "white"))

    panel = Panel(
        Text.assemble(
            (f"STATUS: [{status}]\n", text_style),
            (f"{message}\n", border_style),
            (detail, border_style)
        ),
        border_style=border_style,
        expand=False
    )
    console.print(panel)


def build_timing_table(report: RunReport) -> Table:
    """Per-task status and elapsed time, slowest tasks marked."""
    table = Table(title="Task timing", show_lines=False)
    table.add_column("Task", style="task", no_wrap=True)
    table.add_column("Status", width=10)
    table.add_column("Time", justify="right", width=9)
    table.add_column("Share", justify="right", width=6)

    total = sum(r.elapsed for r in report.results) or 1.0
    for result in report.results:
        style = STATE_STYLES[result.status]
        ran = result.status is not TaskState.ABORTED
        table.add_row(
            str(result.task),
            f"[{style}]{result.status.value}[/{style}]",
            format_duration(result.elapsed) if ran else "-",
            f"{result.elapsed / total:.0%}" if ran else "-",
        )
    return table


def print_run_summary(report: RunReport) -> None:
    """Print the timing table, failure diagnostics and final status panel."""
    if report.results:
        console.print(build_timing_table(report))

    for result in report.by_status(TaskState.FAILED):
        console.print(f"\n[error]{result.task} failed:[/error]")
        if result.outcome.diagnostics:
            console.print(result.outcome.diagnostics, markup=False, highlight=False)

    succeeded = len(report.by_status(TaskState.SUCCEEDED))
    failed = len(report.by_status(TaskState.FAILED))
    aborted = len(report.by_status(TaskState.ABORTED))
    detail = f"{succeeded} succeeded, {failed} failed, {aborted} aborted in {format_duration(report.elapsed)}"

    if report.success:
        print_status_panel("SUCCEEDED", f"All {len(report.results)} tasks completed", detail, "success")
    elif report.interrupted:
        print_status_panel("INTERRUPTED", "Run stopped by user", detail, "warning")
    else:
        first = report.by_status(TaskState.FAILED)
        message = f"Task {first[0].task} failed" if first else "Run did not complete"
        print_status_panel("FAILED", message, detail, "error")
