"""Resolve requested aliases and tasks, then run them."""

import dataclasses
import sys
from pathlib import Path

import click
from rich.table import Table
from rich.text import Text

from buildflow.config_runtime import find_build_file, load_runtime_config
from buildflow.coverage import CoverageAggregator
from buildflow.errors import BuildflowError
from buildflow.events import ConsoleLogger, EventBus
from buildflow.graph import GraphResolver
from buildflow.pipeline.renderer import RichRenderer
from buildflow.pipeline.structures import ExecutionPlan
from buildflow.pipeline.ui import console, print_error, print_run_summary, print_warning
from buildflow.registry import Project, load_project
from buildflow.runner import TaskRunner, interrupt_guard
from buildflow.utils.constants import DEFAULT_ALIAS
from buildflow.utils.error_handler import handle_exceptions
from buildflow.utils.exit_codes import ExitCodes
from buildflow.utils.logging import (
    configure_file_logging,
    logger,
    restore_stderr_sink,
    swap_to_rich_sink,
)


def print_plan(project: Project, plan: ExecutionPlan) -> None:
    """Print the resolved plan without running it."""
    table = Table(title=f"Plan for {', '.join(plan.requested)}" + (" (best effort)" if plan.best_effort else ""))
    table.add_column("#", justify="right", style="dim")
    table.add_column("Task", style="task")
    table.add_column("Adapter")
    table.add_column("Mode")
    for index, task_id in enumerate(plan, start=1):
        task = project.registry.get(task_id)
        table.add_row(str(index), str(task_id), task.adapter.name, task.mode.value)
    console.print(table)


@click.command()
@handle_exceptions
@click.argument("names", nargs=-1)
@click.option("--build-file", "-f", type=click.Path(path_type=Path), default=None,
              help="Build file (default: buildflow.yml)")
@click.option("--dry-run", is_flag=True, help="Print the resolved plan without running it")
@click.option("--continue-on-failure", "-k", is_flag=True,
              help="Run every task even after a failure (best effort)")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds for async tasks")
@click.option("--plain", is_flag=True, help="Plain line output instead of the live table")
@click.option("--quiet", "-q", is_flag=True, help="Only print failures and the final status")
@click.option("--log-file", type=click.Path(path_type=Path), default=None,
              help="Also write task output to this file")
def run(names, build_file, dry_run, continue_on_failure, timeout, plain, quiet, log_file):
    """Run aliases or tasks from the build file.

    Each NAME is an alias, a task (all of its targets) or a single
    task:target. Names run in the order given; with no NAME the 'default'
    alias runs.

    Examples:
      bflow run                     # default alias
      bflow run build               # one alias
      bflow run clean:dist copy     # a target, then every copy target
      bflow run test --dry-run      # show the plan only
      bflow run release -k          # keep going after failures

    Exit Codes:
      0 = All tasks succeeded
      1 = A task failed or was aborted
      2 = Invalid build file, or an unknown/cyclic name
      130 = Interrupted
    """
    settings = load_runtime_config(".")

    try:
        path = find_build_file(settings, build_file)
        project = load_project(path)
        plan = GraphResolver(project.registry, project.aliases).resolve_many(names or (DEFAULT_ALIAS,))
    except BuildflowError as e:
        print_error(str(e))
        sys.exit(ExitCodes.CONFIG_ERROR)

    if continue_on_failure:
        plan = dataclasses.replace(plan, best_effort=True)

    if not plan.tasks:
        print_warning(f"Nothing to run for: {', '.join(plan.requested)}")
        return

    if dry_run:
        print_plan(project, plan)
        return

    bus = EventBus()
    plain_output = None
    renderer = None
    if plain or quiet:
        plain_output = ConsoleLogger(quiet=quiet, log_file=log_file)
        plain_output.attach(bus)
    else:
        renderer = RichRenderer(log_file=log_file)
        renderer.attach(bus)

    coverage_dir = project.root / settings["paths"]["coverage_dir"]
    CoverageAggregator(
        coverage_dir,
        root=project.root,
        summarizer=settings["coverage"]["summarizer"],
        reporters=settings["coverage"]["reporters"],
        console=None if quiet else console,
    ).attach(bus)

    runner = TaskRunner(project.registry, bus, root=project.root, settings=settings, default_timeout=timeout)

    file_handler = configure_file_logging(Path(settings["paths"]["state_dir"]))
    rich_handler = None
    if renderer is not None and renderer.is_tty:
        rich_handler = swap_to_rich_sink(
            lambda message: renderer.console.print(Text.from_ansi(str(message).rstrip("\n")))
        )

    try:
        with interrupt_guard(runner):
            report = runner.execute(plan)
    finally:
        if renderer is not None:
            renderer.stop()
        if plain_output is not None:
            plain_output.close()
        restore_stderr_sink(rich_handler)
        logger.remove(file_handler)
        bus.close()

    if not quiet or not report.success:
        console.print()
        print_run_summary(report)

    if report.success:
        return
    code = ExitCodes.INTERRUPTED if report.interrupted else ExitCodes.TASK_FAILED
    logger.debug(f"Exit {code}: {ExitCodes.get_description(code)}")
    sys.exit(code)
