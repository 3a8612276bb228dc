"""List the tasks and aliases of a build file."""

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from buildflow.config_runtime import find_build_file, load_runtime_config
from buildflow.errors import BuildflowError
from buildflow.pipeline.ui import console, print_error
from buildflow.registry import Project, load_project
from buildflow.utils.error_handler import handle_exceptions
from buildflow.utils.exit_codes import ExitCodes


def project_listing(project: Project) -> dict:
    """Tasks (with targets) and aliases as plain data."""
    tasks: dict[str, dict] = {}
    for task in project.registry:
        entry = tasks.setdefault(task.id.name, {
            "adapter": task.adapter.name,
            "mode": task.mode.value,
            "description": task.description,
            "targets": [],
        })
        if task.id.target is not None:
            entry["targets"].append(task.id.target)

    aliases = {
        alias.name: {
            "tasks": list(alias.refs),
            "best_effort": alias.best_effort,
            "description": alias.description,
        }
        for alias in project.aliases
    }
    return {"tasks": tasks, "aliases": aliases}


@click.command("tasks")
@handle_exceptions
@click.option("--build-file", "-f", type=click.Path(path_type=Path), default=None,
              help="Build file (default: buildflow.yml)")
@click.option("--json", "as_json", is_flag=True, help="Print the listing as JSON")
def tasks(build_file, as_json):
    """List registered tasks and aliases.

    Examples:
      bflow tasks
      bflow tasks --json
    """
    settings = load_runtime_config(".")
    try:
        project = load_project(find_build_file(settings, build_file))
    except BuildflowError as e:
        print_error(str(e))
        sys.exit(ExitCodes.CONFIG_ERROR)

    listing = project_listing(project)
    if as_json:
        click.echo(json.dumps(listing, indent=2))
        return

    task_table = Table(title="Tasks")
    task_table.add_column("Task", style="task", no_wrap=True)
    task_table.add_column("Adapter")
    task_table.add_column("Mode")
    task_table.add_column("Targets")
    task_table.add_column("Description", style="dim")
    for name, info in listing["tasks"].items():
        task_table.add_row(
            name, info["adapter"], info["mode"], ", ".join(info["targets"]) or "-", info["description"] or ""
        )
    console.print(task_table)

    alias_table = Table(title="Aliases")
    alias_table.add_column("Alias", style="task", no_wrap=True)
    alias_table.add_column("Runs")
    alias_table.add_column("Best effort", justify="center")
    alias_table.add_column("Description", style="dim")
    for name, info in listing["aliases"].items():
        alias_table.add_row(
            name, ", ".join(info["tasks"]), "yes" if info["best_effort"] else "", info["description"] or ""
        )
    console.print(alias_table)
