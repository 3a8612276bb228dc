"""buildflow CLI - main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click
from rich.table import Table

from buildflow import __version__
from buildflow.pipeline.ui import console


class CategorizedGroup(click.Group):
    """Help output grouped by command category."""

    def format_commands(self, ctx, formatter):
        """Suppress the default listing (categories are printed in format_help)."""
        pass

    COMMAND_CATEGORIES = {
        "BUILD": {
            "title": "BUILD",
            "description": "Resolve aliases and run tasks",
            "commands": ["run"],
        },
        "INSPECT": {
            "title": "INSPECT",
            "description": "Look at the build file without running anything",
            "commands": ["tasks"],
        },
    }

    def format_help(self, ctx, formatter):
        super().format_help(ctx, formatter)

        registered = {
            name: cmd
            for name, cmd in self.commands.items()
            if not getattr(cmd, "hidden", False)
        }

        console.print()
        console.rule("[bold]COMMANDS[/bold]")

        for category in self.COMMAND_CATEGORIES.values():
            console.print(f"\n[bold cyan]{category['title']}[/bold cyan]")
            console.print(f"[dim]{category['description']}[/dim]")

            table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
            table.add_column("Command", style="task", width=12)
            table.add_column("Description", style="white")

            for cmd_name in category["commands"]:
                if cmd_name not in registered:
                    continue
                first_line = (registered[cmd_name].help or "").split("\n")[0].strip()
                table.add_row(cmd_name, first_line.rstrip("."))

            console.print(table)

        console.print()
        console.print("For detailed options: [task]bflow <command> --help[/task]")


@click.group(cls=CategorizedGroup)
@click.version_option(version=__version__, prog_name="bflow")
@click.help_option("-h", "--help")
def cli():
    """buildflow - declarative build task orchestrator

    \b
    QUICK START:
      bflow tasks               # What can run
      bflow run                 # Run the default alias
      bflow run test            # Run an alias"""
    pass


from buildflow.commands.run import run
from buildflow.commands.tasks import tasks

cli.add_command(run)
cli.add_command(tasks)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
