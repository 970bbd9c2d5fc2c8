"""Main Typer application — imports and registers all CLI commands.

Entry point: ``stagegate`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from stagegate.cli.commands.approve import approve_cmd
from stagegate.cli.commands.run import run_cmd
from stagegate.cli.commands.status import expire_cmd, runs_cmd, status_cmd
from stagegate.cli.commands.validate import outputs_cmd, validate_cmd
from stagegate.cli.runtime import configure_logging
from stagegate.config import Settings

app = typer.Typer(
    name="stagegate",
    help="stagegate: staged continuous-delivery pipeline with a manual approval gate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _main() -> None:
    configure_logging(Settings())


# Register subcommands
app.command(name="validate", help="Validate the topology and print the stage plan.")(validate_cmd)
app.command(name="outputs", help="Print the stack outputs.")(outputs_cmd)
app.command(name="run", help="Trigger a run from a local source directory.")(run_cmd)
app.command(name="approve", help="Approve or reject a run waiting at the gate.")(approve_cmd)
app.command(name="status", help="Show the state of a run.")(status_cmd)
app.command(name="runs", help="List runs.")(runs_cmd)
app.command(name="expire", help="Time out expired approval requests.")(expire_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
