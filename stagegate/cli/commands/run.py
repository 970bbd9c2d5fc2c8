"""``stagegate run`` — trigger a pipeline run from a local source tree.

Executes stages until the run completes, fails, or reaches the approval
gate. A suspended run is resumed later with ``stagegate approve``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from stagegate.cli.runtime import build_orchestrator
from stagegate.config import Settings
from stagegate.core.validation import ProvisioningError
from stagegate.models.stages import StageState
from stagegate.monitor.renderer import RunRenderer

console = Console()


def run_cmd(
    source: Path = typer.Option(
        Path("."),
        "--source",
        "-s",
        help="Directory snapshotted as the source revision.",
    ),
    message: str = typer.Option(
        "",
        "--message",
        "-m",
        help="Commit message recorded for the revision.",
    ),
    build_command: list[str] = typer.Option(
        [],
        "--build-command",
        "-b",
        help="Shell command run by the build project (repeatable).",
    ),
    output_path: list[str] = typer.Option(
        [],
        "--output-path",
        "-o",
        help="Glob packaged as the build artifact (repeatable; default: everything).",
    ),
) -> None:
    """Trigger a new run of the DemoApp pipeline."""
    if not source.is_dir():
        console.print(f"[bold red]Source directory not found:[/bold red] {source}")
        raise typer.Exit(code=1)

    try:
        orchestrator = build_orchestrator(
            Settings(),
            source_dir=source,
            commit_message=message,
            build_commands=list(build_command),
            output_paths=list(output_path),
        )
    except ProvisioningError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1)

    run = orchestrator.run(trigger="cli")
    RunRenderer(console=console).print_run(run)

    if run.awaiting_approval:
        console.print(
            f"[yellow]Approve with:[/yellow] stagegate approve {run.run_id}  "
            f"[dim](or --reject)[/dim]"
        )
    elif run.state == StageState.FAILED:
        raise typer.Exit(code=1)
