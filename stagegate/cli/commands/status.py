"""``stagegate status``, ``runs`` and ``expire`` — read and age runs.

``status`` and ``runs`` are pure projections over the Run Ledger; they
never change run state.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from stagegate.cli.runtime import build_orchestrator
from stagegate.config import Settings
from stagegate.core.run_ledger import LedgerIntegrityError
from stagegate.models.stages import StageState
from stagegate.monitor.renderer import RunRenderer

console = Console()


def status_cmd(
    run_id: str = typer.Argument(..., help="The run to display."),
    verify_chain: bool = typer.Option(
        False,
        "--verify-chain",
        "-V",
        help="Verify the hash chain and fail loudly if it is broken.",
    ),
) -> None:
    """Show the current state of a run."""
    orchestrator = build_orchestrator(Settings())
    renderer = RunRenderer(console=console)

    try:
        run = orchestrator.get_run(run_id)
    except KeyError:
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        raise typer.Exit(code=1)

    renderer.print_run(run)

    for stage in run.stages:
        if stage.state != StageState.PENDING:
            continue
        ok, reasons = orchestrator.stage_machine.can_start(run_id, stage.stage_name)
        if not ok:
            console.print(f"[dim]{stage.display_name} blocked by: {'; '.join(reasons)}[/dim]")

    if verify_chain:
        try:
            valid = orchestrator.verify_chain(run_id)
        except LedgerIntegrityError as exc:
            console.print(f"[red]{exc}[/red]")
            valid = False
        renderer.print_chain_verification(run_id, valid)
        if not valid:
            raise typer.Exit(code=2)


def runs_cmd() -> None:
    """List the DemoApp pipeline's runs, most recent first."""
    orchestrator = build_orchestrator(Settings())
    run_ids = orchestrator.list_runs()
    if not run_ids:
        console.print("[dim]No runs yet. Trigger one with: stagegate run[/dim]")
        return

    table = Table(title="Runs")
    table.add_column("Run", style="cyan")
    table.add_column("State")
    table.add_column("Current stage")
    for run_id in run_ids:
        run = orchestrator.get_run(run_id, verify_chain=False)
        current = run.current_stage
        table.add_row(
            run_id,
            run.state.value + (" (awaiting approval)" if run.awaiting_approval else ""),
            current.display_name if current else "-",
        )
    console.print(table)


def expire_cmd() -> None:
    """Time out every run whose approval request has expired."""
    orchestrator = build_orchestrator(Settings())
    expired = orchestrator.expire_approvals()
    if not expired:
        console.print("[dim]No expired approvals.[/dim]")
        return
    for run_id in expired:
        console.print(f"[yellow]Timed out:[/yellow] {run_id}")
