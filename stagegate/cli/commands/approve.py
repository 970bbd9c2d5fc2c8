"""``stagegate approve RUN_ID`` — deliver a decision on a pending approval."""

from __future__ import annotations

import typer
from rich.console import Console

from stagegate.cli.runtime import build_orchestrator
from stagegate.config import Settings
from stagegate.core.orchestrator import NoPendingApprovalError
from stagegate.models.approvals import ApprovalDecision
from stagegate.models.stages import StageState
from stagegate.monitor.renderer import RunRenderer

console = Console()


def approve_cmd(
    run_id: str = typer.Argument(..., help="The run waiting on approval."),
    reject: bool = typer.Option(False, "--reject", help="Reject instead of approving."),
    comment: str = typer.Option("", "--comment", "-c", help="Reviewer comment."),
    reviewer: str = typer.Option("", "--reviewer", "-r", help="Reviewer name."),
    request_id: str = typer.Option(
        None, "--request-id", help="Only decide if this is the open request."
    ),
) -> None:
    """Approve (or reject) the open approval of a run and resume it."""
    orchestrator = build_orchestrator(Settings())
    decision = ApprovalDecision.REJECTED if reject else ApprovalDecision.APPROVED

    try:
        run = orchestrator.submit_decision(
            run_id,
            decision,
            reviewer=reviewer,
            comment=comment,
            request_id=request_id,
        )
    except KeyError:
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        raise typer.Exit(code=1)
    except NoPendingApprovalError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1)

    RunRenderer(console=console).print_run(run)
    if run.state == StageState.FAILED:
        raise typer.Exit(code=1)
