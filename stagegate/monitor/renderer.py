"""Rich terminal renderer for pipeline runs.

Turns ``PipelineRun`` snapshots into Rich renderables, with color-coded
stage states and an approval callout while a run waits on a reviewer.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING
- dim       : PENDING
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from stagegate.models.pipeline import PipelineRun
from stagegate.models.stages import StageState

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[StageState, str] = {
    StageState.SUCCEEDED: "bold green",
    StageState.FAILED: "bold red",
    StageState.RUNNING: "bold yellow",
    StageState.PENDING: "dim",
}

_STATE_LABELS: dict[StageState, str] = {
    StageState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.PENDING: "[dim]PENDING[/dim]",
}


class RunRenderer:
    """Renders ``PipelineRun`` snapshots as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance. A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_run(self, run: PipelineRun) -> Panel:
        """Render a run as a Panel holding the stage table and a summary."""
        table = self._build_stage_table(run)

        overall = _STATE_LABELS.get(run.state, run.state.value)
        if run.failure_kind is not None:
            overall += f" [red]({run.failure_kind.value})[/red]"
        summary_parts = [
            f"[bold]Run:[/bold] {run.run_id}",
            f"[bold]State:[/bold] {overall}",
            f"[bold]Artifacts:[/bold] {len(run.artifacts)}",
        ]
        chain_status = "[green]valid[/green]" if run.chain_valid else "[bold red]BROKEN[/bold red]"
        summary_parts.append(f"[bold]Chain:[/bold] {chain_status}")

        parts = [table, Text(""), Text.from_markup("  |  ".join(summary_parts))]

        if run.awaiting_approval and run.pending_approval is not None:
            request = run.pending_approval
            lines = [
                f"[bold yellow]Awaiting approval[/bold yellow] ({request.stage_name})",
                f"request: {request.request_id}",
            ]
            if request.summary:
                lines.append(request.summary)
            if request.review_link:
                lines.append(f"[link={request.review_link}]{request.review_link}[/link]")
            if request.expires_at:
                lines.append(f"expires: {request.expires_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
            parts.extend([Text(""), Text.from_markup("\n".join(lines))])

        triggered = (
            run.triggered_at.strftime("%Y-%m-%d %H:%M:%S UTC") if run.triggered_at else "-"
        )
        return Panel(
            Group(*parts),
            title=f"[bold]{run.pipeline_name}[/bold]",
            subtitle=f"Triggered: {triggered}",
            border_style="blue",
            padding=(1, 2),
        )

    def _build_stage_table(self, run: PipelineRun) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=16)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Details", min_width=20)

        for i, stage in enumerate(run.stages, start=1):
            name_style = _STATE_STYLES.get(stage.state, "")
            details: list[str] = []
            if stage.error:
                details.append(f"[red]{stage.error}[/red]")
            for ref in stage.artifacts:
                details.append(f"[cyan]{ref.name}[/cyan] {ref.content_address[7:19]}")
            if stage.finished_at:
                details.append(f"[dim]{stage.finished_at.strftime('%H:%M:%S')}[/dim]")
            elif stage.started_at:
                details.append(f"[dim]since {stage.started_at.strftime('%H:%M:%S')}[/dim]")

            table.add_row(
                str(i),
                f"[{name_style}]{stage.display_name or stage.stage_name}[/{name_style}]",
                _STATE_LABELS.get(stage.state, stage.state.value),
                " | ".join(details) if details else "[dim]-[/dim]",
            )
        return table

    def print_run(self, run: PipelineRun) -> None:
        self.console.print(self.render_run(run))

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        """Print a chain verification result."""
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]")
