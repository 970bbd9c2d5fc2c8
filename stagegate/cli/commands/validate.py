"""``stagegate validate`` and ``stagegate outputs`` — inspect the topology."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from stagegate.config import Settings
from stagegate.core.validation import ProvisioningError, validate_topology
from stagegate.topology.demo_app import build_demo_topology

console = Console()


def validate_cmd() -> None:
    """Validate the DemoApp topology and print its stage plan and bindings."""
    topology = build_demo_topology(Settings())
    try:
        graph = validate_topology(topology)
    except ProvisioningError as exc:
        console.print(f"[bold red]Topology {topology.name} is invalid:[/bold red]")
        for problem in exc.problems:
            console.print(f"  [red]-[/red] {problem}")
        raise typer.Exit(code=1)

    plan = Table(title=f"Pipeline {topology.pipeline.name}")
    plan.add_column("#", style="dim", justify="right")
    plan.add_column("Stage", style="cyan")
    plan.add_column("Actions")
    plan.add_column("Inputs")
    plan.add_column("Outputs")
    plan.add_column("After", style="dim")
    for i, stage in enumerate(topology.pipeline.stages, start=1):
        plan.add_row(
            str(i),
            stage.title,
            ", ".join(f"{a.name} ({a.kind})" for a in stage.actions),
            ", ".join(stage.input_artifacts) or "-",
            ", ".join(stage.output_artifacts) or "-",
            ", ".join(graph.get_prerequisites(stage.name)) or "-",
        )
    console.print(plan)

    bindings = Table(title="Policy bindings")
    bindings.add_column("Principal", style="cyan")
    bindings.add_column("Capabilities")
    bindings.add_column("Scope", style="dim")
    for binding in topology.bindings:
        bindings.add_row(
            binding.principal,
            ", ".join(sorted(c.value for c in binding.capabilities)),
            binding.resource_scope,
        )
    console.print(bindings)

    groups = Table(title="Target groups")
    groups.add_column("Group", style="cyan")
    groups.add_column("Selector")
    groups.add_column("Deploys as", style="dim")
    for group in topology.target_groups:
        groups.add_row(group.name, group.selector.describe(), group.deploy_principal)
    console.print(groups)

    console.print(f"[bold green]Topology {topology.name} is valid.[/bold green]")


def outputs_cmd() -> None:
    """Print the stack outputs of the DemoApp topology."""
    topology = build_demo_topology(Settings())
    table = Table(title=f"{topology.name} outputs")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_column("Description", style="dim")
    for output in topology.outputs:
        table.add_row(output.key, output.value, output.description)
    console.print(table)
