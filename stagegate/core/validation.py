"""Definition-time checks for pipelines and whole topologies.

Everything here runs before any run is triggered. Problems are collected
rather than raised one at a time, so a single ``ProvisioningError``
lists every defect found in the definition.
"""

from __future__ import annotations

import logging
from itertools import combinations

from stagegate.core.policies import PolicyRegistry, required_capabilities, required_roles
from stagegate.core.stage_graph import CyclicDependencyError, StageGraph
from stagegate.core.templates import referenced_variables
from stagegate.models.pipeline import PipelineDefinition
from stagegate.models.stages import SOURCE_VARIABLES, ActionKind
from stagegate.models.topology import Topology

logger = logging.getLogger(__name__)


class ProvisioningError(ValueError):
    """Raised when a pipeline or topology definition is invalid.

    Parameters
    ----------
    problems:
        Every problem found, in discovery order.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        summary = "; ".join(self.problems) if self.problems else "invalid definition"
        super().__init__(f"Invalid definition ({len(self.problems)} problem(s)): {summary}")


# ---------------------------------------------------------------------------
# Pipeline structure
# ---------------------------------------------------------------------------


def pipeline_problems(definition: PipelineDefinition) -> list[str]:
    """Return the structural problems of a pipeline definition."""
    problems: list[str] = []

    if not definition.stages:
        problems.append(f"Pipeline {definition.name!r} declares no stages")
        return problems

    seen_stages: set[str] = set()
    seen_actions: set[str] = set()
    for stage in definition.stages:
        if stage.name in seen_stages:
            problems.append(f"Duplicate stage name {stage.name!r}")
        seen_stages.add(stage.name)
        if not stage.actions:
            problems.append(f"Stage {stage.name!r} declares no actions")
        elif stage.is_approval_gate and len(stage.actions) > 1:
            problems.append(
                f"Approval stage {stage.name!r} must contain only its approval action"
            )
        for action in stage.actions:
            if action.name in seen_actions:
                problems.append(f"Duplicate action name {action.name!r}")
            seen_actions.add(action.name)

    # Artifact flow: one producer each, produced before consumed
    producers: dict[str, str] = {}
    for stage in definition.stages:
        for artifact in stage.output_artifacts:
            if artifact in producers:
                problems.append(
                    f"Artifact {artifact!r} is produced by both "
                    f"{producers[artifact]!r} and {stage.name!r}"
                )
            else:
                producers[artifact] = stage.name

    produced_so_far: set[str] = set()
    published: dict[str, set[str]] = {}
    for stage in definition.stages:
        for artifact in stage.input_artifacts:
            if artifact not in producers:
                problems.append(
                    f"Stage {stage.name!r} consumes {artifact!r}, which no stage produces"
                )
            elif artifact not in produced_so_far:
                problems.append(
                    f"Stage {stage.name!r} consumes {artifact!r} before "
                    f"{producers[artifact]!r} produces it"
                )

        for action in stage.actions:
            if action.kind == ActionKind.APPROVAL:
                if action.timeout_hours is not None and action.timeout_hours <= 0:
                    problems.append(
                        f"Approval {action.name!r} has non-positive timeout "
                        f"{action.timeout_hours}"
                    )
                for template in (action.info_template, action.link_template):
                    for namespace, variable in referenced_variables(template):
                        if namespace not in published:
                            problems.append(
                                f"Approval {action.name!r} references "
                                f"#{{{namespace}.{variable}}} but no earlier stage "
                                f"publishes namespace {namespace!r}"
                            )
                        elif variable not in published[namespace]:
                            problems.append(
                                f"Approval {action.name!r} references unknown "
                                f"variable #{{{namespace}.{variable}}}"
                            )

        # Outputs of a stage become visible to the stages after it
        produced_so_far.update(stage.output_artifacts)
        for action in stage.actions:
            if action.kind == ActionKind.SOURCE:
                published.setdefault(action.namespace, set()).update(SOURCE_VARIABLES)

    if not problems:
        try:
            StageGraph(definition.stages)
        except CyclicDependencyError as exc:
            problems.append(str(exc))

    return problems


def validate_pipeline(definition: PipelineDefinition) -> StageGraph:
    """Validate a pipeline on its own and return its stage graph.

    Raises
    ------
    ProvisioningError
        If the pipeline structure is malformed.
    """
    problems = pipeline_problems(definition)
    if problems:
        raise ProvisioningError(problems)
    return StageGraph(definition.stages)


# ---------------------------------------------------------------------------
# Topology
# ---------------------------------------------------------------------------


def _reference_problems(topology: Topology) -> list[str]:
    problems: list[str] = []
    pipeline = topology.pipeline
    principals = {p.name for p in topology.principals}
    repositories = {r.name for r in topology.repositories}
    projects = {p.name: p for p in topology.build_projects}
    groups = {g.name: g for g in topology.target_groups}

    if pipeline.artifact_store != topology.artifact_store.name:
        problems.append(
            f"Pipeline uses artifact store {pipeline.artifact_store!r} but the "
            f"topology declares {topology.artifact_store.name!r}"
        )
    if pipeline.principal not in principals:
        problems.append(f"Pipeline principal {pipeline.principal!r} is not declared")

    for stage in pipeline.stages:
        for action in stage.actions:
            if action.kind == ActionKind.SOURCE:
                if action.repository not in repositories:
                    problems.append(
                        f"Action {action.name!r} references undefined repository "
                        f"{action.repository!r}"
                    )
            elif action.kind == ActionKind.BUILD:
                project = projects.get(action.project)
                if project is None:
                    problems.append(
                        f"Action {action.name!r} references undefined build project "
                        f"{action.project!r}"
                    )
                elif project.principal not in principals:
                    problems.append(
                        f"Build project {project.name!r} runs as undeclared principal "
                        f"{project.principal!r}"
                    )
            elif action.kind == ActionKind.DEPLOY:
                group = groups.get(action.target_group)
                if group is None:
                    problems.append(
                        f"Action {action.name!r} references undefined target group "
                        f"{action.target_group!r}"
                    )
                elif group.deploy_principal not in principals:
                    problems.append(
                        f"Target group {group.name!r} deploys as undeclared principal "
                        f"{group.deploy_principal!r}"
                    )

    for host in topology.hosts:
        if host.principal and host.principal not in principals:
            problems.append(
                f"Host {host.name!r} runs as undeclared principal {host.principal!r}"
            )
    return problems


def _policy_problems(topology: Topology) -> list[str]:
    problems: list[str] = []
    try:
        registry = PolicyRegistry.from_topology(topology)
    except ValueError as exc:
        return [str(exc)]

    roles = required_roles(topology)
    for principal, principal_roles in sorted(roles.items()):
        if not registry.has_principal(principal):
            # Reported by the reference checks
            continue
        needed = required_capabilities(principal_roles)
        granted = registry.capabilities_of(principal)
        missing = needed - granted
        excess = granted - needed
        if missing:
            problems.append(
                f"Principal {principal!r} is missing capabilities "
                f"{sorted(c.value for c in missing)}"
            )
        if excess:
            problems.append(
                f"Principal {principal!r} is granted unused capabilities "
                f"{sorted(c.value for c in excess)}"
            )

    for principal in registry.principals:
        if principal.name not in roles and registry.capabilities_of(principal.name):
            problems.append(
                f"Principal {principal.name!r} is bound but plays no role in the pipeline"
            )
    return problems


def _selector_problems(topology: Topology) -> list[str]:
    problems: list[str] = []
    for a, b in combinations(topology.target_groups, 2):
        if not a.selector.is_disjoint_from(b.selector):
            problems.append(
                f"Target groups {a.name!r} ({a.selector.describe()}) and "
                f"{b.name!r} ({b.selector.describe()}) can select the same host"
            )
    return problems


def validate_topology(topology: Topology) -> StageGraph:
    """Run every definition-time check and return the pipeline's stage graph.

    Raises
    ------
    ProvisioningError
        Listing every problem found.
    """
    problems = pipeline_problems(topology.pipeline)
    problems.extend(_reference_problems(topology))
    problems.extend(_policy_problems(topology))
    problems.extend(_selector_problems(topology))

    if problems:
        for problem in problems:
            logger.error("Topology %s: %s", topology.name, problem)
        raise ProvisioningError(problems)

    logger.info(
        "Topology %s validated: %d stages, %d principals, %d target groups",
        topology.name,
        len(topology.pipeline.stages),
        len(topology.principals),
        len(topology.target_groups),
    )
    return StageGraph(topology.pipeline.stages)
