"""Stage state machine and stage/action definition models."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from stagegate.models.targets import DeploymentPolicy


class StageState(str, Enum):
    """Strict state model for each stage execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Valid state transitions — enforced structurally by StageMachine.
# Both terminal states have no outgoing transitions: a failed run is
# re-triggered as a new run, never retried in place.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.PENDING: {StageState.RUNNING},
    StageState.RUNNING: {StageState.SUCCEEDED, StageState.FAILED},
    StageState.SUCCEEDED: set(),  # terminal
    StageState.FAILED: set(),  # terminal
}

TERMINAL_STATES: frozenset[StageState] = frozenset(
    {StageState.SUCCEEDED, StageState.FAILED}
)


class ActionKind(str, Enum):
    """The four kinds of work a stage action can perform."""

    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"
    APPROVAL = "approval"


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str

    @property
    def input_artifacts(self) -> list[str]:
        return []

    @property
    def output_artifacts(self) -> list[str]:
        return []


# Output variables every source action publishes under its namespace.
SOURCE_VARIABLES: tuple[str, ...] = (
    "commit_id",
    "commit_message",
    "branch_name",
    "repository_name",
)


class SourceActionDefinition(_ActionBase):
    """Pull the latest revision of a repository into an artifact.

    Publishes revision metadata (commit id, commit message, branch,
    repository) as output variables under ``namespace``.
    """

    kind: Literal["source"] = "source"
    repository: str
    branch: str = "main"
    output_artifact: str
    namespace: str = "SourceVariables"

    @property
    def output_artifacts(self) -> list[str]:
        return [self.output_artifact]


class BuildActionDefinition(_ActionBase):
    """Run a build project over an input artifact."""

    kind: Literal["build"] = "build"
    project: str
    input_artifact: str
    output_artifact: str

    @property
    def input_artifacts(self) -> list[str]:
        return [self.input_artifact]

    @property
    def output_artifacts(self) -> list[str]:
        return [self.output_artifact]


class DeployActionDefinition(_ActionBase):
    """Deploy an artifact to a target group, resolved at deploy time."""

    kind: Literal["deploy"] = "deploy"
    target_group: str
    input_artifact: str
    policy: DeploymentPolicy = DeploymentPolicy.ALL_AT_ONCE

    @property
    def input_artifacts(self) -> list[str]:
        return [self.input_artifact]


class ApprovalActionDefinition(_ActionBase):
    """Block the pipeline until a human approves or rejects.

    ``info_template`` and ``link_template`` may reference variables
    published by earlier actions as ``#{Namespace.variable}``.
    """

    kind: Literal["approval"] = "approval"
    info_template: str = ""
    link_template: str = ""
    timeout_hours: int | None = None


ActionDefinition = Annotated[
    Union[
        SourceActionDefinition,
        BuildActionDefinition,
        DeployActionDefinition,
        ApprovalActionDefinition,
    ],
    Field(discriminator="kind"),
]


class StageDefinition(BaseModel):
    """A named, ordered step of the pipeline.

    Actions inside a stage run in declaration order. Stage ordering
    within the pipeline is the declaration order of the pipeline's
    stage list.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    display_name: str = ""
    actions: list[ActionDefinition]

    @property
    def title(self) -> str:
        return self.display_name or self.name

    @property
    def input_artifacts(self) -> list[str]:
        """Artifacts consumed by this stage (declaration order, deduplicated)."""
        seen: list[str] = []
        for action in self.actions:
            for name in action.input_artifacts:
                if name not in seen:
                    seen.append(name)
        return seen

    @property
    def output_artifacts(self) -> list[str]:
        """Artifacts produced by this stage."""
        return [name for action in self.actions for name in action.output_artifacts]

    @property
    def is_approval_gate(self) -> bool:
        return any(a.kind == ActionKind.APPROVAL for a in self.actions)
