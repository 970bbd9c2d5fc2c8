"""Stage actions — one handler class per action kind."""

from __future__ import annotations

from typing import TYPE_CHECKING

from stagegate.actions.approval import ApprovalAction
from stagegate.actions.base import (
    ActionContext,
    ActionResult,
    ApprovalRejected,
    BaseAction,
    StageExecutionError,
)
from stagegate.actions.build import BuildAction
from stagegate.actions.deploy import DeployAction, HostDeploymentError, HostDeploymentResult
from stagegate.actions.source import SourceAction
from stagegate.models.stages import ActionKind

if TYPE_CHECKING:
    from stagegate.actions.collaborators import Collaborators
    from stagegate.models.stages import ActionDefinition
    from stagegate.models.topology import Topology

ACTION_REGISTRY: dict[ActionKind, type[BaseAction]] = {
    ActionKind.SOURCE: SourceAction,
    ActionKind.BUILD: BuildAction,
    ActionKind.DEPLOY: DeployAction,
    ActionKind.APPROVAL: ApprovalAction,
}


def create_action(
    definition: ActionDefinition,
    topology: Topology,
    collaborators: Collaborators,
) -> BaseAction:
    """Instantiate the handler registered for *definition*'s kind."""
    handler_cls = ACTION_REGISTRY[ActionKind(definition.kind)]
    return handler_cls(definition, topology, collaborators)


__all__ = [
    "ACTION_REGISTRY",
    "ActionContext",
    "ActionResult",
    "ApprovalAction",
    "ApprovalRejected",
    "BaseAction",
    "BuildAction",
    "DeployAction",
    "HostDeploymentError",
    "HostDeploymentResult",
    "SourceAction",
    "StageExecutionError",
    "create_action",
]
