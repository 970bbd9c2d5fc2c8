"""stagegate data models — all Pydantic v2, all frozen (immutable)."""

from stagegate.models.approvals import ApprovalDecision, ApprovalRecord, ApprovalRequest
from stagegate.models.artifacts import ArtifactRef, ArtifactVersion
from stagegate.models.ledger import LedgerEntry
from stagegate.models.pipeline import (
    FailureKind,
    PipelineConfig,
    PipelineDefinition,
    PipelineRun,
    StageExecution,
)
from stagegate.models.policies import Capability, PolicyBinding, Principal, PrincipalRole
from stagegate.models.stages import (
    SOURCE_VARIABLES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActionDefinition,
    ActionKind,
    ApprovalActionDefinition,
    BuildActionDefinition,
    DeployActionDefinition,
    SourceActionDefinition,
    StageDefinition,
    StageState,
)
from stagegate.models.targets import DeploymentPolicy, Host, TargetGroup, TargetGroupSelector
from stagegate.models.topology import (
    ArtifactStoreSpec,
    BuildProject,
    SourceRepository,
    StackOutput,
    Topology,
)

__all__ = [
    # approvals
    "ApprovalDecision",
    "ApprovalRecord",
    "ApprovalRequest",
    # artifacts
    "ArtifactRef",
    "ArtifactVersion",
    # ledger
    "LedgerEntry",
    # pipeline
    "FailureKind",
    "PipelineConfig",
    "PipelineDefinition",
    "PipelineRun",
    "StageExecution",
    # policies
    "Capability",
    "PolicyBinding",
    "Principal",
    "PrincipalRole",
    # stages
    "SOURCE_VARIABLES",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "ActionDefinition",
    "ActionKind",
    "ApprovalActionDefinition",
    "BuildActionDefinition",
    "DeployActionDefinition",
    "SourceActionDefinition",
    "StageDefinition",
    "StageState",
    # targets
    "DeploymentPolicy",
    "Host",
    "TargetGroup",
    "TargetGroupSelector",
    # topology
    "ArtifactStoreSpec",
    "BuildProject",
    "SourceRepository",
    "StackOutput",
    "Topology",
]
