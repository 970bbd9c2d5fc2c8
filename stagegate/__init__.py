"""stagegate: staged continuous-delivery pipeline with a manual approval gate.

Declares a deployment topology (artifact store, principals and policy
bindings, tagged hosts, target groups) and executes its pipeline:

    Source -> Build -> Deploy (DEV) -> Approve -> Deploy (PRD)

  - Definition-time validation of the stage graph, capabilities and selectors
  - Versioned, append-only artifact store
  - Hash-chained SQLite run ledger as the single source of truth
  - All-at-once concurrent deploys to late-bound target groups
  - Suspend/resume approval gate with notification fan-out and timeout
"""

__version__ = "0.1.0"
__description__ = "Staged continuous-delivery pipeline with a manual approval gate"

from stagegate.actions.base import ApprovalRejected, StageExecutionError
from stagegate.actions.deploy import HostDeploymentError
from stagegate.core.artifact_store import ArtifactIntegrityError, ArtifactNotFoundError
from stagegate.core.orchestrator import NoPendingApprovalError, Orchestrator
from stagegate.core.run_ledger import LedgerIntegrityError
from stagegate.core.stage_graph import CyclicDependencyError, PrerequisiteNotMetError
from stagegate.core.stage_machine import InvalidTransitionError
from stagegate.core.templates import TemplateError
from stagegate.core.validation import ProvisioningError
from stagegate.routing.dispatcher import SinkDispatchError

__all__ = [
    "ApprovalRejected",
    "ArtifactIntegrityError",
    "ArtifactNotFoundError",
    "CyclicDependencyError",
    "HostDeploymentError",
    "InvalidTransitionError",
    "LedgerIntegrityError",
    "NoPendingApprovalError",
    "Orchestrator",
    "PrerequisiteNotMetError",
    "ProvisioningError",
    "SinkDispatchError",
    "StageExecutionError",
    "TemplateError",
    "__version__",
]
