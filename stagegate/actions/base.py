"""Abstract base action with an enforced lifecycle.

Every concrete action inherits from BaseAction and implements only
``execute()``. The ``run_action()`` wrapper is **not overridable**: it
logs the action boundary and converts unexpected failures into
``StageExecutionError`` so the orchestrator sees one failure type per
stage, never a stray exception.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, ClassVar, final

from pydantic import BaseModel, ConfigDict

from stagegate.models.approvals import ApprovalRequest
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.stages import ActionKind

if TYPE_CHECKING:
    from stagegate.actions.collaborators import Collaborators
    from stagegate.core.artifact_store import VersionedArtifactStore
    from stagegate.models.topology import Topology

logger = logging.getLogger(__name__)


class StageExecutionError(RuntimeError):
    """Raised when a source, build or deploy action fails.

    Terminal for the run: the stage is recorded as FAILED and nothing
    after it starts.
    """


class ApprovalRejected(RuntimeError):
    """Raised when a reviewer explicitly rejects a pending approval."""

    def __init__(self, message: str, *, request_id: str = "", reviewer: str = "", comment: str = "") -> None:
        super().__init__(message)
        self.request_id = request_id
        self.reviewer = reviewer
        self.comment = comment


class ActionResult(BaseModel):
    """What one action hands back to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    artifacts: list[ArtifactRef] = []
    variables: dict[str, str] = {}
    # Namespace the variables are published under; defaults to the action name
    namespace: str = ""
    approval_request: ApprovalRequest | None = None
    detail: str = ""

    @property
    def suspended(self) -> bool:
        return self.approval_request is not None


class ActionContext:
    """Run-scoped view handed to each action.

    Parameters
    ----------
    run_id:
        The run being executed.
    pipeline_name:
        Owning pipeline; prefixes every artifact key.
    stage_name:
        The stage the action belongs to.
    store:
        The pipeline's artifact store.
    artifacts:
        Artifacts published so far in this run, by logical name.
    variables:
        Variables published so far, by namespace.
    """

    def __init__(
        self,
        *,
        run_id: str,
        pipeline_name: str,
        stage_name: str,
        store: VersionedArtifactStore,
        artifacts: dict[str, ArtifactRef] | None = None,
        variables: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self.run_id = run_id
        self.pipeline_name = pipeline_name
        self.stage_name = stage_name
        self.store = store
        self.artifacts: dict[str, ArtifactRef] = dict(artifacts or {})
        self.variables: dict[str, dict[str, str]] = {
            ns: dict(values) for ns, values in (variables or {}).items()
        }

    def artifact_key(self, name: str) -> str:
        return f"{self.pipeline_name}/{name}"

    def input_ref(self, name: str) -> ArtifactRef:
        try:
            return self.artifacts[name]
        except KeyError:
            raise StageExecutionError(
                f"Input artifact {name!r} has not been produced in run {self.run_id}"
            ) from None

    def read_input(self, name: str) -> bytes:
        """Return the bytes of input artifact *name* exactly as stored."""
        return self.store.read_artifact(self.input_ref(name))

    def store_output(self, name: str, data: bytes, *, metadata: dict[str, str] | None = None) -> ArtifactRef:
        """Store a new version of output artifact *name*."""
        meta = {"run_id": self.run_id, "stage": self.stage_name}
        meta.update(metadata or {})
        ref = self.store.store_artifact(name, self.artifact_key(name), data, metadata=meta)
        self.artifacts[name] = ref
        return ref

    def publish(self, namespace: str, values: dict[str, str]) -> None:
        self.variables.setdefault(namespace, {}).update(values)


class BaseAction(abc.ABC):
    """Abstract base for all stage actions.

    Subclasses **must** set ``kind`` and implement ``execute(context)``.
    Subclasses **must not** override ``run_action()``.
    """

    kind: ClassVar[ActionKind]

    def __init__(self, definition, topology: Topology, collaborators: Collaborators) -> None:
        self.definition = definition
        self.topology = topology
        self.collaborators = collaborators

    @property
    def name(self) -> str:
        return self.definition.name

    @abc.abstractmethod
    def execute(self, context: ActionContext) -> ActionResult:
        """Perform the action.

        Raises StageExecutionError (or ApprovalRejected) on failure.
        """
        ...

    @final
    def run_action(self, context: ActionContext) -> ActionResult:
        """Execute the action inside the standard lifecycle.  **Do not override.**"""
        logger.info(
            "Run %s: %s/%s [%s] starting",
            context.run_id, context.stage_name, self.name, self.kind.value,
        )
        try:
            result = self.execute(context)
        except (StageExecutionError, ApprovalRejected) as exc:
            logger.error(
                "Run %s: %s/%s failed: %s", context.run_id, context.stage_name, self.name, exc
            )
            raise
        except Exception as exc:
            logger.error(
                "Run %s: %s/%s raised %s: %s",
                context.run_id, context.stage_name, self.name, type(exc).__name__, exc,
            )
            raise StageExecutionError(f"Action {self.name} failed: {exc}") from exc

        if result.variables:
            context.publish(result.namespace or self.name, result.variables)
        logger.info(
            "Run %s: %s/%s [%s] %s",
            context.run_id,
            context.stage_name,
            self.name,
            self.kind.value,
            "suspended" if result.suspended else "finished",
        )
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
