"""Source action: pull the latest revision into the source artifact."""

from __future__ import annotations

from stagegate.actions.base import ActionContext, ActionResult, BaseAction, StageExecutionError
from stagegate.models.stages import ActionKind


class SourceAction(BaseAction):
    """Pulls ``repository@branch`` and publishes the revision variables."""

    kind = ActionKind.SOURCE

    def execute(self, context: ActionContext) -> ActionResult:
        definition = self.definition
        try:
            revision = self.collaborators.source.pull(definition.repository, definition.branch)
        except Exception as exc:
            raise StageExecutionError(
                f"Could not pull {definition.repository}@{definition.branch}: {exc}"
            ) from exc

        ref = context.store_output(
            definition.output_artifact,
            revision.archive,
            metadata={"commit_id": revision.commit_id},
        )
        return ActionResult(
            artifacts=[ref],
            variables={
                "commit_id": revision.commit_id,
                "commit_message": revision.commit_message,
                "branch_name": revision.branch_name,
                "repository_name": revision.repository_name,
            },
            namespace=definition.namespace,
            detail=f"{revision.repository_name}@{revision.commit_id}",
        )
