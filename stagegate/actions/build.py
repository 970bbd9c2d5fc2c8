"""Build action: run the build project over the source artifact."""

from __future__ import annotations

import logging

from stagegate.actions.base import ActionContext, ActionResult, BaseAction, StageExecutionError
from stagegate.models.stages import ActionKind

logger = logging.getLogger(__name__)


class BuildAction(BaseAction):
    """Runs the project in the sandbox; a non-zero exit fails the stage."""

    kind = ActionKind.BUILD

    def execute(self, context: ActionContext) -> ActionResult:
        definition = self.definition
        project = self.topology.build_project(definition.project)
        source = context.read_input(definition.input_artifact)

        result = self.collaborators.sandbox.run(project, source)
        if result.logs:
            logger.debug("Build %s logs:\n%s", project.name, result.logs)
        if not result.succeeded:
            raise StageExecutionError(
                f"Build {project.name} exited with code {result.exit_code}"
            )

        ref = context.store_output(
            definition.output_artifact,
            result.output,
            metadata={"project": project.name, "build_image": project.build_image},
        )
        return ActionResult(
            artifacts=[ref],
            variables={"exit_code": str(result.exit_code)},
            detail=f"{project.name} -> {ref.content_address}",
        )
