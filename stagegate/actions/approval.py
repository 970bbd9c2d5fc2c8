"""Approval action: the pipeline's only suspension point.

``execute()`` renders the review message and link from variables
published earlier in the run, announces the request through the sink
dispatcher, and returns a suspended result. Nothing waits in-process;
the decision arrives later through ``decide()``, possibly in another
process that rebuilt the run from the ledger.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from stagegate.actions.base import ActionContext, ActionResult, ApprovalRejected, BaseAction
from stagegate.core.templates import render
from stagegate.models.approvals import ApprovalDecision, ApprovalRecord, ApprovalRequest
from stagegate.models.stages import ActionKind


class ApprovalAction(BaseAction):
    kind = ActionKind.APPROVAL

    @property
    def timeout_hours(self) -> int | None:
        if self.definition.timeout_hours is not None:
            return self.definition.timeout_hours
        return self.collaborators.approval_timeout_hours

    def execute(self, context: ActionContext) -> ActionResult:
        definition = self.definition
        requested_at = datetime.now(timezone.utc)
        expires_at = None
        if self.timeout_hours is not None:
            expires_at = requested_at + timedelta(hours=self.timeout_hours)

        request = ApprovalRequest(
            run_id=context.run_id,
            pipeline_name=context.pipeline_name,
            stage_name=context.stage_name,
            action_name=definition.name,
            summary=render(definition.info_template, context.variables),
            review_link=render(definition.link_template, context.variables),
            requested_at=requested_at,
            expires_at=expires_at,
        )

        if self.collaborators.dispatcher is not None:
            self.collaborators.dispatcher.dispatch(request)

        return ActionResult(approval_request=request, detail=request.summary)

    def decide(self, request: ApprovalRequest, record: ApprovalRecord) -> ActionResult:
        """Apply a reviewer's decision to *request*.

        Raises
        ------
        ApprovalRejected
            If the decision is a rejection.
        """
        if record.decision == ApprovalDecision.REJECTED:
            raise ApprovalRejected(
                f"Approval {request.request_id} rejected by {record.reviewer or 'unknown reviewer'}"
                + (f": {record.comment}" if record.comment else ""),
                request_id=request.request_id,
                reviewer=record.reviewer,
                comment=record.comment,
            )
        return ActionResult(
            variables={
                "decision": record.decision.value,
                "reviewer": record.reviewer,
                "comment": record.comment,
            },
            detail=f"approved by {record.reviewer or 'unknown reviewer'}",
        )
