"""RunProjection — pure read-only view over the RunLedger.

A PipelineRun is a PROJECTION of the Run Ledger. It does not compute
truth — it displays it. Every call re-reads from the ledger; the
projection never maintains its own state.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from stagegate.core.run_ledger import LedgerIntegrityError, RunLedger
from stagegate.models.approvals import ApprovalRequest
from stagegate.models.ledger import (
    EVENT_APPROVAL_REQUESTED,
    EVENT_RUN_TRIGGERED,
    RUN_SCOPE,
    LedgerEntry,
    collect_outputs,
)
from stagegate.models.pipeline import (
    FailureKind,
    PipelineDefinition,
    PipelineRun,
    StageExecution,
)
from stagegate.models.stages import StageState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Failure detail encoding
# ---------------------------------------------------------------------------


def encode_failure(kind: FailureKind, error: str, **extra: Any) -> str:
    """Serialize a failure into the ``detail`` field of a ledger entry."""
    payload = {"failure_kind": kind.value, "error": error}
    payload.update(extra)
    return json.dumps(payload, sort_keys=True)


def decode_failure(detail: str) -> tuple[FailureKind, str]:
    """Inverse of :func:`encode_failure`; free text decodes as a plain error."""
    try:
        payload = json.loads(detail)
        return FailureKind(payload["failure_kind"]), str(payload.get("error", ""))
    except (ValueError, KeyError, TypeError):
        return FailureKind.ERROR, detail


def pending_approval(entries: list[LedgerEntry]) -> ApprovalRequest | None:
    """Return the open approval request of a run, if any.

    A request is open while its stage has not left RUNNING.
    """
    request: ApprovalRequest | None = None
    for entry in entries:
        if entry.state_transition == EVENT_APPROVAL_REQUESTED:
            request = ApprovalRequest.model_validate_json(entry.detail)
        elif request is not None and entry.stage_name == request.stage_name and entry.is_transition:
            if entry.target_state != StageState.RUNNING.value:
                request = None
    return request


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


class RunProjection:
    """Pure read-only projection of runs of one pipeline.

    Parameters
    ----------
    ledger:
        The RunLedger to project from.
    definition:
        The pipeline definition, for stage ordering and display names.
    """

    def __init__(self, ledger: RunLedger, definition: PipelineDefinition) -> None:
        self._ledger = ledger
        self._definition = definition

    def snapshot(self, run_id: str, *, verify_chain: bool = True) -> PipelineRun:
        """Produce a point-in-time snapshot of a run.

        Raises
        ------
        KeyError
            If the ledger holds no entry for *run_id*.
        """
        entries = self._ledger.get_run_entries(run_id)
        if not entries:
            raise KeyError(f"Unknown run {run_id!r}")

        triggered_at = None
        for entry in entries:
            if entry.state_transition == EVENT_RUN_TRIGGERED:
                triggered_at = entry.timestamp_utc
                break

        stages = [
            self._stage_execution(stage.name, stage.title, entries)
            for stage in self._definition.stages
        ]
        artifacts, variables = collect_outputs(entries)

        chain_valid = True
        if verify_chain:
            try:
                self._ledger.verify_chain(run_id)
            except LedgerIntegrityError as exc:
                logger.error("Run %s: %s", run_id, exc)
                chain_valid = False

        return PipelineRun(
            run_id=run_id,
            pipeline_name=self._definition.name,
            triggered_at=triggered_at,
            stages=stages,
            variables=variables,
            artifacts=artifacts,
            pending_approval=pending_approval(entries),
            chain_valid=chain_valid,
        )

    @staticmethod
    def _stage_execution(name: str, title: str, entries: list[LedgerEntry]) -> StageExecution:
        state = StageState.PENDING
        started_at = None
        finished_at = None
        error = None
        failure_kind = None
        artifacts = []
        variables: dict[str, str] = {}

        for entry in entries:
            if entry.stage_name != name or not entry.is_transition:
                continue
            try:
                state = StageState(entry.target_state)
            except ValueError:
                continue
            if state == StageState.RUNNING:
                started_at = entry.timestamp_utc
            elif state == StageState.SUCCEEDED:
                finished_at = entry.timestamp_utc
                artifacts = list(entry.artifacts)
                variables = dict(entry.variables)
            elif state == StageState.FAILED:
                finished_at = entry.timestamp_utc
                failure_kind, error = decode_failure(entry.detail)

        return StageExecution(
            stage_name=name,
            display_name=title,
            state=state,
            started_at=started_at,
            finished_at=finished_at,
            error=error,
            failure_kind=failure_kind,
            artifacts=artifacts,
            variables=variables,
        )

    def list_run_ids(self) -> list[str]:
        """Return ids of runs of this pipeline, most recently active first."""
        run_ids = []
        for run_id in self._ledger.get_all_run_ids():
            entries = self._ledger.get_stage_history(run_id, RUN_SCOPE)
            for entry in entries:
                if entry.state_transition == EVENT_RUN_TRIGGERED:
                    if _trigger_pipeline(entry) == self._definition.name:
                        run_ids.append(run_id)
                    break
        return run_ids


def _trigger_pipeline(entry: LedgerEntry) -> str:
    try:
        return json.loads(entry.detail).get("pipeline", "")
    except (ValueError, AttributeError):
        return ""
