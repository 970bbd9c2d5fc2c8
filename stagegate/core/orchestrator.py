"""Pipeline orchestrator — the central coordinator for stagegate runs.

The Orchestrator wires together the RunLedger, StageMachine, StageGraph,
VersionedArtifactStore and the action handlers into a single execution
engine for one validated topology.

Stages run strictly in declaration order. A failed stage halts the run;
nothing is retried or rolled back. The approval gate suspends the run by
recording an ``approval_requested`` entry and returning; a later
``submit_decision()`` (possibly from another process) rebuilds the run
from the ledger and resumes it.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone

from stagegate.actions import create_action
from stagegate.actions.base import ActionContext, ActionResult, ApprovalRejected, StageExecutionError
from stagegate.actions.collaborators import Collaborators
from stagegate.core.artifact_store import VersionedArtifactStore
from stagegate.core.hasher import compute_input_hash, compute_output_hash
from stagegate.core.run_ledger import RunLedger
from stagegate.core.stage_machine import StageMachine
from stagegate.core.validation import validate_topology
from stagegate.models.approvals import ApprovalDecision, ApprovalRecord
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.ledger import (
    EVENT_APPROVAL_REQUESTED,
    EVENT_RUN_TRIGGERED,
    RUN_SCOPE,
    LedgerEntry,
    collect_outputs,
)
from stagegate.models.pipeline import FailureKind, PipelineConfig, PipelineRun
from stagegate.models.stages import StageDefinition, StageState
from stagegate.models.topology import Topology
from stagegate.monitor.projection import RunProjection, encode_failure, pending_approval

logger = logging.getLogger(__name__)


class NoPendingApprovalError(LookupError):
    """Raised when a decision is submitted for a run that is not waiting on one."""


class Orchestrator:
    """Central pipeline orchestrator.

    The topology is validated on construction, so an Orchestrator only
    ever exists for a well-formed pipeline.

    Parameters
    ----------
    topology:
        The deployment topology holding the pipeline to execute.
    collaborators:
        Source, build, inventory, deployment and notification backends.
    config:
        Storage locations. Uses defaults if not provided.

    Raises
    ------
    ProvisioningError
        If the topology fails any definition-time check.
    """

    def __init__(
        self,
        topology: Topology,
        collaborators: Collaborators,
        config: PipelineConfig | None = None,
    ) -> None:
        self.topology = topology
        self.definition = topology.pipeline
        self.config = config or PipelineConfig()
        self.collaborators = collaborators

        # Raises ProvisioningError before any storage is touched
        self.graph = validate_topology(topology)

        self.ledger = RunLedger(self.config.ledger_db_path)
        self.artifact_store = VersionedArtifactStore(
            self.config.artifact_store_path, name=topology.artifact_store.name
        )
        self.stage_machine = StageMachine(self.ledger, self.graph)
        self.projection = RunProjection(self.ledger, self.definition)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start_run(self, trigger: str = "manual") -> str:
        """Create a new run with every stage PENDING and return its id."""
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        run_id = f"sg-{ts}-{uuid.uuid4().hex[:6]}"

        with self._lock:
            self.stage_machine.initialize_run(run_id)
            self.ledger.append(LedgerEntry(
                run_id=run_id,
                stage_name=RUN_SCOPE,
                state_transition=EVENT_RUN_TRIGGERED,
                input_hash=compute_input_hash(RUN_SCOPE, {
                    "pipeline": self.definition.name,
                    "stages": self.definition.stage_names,
                }),
                detail=json.dumps({"pipeline": self.definition.name, "trigger": trigger}),
            ))
        logger.info("Run %s triggered (%s) for %s", run_id, trigger, self.definition.name)
        return run_id

    def execute(self, run_id: str) -> PipelineRun:
        """Advance a run as far as it can go.

        Returns when every stage has succeeded, a stage has failed, or the
        run is suspended at an approval gate. Stage failures are recorded
        in the ledger and reported through the returned snapshot.
        A non-approval stage left RUNNING by an earlier process is failed
        as interrupted.
        """
        with self._lock:
            self.stage_machine.forget(run_id)
            if self.ledger.get_latest(run_id) is None:
                raise KeyError(f"Unknown run {run_id!r}")

            for stage in self.definition.stages:
                state = self.stage_machine.get_current_state(run_id, stage.name)
                if state == StageState.SUCCEEDED:
                    continue
                if state == StageState.RUNNING:
                    # Only an open approval may stay RUNNING between calls;
                    # anything else was cut off by a dead process
                    request = pending_approval(self.ledger.get_run_entries(run_id))
                    if request is None or request.stage_name != stage.name:
                        self._fail(
                            run_id,
                            stage.name,
                            FailureKind.ERROR,
                            f"Stage {stage.name} was interrupted before it finished",
                        )
                if state != StageState.PENDING:
                    break
                if not self._execute_stage(run_id, stage):
                    break

            return self.get_run(run_id)

    def run(self, trigger: str = "manual") -> PipelineRun:
        """Trigger a new run and execute it."""
        return self.execute(self.start_run(trigger))

    # ------------------------------------------------------------------
    # Approval gate
    # ------------------------------------------------------------------

    def submit_decision(
        self,
        run_id: str,
        decision: ApprovalDecision | str,
        *,
        reviewer: str = "",
        comment: str = "",
        request_id: str | None = None,
        decided_at: datetime | None = None,
    ) -> PipelineRun:
        """Deliver a reviewer's decision and resume the run.

        Approval marks the gate SUCCEEDED and continues with the next
        stage. Rejection, or a decision arriving after the request
        expired, fails the gate and halts the run.

        Raises
        ------
        KeyError
            If the run does not exist.
        NoPendingApprovalError
            If the run is not waiting on an approval, or *request_id*
            does not name the open request.
        """
        with self._lock:
            self.stage_machine.forget(run_id)
            entries = self.ledger.get_run_entries(run_id)
            if not entries:
                raise KeyError(f"Unknown run {run_id!r}")

            request = pending_approval(entries)
            if request is None:
                raise NoPendingApprovalError(f"Run {run_id} is not awaiting approval")
            if request_id is not None and request_id != request.request_id:
                raise NoPendingApprovalError(
                    f"Request {request_id} is not the open approval of run {run_id} "
                    f"(open: {request.request_id})"
                )

            record = ApprovalRecord(
                request_id=request.request_id,
                decision=ApprovalDecision(decision),
                reviewer=reviewer,
                comment=comment,
                decided_at=decided_at or datetime.now(timezone.utc),
            )
            logger.info(
                "Run %s: %s %s by %s",
                run_id, request.stage_name, record.decision.value, reviewer or "unknown reviewer",
            )

            if request.is_expired(record.decided_at):
                self._fail(
                    run_id,
                    request.stage_name,
                    FailureKind.TIMED_OUT,
                    f"Approval {request.request_id} expired at {request.expires_at.isoformat()}",
                    decision=record.model_dump(mode="json"),
                )
                return self.get_run(run_id)

            stage = self.definition.get_stage(request.stage_name)
            action_def = next(a for a in stage.actions if a.name == request.action_name)
            action = create_action(action_def, self.topology, self.collaborators)
            try:
                result = action.decide(request, record)
            except ApprovalRejected as exc:
                self._fail(
                    run_id,
                    stage.name,
                    FailureKind.REJECTED,
                    str(exc),
                    decision=record.model_dump(mode="json"),
                )
                return self.get_run(run_id)

            self._succeed(run_id, stage, [], self._flatten(action.name, result), [result.detail])
            return self.execute(run_id)

    def expire_approvals(self, now: datetime | None = None) -> list[str]:
        """Fail every run whose open approval request has expired.

        Returns the ids of the runs that were timed out.
        """
        now = now or datetime.now(timezone.utc)
        expired: list[str] = []
        with self._lock:
            for run_id in self.list_runs():
                request = pending_approval(self.ledger.get_run_entries(run_id))
                if request is None or not request.is_expired(now):
                    continue
                self.stage_machine.forget(run_id)
                if self.stage_machine.get_current_state(run_id, request.stage_name) != StageState.RUNNING:
                    continue
                self._fail(
                    run_id,
                    request.stage_name,
                    FailureKind.TIMED_OUT,
                    f"Approval {request.request_id} expired at {request.expires_at.isoformat()}",
                )
                expired.append(run_id)
        if expired:
            logger.warning("Timed out %d pending approval(s): %s", len(expired), expired)
        return expired

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    def _execute_stage(self, run_id: str, stage: StageDefinition) -> bool:
        """Run one stage. Returns True when the next stage may start."""
        artifacts, variables = collect_outputs(self.ledger.get_run_entries(run_id))
        context = ActionContext(
            run_id=run_id,
            pipeline_name=self.definition.name,
            stage_name=stage.name,
            store=self.artifact_store,
            artifacts=artifacts,
            variables=variables,
        )
        input_hash = compute_input_hash(stage.name, {
            "run_id": run_id,
            "inputs": {
                name: artifacts[name].content_address
                for name in stage.input_artifacts
                if name in artifacts
            },
        })

        self.stage_machine.transition(run_id, stage.name, StageState.RUNNING, input_hash=input_hash)

        produced: list[ArtifactRef] = []
        published: dict[str, str] = {}
        details: list[str] = []
        try:
            for definition in stage.actions:
                action = create_action(definition, self.topology, self.collaborators)
                result = action.run_action(context)
                if result.suspended:
                    self.ledger.append(LedgerEntry(
                        run_id=run_id,
                        stage_name=stage.name,
                        state_transition=EVENT_APPROVAL_REQUESTED,
                        input_hash=input_hash,
                        detail=result.approval_request.model_dump_json(),
                    ))
                    logger.info(
                        "Run %s: %s awaiting approval (request %s)",
                        run_id, stage.name, result.approval_request.request_id,
                    )
                    return False
                produced.extend(result.artifacts)
                published.update(self._flatten(action.name, result))
                if result.detail:
                    details.append(result.detail)
        except StageExecutionError as exc:
            self._fail(run_id, stage.name, FailureKind.ERROR, str(exc), input_hash=input_hash)
            return False
        except Exception as exc:
            self._fail(run_id, stage.name, FailureKind.ERROR, str(exc), input_hash=input_hash)
            raise

        self._succeed(run_id, stage, produced, published, details, input_hash=input_hash)
        return True

    @staticmethod
    def _flatten(action_name: str, result: ActionResult) -> dict[str, str]:
        namespace = result.namespace or action_name
        return {f"{namespace}.{key}": value for key, value in result.variables.items()}

    def _succeed(
        self,
        run_id: str,
        stage: StageDefinition,
        produced: list[ArtifactRef],
        published: dict[str, str],
        details: list[str],
        *,
        input_hash: str = "",
    ) -> None:
        output_hash = compute_output_hash(stage.name, {
            "artifacts": {ref.name: ref.content_address for ref in produced},
            "variables": published,
        })
        self.stage_machine.transition(
            run_id,
            stage.name,
            StageState.SUCCEEDED,
            input_hash=input_hash,
            output_hash=output_hash,
            artifacts=produced,
            variables=published,
            detail="; ".join(d for d in details if d),
        )

    def _fail(
        self,
        run_id: str,
        stage_name: str,
        kind: FailureKind,
        error: str,
        *,
        input_hash: str = "",
        **extra,
    ) -> None:
        self.stage_machine.transition(
            run_id,
            stage_name,
            StageState.FAILED,
            input_hash=input_hash,
            output_hash=compute_output_hash(stage_name, {"failure_kind": kind.value, "error": error}),
            detail=encode_failure(kind, error, **extra),
        )
        logger.error("Run %s halted at %s (%s): %s", run_id, stage_name, kind.value, error)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_run(self, run_id: str, *, verify_chain: bool = True) -> PipelineRun:
        """Return a fresh snapshot of a run, projected from the ledger."""
        return self.projection.snapshot(run_id, verify_chain=verify_chain)

    def list_runs(self) -> list[str]:
        """Return ids of this pipeline's runs, most recently active first."""
        return self.projection.list_run_ids()

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        return self.ledger.get_run_entries(run_id)

    def verify_chain(self, run_id: str) -> bool:
        """Verify the hash chain integrity of a run's ledger entries."""
        return self.ledger.verify_chain(run_id)
