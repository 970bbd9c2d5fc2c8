"""Pipeline definition, configuration and per-run record models.

The definition is built once and never mutated. Every trigger produces a
separate ``PipelineRun`` snapshot derived from the Run Ledger.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from stagegate.models.approvals import ApprovalRequest
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.stages import StageDefinition, StageState

if TYPE_CHECKING:
    from stagegate.config import Settings


class PipelineDefinition(BaseModel):
    """Immutable pipeline: ordered stages plus the shared artifact store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    artifact_store: str
    principal: str
    stages: list[StageDefinition]

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def get_stage(self, name: str) -> StageDefinition:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(f"Unknown stage {name!r}. Stages: {self.stage_names}")


class PipelineConfig(BaseModel):
    """Where an Orchestrator keeps its ledger, artifacts and approval outbox."""

    model_config = ConfigDict(frozen=True)

    ledger_db_path: Path = Path(".stagegate/ledger.db")
    artifact_store_path: Path = Path(".stagegate/artifacts")
    approval_outbox_path: Path = Path(".stagegate/approvals")

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            ledger_db_path=settings.ledger_path,
            artifact_store_path=settings.artifact_store_path,
            approval_outbox_path=settings.approval_outbox_path,
        )


class FailureKind(str, Enum):
    """Why a stage ended in FAILED."""

    ERROR = "error"  # source, build or deploy failure
    REJECTED = "rejected"  # explicit approval rejection
    TIMED_OUT = "timed_out"  # approval expired without a decision


class StageExecution(BaseModel):
    """Point-in-time status of one stage within one run."""

    model_config = ConfigDict(frozen=True)

    stage_name: str
    display_name: str = ""
    state: StageState = StageState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    failure_kind: FailureKind | None = None
    artifacts: list[ArtifactRef] = []
    variables: dict[str, str] = {}


class PipelineRun(BaseModel):
    """A frozen snapshot of one pipeline run, rebuilt from the ledger."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    triggered_at: datetime | None = None
    stages: list[StageExecution] = []
    variables: dict[str, dict[str, str]] = {}
    artifacts: dict[str, ArtifactRef] = {}
    pending_approval: ApprovalRequest | None = None
    chain_valid: bool = True

    @property
    def current_stage(self) -> StageExecution | None:
        """The first stage that has not succeeded, or the last stage."""
        for stage in self.stages:
            if stage.state != StageState.SUCCEEDED:
                return stage
        return self.stages[-1] if self.stages else None

    @property
    def state(self) -> StageState:
        """Aggregate state: the state of the current stage."""
        current = self.current_stage
        return current.state if current else StageState.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.state in (StageState.SUCCEEDED, StageState.FAILED)

    @property
    def awaiting_approval(self) -> bool:
        return self.pending_approval is not None and self.state == StageState.RUNNING

    @property
    def failure_kind(self) -> FailureKind | None:
        current = self.current_stage
        if current is None or current.state != StageState.FAILED:
            return None
        return current.failure_kind

    def stage(self, name: str) -> StageExecution:
        for stage in self.stages:
            if stage.stage_name == name:
                return stage
        raise KeyError(name)

    def executed_stage_names(self) -> list[str]:
        """Stages that were started, in the order they ran."""
        started = [s for s in self.stages if s.started_at is not None]
        return [s.stage_name for s in sorted(started, key=lambda s: s.started_at)]
