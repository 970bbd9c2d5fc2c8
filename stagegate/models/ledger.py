"""Canonical Run Ledger entry model (append-only, hash-chained).

The Run Ledger is the source of truth for every pipeline run. It is:
- Append-only (no UPDATE, no DELETE)
- Hash-chained (each entry links to the previous via SHA-256)
- Event-driven (one entry per state transition or run event)
- Stage-aware (entries are scoped to run_id + stage_name)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from stagegate.models.artifacts import ArtifactRef

# Pseudo-stage name for run-level events (trigger).
RUN_SCOPE = "_run"

# Non-transition events. Transitions are written as "from->to".
EVENT_RUN_TRIGGERED = "run_triggered"
EVENT_APPROVAL_REQUESTED = "approval_requested"


class LedgerEntry(BaseModel):
    """A single entry in the append-only Run Ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    stage_name: str
    state_transition: str  # "pending->running", or an EVENT_* name
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    input_hash: str = ""  # SHA-256 of canonical stage inputs
    output_hash: str = ""  # SHA-256 of canonical stage outputs
    artifacts: list[ArtifactRef] = []
    variables: dict[str, str] = {}
    detail: str = ""
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed after construction, seals this entry

    @property
    def is_transition(self) -> bool:
        return "->" in self.state_transition

    @property
    def target_state(self) -> str | None:
        if not self.is_transition:
            return None
        return self.state_transition.split("->", 1)[1]


def split_variable_key(key: str) -> tuple[str, str]:
    """Split a stored ``"Namespace.variable"`` key into its two parts."""
    namespace, _, name = key.partition(".")
    return namespace, name


def collect_outputs(
    entries: list[LedgerEntry],
) -> tuple[dict[str, ArtifactRef], dict[str, dict[str, str]]]:
    """Fold a run's entries into its published artifacts and variables.

    Only transitions into ``succeeded`` publish outputs; a failed stage
    contributes nothing downstream.
    """
    artifacts: dict[str, ArtifactRef] = {}
    variables: dict[str, dict[str, str]] = {}
    for entry in entries:
        if entry.target_state != "succeeded":
            continue
        for ref in entry.artifacts:
            artifacts[ref.name] = ref
        for key, value in entry.variables.items():
            namespace, name = split_variable_key(key)
            variables.setdefault(namespace, {})[name] = value
    return artifacts, variables
