"""Deterministic stage state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Prerequisites checked before RUNNING
- Every transition recorded in the Run Ledger
"""

from __future__ import annotations

import logging

from stagegate.core.run_ledger import RunLedger
from stagegate.core.stage_graph import PrerequisiteNotMetError, StageGraph
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.ledger import LedgerEntry
from stagegate.models.stages import VALID_TRANSITIONS, StageState

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Enforces the stage state machine with prerequisite checking.

    Parameters
    ----------
    ledger:
        The Run Ledger to record transitions into.
    graph:
        The stage graph for dependency checking.
    """

    def __init__(self, ledger: RunLedger, graph: StageGraph) -> None:
        self._ledger = ledger
        self._graph = graph
        # In-memory state cache: run_id -> {stage_name -> StageState}
        self._states: dict[str, dict[str, StageState]] = {}

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def initialize_run(self, run_id: str) -> dict[str, StageState]:
        """Initialize all stages to PENDING for a new run."""
        states = {name: StageState.PENDING for name in self._graph.stage_names}
        self._states[run_id] = states
        return dict(states)

    def get_current_state(self, run_id: str, stage_name: str) -> StageState:
        """Return the current state of a stage in a run."""
        if run_id not in self._states:
            self._rebuild_state(run_id)
        return self._states[run_id].get(stage_name, StageState.PENDING)

    def get_all_states(self, run_id: str) -> dict[str, StageState]:
        """Return a snapshot of all stage states for a run."""
        if run_id not in self._states:
            self._rebuild_state(run_id)
        return dict(self._states[run_id])

    def forget(self, run_id: str) -> None:
        """Drop the cached state so the next read rebuilds from the ledger."""
        self._states.pop(run_id, None)

    def _rebuild_state(self, run_id: str) -> None:
        """Rebuild in-memory state from the ledger (for resume)."""
        states = {name: StageState.PENDING for name in self._graph.stage_names}
        for entry in self._ledger.get_run_entries(run_id):
            target = entry.target_state
            if target is None or entry.stage_name not in states:
                continue
            try:
                states[entry.stage_name] = StageState(target)
            except ValueError:
                logger.warning(
                    "Ignoring unknown state %r for %s in run %s",
                    target, entry.stage_name, run_id,
                )
        self._states[run_id] = states

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        run_id: str,
        stage_name: str,
        target_state: StageState,
        *,
        input_hash: str = "",
        output_hash: str = "",
        artifacts: list[ArtifactRef] | None = None,
        variables: dict[str, str] | None = None,
        detail: str = "",
    ) -> LedgerEntry:
        """Transition a stage to a new state, recording it in the ledger.

        Validates:
        1. The transition is allowed by VALID_TRANSITIONS.
        2. If target is RUNNING, prerequisites have SUCCEEDED.

        Returns the sealed LedgerEntry.
        """
        if run_id not in self._states:
            self._rebuild_state(run_id)

        if stage_name not in self._states[run_id]:
            raise KeyError(f"Unknown stage {stage_name!r}")

        current = self._states[run_id][stage_name]

        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {stage_name} from {current.value} to {target_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        if target_state == StageState.RUNNING:
            if not self._graph.are_prerequisites_met(stage_name, self._states[run_id]):
                reasons = self._graph.get_blocking_reasons(
                    stage_name, self._states[run_id]
                )
                raise PrerequisiteNotMetError(
                    f"Cannot start {stage_name}: prerequisites not met. "
                    f"Blocked by: {'; '.join(reasons)}"
                )

        entry = LedgerEntry(
            run_id=run_id,
            stage_name=stage_name,
            state_transition=f"{current.value}->{target_state.value}",
            input_hash=input_hash,
            output_hash=output_hash,
            artifacts=artifacts or [],
            variables=variables or {},
            detail=detail,
        )
        sealed = self._ledger.append(entry)
        self._states[run_id][stage_name] = target_state

        logger.info(
            "Run %s: %s %s", run_id, stage_name, sealed.state_transition
        )
        return sealed

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    def can_start(self, run_id: str, stage_name: str) -> tuple[bool, list[str]]:
        """Check if a stage can transition to RUNNING.

        Returns (can_start, blocking_reasons).
        """
        current = self.get_current_state(run_id, stage_name)
        if current != StageState.PENDING:
            return False, [f"Stage is currently {current.value}, not pending"]

        states = self._states[run_id]
        if not self._graph.are_prerequisites_met(stage_name, states):
            return False, self._graph.get_blocking_reasons(stage_name, states)

        return True, []
