"""Tests for the RunProjection — read-only snapshots over the ledger."""

from __future__ import annotations

import json
import sqlite3

import pytest

from stagegate.core.run_ledger import RunLedger
from stagegate.core.stage_machine import StageMachine
from stagegate.models.approvals import ApprovalRequest
from stagegate.models.ledger import EVENT_APPROVAL_REQUESTED, EVENT_RUN_TRIGGERED, RUN_SCOPE, LedgerEntry
from stagegate.models.pipeline import FailureKind
from stagegate.models.stages import StageState
from stagegate.monitor.projection import RunProjection, decode_failure, encode_failure, pending_approval


@pytest.fixture
def projection(ledger: RunLedger, demo_topology) -> RunProjection:
    return RunProjection(ledger, demo_topology.pipeline)


def _trigger(ledger: RunLedger, run_id: str, pipeline: str = "DemoApp") -> None:
    ledger.append(LedgerEntry(
        run_id=run_id, stage_name=RUN_SCOPE, state_transition=EVENT_RUN_TRIGGERED,
        detail=json.dumps({"pipeline": pipeline, "trigger": "test"}),
    ))


class TestFailureEncoding:
    def test_round_trip(self):
        detail = encode_failure(FailureKind.REJECTED, "rejected by bob", decision={"reviewer": "bob"})
        assert decode_failure(detail) == (FailureKind.REJECTED, "rejected by bob")
        assert json.loads(detail)["decision"] == {"reviewer": "bob"}

    def test_free_text_is_plain_error(self):
        assert decode_failure("disk full") == (FailureKind.ERROR, "disk full")


class TestPendingApproval:
    def _request(self):
        return ApprovalRequest(run_id="r", pipeline_name="DemoApp", stage_name="Approve", action_name="Approve")

    def test_open_until_stage_leaves_running(self):
        request = self._request()
        entries = [
            LedgerEntry(run_id="r", stage_name="Approve", state_transition="pending->running"),
            LedgerEntry(run_id="r", stage_name="Approve", state_transition=EVENT_APPROVAL_REQUESTED,
                        detail=request.model_dump_json()),
        ]
        assert pending_approval(entries) == request

        entries.append(LedgerEntry(run_id="r", stage_name="Approve", state_transition="running->failed"))
        assert pending_approval(entries) is None

    def test_other_stages_do_not_close_request(self):
        request = self._request()
        entries = [
            LedgerEntry(run_id="r", stage_name="Approve", state_transition=EVENT_APPROVAL_REQUESTED,
                        detail=request.model_dump_json()),
            LedgerEntry(run_id="r", stage_name="Deploy", state_transition="running->succeeded"),
        ]
        assert pending_approval(entries) == request


class TestRunProjection:
    def test_unknown_run(self, projection: RunProjection):
        with pytest.raises(KeyError):
            projection.snapshot("missing")

    def test_snapshot_reflects_ledger(self, projection: RunProjection, ledger: RunLedger,
                                      stage_machine: StageMachine, run_id: str):
        _trigger(ledger, run_id)
        stage_machine.initialize_run(run_id)
        stage_machine.transition(run_id, "Source", StageState.RUNNING)
        stage_machine.transition(run_id, "Source", StageState.SUCCEEDED,
                                 variables={"SourceVariables.commit_id": "abc123"})
        stage_machine.transition(run_id, "Build", StageState.RUNNING)
        stage_machine.transition(run_id, "Build", StageState.FAILED,
                                 detail=encode_failure(FailureKind.ERROR, "exited with code 2"))

        run = projection.snapshot(run_id)
        assert run.triggered_at is not None
        assert run.stage("Source").state == StageState.SUCCEEDED
        assert run.stage("Build").error == "exited with code 2"
        assert run.stage("Build").failure_kind == FailureKind.ERROR
        assert run.stage("Deploy").display_name == "Deploy (DEV)"
        assert run.variables == {"SourceVariables": {"commit_id": "abc123"}}
        assert run.state == StageState.FAILED
        assert run.chain_valid

    def test_snapshot_flags_broken_chain(self, projection: RunProjection, ledger: RunLedger, run_id: str):
        _trigger(ledger, run_id)
        conn = sqlite3.connect(str(ledger.db_path))
        conn.execute("UPDATE run_ledger SET detail = 'forged' WHERE run_id = ?", (run_id,))
        conn.commit()
        conn.close()

        assert projection.snapshot(run_id).chain_valid is False
        assert projection.snapshot(run_id, verify_chain=False).chain_valid is True

    def test_list_only_own_pipeline(self, projection: RunProjection, ledger: RunLedger):
        _trigger(ledger, "mine-1")
        _trigger(ledger, "theirs-1", pipeline="OtherApp")
        _trigger(ledger, "mine-2")
        assert projection.list_run_ids() == ["mine-2", "mine-1"]
