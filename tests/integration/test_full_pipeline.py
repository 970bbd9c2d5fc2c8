"""Integration tests: the DemoApp pipeline end to end.

Exercises the real Orchestrator, ledger, artifact store, stage machine
and actions, with only the outside world (source control, build
sandbox, host agents) replaced by in-process doubles.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from stagegate.core.orchestrator import NoPendingApprovalError
from stagegate.models.approvals import ApprovalDecision
from stagegate.models.pipeline import FailureKind
from stagegate.models.stages import StageState

STAGE_ORDER = ["Source", "Build", "Deploy", "Approve", "Production"]


class TestHappyPath:
    """Trigger, approve, and finish."""

    def test_run_suspends_at_approval(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()

        assert run.awaiting_approval
        assert run.state == StageState.RUNNING
        assert run.current_stage.stage_name == "Approve"
        assert run.stage("Production").state == StageState.PENDING
        assert run.executed_stage_names() == ["Source", "Build", "Deploy", "Approve"]

    def test_approval_completes_run_in_declaration_order(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        run = orch.submit_decision(run.run_id, ApprovalDecision.APPROVED, reviewer="alice")

        assert run.state == StageState.SUCCEEDED
        assert run.is_terminal
        assert run.executed_stage_names() == STAGE_ORDER
        assert all(s.state == StageState.SUCCEEDED for s in run.stages)
        assert run.chain_valid

    def test_each_environment_gets_its_hosts(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        deployer = orch.collaborators.deployer
        assert deployer.hosts_deployed == ["DevWebApp01"]

        orch.submit_decision(run.run_id, ApprovalDecision.APPROVED)
        assert deployer.hosts_deployed == ["DevWebApp01", "PrdWebApp01"]

    def test_build_artifact_bit_identical_across_deploys(self, make_orchestrator):
        orch = make_orchestrator(archive=b"app-v1")
        run = orch.run()
        run = orch.submit_decision(run.run_id, ApprovalDecision.APPROVED)

        produced = run.artifacts["BuildArtifact"]
        stored = orch.artifact_store.read_artifact(produced)
        assert stored == b"built:app-v1"

        deliveries = orch.collaborators.deployer.deliveries
        assert len(deliveries) == 2
        for _host, ref, address in deliveries:
            assert ref == produced
            assert address == produced.content_address

    def test_production_reuses_build_version_without_rebuild(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        orch.submit_decision(run.run_id, ApprovalDecision.APPROVED)

        versions = orch.artifact_store.list_versions("DemoApp/BuildArtifact")
        assert len(versions) == 1


class TestSourceVariables:
    """Revision abc123 / "fix login bug" flows into the approval request."""

    def test_variables_captured(self, make_orchestrator):
        run = make_orchestrator(commit_id="abc123", commit_message="fix login bug").run()

        source_vars = run.variables["SourceVariables"]
        assert source_vars["commit_id"] == "abc123"
        assert source_vars["commit_message"] == "fix login bug"
        assert source_vars["repository_name"] == "DemoApp"
        assert source_vars["branch_name"] == "main"

    def test_review_link_contains_commit_id(self, make_orchestrator):
        orch = make_orchestrator(commit_id="abc123", commit_message="fix login bug")
        run = orch.run()

        request = run.pending_approval
        assert request is not None
        assert request.summary == "Commit message: fix login bug"
        assert request.review_link == (
            "https://console.aws.amazon.com/codesuite/codecommit/repositories/"
            "DemoApp/commit/abc123?region=us-east-1"
        )

    def test_request_delivered_to_sinks(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()

        sink = orch.collaborators.dispatcher.registered_sinks[0]
        assert [r.request_id for r in sink.requests] == [run.pending_approval.request_id]


class TestDeployFailure:
    """DEV group of two hosts, one fails."""

    def test_partial_failure_fails_stage(self, make_orchestrator, make_host):
        hosts = [
            make_host("DevWebApp01", "DEV"),
            make_host("DevWebApp02", "DEV"),
            make_host("PrdWebApp01", "PRD"),
        ]
        orch = make_orchestrator(hosts=hosts, fail_hosts={"DevWebApp02"})
        run = orch.run()

        assert run.state == StageState.FAILED
        assert run.failure_kind == FailureKind.ERROR
        deploy = run.stage("Deploy")
        assert deploy.state == StageState.FAILED
        assert "DevWebApp02" in deploy.error
        assert run.stage("Approve").state == StageState.PENDING
        assert run.stage("Approve").started_at is None
        assert run.pending_approval is None

    def test_healthy_host_was_still_attempted(self, make_orchestrator, make_host):
        hosts = [
            make_host("DevWebApp01", "DEV"),
            make_host("DevWebApp02", "DEV"),
            make_host("PrdWebApp01", "PRD"),
        ]
        orch = make_orchestrator(hosts=hosts, fail_hosts={"DevWebApp02"})
        orch.run()

        assert orch.collaborators.deployer.hosts_deployed == ["DevWebApp01"]

    def test_empty_target_group_fails(self, make_orchestrator, make_host):
        orch = make_orchestrator(hosts=[make_host("PrdWebApp01", "PRD")])
        run = orch.run()

        assert run.stage("Deploy").state == StageState.FAILED
        assert "matched no hosts" in run.stage("Deploy").error


class TestBuildFailure:
    def test_build_failure_prevents_every_deploy(self, make_orchestrator):
        orch = make_orchestrator(build_fails=True)
        run = orch.run()

        assert run.state == StageState.FAILED
        assert run.current_stage.stage_name == "Build"
        assert "exited with code 2" in run.stage("Build").error
        for name in ("Deploy", "Approve", "Production"):
            assert run.stage(name).state == StageState.PENDING
        assert orch.collaborators.deployer.deliveries == []
        assert "BuildArtifact" not in run.artifacts


class TestApprovalGate:
    """Deploy-PRD starts iff approved."""

    def test_production_never_starts_while_pending(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        # Executing again must not pass the gate
        run = orch.execute(run.run_id)

        assert run.awaiting_approval
        assert run.stage("Production").started_at is None
        assert orch.collaborators.deployer.hosts_deployed == ["DevWebApp01"]

    def test_reject_fails_run_and_skips_production(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        run = orch.submit_decision(
            run.run_id, ApprovalDecision.REJECTED, reviewer="bob", comment="not today"
        )

        assert run.state == StageState.FAILED
        assert run.failure_kind == FailureKind.REJECTED
        assert run.stage("Approve").state == StageState.FAILED
        assert "not today" in run.stage("Approve").error
        assert run.stage("Production").state == StageState.PENDING
        assert run.stage("Production").started_at is None
        assert "PrdWebApp01" not in orch.collaborators.deployer.hosts_deployed

    def test_decision_on_decided_run_rejected(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        orch.submit_decision(run.run_id, ApprovalDecision.REJECTED)

        with pytest.raises(NoPendingApprovalError):
            orch.submit_decision(run.run_id, ApprovalDecision.APPROVED)

    def test_wrong_request_id_rejected(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()

        with pytest.raises(NoPendingApprovalError):
            orch.submit_decision(run.run_id, "approved", request_id="not-the-request")
        assert orch.get_run(run.run_id).awaiting_approval

    def test_decision_from_another_process(self, make_orchestrator):
        first = make_orchestrator()
        run = first.run()

        # A second orchestrator over the same ledger and store, as the CLI would build
        second = make_orchestrator()
        resumed = second.submit_decision(run.run_id, ApprovalDecision.APPROVED)

        assert resumed.state == StageState.SUCCEEDED
        assert second.collaborators.deployer.hosts_deployed == ["PrdWebApp01"]
        assert first.get_run(run.run_id).state == StageState.SUCCEEDED


class TestApprovalTimeout:
    def test_expire_approvals_times_out_run(self, make_orchestrator):
        orch = make_orchestrator(approval_timeout_hours=1)
        run = orch.run()
        assert run.pending_approval.expires_at is not None

        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert orch.expire_approvals(later) == [run.run_id]

        run = orch.get_run(run.run_id)
        assert run.state == StageState.FAILED
        assert run.failure_kind == FailureKind.TIMED_OUT
        assert run.stage("Production").started_at is None

    def test_unexpired_requests_untouched(self, make_orchestrator):
        orch = make_orchestrator(approval_timeout_hours=24)
        run = orch.run()

        assert orch.expire_approvals() == []
        assert orch.get_run(run.run_id).awaiting_approval

    def test_late_decision_counts_as_timeout(self, make_orchestrator):
        orch = make_orchestrator(approval_timeout_hours=1)
        run = orch.run()

        later = datetime.now(timezone.utc) + timedelta(hours=3)
        run = orch.submit_decision(run.run_id, ApprovalDecision.APPROVED, decided_at=later)

        assert run.failure_kind == FailureKind.TIMED_OUT
        assert orch.collaborators.deployer.hosts_deployed == ["DevWebApp01"]


class TestConcurrentRuns:
    def test_runs_write_separate_versions(self, make_orchestrator):
        orch = make_orchestrator()
        first = orch.run()
        second = orch.run()

        a = first.artifacts["SourceArtifact"]
        b = second.artifacts["SourceArtifact"]
        assert a.key == b.key == "DemoApp/SourceArtifact"
        assert a.version_id != b.version_id
        assert len(orch.artifact_store.list_versions(a.key)) == 2

    def test_list_runs_most_recent_first(self, make_orchestrator):
        orch = make_orchestrator()
        first = orch.run()
        second = orch.run()

        assert orch.list_runs()[:2] == [second.run_id, first.run_id]


class TestLedgerIsSourceOfTruth:
    def test_every_run_chain_verifies(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        orch.submit_decision(run.run_id, ApprovalDecision.APPROVED)

        assert orch.verify_chain(run.run_id) is True

    def test_transitions_recorded_in_order(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()

        transitions = [
            (e.stage_name, e.state_transition) for e in orch.get_run_entries(run.run_id)
        ]
        assert transitions == [
            ("_run", "run_triggered"),
            ("Source", "pending->running"),
            ("Source", "running->succeeded"),
            ("Build", "pending->running"),
            ("Build", "running->succeeded"),
            ("Deploy", "pending->running"),
            ("Deploy", "running->succeeded"),
            ("Approve", "pending->running"),
            ("Approve", "approval_requested"),
        ]
