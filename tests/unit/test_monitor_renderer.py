"""Unit tests for the RunRenderer — Rich panel output and state styling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.panel import Panel

from stagegate.models.approvals import ApprovalRequest
from stagegate.models.pipeline import FailureKind, PipelineRun, StageExecution
from stagegate.models.stages import StageState
from stagegate.monitor.renderer import _STATE_LABELS, _STATE_STYLES, RunRenderer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_run(
    *,
    chain_valid: bool = True,
    approve_state: StageState = StageState.RUNNING,
    pending: bool = True,
    failure_kind: FailureKind | None = None,
) -> PipelineRun:
    now = datetime.now(timezone.utc)
    request = ApprovalRequest(
        run_id="sg-test-run-001",
        pipeline_name="DemoApp",
        stage_name="Approve",
        action_name="Approve",
        summary="Commit message: fix login bug",
        review_link="https://example/commit/abc123",
        expires_at=now + timedelta(hours=24),
    )
    stages = [
        StageExecution(stage_name="Source", state=StageState.SUCCEEDED, started_at=now, finished_at=now),
        StageExecution(stage_name="Deploy", display_name="Deploy (DEV)",
                       state=StageState.SUCCEEDED, started_at=now, finished_at=now),
        StageExecution(stage_name="Approve", state=approve_state, started_at=now,
                       error="rejected by bob" if approve_state == StageState.FAILED else None,
                       failure_kind=failure_kind),
        StageExecution(stage_name="Production", display_name="Deploy (PRD)"),
    ]
    return PipelineRun(
        run_id="sg-test-run-001",
        pipeline_name="DemoApp",
        triggered_at=now,
        stages=stages,
        pending_approval=request if pending else None,
        chain_valid=chain_valid,
    )


def _render_text(run: PipelineRun) -> str:
    console = Console(record=True, width=160, force_terminal=False)
    RunRenderer(console=console).print_run(run)
    return console.export_text()


class TestRunRenderer:
    def test_render_returns_panel(self):
        assert isinstance(RunRenderer().render_run(_make_run()), Panel)

    def test_every_state_is_styled(self):
        assert set(_STATE_STYLES) == set(StageState)
        assert set(_STATE_LABELS) == set(StageState)

    def test_display_names_shown(self):
        text = _render_text(_make_run())
        assert "Deploy (DEV)" in text
        assert "Deploy (PRD)" in text
        assert "DemoApp" in text

    def test_approval_callout(self):
        text = _render_text(_make_run())
        assert "Awaiting approval" in text
        assert "fix login bug" in text
        assert "https://example/commit/abc123" in text

    def test_no_callout_once_decided(self):
        text = _render_text(_make_run(approve_state=StageState.FAILED, pending=False,
                                      failure_kind=FailureKind.REJECTED))
        assert "Awaiting approval" not in text
        assert "FAILED" in text
        assert "rejected" in text

    def test_broken_chain_shown(self):
        assert "BROKEN" in _render_text(_make_run(chain_valid=False))
        assert "valid" in _render_text(_make_run())

    def test_chain_verification_messages(self):
        console = Console(record=True, width=160)
        renderer = RunRenderer(console=console)
        renderer.print_chain_verification("sg-1", True)
        renderer.print_chain_verification("sg-2", False)
        text = console.export_text()
        assert "Hash chain for run sg-1 is valid." in text
        assert "Hash chain for run sg-2 is BROKEN!" in text
