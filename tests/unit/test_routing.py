"""Tests for approval notification fan-out and the built-in sinks."""

from __future__ import annotations

import logging

import pytest

from stagegate.models.approvals import ApprovalRequest
from stagegate.routing import SinkDispatcher, SinkDispatchError
from stagegate.routing.sinks import ApprovalSink
from stagegate.routing.sinks.local_file import LocalFileSink
from stagegate.routing.sinks.log import LogSink


def _request(run_id: str = "sg-run-1") -> ApprovalRequest:
    return ApprovalRequest(
        run_id=run_id,
        pipeline_name="DemoApp",
        stage_name="Approve",
        action_name="Approve",
        summary="Commit message: fix login bug",
        review_link="https://example/commit/abc123",
    )


class _Collecting:
    def __init__(self, name: str = "collect"):
        self.sink_name = name
        self.requests = []

    def accept(self, request):
        self.requests.append(request)


class _Failing:
    def __init__(self, name: str = "broken"):
        self.sink_name = name

    def accept(self, request):
        raise OSError("smtp down")


class TestSinkDispatcher:
    def test_fans_out_to_every_sink(self):
        a, b = _Collecting("a"), _Collecting("b")
        request = _request()
        assert SinkDispatcher([a, b]).dispatch(request) == ["a", "b"]
        assert a.requests == b.requests == [request]

    def test_one_failure_does_not_block_others(self):
        good = _Collecting("good")
        accepted = SinkDispatcher([_Failing(), good]).dispatch(_request())
        assert accepted == ["good"]
        assert len(good.requests) == 1

    def test_all_failing_raises(self):
        with pytest.raises(SinkDispatchError, match="All 2 sinks failed"):
            SinkDispatcher([_Failing("x"), _Failing("y")]).dispatch(_request())

    def test_no_sinks_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert SinkDispatcher().dispatch(_request()) == []
        assert "not announced" in caplog.text

    def test_register_is_idempotent(self):
        sink = _Collecting()
        dispatcher = SinkDispatcher()
        dispatcher.register_sink(sink)
        dispatcher.register_sink(sink)
        assert dispatcher.registered_sinks == [sink]
        dispatcher.unregister_sink(sink)
        assert dispatcher.registered_sinks == []


class TestLocalFileSink:
    def test_writes_one_file_per_request(self, tmp_path):
        sink = LocalFileSink(tmp_path / "outbox")
        assert isinstance(sink, ApprovalSink)
        request = _request()
        sink.accept(request)

        paths = sink.list_requests(request.run_id)
        assert [p.name for p in paths] == [f"{request.request_id}.json"]
        assert sink.read_request(paths[0]) == request

    def test_list_across_runs(self, tmp_path):
        sink = LocalFileSink(tmp_path / "outbox")
        sink.accept(_request("run-a"))
        sink.accept(_request("run-b"))
        assert len(sink.list_requests()) == 2
        assert sink.list_requests("run-c") == []


class TestLogSink:
    def test_logs_request(self, caplog):
        sink = LogSink()
        assert sink.sink_name == "log"
        with caplog.at_level(logging.WARNING):
            sink.accept(_request())
        assert "Approval required" in caplog.text
        assert "fix login bug" in caplog.text
        assert "expires=never" in caplog.text
