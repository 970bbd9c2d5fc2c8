"""Shared test fixtures for stagegate."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from stagegate.actions.collaborators import (
    BuildResult,
    CallableSandbox,
    Collaborators,
    StaticSource,
)
from stagegate.config import Settings
from stagegate.core.artifact_store import VersionedArtifactStore
from stagegate.core.hasher import content_address
from stagegate.core.inventory import StaticInventory
from stagegate.core.orchestrator import Orchestrator
from stagegate.core.run_ledger import RunLedger
from stagegate.core.stage_graph import StageGraph
from stagegate.core.stage_machine import StageMachine
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.pipeline import PipelineConfig
from stagegate.models.targets import Host
from stagegate.models.topology import BuildProject, Topology
from stagegate.routing.dispatcher import SinkDispatcher
from stagegate.topology.demo_app import build_demo_topology


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def ledger(tmp_dir: Path) -> RunLedger:
    """Provide a fresh RunLedger backed by a temp SQLite database."""
    return RunLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def artifact_store(tmp_dir: Path) -> VersionedArtifactStore:
    """Provide a fresh VersionedArtifactStore in a temp directory."""
    return VersionedArtifactStore(tmp_dir / "artifacts")


@pytest.fixture
def settings(tmp_dir: Path) -> Settings:
    """Settings with every storage path under the temp directory."""
    return Settings(
        ledger_path=tmp_dir / "state" / "ledger.db",
        artifact_store_path=tmp_dir / "state" / "artifacts",
        approval_outbox_path=tmp_dir / "state" / "approvals",
        hosts_root=tmp_dir / "state" / "hosts",
        region="us-east-1",
        account_id="123456789012",
        approval_timeout_hours=None,
    )


@pytest.fixture
def demo_topology(settings: Settings) -> Topology:
    """The DemoApp topology built from test settings."""
    return build_demo_topology(settings)


@pytest.fixture
def graph(demo_topology: Topology) -> StageGraph:
    """Provide a StageGraph over the DemoApp pipeline stages."""
    return StageGraph(demo_topology.pipeline.stages)


@pytest.fixture
def stage_machine(ledger: RunLedger, graph: StageGraph) -> StageMachine:
    """Provide a StageMachine wired to the test ledger and graph."""
    return StageMachine(ledger, graph)


@pytest.fixture
def run_id() -> str:
    """Provide a deterministic test run ID."""
    return "sg-test-run-001"


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingDeployer:
    """HostDeployer double that records every delivery.

    Hosts named in ``fail_hosts`` raise instead of accepting the bundle.
    """

    def __init__(self, fail_hosts: Iterable[str] = ()) -> None:
        self.fail_hosts = set(fail_hosts)
        self.deliveries: list[tuple[str, ArtifactRef, str]] = []
        self._lock = threading.Lock()

    def deploy(self, host: Host, ref: ArtifactRef, data: bytes) -> None:
        if host.name in self.fail_hosts:
            raise RuntimeError(f"agent on {host.name} unreachable")
        with self._lock:
            self.deliveries.append((host.name, ref, content_address(data)))

    @property
    def hosts_deployed(self) -> list[str]:
        return sorted(name for name, _, _ in self.deliveries)


class RecordingSink:
    """Approval sink double that keeps every request it receives."""

    sink_name = "recording"

    def __init__(self) -> None:
        self.requests = []

    def accept(self, request) -> None:
        self.requests.append(request)


def fake_build(project: BuildProject, source: bytes) -> BuildResult:
    return BuildResult(exit_code=0, output=b"built:" + source, logs="ok")


def failing_build(project: BuildProject, source: bytes) -> BuildResult:
    return BuildResult(exit_code=2, logs="compilation failed")


@pytest.fixture
def make_host() -> Callable[..., Host]:
    """Factory fixture: build a host tagged for an application environment."""

    def _factory(name: str, env: str, app: str = "DemoApp") -> Host:
        return Host(
            host_id=f"i-{name.lower()}",
            name=name,
            tags={"Name": name, "App": app, "Env": env},
            address=f"{name.lower()}.example.internal",
            principal="WebAppInstanceRole",
        )

    return _factory


@pytest.fixture
def make_orchestrator(settings: Settings) -> Callable[..., Orchestrator]:
    """Factory fixture: an Orchestrator over the DemoApp topology with test doubles.

    The deployer and sink are reachable as ``orch.collaborators.deployer``
    and ``orch.collaborators.dispatcher.registered_sinks[0]``.
    """

    def _factory(
        *,
        commit_id: str = "abc123",
        commit_message: str = "fix login bug",
        archive: bytes = b"source-tree",
        build_fails: bool = False,
        hosts: list[Host] | None = None,
        fail_hosts: Iterable[str] = (),
        topology: Topology | None = None,
        approval_timeout_hours: int | None = None,
    ) -> Orchestrator:
        topology = topology or build_demo_topology(settings, hosts=hosts)
        collaborators = Collaborators(
            source=StaticSource(commit_id, commit_message, archive),
            sandbox=CallableSandbox(failing_build if build_fails else fake_build),
            inventory=StaticInventory(topology.hosts),
            deployer=RecordingDeployer(fail_hosts),
            dispatcher=SinkDispatcher([RecordingSink()]),
            approval_timeout_hours=approval_timeout_hours,
        )
        return Orchestrator(topology, collaborators, PipelineConfig.from_settings(settings))

    return _factory


