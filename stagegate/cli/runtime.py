"""Shared wiring for CLI commands: logging setup and orchestrator assembly."""

from __future__ import annotations

import logging
from pathlib import Path

from stagegate.actions.collaborators import (
    Collaborators,
    LocalDirectoryDeployer,
    LocalDirectorySource,
    SubprocessSandbox,
)
from stagegate.config import Settings
from stagegate.core.inventory import StaticInventory
from stagegate.core.orchestrator import Orchestrator
from stagegate.models.pipeline import PipelineConfig
from stagegate.routing.dispatcher import SinkDispatcher
from stagegate.routing.sinks.local_file import LocalFileSink
from stagegate.routing.sinks.log import LogSink
from stagegate.topology.demo_app import build_demo_topology


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def state_paths(settings: Settings) -> list[Path]:
    """Everything the pipeline itself writes; never part of a source snapshot."""
    ledger = settings.ledger_path
    return [
        ledger,
        *(ledger.with_name(ledger.name + suffix) for suffix in ("-wal", "-shm", "-journal")),
        settings.artifact_store_path,
        settings.approval_outbox_path,
        settings.hosts_root,
    ]


def build_orchestrator(
    settings: Settings,
    *,
    source_dir: Path | None = None,
    commit_message: str = "",
    build_commands: list[str] | None = None,
    output_paths: list[str] | None = None,
) -> Orchestrator:
    """Assemble an Orchestrator for the DemoApp topology with local backends.

    Raises ProvisioningError if the topology is invalid.
    """
    topology = build_demo_topology(
        settings, build_commands=build_commands, output_paths=output_paths
    )
    config = PipelineConfig.from_settings(settings)
    dispatcher = SinkDispatcher([LocalFileSink(config.approval_outbox_path), LogSink()])
    collaborators = Collaborators(
        source=LocalDirectorySource(
            source_dir or Path.cwd(),
            commit_message=commit_message,
            exclude=state_paths(settings),
        ),
        sandbox=SubprocessSandbox(timeout_seconds=settings.build_timeout_seconds),
        inventory=StaticInventory(topology.hosts),
        deployer=LocalDirectoryDeployer(settings.hosts_root),
        dispatcher=dispatcher,
        approval_timeout_hours=settings.approval_timeout_hours,
    )
    return Orchestrator(topology, collaborators, config)
