"""External collaborators the actions talk to, plus default backends.

Defines the ``SourceProvider``, ``BuildSandbox`` and ``HostDeployer``
Protocols, along with local implementations suitable for development,
the CLI and tests:

1. **Protocol implementations** supplied by the caller (real source
   control, build service, deployment agent).
2. **Local defaults**: a directory snapshot source, a subprocess build
   sandbox and a directory-per-host deployer.
3. **Callable adapters** that wrap a plain function, for tests.
"""

from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from stagegate.core.hasher import sha256_hex
from stagegate.models.artifacts import ArtifactRef
from stagegate.models.targets import Host
from stagegate.models.topology import BuildProject

if TYPE_CHECKING:
    from stagegate.core.inventory import HostInventory
    from stagegate.routing.dispatcher import SinkDispatcher

logger = logging.getLogger(__name__)

# Fixed timestamp so identical trees always zip to identical bytes
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class SourceRevision(BaseModel):
    """One revision pulled from a source repository."""

    model_config = ConfigDict(frozen=True)

    repository_name: str
    branch_name: str
    commit_id: str
    commit_message: str = ""
    archive: bytes = b""


class BuildResult(BaseModel):
    """Outcome of one sandboxed build."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    output: bytes = b""
    logs: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SourceProvider(Protocol):
    """Protocol for the source control system."""

    def pull(self, repository: str, branch: str) -> SourceRevision:
        """Return the latest revision of *branch* in *repository*."""
        ...


@runtime_checkable
class BuildSandbox(Protocol):
    """Protocol for the isolated build environment."""

    def run(self, project: BuildProject, source: bytes) -> BuildResult:
        """Build *source* with *project*'s settings.

        A non-zero ``exit_code`` means the build failed.
        """
        ...


@runtime_checkable
class HostDeployer(Protocol):
    """Protocol for the per-host deployment agent."""

    def deploy(self, host: Host, ref: ArtifactRef, data: bytes) -> None:
        """Install *data* on *host*. Raises on failure."""
        ...


# ---------------------------------------------------------------------------
# Archive helpers
# ---------------------------------------------------------------------------


def zip_directory(
    root: Path,
    patterns: list[str] | None = None,
    exclude: list[Path] | None = None,
) -> bytes:
    """Return a deterministic zip of *root*.

    Parameters
    ----------
    root:
        Directory to archive.
    patterns:
        Glob patterns relative to *root*; every file when empty.
    exclude:
        Files or directories left out of the archive, with everything
        beneath them.
    """
    root = Path(root)
    excluded = [Path(p).resolve() for p in exclude or []]
    files: set[Path] = set()
    for pattern in patterns or ["**/*"]:
        for path in root.glob(pattern):
            if path.is_file():
                files.add(path)
            elif path.is_dir():
                files.update(p for p in path.rglob("*") if p.is_file())
    files = {p for p in files if not _is_excluded(p.resolve(), excluded)}

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(files):
            info = zipfile.ZipInfo(path.relative_to(root).as_posix(), date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            archive.writestr(info, path.read_bytes())
    return buffer.getvalue()


def _is_excluded(path: Path, excluded: list[Path]) -> bool:
    return any(path == e or e in path.parents for e in excluded)


def unzip_into(data: bytes, target: Path) -> None:
    """Extract a zip archive into *target*."""
    if not data:
        return
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        archive.extractall(target)


# ---------------------------------------------------------------------------
# Source providers
# ---------------------------------------------------------------------------


class StaticSource:
    """Returns a fixed revision, whatever repository is asked for."""

    def __init__(self, commit_id: str, commit_message: str = "", archive: bytes = b"") -> None:
        self.commit_id = commit_id
        self.commit_message = commit_message
        self.archive = archive

    def pull(self, repository: str, branch: str) -> SourceRevision:
        return SourceRevision(
            repository_name=repository,
            branch_name=branch,
            commit_id=self.commit_id,
            commit_message=self.commit_message,
            archive=self.archive,
        )


class LocalDirectorySource:
    """Snapshots a working directory as the latest revision.

    The commit id is the digest of the snapshot, so an unchanged tree
    always yields the same id.

    Parameters
    ----------
    root:
        Directory to snapshot.
    commit_message:
        Message recorded for the revision.
    exclude:
        Paths inside the tree that are not part of the source, such as
        the pipeline's own state directories.
    """

    def __init__(
        self,
        root: Path | str,
        commit_message: str = "",
        exclude: list[Path] | None = None,
    ) -> None:
        self.root = Path(root)
        self.commit_message = commit_message
        self.exclude = list(exclude or [])

    def pull(self, repository: str, branch: str) -> SourceRevision:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Source directory not found: {self.root}")
        archive = zip_directory(self.root, exclude=self.exclude)
        return SourceRevision(
            repository_name=repository,
            branch_name=branch,
            commit_id=sha256_hex(archive)[:40],
            commit_message=self.commit_message,
            archive=archive,
        )


# ---------------------------------------------------------------------------
# Build sandboxes
# ---------------------------------------------------------------------------


class SubprocessSandbox:
    """Runs a build project's commands in a throwaway directory.

    The source archive is extracted into a fresh temporary directory,
    each command runs through the shell with the project's environment
    variables, and the project's ``output_paths`` are zipped into the
    build output.

    Parameters
    ----------
    timeout_seconds:
        Wall-clock limit for each command.
    """

    def __init__(self, timeout_seconds: int = 900) -> None:
        self.timeout_seconds = timeout_seconds

    def run(self, project: BuildProject, source: bytes) -> BuildResult:
        with tempfile.TemporaryDirectory(prefix=f"stagegate-{project.name}-") as tmp:
            workdir = Path(tmp)
            unzip_into(source, workdir)
            env = {**os.environ, **project.environment_variables}
            logs: list[str] = []

            for command in project.commands:
                logger.debug("Build %s: running %r", project.name, command)
                try:
                    completed = subprocess.run(
                        command,
                        shell=True,
                        cwd=workdir,
                        env=env,
                        capture_output=True,
                        text=True,
                        timeout=self.timeout_seconds,
                    )
                except subprocess.TimeoutExpired:
                    logs.append(f"$ {command}\n<timed out after {self.timeout_seconds}s>")
                    return BuildResult(exit_code=124, logs="\n".join(logs))

                logs.append(f"$ {command}\n{completed.stdout}{completed.stderr}")
                if completed.returncode != 0:
                    return BuildResult(exit_code=completed.returncode, logs="\n".join(logs))

            output = zip_directory(workdir, project.output_paths)
            return BuildResult(exit_code=0, output=output, logs="\n".join(logs))


class CallableSandbox:
    """Adapts ``fn(project, source) -> BuildResult`` to the BuildSandbox protocol."""

    def __init__(self, fn: Callable[[BuildProject, bytes], BuildResult]) -> None:
        self._fn = fn

    def run(self, project: BuildProject, source: bytes) -> BuildResult:
        return self._fn(project, source)


# ---------------------------------------------------------------------------
# Host deployers
# ---------------------------------------------------------------------------


class LocalDirectoryDeployer:
    """Deploys by writing the bundle into a directory per host.

    Layout: ``{root}/{host.name}/bundle.zip`` plus a ``REVISION`` file
    holding the deployed artifact version and content address.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def host_dir(self, host: Host) -> Path:
        return self.root / host.name

    def deploy(self, host: Host, ref: ArtifactRef, data: bytes) -> None:
        target = self.host_dir(host)
        target.mkdir(parents=True, exist_ok=True)

        bundle = target / "bundle.zip"
        tmp = bundle.with_suffix(".zip.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, bundle)
        (target / "REVISION").write_text(
            f"{ref.version_id} {ref.content_address}\n", encoding="utf-8"
        )

    def deployed_revision(self, host: Host) -> str | None:
        """Return the version id currently deployed on *host*, if any."""
        revision = self.host_dir(host) / "REVISION"
        if not revision.exists():
            return None
        return revision.read_text(encoding="utf-8").split()[0]


class CallableDeployer:
    """Adapts ``fn(host, ref, data)`` to the HostDeployer protocol."""

    def __init__(self, fn: Callable[[Host, ArtifactRef, bytes], None]) -> None:
        self._fn = fn

    def deploy(self, host: Host, ref: ArtifactRef, data: bytes) -> None:
        self._fn(host, ref, data)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class Collaborators:
    """Everything the actions need from the outside world.

    Parameters
    ----------
    source:
        Source control backend.
    sandbox:
        Build sandbox backend.
    inventory:
        Host inventory used to resolve target groups at deploy time.
    deployer:
        Per-host deployment agent.
    dispatcher:
        Approval notification fan-out; requests are only recorded when None.
    approval_timeout_hours:
        Default approval timeout for actions that declare none.
    """

    def __init__(
        self,
        *,
        source: SourceProvider,
        sandbox: BuildSandbox,
        inventory: HostInventory,
        deployer: HostDeployer,
        dispatcher: SinkDispatcher | None = None,
        approval_timeout_hours: int | None = None,
    ) -> None:
        self.source = source
        self.sandbox = sandbox
        self.inventory = inventory
        self.deployer = deployer
        self.dispatcher = dispatcher
        self.approval_timeout_hours = approval_timeout_hours
