"""Versioned, append-only artifact store.

Storage layout: {base_path}/{key}/{version_id}.dat with a JSON sidecar
{version_id}.json holding the SHA-256 digest and metadata.
No overwrite and no delete: every put() creates a new version and prior
versions are retained.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path, PurePosixPath

from stagegate.core.hasher import content_address, sha256_hex
from stagegate.models.artifacts import ArtifactRef, ArtifactVersion

logger = logging.getLogger(__name__)


class ArtifactNotFoundError(LookupError):
    """Raised when a key or version does not exist in the store."""


class ArtifactIntegrityError(RuntimeError):
    """Raised when stored bytes no longer match their recorded digest."""


class VersionedArtifactStore:
    """Durable, versioned object storage for pipeline artifacts.

    Concurrent runs never collide: each put() allocates a fresh,
    time-ordered version id, so one run's artifacts are never overwritten
    by another's.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    name:
        Store identifier reported in stack outputs.
    """

    def __init__(self, base_path: Path, name: str = "artifacts") -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self.name = name

    @property
    def base_path(self) -> Path:
        return self._base

    @staticmethod
    def _new_version_id() -> str:
        return f"{time.time_ns():020d}-{uuid.uuid4().hex[:12]}"

    def _key_dir(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or any(p in ("..", ".") for p in parts):
            raise ValueError(f"Invalid artifact key: {key!r}")
        return self._base.joinpath(*parts)

    def _data_path(self, key: str, version_id: str) -> Path:
        return self._key_dir(key) / f"{version_id}.dat"

    def _meta_path(self, key: str, version_id: str) -> Path:
        return self._key_dir(key) / f"{version_id}.json"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(
        self,
        key: str,
        data: bytes,
        *,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Store *data* as a new version of *key* and return its version id."""
        return self.put_version(key, data, metadata=metadata).version_id

    def put_version(
        self,
        key: str,
        data: bytes,
        *,
        metadata: dict[str, str] | None = None,
    ) -> ArtifactVersion:
        """Store *data* as a new version and return the version metadata."""
        key_dir = self._key_dir(key)
        key_dir.mkdir(parents=True, exist_ok=True)

        version_id = self._new_version_id()
        data_path = self._data_path(key, version_id)
        # "xb" refuses to replace an existing version
        with open(data_path, "xb") as fh:
            fh.write(data)

        version = ArtifactVersion(
            key=key,
            version_id=version_id,
            content_address=content_address(data),
            size_bytes=len(data),
            metadata=metadata or {},
        )
        # The sidecar is what makes a version visible to readers
        meta_path = self._meta_path(key, version_id)
        tmp_path = meta_path.with_suffix(".json.tmp")
        tmp_path.write_text(version.model_dump_json(), encoding="utf-8")
        os.replace(tmp_path, meta_path)

        logger.debug("Stored %s version %s (%d bytes)", key, version_id, len(data))
        return version

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def head(self, key: str, version_id: str) -> ArtifactVersion:
        """Return the metadata of one version."""
        meta_path = self._meta_path(key, version_id)
        if not meta_path.exists():
            raise ArtifactNotFoundError(f"Artifact not found: {key}@{version_id}")
        return ArtifactVersion.model_validate_json(meta_path.read_text(encoding="utf-8"))

    def get(self, key: str, version_id: str) -> bytes:
        """Return the bytes of one version, verifying their digest."""
        version = self.head(key, version_id)
        data_path = self._data_path(key, version_id)
        if not data_path.exists():
            raise ArtifactNotFoundError(f"Artifact data missing: {key}@{version_id}")
        data = data_path.read_bytes()
        if f"sha256:{sha256_hex(data)}" != version.content_address:
            raise ArtifactIntegrityError(
                f"Artifact {key}@{version_id} failed integrity check"
            )
        return data

    def list_versions(self, key: str) -> list[ArtifactVersion]:
        """Return all versions of *key*, oldest first."""
        key_dir = self._key_dir(key)
        if not key_dir.is_dir():
            return []
        return [
            ArtifactVersion.model_validate_json(p.read_text(encoding="utf-8"))
            for p in sorted(key_dir.glob("*.json"))
        ]

    def latest(self, key: str) -> ArtifactVersion:
        """Return the most recent version of *key*."""
        versions = self.list_versions(key)
        if not versions:
            raise ArtifactNotFoundError(f"Artifact not found: {key}")
        return versions[-1]

    def exists(self, key: str, version_id: str) -> bool:
        return self._meta_path(key, version_id).exists()

    def verify(self, key: str, version_id: str) -> bool:
        """Re-hash stored data and compare against the recorded digest."""
        try:
            self.get(key, version_id)
        except (ArtifactNotFoundError, ArtifactIntegrityError):
            return False
        return True

    # ------------------------------------------------------------------
    # Pipeline artifact helpers
    # ------------------------------------------------------------------

    def store_artifact(
        self,
        name: str,
        key: str,
        data: bytes,
        *,
        metadata: dict[str, str] | None = None,
    ) -> ArtifactRef:
        """Store bytes for a named pipeline artifact and return its reference."""
        version = self.put_version(key, data, metadata=metadata)
        return ArtifactRef(
            name=name,
            key=key,
            version_id=version.version_id,
            content_address=version.content_address,
            size_bytes=version.size_bytes,
        )

    def read_artifact(self, ref: ArtifactRef) -> bytes:
        """Return the bytes behind *ref*, checking they match its address."""
        data = self.get(ref.key, ref.version_id)
        if content_address(data) != ref.content_address:
            raise ArtifactIntegrityError(
                f"Artifact {ref.name} ({ref.key}@{ref.version_id}) does not match "
                f"its reference address {ref.content_address}"
            )
        return data
