"""Versioned artifact models (append-only, never mutated)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ArtifactRef(BaseModel):
    """A reference to one stored version of a pipeline artifact.

    ``name`` is the logical artifact name declared in the pipeline
    (e.g. ``"BuildArtifact"``); ``key`` and ``version_id`` locate the
    bytes in the artifact store. The content_address is the SHA-256 hex
    digest of the stored bytes.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    key: str
    version_id: str
    content_address: str  # "sha256:<hex>"
    size_bytes: int = 0


class ArtifactVersion(BaseModel):
    """Metadata for a stored version — the bytes themselves live in the store.

    Versions are immutable once stored. A new put() on the same key
    creates a new version; prior versions are retained.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    version_id: str
    content_address: str  # "sha256:<hex>"
    size_bytes: int
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    metadata: dict[str, str] = {}
