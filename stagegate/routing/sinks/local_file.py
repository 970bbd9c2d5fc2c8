"""Local file sink — writes approval requests to a JSON outbox.

Layout: {base_path}/{run_id}/{request_id}.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from stagegate.core.hasher import canonical_json_bytes
from stagegate.models.approvals import ApprovalRequest

logger = logging.getLogger(__name__)


class LocalFileSink:
    """Writes approval requests to local JSON files.

    Parameters
    ----------
    base_path:
        Root directory of the outbox. Defaults to ``.stagegate/approvals``.
    """

    def __init__(self, base_path: Path | str | None = None) -> None:
        self._base = Path(base_path) if base_path else Path(".stagegate/approvals")
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def sink_name(self) -> str:
        return "local_file"

    def accept(self, request: ApprovalRequest) -> None:
        target_dir = self._base / request.run_id
        target_dir.mkdir(parents=True, exist_ok=True)

        target_file = target_dir / f"{request.request_id}.json"
        target_file.write_bytes(canonical_json_bytes(request.model_dump(mode="json")))

        logger.debug("LocalFileSink: wrote %s to %s", request.request_id, target_file)

    def list_requests(self, run_id: str | None = None) -> list[Path]:
        """List outbox files, optionally for one run only."""
        root = self._base / run_id if run_id else self._base
        if not root.exists():
            return []
        return sorted(root.rglob("*.json"))

    def read_request(self, path: Path) -> ApprovalRequest:
        return ApprovalRequest.model_validate(json.loads(path.read_bytes()))
