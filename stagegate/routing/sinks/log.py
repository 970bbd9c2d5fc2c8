"""Log sink — announces approval requests through the logging system."""

from __future__ import annotations

import logging

from stagegate.models.approvals import ApprovalRequest

logger = logging.getLogger(__name__)


class LogSink:
    """Emits one WARNING-level record per pending approval.

    Parameters
    ----------
    level:
        Logging level for the announcement.
    """

    def __init__(self, level: int = logging.WARNING) -> None:
        self._level = level

    @property
    def sink_name(self) -> str:
        return "log"

    def accept(self, request: ApprovalRequest) -> None:
        expires = request.expires_at.isoformat() if request.expires_at else "never"
        logger.log(
            self._level,
            "Approval required: run=%s stage=%s request=%s expires=%s | %s | %s",
            request.run_id,
            request.stage_name,
            request.request_id,
            expires,
            request.summary,
            request.review_link,
        )
