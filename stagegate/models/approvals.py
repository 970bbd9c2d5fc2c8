"""Manual approval gate models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ApprovalDecision(str, Enum):
    """An external reviewer's verdict on a pending approval."""

    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalRequest(BaseModel):
    """A pending human decision, delivered through the notification sinks."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    run_id: str
    pipeline_name: str
    stage_name: str
    action_name: str
    summary: str = ""
    review_link: str = ""
    requested_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ApprovalRecord(BaseModel):
    """Immutable record of a delivered decision."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    decision: ApprovalDecision
    reviewer: str = ""
    comment: str = ""
    decided_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
