"""Compute target models — tagged hosts and label-selected groups."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class DeploymentPolicy(str, Enum):
    """How a deploy action rolls an artifact out to its target group."""

    # Every matched host is updated at once; one failure fails the stage.
    ALL_AT_ONCE = "all_at_once"


class Host(BaseModel):
    """A deployable host known to the inventory."""

    model_config = ConfigDict(frozen=True)

    host_id: str
    name: str
    tags: dict[str, str] = {}
    address: str = ""  # public DNS name
    principal: str = ""  # instance principal the host runs as


class TargetGroupSelector(BaseModel):
    """Label predicate: application tag AND environment tag must match."""

    model_config = ConfigDict(frozen=True)

    app_label: str
    env_label: str
    app_tag: str = "App"
    env_tag: str = "Env"

    def matches(self, host: Host) -> bool:
        """Return True if *host* carries both labels."""
        return (
            host.tags.get(self.app_tag) == self.app_label
            and host.tags.get(self.env_tag) == self.env_label
        )

    def is_disjoint_from(self, other: TargetGroupSelector) -> bool:
        """Return True if no host can match both selectors.

        Two predicates are provably disjoint only when they constrain the
        same tag key to different values.
        """
        if self.app_tag == other.app_tag and self.app_label != other.app_label:
            return True
        if self.env_tag == other.env_tag and self.env_label != other.env_label:
            return True
        return False

    def describe(self) -> str:
        return f"{self.app_tag}={self.app_label} AND {self.env_tag}={self.env_label}"


class TargetGroup(BaseModel):
    """A named deployment group: a selector plus the principal that deploys to it.

    The group never lists concrete hosts; membership is resolved against
    the inventory when a deploy action runs.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    selector: TargetGroupSelector
    deploy_principal: str
