"""Access policy models — principals and their capability bindings."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Capability(str, Enum):
    """A capability a principal may be granted."""

    SOURCE_PULL = "source:pull"
    LOG_WRITE = "logs:write"
    ARTIFACT_READ = "artifact:read"
    ARTIFACT_WRITE = "artifact:write"
    PARAMETER_READ = "parameters:read"
    DEPLOY_ORCHESTRATE = "deploy:orchestrate"
    DEPLOY_AGENT = "deploy:agent"
    INVENTORY_READ = "inventory:read"
    ROLE_ASSUME = "role:assume"


class PrincipalRole(str, Enum):
    """The executor role a principal plays in the stage graph."""

    BUILD = "build"
    DEPLOY = "deploy"
    PIPELINE = "pipeline"
    INSTANCE = "instance"


class Principal(BaseModel):
    """An identity that executes actions, trusted by one service."""

    model_config = ConfigDict(frozen=True)

    name: str
    trusted_service: str
    identity: str = ""


class PolicyBinding(BaseModel):
    """(principal, capability set, resource scope) triple."""

    model_config = ConfigDict(frozen=True)

    principal: str
    capabilities: frozenset[Capability]
    resource_scope: str = "*"
