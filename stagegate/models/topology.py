"""Deployment topology models — everything declared for one application."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from stagegate.models.pipeline import PipelineDefinition
from stagegate.models.policies import PolicyBinding, Principal
from stagegate.models.targets import Host, TargetGroup


class ArtifactStoreSpec(BaseModel):
    """The durable, versioned object store holding pipeline artifacts."""

    model_config = ConfigDict(frozen=True)

    name: str
    versioned: bool = True
    retain_on_teardown: bool = False


class SourceRepository(BaseModel):
    """A version-controlled source repository."""

    model_config = ConfigDict(frozen=True)

    name: str
    default_branch: str = "main"
    description: str = ""


class BuildProject(BaseModel):
    """An isolated build environment and the principal it runs as."""

    model_config = ConfigDict(frozen=True)

    name: str
    principal: str
    build_image: str = "standard-4.0"
    compute_type: str = "small"
    commands: list[str] = []
    output_paths: list[str] = []
    environment_variables: dict[str, str] = {}


class StackOutput(BaseModel):
    """A named value exposed once the topology is provisioned."""

    model_config = ConfigDict(frozen=True)

    key: str
    description: str
    value: str


class Topology(BaseModel):
    """The whole deployment topology: resources plus the pipeline."""

    model_config = ConfigDict(frozen=True)

    name: str
    artifact_store: ArtifactStoreSpec
    principals: list[Principal]
    bindings: list[PolicyBinding]
    hosts: list[Host] = []
    repositories: list[SourceRepository] = []
    build_projects: list[BuildProject] = []
    target_groups: list[TargetGroup] = []
    pipeline: PipelineDefinition
    outputs: list[StackOutput] = []

    def principal(self, name: str) -> Principal:
        return _lookup(self.principals, name, "principal")

    def repository(self, name: str) -> SourceRepository:
        return _lookup(self.repositories, name, "repository")

    def build_project(self, name: str) -> BuildProject:
        return _lookup(self.build_projects, name, "build project")

    def target_group(self, name: str) -> TargetGroup:
        return _lookup(self.target_groups, name, "target group")

    def output(self, key: str) -> StackOutput:
        for out in self.outputs:
            if out.key == key:
                return out
        raise KeyError(f"Unknown output {key!r}")


def _lookup(items: list, name: str, kind: str):
    for item in items:
        if item.name == name:
            return item
    raise KeyError(f"Unknown {kind} {name!r}")
