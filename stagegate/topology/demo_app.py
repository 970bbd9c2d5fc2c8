"""The DemoApp topology.

One artifact store, four principals with their capability bindings, a
source repository, a build project, two tagged web hosts and the
five-stage pipeline::

    Source -> Build -> Deploy (DEV) -> Approve -> Production (PRD)
"""

from __future__ import annotations

from stagegate.config import Settings
from stagegate.config import settings as default_settings
from stagegate.models.pipeline import PipelineDefinition
from stagegate.models.policies import Capability, PolicyBinding, Principal
from stagegate.models.stages import (
    ApprovalActionDefinition,
    BuildActionDefinition,
    DeployActionDefinition,
    SourceActionDefinition,
    StageDefinition,
)
from stagegate.models.targets import Host, TargetGroup, TargetGroupSelector
from stagegate.models.topology import (
    ArtifactStoreSpec,
    BuildProject,
    SourceRepository,
    StackOutput,
    Topology,
)

SOURCE_ARTIFACT = "SourceArtifact"
BUILD_ARTIFACT = "BuildArtifact"

BUILD_PRINCIPAL = "CodeBuildRole"
DEPLOY_PRINCIPAL = "CodeDeployRole"
INSTANCE_PRINCIPAL = "WebAppInstanceRole"
PIPELINE_PRINCIPAL = "CodePipelineRole"

DEV_GROUP = "Development"
PRD_GROUP = "Production"


def role_identity(account_id: str, name: str) -> str:
    return f"arn:aws:iam::{account_id}:role/{name}"


def host_address(name: str, region: str) -> str:
    return f"{name.lower()}.{region}.compute.internal"


def demo_hosts(settings: Settings | None = None) -> list[Host]:
    """The two web hosts: one tagged DEV, one tagged PRD."""
    settings = settings or default_settings
    app = settings.application_name
    hosts = []
    for name, env in (("DevWebApp01", "DEV"), ("PrdWebApp01", "PRD")):
        hosts.append(Host(
            host_id=f"i-{name.lower()}",
            name=name,
            tags={"Name": name, "App": app, "Env": env},
            address=host_address(name, settings.region),
            principal=INSTANCE_PRINCIPAL,
        ))
    return hosts


def demo_pipeline(settings: Settings | None = None, *, artifact_store: str) -> PipelineDefinition:
    settings = settings or default_settings
    app = settings.application_name
    link = (
        f"{settings.console_base_url}/codesuite/codecommit/repositories/{app}/commit/"
        "#{SourceVariables.commit_id}"
        f"?region={settings.region}"
    )
    return PipelineDefinition(
        name=app,
        artifact_store=artifact_store,
        principal=PIPELINE_PRINCIPAL,
        stages=[
            StageDefinition(
                name="Source",
                actions=[SourceActionDefinition(
                    name="CodeCommit",
                    repository=app,
                    output_artifact=SOURCE_ARTIFACT,
                )],
            ),
            StageDefinition(
                name="Build",
                actions=[BuildActionDefinition(
                    name="CodeBuild",
                    project="PipelineProject",
                    input_artifact=SOURCE_ARTIFACT,
                    output_artifact=BUILD_ARTIFACT,
                )],
            ),
            StageDefinition(
                name="Deploy",
                display_name="Deploy (DEV)",
                actions=[DeployActionDefinition(
                    name="CodeDeploy",
                    target_group=DEV_GROUP,
                    input_artifact=BUILD_ARTIFACT,
                )],
            ),
            StageDefinition(
                name="Approve",
                actions=[ApprovalActionDefinition(
                    name="Approve",
                    info_template="Commit message: #{SourceVariables.commit_message}",
                    link_template=link,
                    timeout_hours=settings.approval_timeout_hours,
                )],
            ),
            StageDefinition(
                name="Production",
                display_name="Deploy (PRD)",
                actions=[DeployActionDefinition(
                    name="Product",
                    target_group=PRD_GROUP,
                    input_artifact=BUILD_ARTIFACT,
                )],
            ),
        ],
    )


def build_demo_topology(
    settings: Settings | None = None,
    *,
    build_commands: list[str] | None = None,
    output_paths: list[str] | None = None,
    hosts: list[Host] | None = None,
) -> Topology:
    """Declare the complete DemoApp topology.

    Parameters
    ----------
    settings:
        Runtime settings; supplies region, account and application name.
    build_commands:
        Shell commands the build project runs.
    output_paths:
        Globs, relative to the build directory, packaged as the build
        artifact. Everything is packaged when empty.
    hosts:
        Host records to declare instead of the two default web hosts.
    """
    settings = settings or default_settings
    app = settings.application_name
    account = settings.account_id
    store_name = f"{app.lower()}-artifacts-{account}"
    hosts = hosts if hosts is not None else demo_hosts(settings)

    principals = [
        Principal(name=BUILD_PRINCIPAL, trusted_service="codebuild",
                  identity=role_identity(account, BUILD_PRINCIPAL)),
        Principal(name=DEPLOY_PRINCIPAL, trusted_service="codedeploy",
                  identity=role_identity(account, DEPLOY_PRINCIPAL)),
        Principal(name=INSTANCE_PRINCIPAL, trusted_service="ec2",
                  identity=role_identity(account, INSTANCE_PRINCIPAL)),
        Principal(name=PIPELINE_PRINCIPAL, trusted_service="codepipeline",
                  identity=role_identity(account, PIPELINE_PRINCIPAL)),
    ]
    bindings = [
        PolicyBinding(principal=BUILD_PRINCIPAL, capabilities=frozenset({
            Capability.SOURCE_PULL,
            Capability.LOG_WRITE,
            Capability.ARTIFACT_READ,
            Capability.ARTIFACT_WRITE,
            Capability.PARAMETER_READ,
        })),
        PolicyBinding(principal=DEPLOY_PRINCIPAL, capabilities=frozenset({
            Capability.DEPLOY_ORCHESTRATE,
            Capability.INVENTORY_READ,
        })),
        PolicyBinding(principal=INSTANCE_PRINCIPAL, capabilities=frozenset({
            Capability.DEPLOY_AGENT,
            Capability.INVENTORY_READ,
        })),
        # Instances only fetch bundles from the artifact store
        PolicyBinding(principal=INSTANCE_PRINCIPAL, capabilities=frozenset({
            Capability.ARTIFACT_READ,
        }), resource_scope=store_name),
        PolicyBinding(principal=PIPELINE_PRINCIPAL, capabilities=frozenset({
            Capability.ROLE_ASSUME,
            Capability.SOURCE_PULL,
            Capability.ARTIFACT_READ,
            Capability.ARTIFACT_WRITE,
        })),
    ]

    target_groups = [
        TargetGroup(
            name=DEV_GROUP,
            selector=TargetGroupSelector(app_label=app, env_label="DEV"),
            deploy_principal=DEPLOY_PRINCIPAL,
        ),
        TargetGroup(
            name=PRD_GROUP,
            selector=TargetGroupSelector(app_label=app, env_label="PRD"),
            deploy_principal=DEPLOY_PRINCIPAL,
        ),
    ]

    outputs: list[StackOutput] = []
    for env, key, label in (("DEV", "DevLocation", "Development"), ("PRD", "PrdLocation", "Production")):
        # First host of each environment is the advertised web server
        host = next(
            (h for h in hosts if h.tags.get("App") == app and h.tags.get("Env") == env),
            None,
        )
        if host is not None:
            outputs.append(StackOutput(
                key=key,
                description=f"{label} web server location",
                value=f"http://{host.address}",
            ))
    outputs.extend([
        StackOutput(key="BucketName", description="Bucket for storing artifacts", value=store_name),
        StackOutput(key="BuildRoleArn", description="Build role ARN",
                    value=role_identity(account, BUILD_PRINCIPAL)),
        StackOutput(key="DeployRoleArn", description="Deploy role ARN",
                    value=role_identity(account, DEPLOY_PRINCIPAL)),
    ])

    return Topology(
        name=f"{app}Stack",
        artifact_store=ArtifactStoreSpec(name=store_name, versioned=True, retain_on_teardown=False),
        principals=principals,
        bindings=bindings,
        hosts=hosts,
        repositories=[SourceRepository(name=app, description=f"{app} application source")],
        build_projects=[BuildProject(
            name="PipelineProject",
            principal=BUILD_PRINCIPAL,
            build_image="standard-4.0",
            commands=list(build_commands or []),
            output_paths=list(output_paths or []),
        )],
        target_groups=target_groups,
        pipeline=demo_pipeline(settings, artifact_store=store_name),
        outputs=outputs,
    )
