"""Deploy action: all-at-once rollout to a late-bound target group.

The target group is resolved against the inventory when the action runs.
Every matched host receives the same artifact bytes concurrently; any
host failure fails the whole stage. There is no partial success and no
rollback of the hosts that did succeed.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from pydantic import BaseModel, ConfigDict

from stagegate.actions.base import ActionContext, ActionResult, BaseAction, StageExecutionError
from stagegate.models.stages import ActionKind
from stagegate.models.targets import DeploymentPolicy, Host

logger = logging.getLogger(__name__)


class HostDeploymentResult(BaseModel):
    """Outcome of one host in an all-at-once rollout."""

    model_config = ConfigDict(frozen=True)

    host_id: str
    host_name: str
    succeeded: bool
    error: str = ""


class HostDeploymentError(StageExecutionError):
    """Raised when one or more hosts fail during a rollout."""

    def __init__(self, message: str, results: list[HostDeploymentResult]) -> None:
        super().__init__(message)
        self.results = results

    @property
    def failed_hosts(self) -> list[str]:
        return [r.host_name for r in self.results if not r.succeeded]


class DeployAction(BaseAction):
    """Deploys the input artifact to every host in the target group."""

    kind = ActionKind.DEPLOY

    def execute(self, context: ActionContext) -> ActionResult:
        definition = self.definition
        if definition.policy != DeploymentPolicy.ALL_AT_ONCE:
            raise StageExecutionError(f"Unsupported deployment policy {definition.policy}")

        group = self.topology.target_group(definition.target_group)
        hosts = self.collaborators.inventory.resolve(group.selector)
        if not hosts:
            raise StageExecutionError(
                f"Target group {group.name} ({group.selector.describe()}) matched no hosts"
            )

        ref = context.input_ref(definition.input_artifact)
        data = context.store.read_artifact(ref)
        logger.info(
            "Deploying %s@%s to %d host(s) in %s",
            ref.name, ref.version_id, len(hosts), group.name,
        )

        results = self._deploy_all(hosts, ref, data)
        failures = [r for r in results if not r.succeeded]
        if failures:
            raise HostDeploymentError(
                f"Deployment to {group.name} failed on {len(failures)}/{len(results)} host(s): "
                + "; ".join(f"{r.host_name}: {r.error}" for r in failures),
                results,
            )

        names = ",".join(r.host_name for r in results)
        return ActionResult(
            variables={
                "target_group": group.name,
                "deployed_hosts": names,
                "artifact_version": ref.version_id,
            },
            detail=f"{ref.content_address} -> {names}",
        )

    def _deploy_all(self, hosts: list[Host], ref, data: bytes) -> list[HostDeploymentResult]:
        # One worker per host: every host is in flight at once, never batched
        deployer = self.collaborators.deployer
        results: list[HostDeploymentResult] = []

        with ThreadPoolExecutor(max_workers=len(hosts), thread_name_prefix="deploy") as pool:
            futures = {pool.submit(deployer.deploy, host, ref, data): host for host in hosts}
            for future in as_completed(futures):
                host = futures[future]
                try:
                    future.result()
                except Exception as exc:  # noqa: BLE001
                    logger.error("Deploy to %s failed: %s", host.name, exc)
                    results.append(HostDeploymentResult(
                        host_id=host.host_id, host_name=host.name,
                        succeeded=False, error=str(exc) or type(exc).__name__,
                    ))
                else:
                    logger.info("Deploy to %s succeeded", host.name)
                    results.append(HostDeploymentResult(
                        host_id=host.host_id, host_name=host.name, succeeded=True,
                    ))

        return sorted(results, key=lambda r: r.host_name)
