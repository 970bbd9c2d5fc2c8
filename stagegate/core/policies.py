"""Access policy registry — declarative principal -> capability bindings.

No runtime evaluation lives here. Enforcement belongs to the external
authorization system; this module only records bindings and answers
"what is granted" and "what is required" for definition-time checks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from stagegate.models.policies import Capability, PolicyBinding, Principal, PrincipalRole
from stagegate.models.stages import ActionKind
from stagegate.models.topology import Topology

logger = logging.getLogger(__name__)


# Capabilities each executor role needs to run its actions.
REQUIRED_CAPABILITIES: dict[PrincipalRole, frozenset[Capability]] = {
    PrincipalRole.BUILD: frozenset({
        Capability.SOURCE_PULL,
        Capability.LOG_WRITE,
        Capability.ARTIFACT_READ,
        Capability.ARTIFACT_WRITE,
        Capability.PARAMETER_READ,
    }),
    PrincipalRole.DEPLOY: frozenset({
        Capability.DEPLOY_ORCHESTRATE,
        Capability.INVENTORY_READ,
    }),
    PrincipalRole.PIPELINE: frozenset({
        Capability.ROLE_ASSUME,
        Capability.SOURCE_PULL,
        Capability.ARTIFACT_READ,
        Capability.ARTIFACT_WRITE,
    }),
    PrincipalRole.INSTANCE: frozenset({
        Capability.DEPLOY_AGENT,
        Capability.INVENTORY_READ,
        Capability.ARTIFACT_READ,
    }),
}


class PolicyRegistry:
    """Holds principals and their capability bindings.

    Parameters
    ----------
    principals:
        Principals known to the registry.
    bindings:
        Initial bindings; each must name a known principal.
    """

    def __init__(
        self,
        principals: Iterable[Principal] = (),
        bindings: Iterable[PolicyBinding] = (),
    ) -> None:
        self._principals: dict[str, Principal] = {}
        self._bindings: list[PolicyBinding] = []
        for principal in principals:
            self.add_principal(principal)
        for binding in bindings:
            self.bind(binding.principal, binding.capabilities, binding.resource_scope)

    @classmethod
    def from_topology(cls, topology: Topology) -> PolicyRegistry:
        return cls(topology.principals, topology.bindings)

    def add_principal(self, principal: Principal) -> None:
        if principal.name in self._principals:
            raise ValueError(f"Duplicate principal {principal.name!r}")
        self._principals[principal.name] = principal

    def bind(
        self,
        principal: str,
        capabilities: Iterable[Capability],
        resource_scope: str = "*",
    ) -> PolicyBinding:
        """Grant *capabilities* on *resource_scope* to *principal*."""
        if principal not in self._principals:
            raise ValueError(f"Cannot bind unknown principal {principal!r}")
        binding = PolicyBinding(
            principal=principal,
            capabilities=frozenset(Capability(c) for c in capabilities),
            resource_scope=resource_scope,
        )
        self._bindings.append(binding)
        logger.debug(
            "Bound %s -> %s on %s",
            principal,
            sorted(c.value for c in binding.capabilities),
            resource_scope,
        )
        return binding

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def principals(self) -> list[Principal]:
        return list(self._principals.values())

    def has_principal(self, name: str) -> bool:
        return name in self._principals

    def bindings_for(self, principal: str) -> list[PolicyBinding]:
        return [b for b in self._bindings if b.principal == principal]

    def capabilities_of(self, principal: str) -> frozenset[Capability]:
        """Union of every capability bound to *principal*."""
        granted: set[Capability] = set()
        for binding in self.bindings_for(principal):
            granted.update(binding.capabilities)
        return frozenset(granted)


def required_roles(topology: Topology) -> dict[str, set[PrincipalRole]]:
    """Map every principal referenced by the topology to the roles it plays."""
    roles: dict[str, set[PrincipalRole]] = {}

    def _add(principal: str, role: PrincipalRole) -> None:
        roles.setdefault(principal, set()).add(role)

    _add(topology.pipeline.principal, PrincipalRole.PIPELINE)

    projects = {p.name: p for p in topology.build_projects}
    groups = {g.name: g for g in topology.target_groups}
    for stage in topology.pipeline.stages:
        for action in stage.actions:
            if action.kind == ActionKind.BUILD and action.project in projects:
                _add(projects[action.project].principal, PrincipalRole.BUILD)
            elif action.kind == ActionKind.DEPLOY and action.target_group in groups:
                _add(groups[action.target_group].deploy_principal, PrincipalRole.DEPLOY)

    for host in topology.hosts:
        if host.principal:
            _add(host.principal, PrincipalRole.INSTANCE)

    return roles


def required_capabilities(roles: Iterable[PrincipalRole]) -> frozenset[Capability]:
    """Union of the capabilities needed by a set of roles."""
    needed: set[Capability] = set()
    for role in roles:
        needed.update(REQUIRED_CAPABILITIES[role])
    return frozenset(needed)
