"""Host inventory — late binding of target groups to concrete hosts.

Deploy actions never carry a host list. They hold a target group
reference and ask the inventory to resolve its selector when the action
runs, so hosts can be added or removed without redefining the pipeline.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from stagegate.models.targets import Host, TargetGroupSelector

logger = logging.getLogger(__name__)


@runtime_checkable
class HostInventory(Protocol):
    """Protocol for the external host inventory / tagging system."""

    def resolve(self, selector: TargetGroupSelector) -> list[Host]:
        """Return every host currently matching *selector*."""
        ...


class StaticInventory:
    """In-process inventory over a mutable set of tagged hosts.

    Parameters
    ----------
    hosts:
        Initial host records.
    """

    def __init__(self, hosts: Iterable[Host] = ()) -> None:
        self._lock = threading.Lock()
        self._hosts: dict[str, Host] = {}
        for host in hosts:
            self.register(host)

    def register(self, host: Host) -> None:
        """Add or replace a host record."""
        with self._lock:
            self._hosts[host.host_id] = host
        logger.debug("Inventory: registered %s (%s)", host.name, host.tags)

    def deregister(self, host_id: str) -> None:
        with self._lock:
            self._hosts.pop(host_id, None)

    def retag(self, host_id: str, tags: dict[str, str]) -> Host:
        """Replace the tags of a host."""
        with self._lock:
            host = self._hosts[host_id].model_copy(update={"tags": dict(tags)})
            self._hosts[host_id] = host
        return host

    @property
    def hosts(self) -> list[Host]:
        with self._lock:
            return list(self._hosts.values())

    def resolve(self, selector: TargetGroupSelector) -> list[Host]:
        with self._lock:
            matched = [h for h in self._hosts.values() if selector.matches(h)]
        return sorted(matched, key=lambda h: h.name)
