"""Sink protocol for approval notifications.

All sinks implement the ``ApprovalSink`` protocol: a ``sink_name``
property and an ``accept(request)`` method.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from stagegate.models.approvals import ApprovalRequest


@runtime_checkable
class ApprovalSink(Protocol):
    """Protocol that every notification sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier for this sink instance
        (e.g. ``"local_file"``, ``"log"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def accept(self, request: ApprovalRequest) -> None:
        """Deliver a pending approval request.

        Parameters
        ----------
        request:
            The request awaiting a reviewer's decision.
        """
        ...
