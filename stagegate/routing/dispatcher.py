"""SinkDispatcher — fans approval requests out to ALL configured sinks.

A failure in one sink is logged and does not block the others. Delivery
only fails when every sink fails, because then no reviewer can learn
about the pending decision.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from stagegate.models.approvals import ApprovalRequest

if TYPE_CHECKING:
    from stagegate.routing.sinks import ApprovalSink

logger = logging.getLogger(__name__)


class SinkDispatchError(RuntimeError):
    """Raised when every registered sink fails to accept a request."""


class SinkDispatcher:
    """Routes approval requests to every registered sink.

    Usage
    -----
    >>> dispatcher = SinkDispatcher()
    >>> dispatcher.register_sink(LocalFileSink(outbox))
    >>> dispatcher.register_sink(LogSink())
    >>> dispatcher.dispatch(request)
    """

    def __init__(self, sinks: list[ApprovalSink] | None = None) -> None:
        self._sinks: list[ApprovalSink] = []
        for sink in sinks or []:
            self.register_sink(sink)

    def register_sink(self, sink: ApprovalSink) -> None:
        """Register a sink. Registering the same instance twice is a no-op."""
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.info("Registered sink: %s", sink.sink_name)

    def unregister_sink(self, sink: ApprovalSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)
            logger.info("Unregistered sink: %s", sink.sink_name)

    @property
    def registered_sinks(self) -> list[ApprovalSink]:
        return list(self._sinks)

    def dispatch(self, request: ApprovalRequest) -> list[str]:
        """Deliver *request* to every sink.

        Returns the names of the sinks that accepted it.

        Raises
        ------
        SinkDispatchError
            If *all* sinks fail. Individual failures are tolerated.
        """
        if not self._sinks:
            logger.warning(
                "No sinks registered — approval %s for run %s not announced",
                request.request_id,
                request.run_id,
            )
            return []

        succeeded: list[str] = []
        errors: list[tuple[str, Exception]] = []

        for sink in self._sinks:
            try:
                sink.accept(request)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Sink %s failed for approval %s: %s",
                    sink.sink_name,
                    request.request_id,
                    exc,
                )
                errors.append((sink.sink_name, exc))

        if errors and not succeeded:
            raise SinkDispatchError(
                f"All {len(errors)} sinks failed for approval {request.request_id}: "
                + "; ".join(f"{name}: {exc}" for name, exc in errors)
            )

        if errors:
            logger.warning(
                "Approval %s: %d/%d sinks succeeded",
                request.request_id,
                len(succeeded),
                len(self._sinks),
            )
        return succeeded
