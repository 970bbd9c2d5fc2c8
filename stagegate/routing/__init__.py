"""Approval notification routing.

When a run reaches a manual approval gate, the pending request is fanned
out to every configured sink: a local JSON outbox that reviewers (or
tooling) can watch, the application log, or any custom sink that
implements the ApprovalSink protocol.
"""

from stagegate.routing.dispatcher import SinkDispatchError, SinkDispatcher

__all__ = ["SinkDispatchError", "SinkDispatcher"]
