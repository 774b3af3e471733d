"""Conversation continuation identifiers.

The backend keys conversation memory on a ``threadId``/``resourceId`` pair.
Both are opaque to the client: they go out on the request and come back on
every event so the caller can reuse them on the next turn.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arbor.streaming.events import StreamEvent


@dataclass(frozen=True)
class CorrelationContext:
    """Thread/resource identifiers for one request.

    When only ``thread_id`` is given, ``resource_id`` defaults to it; the
    backend rejects a thread without a resource.
    """

    thread_id: str | None = None
    resource_id: str | None = None

    def __post_init__(self) -> None:
        if self.resource_id is None and self.thread_id is not None:
            object.__setattr__(self, "resource_id", self.thread_id)

    def to_request_fields(self) -> dict[str, str]:
        """Request body fields, omitting unset ids."""
        fields: dict[str, str] = {}
        if self.thread_id is not None:
            fields["threadId"] = self.thread_id
        if self.resource_id is not None:
            fields["resourceId"] = self.resource_id
        return fields

    def with_ids(self, thread_id: str | None, resource_id: str | None) -> CorrelationContext:
        """Return a context with the given ids, keeping current ones for None."""
        if thread_id is None and resource_id is None:
            return self
        return replace(
            self,
            thread_id=thread_id or self.thread_id,
            resource_id=resource_id or self.resource_id,
        )

    def absorb(self, event: StreamEvent) -> CorrelationContext:
        """Return a context updated with any ids the event carries."""
        return self.with_ids(event.thread_id, event.resource_id)
