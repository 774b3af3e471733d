"""History outbox: fire-and-forget persistence of finalized messages.

Each submitted message gets its own background task. Failures are logged
and dropped: the in-memory conversation stays authoritative for the
current session, and the stream loop never waits on the history store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arbor.history.client import HistoryClient
    from arbor.models import Message

logger = logging.getLogger(__name__)


class HistoryOutbox:
    """Background submitter for the history store.

    Usage::

        outbox = HistoryOutbox(history_client)
        outbox.submit(message, chat_id)   # returns immediately
        ...
        await outbox.drain()              # on shutdown
    """

    def __init__(self, client: HistoryClient) -> None:
        self._client = client
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, message: Message, chat_id: str) -> asyncio.Task[None]:
        """Schedule ``message`` for storage in ``chat_id``.

        A snapshot of the message is taken now, so later in-memory edits do
        not leak into the stored copy.
        """
        snapshot = message.model_copy(deep=True)
        task = asyncio.create_task(
            self._deliver(snapshot, chat_id),
            name=f"history-submit-{snapshot.id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, message: Message, chat_id: str) -> None:
        try:
            await self._client.add_message(message, chat_id)
        except Exception as e:
            logger.warning(
                "Failed to save %s message %s to chat %s: %s",
                message.kind.value,
                message.id,
                chat_id,
                e,
            )
        else:
            logger.debug("Saved %s message %s to chat %s", message.kind.value, message.id, chat_id)

    async def drain(self) -> None:
        """Wait for every submission made so far to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
