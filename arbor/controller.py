"""Chat controller: owner of one conversation's messages and stream.

The controller is the single place a conversation's message list is
written from. It persists user messages, starts streaming turns (at most
one at a time, tracked by a generation counter), cancels them, and keeps
the continuation ids returned by the backend for the next turn.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from arbor.history.outbox import HistoryOutbox
from arbor.models import AgentMode, Message
from arbor.settings import get_settings
from arbor.streaming.assembler import StreamAssembler
from arbor.streaming.consumer import consume_stream
from arbor.streaming.correlation import CorrelationContext
from arbor.streaming.decoder import LineDecoder
from arbor.streaming.session import OutcomeStatus, StreamOutcome, StreamSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from arbor.agents.client import AgentsClient
    from arbor.history.client import HistoryClient
    from arbor.models import Chat
    from arbor.streaming.events import MessageUpdate

logger = logging.getLogger(__name__)


class ChatController:
    """Drive one conversation against the agents backend.

    Usage::

        controller = ChatController(chat_id, agents=agents, history=history)
        await controller.load_messages()
        outcome = await controller.send_message("What's new?")
        ...
        await controller.aclose()
    """

    def __init__(
        self,
        chat_id: str | None = None,
        *,
        agents: AgentsClient,
        history: HistoryClient | None = None,
        outbox: HistoryOutbox | None = None,
        private: bool = False,
        mode: AgentMode | None = None,
        listener: Callable[[MessageUpdate], None] | None = None,
        done_echo_threshold: int | None = None,
    ) -> None:
        settings = get_settings()
        self.chat_id = chat_id
        self.private = private
        self.mode = mode or AgentMode(settings.default_mode)
        self.messages: list[Message] = []
        self.correlation = CorrelationContext(thread_id=chat_id)
        self._agents = agents
        self._history = history
        if outbox is None and history is not None:
            outbox = HistoryOutbox(history)
        self._outbox = outbox
        self._listener = listener
        self._done_echo_threshold = (
            done_echo_threshold if done_echo_threshold is not None else settings.done_echo_threshold
        )
        self._generation = 0
        self._session: StreamSession | None = None
        self._task: asyncio.Task[StreamOutcome] | None = None
        self._start_lock = asyncio.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def session(self) -> StreamSession | None:
        """The latest session (active or finished)."""
        return self._session

    @property
    def is_streaming(self) -> bool:
        return self._task is not None and not self._task.done()

    # ─── Chat bootstrap ─────────────────────────────────────────────────────

    async def load_messages(self) -> list[Message]:
        """Replace the in-memory list with the stored history."""
        if self._history is None or self.chat_id is None:
            return self.messages
        self.messages = await self._history.get_messages(self.chat_id)
        logger.info("Loaded %d messages for chat %s", len(self.messages), self.chat_id)
        return self.messages

    async def start_new_chat(self, prompt: str, *, project_id: str | None = None) -> Chat:
        """Create the remote chat for a first prompt.

        Private chats are created without the prompt so it is never stored.
        """
        if self._history is None:
            raise RuntimeError("start_new_chat requires a history client")
        chat = await self._history.create_chat(
            initial_message=None if self.private else prompt,
            project_id=project_id,
        )
        self.chat_id = chat.id
        self.correlation = CorrelationContext(thread_id=chat.id)
        logger.info("Created chat %s (private=%s)", chat.id, self.private)
        return chat

    # ─── Streaming ──────────────────────────────────────────────────────────

    async def send_message(self, text: str) -> StreamOutcome | None:
        """Append a user message and stream the agent's reply.

        Without a chat id (and unless private), a chat is created first.

        Returns:
            The turn's outcome, or None when ``text`` is blank.
        """
        if not text.strip():
            return None
        if self.chat_id is None and self._history is not None and not self.private:
            # The new chat is created with the prompt as its first message
            await self.start_new_chat(text)
            self.messages.append(Message.create_user(text, chat_id=self.chat_id or ""))
            return await self.stream_response(text)

        user_message = Message.create_user(text, chat_id=self.chat_id or "")
        self.messages.append(user_message)
        if not self.private and self._outbox is not None and self.chat_id:
            self._outbox.submit(user_message, self.chat_id)
        return await self.stream_response(text)

    async def stream_response(self, prompt: str) -> StreamOutcome:
        """Stream one agent response into ``messages``.

        Any stream still running for this conversation is cancelled (and
        finalized) before the new one starts. Concurrent callers start their
        streams one after another, each superseding the previous one.
        """
        async with self._start_lock:
            await self.cancel_stream()

            self._generation += 1
            session = StreamSession(
                chat_id=self.chat_id,
                generation=self._generation,
                correlation=self.correlation,
                mode=self.mode,
                private=self.private,
            )
            self._session = session
            task = asyncio.create_task(
                self._run(session, prompt), name=f"stream-{self._generation}"
            )
            self._task = task

        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if not task.cancelled() or caller_cancelled:
                raise
            # Superseded or cancelled through cancel_stream()
            return session.outcome or StreamOutcome(
                status=OutcomeStatus.CANCELLED,
                thread_id=session.correlation.thread_id,
                resource_id=session.correlation.resource_id,
            )

    async def _run(self, session: StreamSession, prompt: str) -> StreamOutcome:
        logger.info(
            "Starting stream %d for chat %s (threadId=%s)",
            session.generation,
            session.chat_id,
            session.correlation.thread_id,
        )
        source = self._agents.open_stream(prompt, session.correlation)
        assembler = StreamAssembler(
            session,
            self.messages,
            outbox=self._outbox,
            listener=self._listener,
            done_echo_threshold=self._done_echo_threshold,
        )
        outcome = await consume_stream(
            source.lines(session.cancel_token),
            assembler,
            LineDecoder(session.correlation),
        )
        if session.generation == self._generation:
            self.correlation = CorrelationContext(
                thread_id=outcome.thread_id,
                resource_id=outcome.resource_id,
            )
        return outcome

    async def cancel_stream(self) -> StreamOutcome | None:
        """Cancel the active stream, keeping whatever was received.

        Returns:
            The cancelled session's outcome, or None if nothing was running.
        """
        task, session = self._task, self._session
        if task is None or session is None or task.done():
            return None
        session.cancel()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Cancelled stream %d", session.generation)
        return session.outcome

    async def aclose(self) -> None:
        """Cancel any active stream and wait for pending history writes."""
        await self.cancel_stream()
        if self._outbox is not None:
            await self._outbox.drain()
