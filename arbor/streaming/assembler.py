"""Session assembler: fold StreamEvents into conversation messages.

The assembler is the state machine of a streaming turn. It owns the
session's open AI message and the tool-boundary flag, appends new messages
to the conversation list in arrival order, and decides when a message is
final and can be handed to the history outbox.

Rules, applied per event in arrival order:

1. ``error_text`` aborts the session (open AI message gets a generic
   failure notice, otherwise an error message is appended).
2. A tool call closes the open AI message (``has_tool_call_after``) and
   appends a ``toolCall`` message.
3. A tool result does the same and appends a ``toolResult`` message.
4. A non-blank text chunk opens a new AI message after a tool event or
   when none is open, else it is appended to the open one.
5. ``is_done`` finalizes the open message and ends the session.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from arbor.exceptions import StreamAbortedError
from arbor.models import Message
from arbor.streaming.events import MessageUpdate, UpdateAction, stringify_json_map
from arbor.streaming.session import OutcomeStatus, SessionState, StreamOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from arbor.exceptions import ArborError
    from arbor.history.outbox import HistoryOutbox
    from arbor.streaming.events import JSONValue, StreamEvent
    from arbor.streaming.session import StreamSession

logger = logging.getLogger(__name__)

GENERIC_FAILURE_NOTICE = "Sorry, there was an error getting a complete response."
TOOL_RESULT_PLACEHOLDER = "Tool result received"
DEFAULT_DONE_ECHO_THRESHOLD = 100


def is_done_echo(event: StreamEvent, threshold: int | None = DEFAULT_DONE_ECHO_THRESHOLD) -> bool:
    """Whether a chunk is the backend repeating the whole answer on ``done``.

    The backend sometimes sends the full accumulated response as one chunk
    together with the done marker. The line format carries no flag for
    this, so any chunk longer than ``threshold`` arriving with ``is_done``
    is treated as that repeat. ``threshold=None`` disables the check.
    """
    if threshold is None or not event.is_done or event.text_chunk is None:
        return False
    return len(event.text_chunk) > threshold


def awaits_done_marker(
    event: StreamEvent, threshold: int | None = DEFAULT_DONE_ECHO_THRESHOLD
) -> bool:
    """Whether a plain text event could be a repeat whose done marker follows.

    On the prefixed wire format the repeat arrives as a ``0:`` line and the
    marker as the next ``e:``/``d:`` line. The consumer holds such an event
    back for one line so the two can be joined by ``join_done_marker``.
    """
    if threshold is None or event.is_done or event.is_tool_call or event.error_text is not None:
        return False
    return event.text_chunk is not None and len(event.text_chunk) > threshold


def join_done_marker(held: StreamEvent, event: StreamEvent) -> StreamEvent | None:
    """Fold a bare done marker into the held text event, or None if ``event`` is not one."""
    if not event.is_done or event.is_tool_call:
        return None
    if event.text_chunk is not None or event.error_text is not None:
        return None
    return replace(
        held,
        is_done=True,
        thread_id=event.thread_id or held.thread_id,
        resource_id=event.resource_id or held.resource_id,
    )


def summarize_tool_result(result: dict[str, JSONValue]) -> str:
    """Short display text for a tool result message."""
    content = result.get("content")
    if isinstance(content, list) and content and all(isinstance(item, dict) for item in content):
        return f"Found information from {len(content)} sources"
    return TOOL_RESULT_PLACEHOLDER


class StreamAssembler:
    """Apply StreamEvents of one session to a conversation's message list.

    The assembler is the only writer of ``messages`` while the session is
    streaming. Every mutation is reported to ``listener`` as a
    MessageUpdate, in the order it was applied.

    Usage::

        assembler = StreamAssembler(session, messages, outbox=outbox)
        assembler.start()
        for event in events:
            if assembler.apply(event):
                break
        outcome = session.outcome or assembler.finish()
    """

    def __init__(
        self,
        session: StreamSession,
        messages: list[Message] | None = None,
        *,
        outbox: HistoryOutbox | None = None,
        listener: Callable[[MessageUpdate], None] | None = None,
        done_echo_threshold: int | None = DEFAULT_DONE_ECHO_THRESHOLD,
    ) -> None:
        self.session = session
        self.messages = messages if messages is not None else []
        self._outbox = outbox
        self._listener = listener
        self._done_echo_threshold = done_echo_threshold
        self._produced: list[Message] = []
        self._tool_call_ids: set[str] = set()

    @property
    def done_echo_threshold(self) -> int | None:
        return self._done_echo_threshold

    # ─── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Move the session from idle to streaming."""
        if self.session.outcome is not None:
            raise RuntimeError("session already finished")
        self.session.state = SessionState.STREAMING

    def apply(self, event: StreamEvent) -> bool:
        """Apply one event.

        Returns:
            True when the event ended the session (done or error).
        """
        session = self.session
        if session.state != SessionState.STREAMING:
            logger.warning("Dropping event for session that is not streaming")
            return True

        session.correlation = session.correlation.absorb(event)

        if event.error_text is not None:
            logger.warning("Backend reported stream error: %s", event.error_text)
            self.abort(StreamAbortedError(event.error_text))
            return True

        if event.is_tool_call and event.tool_args is not None:
            self._close_for_tool_boundary()
            self._append_tool_call(event)
        elif event.is_tool_call and event.tool_result is not None:
            self._close_for_tool_boundary()
            self._append_tool_result(event)
        elif event.text_chunk is not None:
            self._apply_text(event)

        if event.is_done:
            self.finish()
            return True
        return False

    def finish(self, status: OutcomeStatus = OutcomeStatus.COMPLETED) -> StreamOutcome:
        """Finalize the open AI message and end the session.

        Used for the done marker, a stream that closes without one, and
        cancellation. Partial content is kept as-is.
        """
        if self.session.outcome is not None:
            return self.session.outcome
        message = self._open_message()
        if message is not None:
            self._notify(UpdateAction.CLOSED, message)
            self._hand_off(message)
        return self._terminate(status)

    def abort(self, error: ArborError) -> StreamOutcome:
        """End the session with an error.

        An open AI message keeps its place in the conversation but its body
        is replaced by a generic notice and it is flagged ``has_error``;
        without one, an error message carrying the error text is appended.
        """
        if self.session.outcome is not None:
            return self.session.outcome
        message = self._open_message()
        if message is not None:
            message.content = GENERIC_FAILURE_NOTICE
            message.has_error = True
            self._notify(UpdateAction.ERRORED, message)
            self._hand_off(message)
        else:
            error_message = Message.create_error(str(error), chat_id=self.session.chat_id or "")
            self._append(error_message)
            self._hand_off(error_message)
        return self._terminate(OutcomeStatus.FAILED, error)

    # ─── Event handlers ─────────────────────────────────────────────────────

    def _apply_text(self, event: StreamEvent) -> None:
        chunk = event.text_chunk or ""
        if not chunk.strip():
            return
        if is_done_echo(event, self._done_echo_threshold):
            logger.debug("Dropping %d-character chunk repeated with done marker", len(chunk))
            return

        session = self.session
        message = self._open_message()
        if session.last_was_tool or message is None:
            message = Message.create_ai(chunk, mode=session.mode, chat_id=session.chat_id or "")
            session.open_message_id = message.id
            session.text = chunk
            session.last_was_tool = False
            self._append(message)
            return

        session.text += chunk
        message.content = session.text
        self._notify(UpdateAction.APPENDED, message)

    def _append_tool_call(self, event: StreamEvent) -> None:
        tool_call_id = event.tool_call_id or ""
        message = Message.create_tool_call(
            event.tool_name or "",
            stringify_json_map(event.tool_args or {}),
            tool_call_id=tool_call_id or None,
            chat_id=self.session.chat_id or "",
        )
        if tool_call_id:
            self._tool_call_ids.add(tool_call_id)
        logger.debug("Tool call %s (%s)", message.tool_name, tool_call_id)
        self._append(message)
        self._hand_off(message)

    def _append_tool_result(self, event: StreamEvent) -> None:
        tool_call_id = event.tool_call_id or ""
        result = event.tool_result or {}
        if tool_call_id not in self._tool_call_ids:
            logger.warning("Tool result %r has no matching tool call in this stream", tool_call_id)
        message = Message.create_tool_result(
            summarize_tool_result(result),
            tool_call_id=tool_call_id,
            result=stringify_json_map(result),
            chat_id=self.session.chat_id or "",
        )
        self._append(message)
        self._hand_off(message)

    def _close_for_tool_boundary(self) -> None:
        session = self.session
        message = self._open_message()
        if message is not None:
            message.has_tool_call_after = True
            self._notify(UpdateAction.CLOSED, message)
            self._hand_off(message)
        session.open_message_id = None
        session.text = ""
        session.last_was_tool = True

    # ─── Helpers ────────────────────────────────────────────────────────────

    def _open_message(self) -> Message | None:
        open_id = self.session.open_message_id
        if open_id is None:
            return None
        for message in reversed(self._produced):
            if message.id == open_id:
                return message
        return None

    def _append(self, message: Message) -> None:
        self.messages.append(message)
        self._produced.append(message)
        self._notify(UpdateAction.CREATED, message)

    def _notify(self, action: UpdateAction, message: Message) -> None:
        if self._listener is None:
            return
        try:
            self._listener(MessageUpdate(action=action, message=message))
        except Exception:
            logger.exception("Message update listener failed")

    def _hand_off(self, message: Message) -> None:
        session = self.session
        if session.private or self._outbox is None or not session.chat_id:
            return
        self._outbox.submit(message, session.chat_id)

    def _terminate(self, status: OutcomeStatus, error: ArborError | None = None) -> StreamOutcome:
        session = self.session
        outcome = StreamOutcome(
            status=status,
            error=error,
            thread_id=session.correlation.thread_id,
            resource_id=session.correlation.resource_id,
            messages=list(self._produced),
            partial_text=session.text,
        )
        session.open_message_id = None
        session.state = SessionState.IDLE
        session.outcome = outcome
        logger.info(
            "Stream session %d %s (%d messages)",
            session.generation,
            status.value,
            len(self._produced),
        )
        return outcome
