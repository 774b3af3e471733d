"""Explicit per-turn streaming state.

A StreamSession is created by the controller for every turn and handed to
the assembler and consumer; nothing about an in-flight stream lives in
shared mutable objects elsewhere.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from arbor.models import AgentMode
from arbor.streaming.correlation import CorrelationContext

if TYPE_CHECKING:
    from arbor.exceptions import ArborError
    from arbor.models import Message


class SessionState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"


class OutcomeStatus(StrEnum):
    """Terminal signal of a session."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StreamOutcome:
    """How a session ended and what it produced.

    Attributes:
        status: Completed, failed or cancelled.
        error: The failure, for ``failed`` sessions only.
        thread_id: Latest continuation id, for the next turn.
        resource_id: Latest continuation id, for the next turn.
        messages: Messages created by this session, in order.
        partial_text: Text of the last open AI message at termination,
            kept even when the visible content was replaced by an error
            notice.
    """

    status: OutcomeStatus
    error: ArborError | None = None
    thread_id: str | None = None
    resource_id: str | None = None
    messages: list[Message] = field(default_factory=list)
    partial_text: str = ""

    @property
    def ok(self) -> bool:
        return self.status != OutcomeStatus.FAILED


@dataclass
class StreamSession:
    """State of one streaming exchange for one conversation."""

    chat_id: str | None
    generation: int
    correlation: CorrelationContext = field(default_factory=CorrelationContext)
    mode: AgentMode = AgentMode.MAIN
    private: bool = False
    cancel_token: asyncio.Event = field(default_factory=asyncio.Event)

    state: SessionState = SessionState.IDLE
    open_message_id: str | None = None
    last_was_tool: bool = False
    text: str = ""
    outcome: StreamOutcome | None = None

    def cancel(self) -> None:
        """Request cooperative cancellation at the next line boundary."""
        self.cancel_token.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.is_set()

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.STREAMING
