"""Streaming module: the agent-response pipeline.

Wire lines -> LineDecoder -> StreamEvent -> StreamAssembler -> Message list,
driven by consume_stream() for one StreamSession at a time.
"""

from arbor.streaming.assembler import StreamAssembler, is_done_echo, summarize_tool_result
from arbor.streaming.consumer import consume_stream
from arbor.streaming.correlation import CorrelationContext
from arbor.streaming.decoder import LineDecoder
from arbor.streaming.events import MessageUpdate, StreamEvent, UpdateAction
from arbor.streaming.lines import WireLineSource
from arbor.streaming.session import OutcomeStatus, StreamOutcome, StreamSession

__all__ = [
    "CorrelationContext",
    "LineDecoder",
    "MessageUpdate",
    "OutcomeStatus",
    "StreamAssembler",
    "StreamEvent",
    "StreamOutcome",
    "StreamSession",
    "UpdateAction",
    "WireLineSource",
    "consume_stream",
    "is_done_echo",
    "summarize_tool_result",
]
