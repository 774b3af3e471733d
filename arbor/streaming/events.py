"""Stream event types for the streaming pipeline.

StreamEvent is the single event type produced by the line decoder and
consumed by the session assembler, whichever wire shape it came from.
MessageUpdate is what the assembler reports outward for each mutation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from arbor.models import Message

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)


@dataclass(frozen=True)
class StreamEvent:
    """One decoded unit from the wire.

    Attributes:
        text_chunk: Fragment of AI text.
        is_tool_call: True for both tool calls and tool results.
        tool_call_id: Tool call correlation id.
        tool_name: Tool name (tool calls only).
        tool_args: Decoded tool arguments (tool calls only).
        tool_result: Decoded tool result (tool results only).
        is_done: Logical end of the stream.
        error_text: Backend-reported error; aborts the session.
        thread_id: Echoed continuation id.
        resource_id: Echoed continuation id.
    """

    text_chunk: str | None = None
    is_tool_call: bool = False
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, JSONValue] | None = None
    tool_result: dict[str, JSONValue] | None = None
    is_done: bool = False
    error_text: str | None = None
    thread_id: str | None = None
    resource_id: str | None = None
    # Extras only the legacy ``data:`` shape carries
    progress: str | None = None
    step: str | None = None
    timestamp: float | None = None
    request_id: str | None = None

    @property
    def is_tool_result(self) -> bool:
        return self.tool_result is not None and self.tool_call_id is not None


class UpdateAction(StrEnum):
    """Kind of mutation applied to a message."""

    CREATED = "created"
    APPENDED = "appended"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass(frozen=True)
class MessageUpdate:
    """A single UI-visible mutation, reported in arrival order."""

    action: UpdateAction
    message: Message


def stringify_json_value(value: JSONValue) -> str:
    """Render one JSON value as a display string.

    Strings pass through untouched; everything else is compact JSON, so
    ``True`` becomes ``true`` and nested objects keep their structure.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def stringify_json_map(values: dict[str, JSONValue]) -> dict[str, str]:
    """Stringify every value of a decoded tool args/result object."""
    return {key: stringify_json_value(value) for key, value in values.items()}
