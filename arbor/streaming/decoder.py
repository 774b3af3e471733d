"""Line protocol decoder: turn one wire line into zero or one StreamEvent.

The agents backend does not speak framed SSE or JSON Lines. Each line is
tagged with a short prefix that selects one of several payload shapes:

    f:{"messageId":"..."}                      metadata, ignored
    0:"text"                                   text chunk (JSON string)
    9:{"toolCallId","toolName","args"}         tool call
    a:{"toolCallId","result"}                  tool result
    e:{...} / d:{...}                          end of stream
    data: {"chunk": "...", "done": false}      legacy whole-event JSON

A malformed line is logged and dropped; it never aborts the stream.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from arbor.exceptions import StreamDecodeError
from arbor.streaming.correlation import CorrelationContext
from arbor.streaming.events import JSONValue, StreamEvent

logger = logging.getLogger(__name__)

PREFIX_METADATA = "f"
PREFIX_TEXT = "0"
PREFIX_TOOL_CALL = "9"
PREFIX_TOOL_RESULT = "a"
DONE_PREFIXES = frozenset({"e", "d"})
LEGACY_DATA_PREFIX = "data: "

_LOG_SNIPPET = 200


class LegacyEventPayload(BaseModel):
    """Schema of a legacy ``data:`` line (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    chunk: str | None = None
    done: bool | None = None
    error: str | None = None
    progress: str | None = None
    step: str | None = None
    timestamp: float | None = None
    thread_id: str | None = None
    resource_id: str | None = None
    request_id: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, Any] | None = None
    tool_result: dict[str, Any] | None = None
    is_tool_call: bool | None = None


class LineDecoder:
    """Per-line decoder tracking one session's correlation ids.

    Events are stamped with the latest ids seen in the stream: the
    session's own until a legacy payload echoes new ones.

    Usage::

        decoder = LineDecoder(CorrelationContext(thread_id="t1"))
        for line in lines:
            event = decoder.decode(line)
            if event is not None:
                assembler.apply(event)
    """

    def __init__(self, correlation: CorrelationContext | None = None) -> None:
        self.correlation = correlation or CorrelationContext()

    def decode(self, line: str) -> StreamEvent | None:
        """Decode one line, swallowing (and logging) any decode failure."""
        try:
            return self._decode(line)
        except StreamDecodeError as e:
            logger.warning(
                "Skipping malformed stream line: %s. Raw line: %s",
                e,
                (e.raw or line)[:_LOG_SNIPPET],
            )
            return None

    def _decode(self, line: str) -> StreamEvent | None:
        if line.startswith(LEGACY_DATA_PREFIX):
            return self._decode_legacy(line[len(LEGACY_DATA_PREFIX) :])

        prefix, sep, payload = line.partition(":")
        if not sep:
            if line.strip():
                logger.debug("Ignoring unprefixed line: %s", line[:_LOG_SNIPPET])
            return None

        if prefix == PREFIX_METADATA:
            logger.debug("Stream metadata: %s", payload[:_LOG_SNIPPET])
            return None
        if prefix == PREFIX_TEXT:
            return self._event(text_chunk=decode_text_payload(payload))
        if prefix == PREFIX_TOOL_CALL:
            data = _load_object(payload, "tool call")
            logger.debug("Tool call %s (%s)", data.get("toolName"), data.get("toolCallId"))
            return self._event(
                is_tool_call=True,
                tool_call_id=_as_str(data.get("toolCallId")),
                tool_name=_as_str(data.get("toolName")),
                tool_args=_as_object(data.get("args")),
            )
        if prefix == PREFIX_TOOL_RESULT:
            data = _load_object(payload, "tool result")
            logger.debug("Tool result for %s", data.get("toolCallId"))
            return self._event(
                is_tool_call=True,
                tool_call_id=_as_str(data.get("toolCallId")),
                tool_result=_as_object(data.get("result")),
            )
        if prefix in DONE_PREFIXES:
            logger.debug("Stream completion marker: %s", line[:_LOG_SNIPPET])
            return self._event(is_done=True)

        logger.debug("Ignoring unknown line prefix %r", prefix)
        return None

    def _decode_legacy(self, payload: str) -> StreamEvent | None:
        if not payload.strip():
            return None
        try:
            parsed = LegacyEventPayload.model_validate_json(payload)
        except ValidationError as e:
            raise StreamDecodeError(
                f"legacy data payload failed validation ({e.error_count()} errors)",
                raw=payload,
            ) from e

        self.correlation = self.correlation.with_ids(parsed.thread_id, parsed.resource_id)
        return StreamEvent(
            text_chunk=parsed.chunk,
            is_tool_call=bool(parsed.is_tool_call),
            tool_call_id=parsed.tool_call_id,
            tool_name=parsed.tool_name,
            tool_args=parsed.tool_args,
            tool_result=parsed.tool_result,
            is_done=bool(parsed.done),
            error_text=parsed.error,
            thread_id=self.correlation.thread_id,
            resource_id=self.correlation.resource_id,
            progress=parsed.progress,
            step=parsed.step,
            timestamp=parsed.timestamp,
            request_id=parsed.request_id,
        )

    def _event(self, **fields: Any) -> StreamEvent:
        return StreamEvent(
            thread_id=self.correlation.thread_id,
            resource_id=self.correlation.resource_id,
            **fields,
        )


def decode_text_payload(payload: str) -> str:
    """Decode the JSON string literal carried by a ``0:`` line.

    Raises:
        StreamDecodeError: The payload is not valid JSON or not a string.
    """
    try:
        value = json.loads(payload)
    except (ValueError, RecursionError) as e:
        raise StreamDecodeError(f"text chunk is not valid JSON: {_reason(e)}", raw=payload) from e
    if not isinstance(value, str):
        raise StreamDecodeError(
            f"text chunk must be a JSON string, got {type(value).__name__}",
            raw=payload,
        )
    return value


def encode_text_payload(text: str) -> str:
    """Inverse of decode_text_payload: render text as a ``0:`` line."""
    return f"{PREFIX_TEXT}:{json.dumps(text, ensure_ascii=False)}"


def _load_object(payload: str, what: str) -> dict[str, JSONValue]:
    try:
        value = json.loads(payload)
    except (ValueError, RecursionError) as e:
        raise StreamDecodeError(
            f"{what} JSON could not be parsed: {_reason(e)}", raw=payload
        ) from e
    if not isinstance(value, dict):
        raise StreamDecodeError(f"{what} payload must be a JSON object", raw=payload)
    return value


def _as_object(value: JSONValue) -> dict[str, JSONValue]:
    return value if isinstance(value, dict) else {}


def _as_str(value: JSONValue) -> str:
    return value if isinstance(value, str) else ""


def _reason(error: Exception) -> str:
    # Oversized integers raise plain ValueError, deep nesting RecursionError
    if isinstance(error, json.JSONDecodeError):
        return error.msg
    if isinstance(error, RecursionError):
        return "nesting too deep"
    return str(error)
