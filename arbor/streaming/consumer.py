"""Stream consumer: drive one session from wire lines to a StreamOutcome.

This is the single task loop of a streaming turn: pull a line, decode it,
apply the event, repeat. The cancel token is checked at every line
boundary. Transport and HTTP status failures end the session through the
assembler's abort path, exactly like a backend error event. Task
cancellation finalizes the open message before re-raising.

A text chunk longer than the done-echo threshold is held back for one
line. If the next line is a bare done marker the two are applied as one
event, so the assembler can recognize the repeated answer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from arbor.exceptions import ArborError
from arbor.streaming.assembler import awaits_done_marker, join_done_marker
from arbor.streaming.session import OutcomeStatus

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from arbor.streaming.assembler import StreamAssembler
    from arbor.streaming.decoder import LineDecoder
    from arbor.streaming.events import StreamEvent
    from arbor.streaming.session import StreamOutcome

logger = logging.getLogger(__name__)


async def consume_stream(
    lines: AsyncGenerator[str, None],
    assembler: StreamAssembler,
    decoder: LineDecoder,
) -> StreamOutcome:
    """Consume wire lines until done, error, cancellation or end of body.

    Args:
        lines: Async generator of raw lines (e.g. ``WireLineSource.lines()``).
            It is always closed before this function returns.
        assembler: Assembler bound to the session being streamed.
        decoder: Decoder bound to the session's correlation ids.

    Returns:
        The session's terminal outcome.

    Raises:
        asyncio.CancelledError: The consuming task was cancelled. The session
            is finalized as ``cancelled`` first.
    """
    session = assembler.session
    threshold = assembler.done_echo_threshold
    assembler.start()
    line_count = 0
    held: StreamEvent | None = None

    def release_held() -> None:
        nonlocal held
        if held is not None and session.outcome is None:
            assembler.apply(held)
        held = None

    try:
        async with contextlib.aclosing(lines):
            async for line in lines:
                if session.cancelled:
                    logger.info("Stream cancelled after %d lines", line_count)
                    break
                line_count += 1
                event = decoder.decode(line)
                if event is None:
                    continue
                if held is not None:
                    joined = join_done_marker(held, event)
                    if joined is not None:
                        held = None
                        event = joined
                    else:
                        release_held()
                if awaits_done_marker(event, threshold):
                    held = event
                    continue
                if assembler.apply(event):
                    break
    except asyncio.CancelledError:
        logger.info("Stream task cancelled after %d lines", line_count)
        release_held()
        assembler.finish(OutcomeStatus.CANCELLED)
        raise
    except ArborError as e:
        logger.warning("Stream failed after %d lines: %s", line_count, e)
        release_held()
        return assembler.abort(e)

    release_held()
    if session.outcome is not None:
        return session.outcome
    if session.cancelled:
        return assembler.finish(OutcomeStatus.CANCELLED)
    logger.debug("Stream closed without a done marker after %d lines", line_count)
    return assembler.finish(OutcomeStatus.COMPLETED)
