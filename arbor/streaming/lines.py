"""Wire line source: one streaming HTTP response as an async line sequence.

Lines are read on demand from the response body, so the consumer sets the
pace and nothing is buffered beyond what httpx holds for the current line.
A non-2xx status never yields lines; it is classified and raised instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from arbor.exceptions import StreamTransportError, classify_status

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


class WireLineSource:
    """Send one prepared streaming request and iterate its body line by line.

    Usage::

        source = WireLineSource(client, request)
        async for line in source.lines(cancel_token):
            ...
    """

    def __init__(self, client: httpx.AsyncClient, request: httpx.Request) -> None:
        self._client = client
        self._request = request

    @property
    def request(self) -> httpx.Request:
        return self._request

    async def lines(self, cancel: asyncio.Event | None = None) -> AsyncGenerator[str, None]:
        """Yield body lines in arrival order.

        Args:
            cancel: Checked before each line; once set, the response is
                closed and iteration stops.

        Raises:
            StreamHTTPError: Status outside 200-299 (BadRequestError,
                UnauthorizedError or ServerError).
            StreamTransportError: Connection failure while opening or reading.
        """
        url = self._request.url
        try:
            response = await self._client.send(self._request, stream=True)
        except httpx.HTTPError as e:
            raise StreamTransportError(
                f"Failed to open stream to {url}: {type(e).__name__}: {e}"
            ) from e

        try:
            logger.debug("Stream response %s from %s", response.status_code, url)
            if not response.is_success:
                body = await self._read_error_body(response)
                logger.warning("Stream request rejected: HTTP %s", response.status_code)
                raise classify_status(response.status_code, body)

            async for line in response.aiter_lines():
                if cancel is not None and cancel.is_set():
                    logger.debug("Cancel requested, closing stream to %s", url)
                    break
                yield line
        except httpx.HTTPError as e:
            raise StreamTransportError(
                f"Stream from {url} failed: {type(e).__name__}: {e}"
            ) from e
        finally:
            await response.aclose()

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> str | None:
        """Read the body of a 400 response; other statuses are not read."""
        if response.status_code != 400:
            return None
        try:
            raw = await response.aread()
        except httpx.HTTPError as e:
            logger.debug("Could not read error body: %s", e)
            return None
        text = raw.decode(response.encoding or "utf-8", errors="replace")
        return text or None
