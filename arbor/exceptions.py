"""Arbor exception hierarchy.

Base exceptions for the streaming client with correlation ID support.

Usage:
    from arbor.exceptions import StreamHTTPError, StreamTransportError

    try:
        async for line in source.lines(cancel):
            ...
    except StreamHTTPError as e:
        logger.error("Stream rejected: %s (status=%s)", e, e.status_code)
"""

import uuid


class ArborError(Exception):
    """Base exception for all Arbor client errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class StreamTransportError(ArborError):
    """Network or connection failure while opening or reading a stream."""

    pass


class StreamHTTPError(ArborError):
    """Non-2xx response from the backend.

    Concrete subclasses classify the status; ``body`` holds the response
    text when it could be read.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str | None = None,
        correlation_id: str | None = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, correlation_id=correlation_id)


class BadRequestError(StreamHTTPError):
    """HTTP 400."""

    pass


class UnauthorizedError(StreamHTTPError):
    """HTTP 401."""

    pass


class ServerError(StreamHTTPError):
    """Any other non-2xx status."""

    pass


class StreamDecodeError(ArborError):
    """A payload that could not be decoded.

    Inside a stream this is absorbed per line and never surfaced.
    """

    def __init__(self, message: str, *, raw: str | None = None, **kwargs):
        self.raw = raw
        super().__init__(message, **kwargs)


class StreamAbortedError(ArborError):
    """The backend sent an explicit error event mid-stream."""

    pass


class HistoryStoreError(ArborError):
    """Errors from chat history API operations."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        self.operation = operation
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ConfigurationError(ArborError):
    """Errors from application configuration."""

    pass


def classify_status(status_code: int, body: str | None = None) -> StreamHTTPError:
    """Map a non-2xx status onto the matching StreamHTTPError subclass.

    Args:
        status_code: HTTP status of the response.
        body: Response text, if it was read.

    Returns:
        An exception instance for the caller to raise.
    """
    if status_code == 400:
        message = f"Bad Request: {body}" if body else "Bad Request (400)"
        return BadRequestError(message, status_code=status_code, body=body)
    if status_code == 401:
        return UnauthorizedError("Unauthorized", status_code=status_code, body=body)
    return ServerError(
        f"HTTP status code: {status_code}",
        status_code=status_code,
        body=body,
    )
