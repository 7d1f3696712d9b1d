"""
Error taxonomy for streaming reading sessions.

Every fault the connection orchestrator can surface derives from ReadingError
and carries a ``retryable`` flag, so the retry loop never has to inspect
concrete types:
- Invalid (non-stream) responses
- HTTP status failures (retryable for 5xx)
- Decoding faults (request serialization, buffer overflow)
- Network failures (retryable for transient conditions only)
- Server-sent error events
- Retry ceiling exhaustion
"""

from __future__ import annotations

HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVER_ERROR_MAX = 599


class ReadingError(Exception):
    """Base reading error with retry guidance."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class InvalidResponseError(ReadingError):
    """Response is not a usable event stream."""

    def __init__(self, message: str = "Invalid response received from server"):
        super().__init__(message, retryable=False)


class HttpError(ReadingError):
    """Non-success HTTP status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(
            message,
            retryable=HTTP_SERVER_ERROR_MIN <= status_code <= HTTP_SERVER_ERROR_MAX,
        )
        self.status_code = status_code


class DecodingError(ReadingError):
    """Request body or event stream could not be encoded/decoded."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class NetworkError(ReadingError):
    """Transport failure wrapping the underlying exception."""

    def __init__(self, underlying: BaseException, *, transient: bool):
        super().__init__(f"Network error: {underlying}", retryable=transient)
        self.underlying = underlying


class StreamEventError(ReadingError):
    """Error event sent by the server inside the stream."""

    def __init__(self, message: str, event_id: str | None = None):
        super().__init__(message, retryable=True)
        self.event_id = event_id


class MaxRetriesExceededError(ReadingError):
    """Retry ceiling reached."""

    def __init__(self, max_retries: int, last_error: ReadingError | None = None):
        super().__init__(
            f"Maximum retry attempts ({max_retries}) exceeded",
            retryable=False,
        )
        self.max_retries = max_retries
        self.last_error = last_error
