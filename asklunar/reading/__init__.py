"""
Streaming tarot reading client.

This package provides the reading connection layer with:
- Incremental SSE decoding with a bounded buffer
- Routing of server events onto opening, interpretation and one-liner channels
- Automatic reconnection with exponential backoff and Last-Event-ID replay
- Typed errors carrying retry guidance
"""

from __future__ import annotations

from .client import ReadingService
from .exceptions import (
    DecodingError,
    HttpError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NetworkError,
    ReadingError,
    StreamEventError,
)
from .models import Orientation, ReadingParameters, ReadingState

__all__ = [
    # Exceptions
    "DecodingError",
    "HttpError",
    "InvalidResponseError",
    "MaxRetriesExceededError",
    "NetworkError",
    # Core models
    "Orientation",
    "ReadingError",
    "ReadingParameters",
    # Client
    "ReadingService",
    "ReadingState",
    "StreamEventError",
]
