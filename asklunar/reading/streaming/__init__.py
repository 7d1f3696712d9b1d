"""
Streaming functionality for reading sessions.

- SSE frame decoding
- Event routing onto named channels
- Single-writer session state
- Terminable per-channel delta sequences
"""

from __future__ import annotations

from .channels import ChannelSet, DeltaStream
from .models import Channel, ChannelDelta, DeltaKind, RouteOutcome, SSEEvent
from .parser import MAX_BUFFER_SIZE, SSEFrameDecoder
from .router import EventRouter, ReadingStateManager, parse_event_content

__all__ = [
    "MAX_BUFFER_SIZE",
    "Channel",
    "ChannelDelta",
    "ChannelSet",
    "DeltaKind",
    "DeltaStream",
    "EventRouter",
    "ReadingStateManager",
    "RouteOutcome",
    "SSEEvent",
    "SSEFrameDecoder",
    "parse_event_content",
]
