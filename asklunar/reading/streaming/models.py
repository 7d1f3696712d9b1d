"""
Streaming-specific dataclasses for SSE decoding and channel routing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Channel(Enum):
    """Named content channels of a reading."""
    OPENING = "opening"
    INTERPRETATION = "interpretation"
    ONE_LINER = "one_liner"


class DeltaKind(Enum):
    """How a delta applies to its channel."""
    APPEND = "append"
    RESET = "reset"
    REPLACE = "replace"


class RouteOutcome(Enum):
    """Session-level effect of one routed event."""
    CONTINUE = "continue"
    COMPLETED = "completed"
    SERVER_ERROR = "server_error"


@dataclass(frozen=True)
class SSEEvent:
    """One decoded Server-Sent Event."""
    type: str
    data: str
    id: str | None = None
    retry: float | None = None  # seconds


@dataclass(frozen=True)
class ChannelDelta:
    """Change to one channel; ``text`` is the chunk for APPEND, full text for REPLACE."""
    channel: Channel
    kind: DeltaKind
    text: str = ""

    def apply(self, current: str) -> str:
        """Return ``current`` with this delta applied."""
        if self.kind is DeltaKind.APPEND:
            return current + self.text
        if self.kind is DeltaKind.RESET:
            return ""
        return self.text


@dataclass(frozen=True)
class RouteResult:
    """Deltas and outcome produced by routing a single event."""
    outcome: RouteOutcome = RouteOutcome.CONTINUE
    deltas: list[ChannelDelta] = field(default_factory=list)
    message: str | None = None


@dataclass
class SessionState:
    """Mutable per-session state owned by the state manager."""
    opening_text: str = ""
    interpretation_text: str = ""
    one_liner_text: str = ""
    retry_count: int = 0
    last_event_id: str | None = None
    current_retry_delay: float = 3.0
    events_routed: int = 0

    def text_for(self, channel: Channel) -> str:
        """Return the accumulated text of ``channel``."""
        return getattr(self, f"{channel.value}_text")

    def set_text(self, channel: Channel, text: str) -> None:
        setattr(self, f"{channel.value}_text", text)

    def reset_texts(self) -> None:
        """Clear the three accumulators, keeping cursor and retry settings."""
        self.opening_text = ""
        self.interpretation_text = ""
        self.one_liner_text = ""
