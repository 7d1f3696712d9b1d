"""
Event routing and single-writer session state.

The state manager is the only owner of the accumulators, replay cursor and
retry counter. Every read-modify-write goes through one of its coroutines,
which serialize on an asyncio.Lock, so network delivery and scheduled retries
can never interleave updates.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging

from .models import (
    Channel,
    ChannelDelta,
    DeltaKind,
    RouteOutcome,
    RouteResult,
    SessionState,
    SSEEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 3.0

EVENT_CONNECTED = "connected"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"

# Channels that stream with _start / _chunk / bare variants
STREAMED_CHANNELS = (Channel.OPENING, Channel.INTERPRETATION)

EVENT_ROUTES: dict[str, tuple[Channel, DeltaKind]] = {
    Channel.ONE_LINER.value: (Channel.ONE_LINER, DeltaKind.REPLACE),
}
for _channel in STREAMED_CHANNELS:
    EVENT_ROUTES[f"{_channel.value}_start"] = (_channel, DeltaKind.RESET)
    EVENT_ROUTES[f"{_channel.value}_chunk"] = (_channel, DeltaKind.APPEND)
    EVENT_ROUTES[_channel.value] = (_channel, DeltaKind.REPLACE)


def parse_event_content(data: str) -> str:
    """
    Extract display content from an event payload.

    A JSON object with a string ``content`` field yields that field; anything
    else, malformed JSON included, yields the raw data unchanged.
    """
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError:
        return data

    if isinstance(decoded, dict):
        content = decoded.get("content")
        if isinstance(content, str):
            return content
    return data


class ReadingStateManager:
    """Lock-guarded owner of one session's mutable state."""

    def __init__(self, initial_retry_delay: float = DEFAULT_RETRY_DELAY):
        self.initial_retry_delay = initial_retry_delay
        self._state = SessionState(current_retry_delay=initial_retry_delay)
        self._lock = asyncio.Lock()

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def last_event_id(self) -> str | None:
        return self._state.last_event_id

    @property
    def current_retry_delay(self) -> float:
        return self._state.current_retry_delay

    @property
    def events_routed(self) -> int:
        return self._state.events_routed

    async def reset_all(self) -> None:
        """Start a brand new session: texts, cursor, counter and delay."""
        async with self._lock:
            self._state = SessionState(current_retry_delay=self.initial_retry_delay)

    async def reset_texts(self) -> None:
        """Clear accumulators for a reconnect; cursor and delay survive."""
        async with self._lock:
            self._state.reset_texts()

    async def apply_delta(self, delta: ChannelDelta) -> str:
        """Apply ``delta`` to its channel and return the updated text."""
        async with self._lock:
            updated = delta.apply(self._state.text_for(delta.channel))
            self._state.set_text(delta.channel, updated)
            return updated

    async def record_cursor(
        self, last_event_id: str | None, retry_delay: float | None
    ) -> None:
        """Store the replay cursor and server-requested retry delay, if any."""
        async with self._lock:
            if last_event_id is not None:
                self._state.last_event_id = last_event_id
            if retry_delay is not None:
                self._state.current_retry_delay = retry_delay

    async def mark_event(self, event_type: str) -> None:
        """Count a routed event; typed non-error events reset the retry counter."""
        async with self._lock:
            self._state.events_routed += 1
            if event_type and event_type != EVENT_ERROR:
                self._state.retry_count = 0

    async def increment_retry_count(self) -> int:
        async with self._lock:
            self._state.retry_count += 1
            return self._state.retry_count

    async def snapshot(self) -> SessionState:
        """Return a copy of the current state."""
        async with self._lock:
            return dataclasses.replace(self._state)


class EventRouter:
    """Maps decoded events onto channel deltas and session outcomes."""

    def __init__(self, state: ReadingStateManager):
        self.state = state

    async def route(self, event: SSEEvent) -> RouteResult:
        """Apply one event to session state and report its effect."""
        await self.state.mark_event(event.type)
        content = parse_event_content(event.data)

        if event.type == EVENT_CONNECTED:
            logger.info("Connected to reading stream")
            return RouteResult()

        if event.type == EVENT_COMPLETE:
            logger.info("Reading stream completed")
            return RouteResult(outcome=RouteOutcome.COMPLETED)

        if event.type == EVENT_ERROR:
            logger.warning("Server sent error event: %s", content)
            return RouteResult(outcome=RouteOutcome.SERVER_ERROR, message=content)

        route = EVENT_ROUTES.get(event.type)
        if route is None:
            logger.info("Unknown event: %r, data: %s", event.type, content[:100])
            return RouteResult()

        channel, kind = route
        delta = ChannelDelta(
            channel=channel,
            kind=kind,
            text="" if kind is DeltaKind.RESET else content,
        )
        updated = await self.state.apply_delta(delta)
        logger.debug(
            "Routed %s delta to %s (%d chars, total %d)",
            kind.value, channel.value, len(delta.text), len(updated)
        )
        return RouteResult(deltas=[delta])
