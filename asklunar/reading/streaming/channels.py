"""
Terminable per-channel delta sequences.

Each channel is an unbounded producer/consumer queue closed exactly once. A
consumer iterates with ``async for`` and the loop ends when the session
completes, fails terminally or is cancelled.
"""

from __future__ import annotations

import asyncio

from .models import Channel, ChannelDelta

_CLOSED = object()


class DeltaStream:
    """Async-iterable sequence of deltas for one channel."""

    def __init__(self, channel: Channel):
        self.channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, delta: ChannelDelta) -> bool:
        """Enqueue ``delta``; returns False once the stream is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(delta)
        return True

    def close(self) -> None:
        """End the sequence. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> DeltaStream:
        return self

    async def __anext__(self) -> ChannelDelta:
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker so later iterations also terminate
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class ChannelSet:
    """The three output sequences of one reading session."""

    def __init__(self) -> None:
        self.streams = {channel: DeltaStream(channel) for channel in Channel}

    def __getitem__(self, channel: Channel) -> DeltaStream:
        return self.streams[channel]

    def publish(self, delta: ChannelDelta) -> bool:
        return self.streams[delta.channel].push(delta)

    def close_all(self) -> None:
        for stream in self.streams.values():
            stream.close()

    @property
    def closed(self) -> bool:
        return all(stream.closed for stream in self.streams.values())
