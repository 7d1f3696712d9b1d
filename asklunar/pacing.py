"""
Paced text replay.

Replays a finished text in fixed-size chunks at a fixed interval so a saved
reading appears the way it did while streaming.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum

logger = logging.getLogger(__name__)

PAUSED_POLL_INTERVAL = 0.1


class GeneratorState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    PAUSED = "paused"
    FINISHED = "finished"


class TextStreamGenerator:
    """
    Chunked, pausable replay of ``text``.

    States move IDLE -> STREAMING <-> PAUSED -> FINISHED. ``reset()`` returns
    to IDLE at the start of the text and ends any running ``stream()``.
    """

    def __init__(
        self,
        text: str,
        chunk_size: int = 3,
        interval: float = 0.05,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")

        self.text = text
        self.chunk_size = max(1, chunk_size)
        self.interval = interval
        self.state = GeneratorState.IDLE
        self.position = 0
        self._sleep = sleep

        if not text:
            logger.warning("Text stream generator created with empty text")

    def start(self) -> None:
        if self.state is GeneratorState.PAUSED:
            self.resume()
        elif self.state is GeneratorState.IDLE:
            self.state = GeneratorState.STREAMING

    def pause(self) -> None:
        if self.state is GeneratorState.STREAMING:
            self.state = GeneratorState.PAUSED

    def resume(self) -> None:
        if self.state is GeneratorState.PAUSED:
            self.state = GeneratorState.STREAMING

    def reset(self) -> None:
        self.position = 0
        self.state = GeneratorState.IDLE

    @property
    def finished(self) -> bool:
        return self.state is GeneratorState.FINISHED

    async def stream(self) -> AsyncIterator[str]:
        """Yield the remaining text chunk by chunk, honouring pause and reset."""
        self.start()

        while self.position < len(self.text):
            if self.state is GeneratorState.PAUSED:
                await self._sleep(PAUSED_POLL_INTERVAL)
                continue
            if self.state is not GeneratorState.STREAMING:
                # reset() was called while streaming
                return

            end = self.position + self.chunk_size
            chunk = self.text[self.position:end]
            self.position = min(end, len(self.text))
            yield chunk

            if self.position < len(self.text):
                await self._sleep(self.interval)

        if self.state is not GeneratorState.IDLE:
            self.state = GeneratorState.FINISHED
