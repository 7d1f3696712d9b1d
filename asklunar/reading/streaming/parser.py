"""
Incremental SSE frame decoder.

Turns byte chunks arriving at arbitrary boundaries into discrete events. Only
the ``event``, ``data``, ``id`` and ``retry`` fields are recognized.
"""

from __future__ import annotations

import codecs
import logging
import math

from ..exceptions import DecodingError
from .models import SSEEvent

logger = logging.getLogger(__name__)

# Constants
MAX_BUFFER_SIZE = 1_000_000
EVENT_TERMINATOR = "\n\n"
MILLISECONDS_PER_SECOND = 1000.0


class SSEFrameDecoder:
    """Buffering SSE decoder that also tracks the replay cursor and retry delay."""

    def __init__(
        self,
        max_buffer_size: int = MAX_BUFFER_SIZE,
        last_event_id: str | None = None,
        retry_delay: float | None = None,
    ):
        self.max_buffer_size = max_buffer_size
        self.last_event_id = last_event_id
        self.retry_delay = retry_delay
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self.stats = {
            'chunks_received': 0,
            'chunks_dropped': 0,
            'events_decoded': 0,
            'blocks_discarded': 0,
        }

    @property
    def buffered(self) -> int:
        """Number of characters waiting for a terminator."""
        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[SSEEvent]:
        """
        Append a chunk and return every event completed by it.

        Raises:
            DecodingError: If unterminated input exceeds ``max_buffer_size``.
                The buffer is empty afterwards and the caller must abandon
                the connection.
        """
        self.stats['chunks_received'] += 1

        if isinstance(chunk, bytes):
            try:
                text = self._utf8.decode(chunk)
            except UnicodeDecodeError as e:
                self.stats['chunks_dropped'] += 1
                self._utf8.reset()
                logger.warning(
                    "Unable to decode chunk as UTF-8, dropping %d bytes: %s",
                    len(chunk), e
                )
                return []
        else:
            text = chunk

        self._buffer += text

        if len(self._buffer) > self.max_buffer_size:
            size = len(self._buffer)
            self.clear()
            logger.error("SSE buffer overflow detected, buffer size: %d", size)
            raise DecodingError(
                "Buffer overflow - event stream data exceeded "
                f"{self.max_buffer_size} characters"
            )

        events: list[SSEEvent] = []
        while EVENT_TERMINATOR in self._buffer:
            raw_event, self._buffer = self._buffer.split(EVENT_TERMINATOR, 1)
            event = self._parse_block(raw_event)
            if event is None:
                self.stats['blocks_discarded'] += 1
                continue
            self.stats['events_decoded'] += 1
            events.append(event)

        return events

    def clear(self) -> None:
        """Discard buffered input, including any partial UTF-8 sequence."""
        self._buffer = ""
        self._utf8.reset()

    def _parse_block(self, raw_event: str) -> SSEEvent | None:
        """Parse one blank-line terminated block; heartbeats return None."""
        event_type = ""
        data_lines: list[str] = []
        event_id: str | None = None
        retry: float | None = None

        for raw_line in raw_event.split("\n"):
            line = raw_line.strip()

            if line.startswith("event:"):
                event_type = line[6:].strip()
            elif line.startswith("data:"):
                data_lines.append(line[5:].strip())
            elif line.startswith("id:"):
                event_id = line[3:].strip()
                self.last_event_id = event_id
            elif line.startswith("retry:"):
                retry = self._parse_retry(line[6:].strip())
                if retry is not None:
                    self.retry_delay = retry

        data = "\n".join(data_lines)
        if not event_type and not data:
            return None

        return SSEEvent(type=event_type, data=data, id=event_id, retry=retry)

    @staticmethod
    def _parse_retry(value: str) -> float | None:
        """Convert a millisecond ``retry:`` value to seconds."""
        try:
            millis = float(value)
        except ValueError:
            logger.debug("Ignoring non-numeric retry field: %r", value)
            return None
        if not math.isfinite(millis) or millis < 0:
            logger.debug("Ignoring out-of-range retry field: %r", value)
            return None
        return millis / MILLISECONDS_PER_SECOND

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return self.stats.copy()
