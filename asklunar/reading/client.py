"""
Resumable streaming reading client.

Owns the connection lifecycle of a reading session: issues the streaming
request, feeds received bytes through the SSE decoder and event router,
publishes channel deltas, and reconnects with bounded backoff after transient
failures, replaying from the last seen event id.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from asklunar.history.repositories.base import ReadingRepository
from asklunar.logging_utils import (
    ContextualLogger,
    ReadingErrorHandler,
    operation_context,
)

from .exceptions import (
    DecodingError,
    HttpError,
    InvalidResponseError,
    MaxRetriesExceededError,
    ReadingError,
    StreamEventError,
)
from .models import ReadingParameters, ReadingState
from .retry.models import RetryAction, RetryConfig
from .retry.policy import RetryPolicy, classify_network_error
from .streaming.channels import ChannelSet, DeltaStream
from .streaming.models import Channel, ChannelDelta, DeltaKind, RouteOutcome
from .streaming.parser import MAX_BUFFER_SIZE, SSEFrameDecoder
from .streaming.router import EventRouter, ReadingStateManager

PLACEHOLDER_TOKEN = "fake-token"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
HTTP_OK_MIN = 200
HTTP_OK_MAX = 299

CompletedCallback = Callable[[], None]
ErrorCallback = Callable[[ReadingError], None]


class ReadingService:
    """
    Streaming reading client with automatic reconnection.

    Three output sequences (opening, interpretation, one-liner) deliver
    ChannelDelta items as events arrive and end when the session completes,
    fails terminally or is cancelled. Completion and errors are also
    reported through the optional callbacks.

    At most one connection is active: start_reading() tears down any prior
    session before opening a new one.
    """

    def __init__(
        self,
        config: dict[str, Any],
        auth_token: str | None = None,
        *,
        on_completed: CompletedCallback | None = None,
        on_error: ErrorCallback | None = None,
        repository: ReadingRepository | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        required_keys = ["base_url", "endpoint", "connect_timeout", "read_timeout"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required stream configuration parameter '{key}' not found. "
                    "All stream parameters must be explicitly configured."
                )

        self.config = config
        self.auth_token = auth_token
        self.on_completed = on_completed
        self.on_error = on_error
        self.repository = repository
        self.endpoint: str = config["endpoint"]
        self.max_buffer_size: int = config.get("max_buffer_size", MAX_BUFFER_SIZE)

        if retry_policy is None:
            retry_config = (
                RetryConfig.from_config(config["retry"])
                if "retry" in config else RetryConfig()
            )
            retry_policy = RetryPolicy(retry_config)
        self.retry_policy = retry_policy
        self._sleep = sleep

        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            base_url=config["base_url"],
            timeout=httpx.Timeout(
                config["read_timeout"], connect=config["connect_timeout"]
            ),
        )

        self.state_manager = ReadingStateManager(
            self.retry_policy.config.initial_retry_delay
        )
        self.router = EventRouter(self.state_manager)
        self.channels = ChannelSet()
        self.state = ReadingState.IDLE

        self._stream_task: asyncio.Task[None] | None = None
        self._decoder: SSEFrameDecoder | None = None
        self._session_id: str | None = None
        self._attempts = 0
        self._completion_reported = False
        self._log = ContextualLogger({"component": "reading_service"})

    # ------------------------------------------------------------------ #
    # Public API                                                          #
    # ------------------------------------------------------------------ #

    @property
    def opening_stream(self) -> DeltaStream:
        return self.channels[Channel.OPENING]

    @property
    def interpretation_stream(self) -> DeltaStream:
        return self.channels[Channel.INTERPRETATION]

    @property
    def one_liner_stream(self) -> DeltaStream:
        return self.channels[Channel.ONE_LINER]

    @property
    def stream_task(self) -> asyncio.Task[None] | None:
        """Task driving the current session, if any."""
        return self._stream_task

    def set_auth_token(self, token: str | None) -> None:
        """Set the bearer token used from the next connection attempt on."""
        self.auth_token = token

    def set_completion_handlers(
        self,
        on_completed: CompletedCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.on_completed = on_completed
        self.on_error = on_error

    def start_reading(self, parameters: ReadingParameters) -> asyncio.Task[None]:
        """
        Start a new reading session, replacing any session in progress.

        Must be called from a running event loop. Returns the task driving
        the session; awaiting it waits until the session completes, fails
        or is cancelled.
        """
        self.cancel_reading()

        self.channels = ChannelSet()
        self._session_id = str(uuid.uuid4())
        self._attempts = 0
        self._completion_reported = False
        self._log = ContextualLogger({
            "component": "reading_service",
            "session_id": self._session_id[:8],
            "card": parameters.card_name,
        })

        self.state = ReadingState.STREAMING
        self._stream_task = asyncio.create_task(
            self._run_session(parameters, self.channels),
            name=f"reading-{self._session_id[:8]}",
        )
        return self._stream_task

    def cancel_reading(self) -> None:
        """
        Cancel the session: pending retry, in-flight connection and buffer.

        Idempotent. All three output sequences end.
        """
        task = self._stream_task
        if task is not None and not task.done() and not task.cancelling():
            task.cancel()
            self.state = ReadingState.CANCELLED
            self._log.info("Reading cancelled")

        if self._decoder is not None:
            self._decoder.clear()
        self.channels.close_all()

    async def wait(self) -> None:
        """Wait for the current session task to finish."""
        task = self._stream_task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(self) -> None:
        """Cancel any session and close the HTTP client."""
        self.cancel_reading()
        await self.wait()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> ReadingService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_statistics(self) -> dict[str, Any]:
        """Snapshot of session progress for monitoring."""
        stats: dict[str, Any] = {
            "state": self.state.value,
            "session_id": self._session_id,
            "attempts": self._attempts,
            "retry_count": self.state_manager.retry_count,
            "last_event_id": self.state_manager.last_event_id,
            "current_retry_delay": self.state_manager.current_retry_delay,
            "events_routed": self.state_manager.events_routed,
        }
        if self._decoder is not None:
            stats["decoder"] = self._decoder.get_stats()
        return stats

    # ------------------------------------------------------------------ #
    # Session loop                                                        #
    # ------------------------------------------------------------------ #

    async def _run_session(
        self, parameters: ReadingParameters, channels: ChannelSet
    ) -> None:
        """Drive connection attempts until completion, terminal failure or cancel."""
        await self.state_manager.reset_all()

        try:
            while True:
                self._attempts += 1
                try:
                    await self._stream_once(parameters, channels)
                except ReadingError as exc:
                    self._report_error(exc)
                    decision = self.retry_policy.evaluate(
                        exc,
                        self.state_manager.retry_count,
                        self.state_manager.current_retry_delay,
                    )

                    if decision.action is RetryAction.RETRY:
                        self._set_state(ReadingState.RETRYING)
                        self._log.info(
                            "Scheduling retry",
                            attempt=decision.attempt,
                            delay_s=round(decision.delay, 3),
                            last_event_id=self.state_manager.last_event_id,
                        )
                        await self._sleep(decision.delay)
                        await self.state_manager.increment_retry_count()
                        continue

                    if decision.action is RetryAction.GIVE_UP:
                        self._log.error("Max retries exceeded")
                        self._report_error(MaxRetriesExceededError(
                            self.retry_policy.config.max_retries, exc
                        ))

                    self._set_state(ReadingState.FAILED)
                    return

                self._set_state(ReadingState.COMPLETED)
                await self._finish_successfully(parameters)
                return

        except asyncio.CancelledError:
            self._log.info("Reading task cancelled")
            raise
        except Exception as e:
            # Faults outside the taxonomy (invalid URL, stream misuse) end the session
            error = ReadingError(f"Unexpected error: {e}")
            error.__cause__ = e
            ReadingErrorHandler.log_error(
                e, "reading_session", {"session_id": (self._session_id or "")[:8]}
            )
            self._report_error(error)
            self._set_state(ReadingState.FAILED)
        finally:
            channels.close_all()

    async def _stream_once(
        self, parameters: ReadingParameters, channels: ChannelSet
    ) -> None:
        """
        Run one connection attempt.

        Returns normally on a ``complete`` event or a clean end of stream.

        Raises:
            ReadingError: For any fault; ``retryable`` tells the caller
                whether a reconnect is allowed.
        """
        await self._reset_for_attempt(channels)

        body = self._encode_body(parameters)
        headers = self._build_headers()
        decoder = SSEFrameDecoder(
            max_buffer_size=self.max_buffer_size,
            last_event_id=self.state_manager.last_event_id,
        )
        self._decoder = decoder
        self._set_state(ReadingState.STREAMING)

        context = {
            "session_id": (self._session_id or "")[:8],
            "attempt": self._attempts,
            "resume_from": headers.get("Last-Event-ID"),
        }
        try:
            async with operation_context("reading_stream", context=context):
                async with self.client.stream(
                    "POST", self.endpoint, content=body, headers=headers
                ) as response:
                    self._validate_response(response)

                    async for chunk in response.aiter_bytes():
                        if await self._process_chunk(decoder, chunk, channels):
                            return
        except httpx.HTTPError as e:
            raise classify_network_error(e) from e
        finally:
            decoder.clear()

    async def _process_chunk(
        self, decoder: SSEFrameDecoder, chunk: bytes, channels: ChannelSet
    ) -> bool:
        """Decode and route one chunk. Returns True once the reading is complete."""
        for event in decoder.feed(chunk):
            await self.state_manager.record_cursor(event.id, event.retry)

            result = await self.router.route(event)
            for delta in result.deltas:
                channels.publish(delta)

            if result.outcome is RouteOutcome.COMPLETED:
                return True
            if result.outcome is RouteOutcome.SERVER_ERROR:
                raise StreamEventError(result.message or "Server error", event.id)

        # Cursor and delay carried by discarded blocks (id-only, retry-only)
        await self.state_manager.record_cursor(
            decoder.last_event_id, decoder.retry_delay
        )
        return False

    async def _reset_for_attempt(self, channels: ChannelSet) -> None:
        """Clear accumulated text before a (re)connection."""
        await self.state_manager.reset_texts()
        if self._attempts > 1:
            # Keep consumer views equal to the cleared accumulators
            for channel in Channel:
                channels.publish(ChannelDelta(channel=channel, kind=DeltaKind.RESET))

    async def _finish_successfully(self, parameters: ReadingParameters) -> None:
        snapshot = await self.state_manager.snapshot()
        self._report_completed()

        if self.repository is None or not snapshot.interpretation_text:
            return

        # The reading already completed; a failed save is logged only
        try:
            await self.repository.create_reading(
                timestamp=datetime.now(UTC),
                card_name=parameters.card_name,
                card_image=parameters.card_image,
                interpretation=snapshot.interpretation_text,
            )
        except Exception as e:
            ReadingErrorHandler.log_error(
                e, "save_reading", {"card": parameters.card_name}
            )

    def _set_state(self, state: ReadingState) -> None:
        """Update ``state`` unless a newer session has replaced this task."""
        if asyncio.current_task() is self._stream_task:
            self.state = state

    # ------------------------------------------------------------------ #
    # Request / response helpers                                          #
    # ------------------------------------------------------------------ #

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": EVENT_STREAM_CONTENT_TYPE,
            "Cache-Control": "no-cache",
            "Accept-Encoding": "identity",
            "Authorization": f"Bearer {self.auth_token or PLACEHOLDER_TOKEN}",
        }
        last_event_id = self.state_manager.last_event_id
        if last_event_id is not None:
            headers["Last-Event-ID"] = last_event_id
        return headers

    @staticmethod
    def _encode_body(parameters: ReadingParameters) -> bytes:
        try:
            return json.dumps(parameters.to_payload()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise DecodingError(f"Failed to serialize request: {e}") from e

    @staticmethod
    def _validate_response(response: httpx.Response) -> None:
        """Fail fast on non-success status or a non event-stream body."""
        status = response.status_code
        if not HTTP_OK_MIN <= status <= HTTP_OK_MAX:
            reason = response.reason_phrase or httpx.codes.get_reason_phrase(status)
            raise HttpError(status, f"HTTP Error: {status} - {reason}")

        content_type = response.headers.get("content-type", "")
        if EVENT_STREAM_CONTENT_TYPE not in content_type:
            raise InvalidResponseError(
                f"Expected event stream, got content-type: {content_type!r}"
            )

    # ------------------------------------------------------------------ #
    # Notifications                                                       #
    # ------------------------------------------------------------------ #

    def _report_error(self, error: ReadingError) -> None:
        self._log.warning(
            "Reading error",
            error_type=type(error).__name__,
            error_message=error.message,
            retryable=error.retryable,
        )
        if self.on_error is not None:
            self.on_error(error)

    def _report_completed(self) -> None:
        if self._completion_reported:
            return
        self._completion_reported = True
        self._log.info("Reading completed", attempts=self._attempts)
        if self.on_completed is not None:
            self.on_completed()
