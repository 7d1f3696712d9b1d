#!/usr/bin/env python3
"""
Tests for event routing and session state.
"""

import asyncio

import pytest

from asklunar.reading.streaming import (
    Channel,
    ChannelDelta,
    DeltaKind,
    EventRouter,
    ReadingStateManager,
    RouteOutcome,
    SSEEvent,
    parse_event_content,
)


@pytest.fixture
def state():
    return ReadingStateManager(initial_retry_delay=3.0)


@pytest.fixture
def router(state):
    return EventRouter(state)


class TestContentParsing:
    """JSON ``content`` extraction with raw fallback."""

    def test_json_content_field(self):
        assert parse_event_content('{"content": "Hello"}') == "Hello"

    def test_plain_text_falls_back(self):
        assert parse_event_content("The Fool begins a journey") == "The Fool begins a journey"

    def test_malformed_json_falls_back(self):
        assert parse_event_content('{"content": ') == '{"content": '

    def test_non_string_content_falls_back(self):
        assert parse_event_content('{"content": 42}') == '{"content": 42}'
        assert parse_event_content('["content"]') == '["content"]'


class TestChannelRouting:
    """Start, chunk and bare events per channel."""

    @pytest.mark.asyncio
    async def test_hello_scenario(self, state, router):
        deltas = []
        for event in (
            SSEEvent(type="opening_start", data=""),
            SSEEvent(type="opening_chunk", data='{"content": "Hel"}'),
            SSEEvent(type="opening_chunk", data='{"content": "lo"}'),
        ):
            result = await router.route(event)
            assert result.outcome is RouteOutcome.CONTINUE
            deltas.extend(result.deltas)

        assert deltas == [
            ChannelDelta(Channel.OPENING, DeltaKind.RESET),
            ChannelDelta(Channel.OPENING, DeltaKind.APPEND, "Hel"),
            ChannelDelta(Channel.OPENING, DeltaKind.APPEND, "lo"),
        ]
        snapshot = await state.snapshot()
        assert snapshot.opening_text == "Hello"

    @pytest.mark.asyncio
    async def test_start_resets_accumulated_text(self, state, router):
        await router.route(SSEEvent(type="interpretation_chunk", data="stale"))
        await router.route(SSEEvent(type="interpretation_start", data="ignored"))
        await router.route(SSEEvent(type="interpretation_chunk", data="fresh"))

        snapshot = await state.snapshot()
        assert snapshot.interpretation_text == "fresh"

    @pytest.mark.asyncio
    async def test_bare_event_replaces(self, state, router):
        await router.route(SSEEvent(type="interpretation_chunk", data="partial"))
        result = await router.route(
            SSEEvent(type="interpretation", data='{"content": "Full text"}')
        )

        assert result.deltas == [
            ChannelDelta(Channel.INTERPRETATION, DeltaKind.REPLACE, "Full text")
        ]
        snapshot = await state.snapshot()
        assert snapshot.interpretation_text == "Full text"

    @pytest.mark.asyncio
    async def test_one_liner_replaces(self, state, router):
        await router.route(SSEEvent(type="one_liner", data="first"))
        await router.route(SSEEvent(type="one_liner", data="second"))

        snapshot = await state.snapshot()
        assert snapshot.one_liner_text == "second"

    @pytest.mark.asyncio
    async def test_channels_are_independent(self, state, router):
        await router.route(SSEEvent(type="opening_chunk", data="a"))
        await router.route(SSEEvent(type="interpretation_chunk", data="b"))
        await router.route(SSEEvent(type="opening_chunk", data="c"))

        snapshot = await state.snapshot()
        assert snapshot.opening_text == "ac"
        assert snapshot.interpretation_text == "b"
        assert snapshot.one_liner_text == ""

    @pytest.mark.asyncio
    async def test_accumulator_equals_applied_deltas(self, router):
        """Folding the emitted deltas reproduces the accumulated text."""
        events = [
            SSEEvent(type="opening_chunk", data="x"),
            SSEEvent(type="opening_start", data=""),
            SSEEvent(type="opening_chunk", data="one "),
            SSEEvent(type="opening_chunk", data="two"),
            SSEEvent(type="opening", data="replaced"),
            SSEEvent(type="opening_chunk", data=" and more"),
        ]
        view = ""
        for event in events:
            for delta in (await router.route(event)).deltas:
                view = delta.apply(view)

        snapshot = await router.state.snapshot()
        assert view == snapshot.opening_text == "replaced and more"


class TestControlEvents:
    """connected, complete, error and unknown types."""

    @pytest.mark.asyncio
    async def test_connected_is_informational(self, router):
        result = await router.route(SSEEvent(type="connected", data="{}"))
        assert result.outcome is RouteOutcome.CONTINUE
        assert result.deltas == []

    @pytest.mark.asyncio
    async def test_complete(self, router):
        result = await router.route(SSEEvent(type="complete", data=""))
        assert result.outcome is RouteOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_error_carries_parsed_content(self, router):
        result = await router.route(
            SSEEvent(type="error", data='{"content": "model overloaded"}')
        )
        assert result.outcome is RouteOutcome.SERVER_ERROR
        assert result.message == "model overloaded"

    @pytest.mark.asyncio
    async def test_unknown_event_ignored(self, state, router):
        result = await router.route(SSEEvent(type="heartbeat", data="tick"))

        assert result.outcome is RouteOutcome.CONTINUE
        assert result.deltas == []
        snapshot = await state.snapshot()
        assert snapshot.events_routed == 1


class TestRetryCounter:
    """Typed non-error events reset the retry counter."""

    @pytest.mark.asyncio
    async def test_typed_event_resets_counter(self, state, router):
        await state.increment_retry_count()
        await state.increment_retry_count()
        assert state.retry_count == 2

        await router.route(SSEEvent(type="heartbeat", data=""))
        assert state.retry_count == 0

    @pytest.mark.asyncio
    async def test_error_and_untyped_events_keep_counter(self, state, router):
        await state.increment_retry_count()

        await router.route(SSEEvent(type="error", data="boom"))
        await router.route(SSEEvent(type="", data="orphan"))
        assert state.retry_count == 1


class TestStateManager:
    """Serialized state updates."""

    @pytest.mark.asyncio
    async def test_record_cursor_ignores_missing_values(self, state):
        await state.record_cursor("10", 1.5)
        await state.record_cursor(None, None)

        assert state.last_event_id == "10"
        assert state.current_retry_delay == 1.5

    @pytest.mark.asyncio
    async def test_reset_texts_keeps_cursor_and_delay(self, state, router):
        await router.route(SSEEvent(type="opening_chunk", data="text"))
        await state.record_cursor("5", 2.0)
        await state.increment_retry_count()

        await state.reset_texts()

        snapshot = await state.snapshot()
        assert snapshot.opening_text == ""
        assert snapshot.last_event_id == "5"
        assert snapshot.current_retry_delay == 2.0
        assert snapshot.retry_count == 1

    @pytest.mark.asyncio
    async def test_reset_all(self, state):
        await state.record_cursor("5", 2.0)
        await state.increment_retry_count()

        await state.reset_all()

        assert state.last_event_id is None
        assert state.current_retry_delay == 3.0
        assert state.retry_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, state):
        deltas = [
            ChannelDelta(Channel.INTERPRETATION, DeltaKind.APPEND, "x")
            for _ in range(200)
        ]
        await asyncio.gather(*(state.apply_delta(d) for d in deltas))

        snapshot = await state.snapshot()
        assert snapshot.interpretation_text == "x" * 200
