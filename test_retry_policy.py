#!/usr/bin/env python3
"""
Tests for reconnect backoff and retry classification.
"""

import httpx
import pytest

from asklunar.reading.exceptions import (
    DecodingError,
    HttpError,
    InvalidResponseError,
    NetworkError,
    StreamEventError,
)
from asklunar.reading.retry import (
    RetryAction,
    RetryConfig,
    RetryPolicy,
    classify_network_error,
)


def fixed_jitter(value):
    """uniform() replacement returning ``value`` scaled to the upper bound."""
    def uniform(low, high):
        return low + (high - low) * value
    return uniform


class TestBackoff:
    """delay = D * 1.5**n * (1 + U(0, 0.3))"""

    @pytest.mark.parametrize("retry_count", [0, 1, 2])
    def test_delay_within_bounds(self, retry_count):
        policy = RetryPolicy()
        low = 3.0 * 1.5 ** retry_count

        for _ in range(50):
            delay = policy.compute_delay(3.0, retry_count)
            assert low <= delay <= low * 1.3

    def test_jitter_extremes(self):
        assert RetryPolicy(uniform=fixed_jitter(0.0)).compute_delay(2.0, 1) == pytest.approx(3.0)
        assert RetryPolicy(uniform=fixed_jitter(1.0)).compute_delay(2.0, 1) == pytest.approx(3.9)

    def test_config_from_dict(self):
        config = RetryConfig.from_config({
            "max_retries": 5,
            "initial_retry_delay": 1.0,
            "backoff_multiplier": 2.0,
            "max_jitter": 0.0,
        })
        policy = RetryPolicy(config)

        assert policy.compute_delay(1.0, 3) == 8.0


class TestEvaluate:
    """Retry decisions by error kind and counter."""

    @pytest.mark.parametrize("error", [
        HttpError(500, "HTTP Error: 500 - Internal Server Error"),
        HttpError(503, "HTTP Error: 503 - Service Unavailable"),
        HttpError(599, "HTTP Error: 599"),
        StreamEventError("model overloaded"),
        NetworkError(httpx.ReadTimeout("timed out"), transient=True),
    ])
    def test_retryable_errors(self, error):
        decision = RetryPolicy(uniform=fixed_jitter(0.0)).evaluate(error, 0, 3.0)

        assert decision.action is RetryAction.RETRY
        assert decision.delay == pytest.approx(3.0)
        assert decision.attempt == 1

    @pytest.mark.parametrize("error", [
        HttpError(404, "HTTP Error: 404 - Not Found"),
        HttpError(401, "HTTP Error: 401 - Unauthorized"),
        InvalidResponseError(),
        DecodingError("Buffer overflow"),
        NetworkError(httpx.UnsupportedProtocol("ftp"), transient=False),
    ])
    def test_terminal_errors(self, error):
        decision = RetryPolicy().evaluate(error, 0, 3.0)
        assert decision.action is RetryAction.FAIL

    def test_ceiling(self):
        policy = RetryPolicy(uniform=fixed_jitter(0.0))
        error = HttpError(503, "HTTP Error: 503 - Service Unavailable")

        delays = [policy.evaluate(error, n, 3.0).delay for n in range(3)]
        assert delays == pytest.approx([3.0, 4.5, 6.75])

        decision = policy.evaluate(error, 3, 3.0)
        assert decision.action is RetryAction.GIVE_UP

    def test_terminal_error_fails_even_at_ceiling(self):
        decision = RetryPolicy().evaluate(InvalidResponseError(), 3, 3.0)
        assert decision.action is RetryAction.FAIL


class TestNetworkClassification:
    """httpx transport errors mapped onto NetworkError."""

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("Name or service not known"),
        httpx.ConnectTimeout("connect timed out"),
        httpx.ReadTimeout("read timed out"),
        httpx.ReadError("connection reset"),
        httpx.RemoteProtocolError("peer closed connection"),
    ])
    def test_transient(self, error):
        wrapped = classify_network_error(error)

        assert isinstance(wrapped, NetworkError)
        assert wrapped.retryable
        assert wrapped.underlying is error

    @pytest.mark.parametrize("error", [
        httpx.UnsupportedProtocol("ftp://"),
        httpx.ProxyError("proxy refused"),
        httpx.DecodingError("bad gzip"),
    ])
    def test_not_transient(self, error):
        wrapped = classify_network_error(error)
        assert not wrapped.retryable
        assert str(error) in wrapped.message
