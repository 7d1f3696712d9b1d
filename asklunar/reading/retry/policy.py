"""
Bounded exponential backoff with multiplicative jitter.

delay = base_delay * multiplier ** retry_count * (1 + uniform(0, max_jitter))
"""

from __future__ import annotations

import random
from collections.abc import Callable

import httpx

from ..exceptions import NetworkError, ReadingError
from .models import RetryAction, RetryConfig, RetryDecision

# Transport failures worth reconnecting for: connection lost, timeouts,
# unreachable host, host not found and DNS failures (httpx reports the last
# three as ConnectError).
TRANSIENT_NETWORK_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


def classify_network_error(error: Exception) -> NetworkError:
    """Wrap a transport exception, marking allow-listed conditions transient."""
    return NetworkError(error, transient=isinstance(error, TRANSIENT_NETWORK_ERRORS))


class RetryPolicy:
    """Decides whether and when a failed connection is retried."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        uniform: Callable[[float, float], float] = random.uniform,
    ):
        self.config = config or RetryConfig()
        self._uniform = uniform

    def compute_delay(self, base_delay: float, retry_count: int) -> float:
        """Backoff before retry number ``retry_count + 1``."""
        jitter = self._uniform(0.0, self.config.max_jitter)
        return base_delay * self.config.backoff_multiplier ** retry_count * (1.0 + jitter)

    def evaluate(
        self, error: ReadingError, retry_count: int, base_delay: float
    ) -> RetryDecision:
        """
        Evaluate ``error`` given how many consecutive retries already fired.

        Args:
            error: The fault reported for the current attempt
            retry_count: Current session retry counter
            base_delay: Current session retry delay in seconds

        Returns:
            RetryDecision with the action and, for RETRY, the delay
        """
        if not error.retryable:
            return RetryDecision(action=RetryAction.FAIL)

        if retry_count >= self.config.max_retries:
            return RetryDecision(action=RetryAction.GIVE_UP)

        return RetryDecision(
            action=RetryAction.RETRY,
            delay=self.compute_delay(base_delay, retry_count),
            attempt=retry_count + 1,
        )
