"""
Reconnect policy for reading sessions.

- Transient network error classification
- Exponential backoff with jitter
- Retry ceiling
"""

from __future__ import annotations

from .models import RetryAction, RetryConfig, RetryDecision
from .policy import TRANSIENT_NETWORK_ERRORS, RetryPolicy, classify_network_error

__all__ = [
    "TRANSIENT_NETWORK_ERRORS",
    "RetryAction",
    "RetryConfig",
    "RetryDecision",
    "RetryPolicy",
    "classify_network_error",
]
