"""
Retry configuration and decision dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RetryAction(Enum):
    """What the orchestrator does after a fault."""
    RETRY = "retry"
    GIVE_UP = "give_up"        # retryable, but the ceiling was reached
    FAIL = "fail"              # terminal fault


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for reconnect backoff."""
    max_retries: int = 3
    initial_retry_delay: float = 3.0   # seconds, until the server sends retry:
    backoff_multiplier: float = 1.5
    max_jitter: float = 0.3            # fraction added on top of the delay

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> RetryConfig:
        """Build from the ``stream.retry`` config section."""
        return cls(
            max_retries=config["max_retries"],
            initial_retry_delay=config["initial_retry_delay"],
            backoff_multiplier=config["backoff_multiplier"],
            max_jitter=config["max_jitter"],
        )


@dataclass(frozen=True)
class RetryDecision:
    """Result of evaluating one fault against the retry policy."""
    action: RetryAction
    delay: float = 0.0
    attempt: int = 0  # 1-based number of the retry that would fire
