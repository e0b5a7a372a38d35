"""Retry utilities for provider calls.

AWS APIs throttle aggressively (Cost Explorer in particular). The transport
retries throttled calls with exponential backoff; every other failure is
surfaced immediately.

Implementation: Uses tenacity library internally for battle-tested retry logic.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import tenacity
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "retry_operation"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 5,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    def wait_strategy(self) -> wait_base:
        wait: wait_base
        if self.exponential:
            # multiplier * 2^(attempt-1)
            wait = tenacity.wait_exponential(multiplier=self.backoff_seconds, min=self.backoff_seconds)
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)
        if self.jitter and self.backoff_seconds > 0:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait


def retry_operation(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> Any:
    """Execute an operation, retrying failures ``retry_if`` accepts.

    The last exception is re-raised once attempts are exhausted.

    Example:
        result = retry_operation(
            lambda: client.get_cost_and_usage(**params),
            RetryConfig(max_attempts=5),
            "ce.get_cost_and_usage",
            retry_if=is_throttling_error,
        )
    """

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        """Log retry attempts."""
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retrying = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(1, config.max_attempts)),
        wait=config.wait_strategy(),
        retry=tenacity.retry_if_exception(retry_if or (lambda e: isinstance(e, Exception))),
        before_sleep=before_sleep_handler,
        reraise=True,
    )
    return retrying(operation)
