"""
Retry policy for completion-service calls.

Rate-limit-class failures and call timeouts are retried against the same
credential with exponential backoff; everything else fails immediately.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from grantmatch.core.config import Settings, settings
from grantmatch.core.exceptions import CompletionError
from grantmatch.matching.completion import is_rate_limit_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Rate limits and timeouts are transient; malformed output is not."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, CompletionError):
        return exc.retryable
    return is_rate_limit_error(exc)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "completion_retry_scheduled",
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(exc),
    )


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Attributes:
        max_attempts: Total calls including the first one.
        base_delay: Delay before the first retry; doubles for each retry.
        max_delay: Upper bound on any single delay.
        timeout: Per-call timeout in seconds; a timeout counts as retryable.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RetryPolicy":
        return cls(
            max_attempts=config.llm_retry_attempts,
            base_delay=config.llm_retry_base_delay,
            max_delay=config.llm_retry_max_delay,
            timeout=config.llm_call_timeout,
        )

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn under this policy.

        Returns:
            The first successful result.

        Raises:
            The last exception once attempts are exhausted, or the first
            non-retryable exception.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await asyncio.wait_for(fn(), timeout=self.timeout)
        raise RuntimeError("unreachable")  # pragma: no cover
