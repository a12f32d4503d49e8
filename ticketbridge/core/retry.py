"""Retry-with-backoff combinator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]
ErrorClassifier = Callable[[BaseException], bool]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff. Delays are in milliseconds."""
    max_attempts: int = 3
    base_delay: int = 1000
    max_delay: int = 5000

    def delay_for(self, attempt: int) -> int:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


@dataclass
class RetryOutcome(Generic[T]):
    success: bool
    value: T | None = None
    attempts: int = 0
    error: BaseException | None = None
    delays: list[int] = field(default_factory=list)


def always_retry(_error: BaseException) -> bool:
    return True


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    is_retryable: ErrorClassifier = always_retry,
    operation_name: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> RetryOutcome[T]:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Never raises for failures of ``operation``; the last error is returned
    in the outcome. Errors the classifier rejects end the loop at once.
    Cancellation is not retried.
    """
    outcome: RetryOutcome[T] = RetryOutcome(success=False)

    for attempt in range(1, policy.max_attempts + 1):
        outcome.attempts = attempt
        try:
            log.debug(
                "retry_attempt",
                operation=operation_name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
            )
            outcome.value = await operation()
            outcome.success = True
            outcome.error = None
            if attempt > 1:
                log.info("retry_succeeded", operation=operation_name, attempt=attempt)
            return outcome
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome.error = e
            log.warning(
                "retry_attempt_failed",
                operation=operation_name,
                attempt=attempt,
                error=str(e),
            )
            if not is_retryable(e):
                log.warning("retry_aborted_terminal_error", operation=operation_name)
                return outcome

        if attempt < policy.max_attempts:
            delay = policy.delay_for(attempt)
            outcome.delays.append(delay)
            log.debug("retry_backoff", operation=operation_name, delay_ms=delay)
            await sleep(delay / 1000)

    log.error(
        "retry_exhausted",
        operation=operation_name,
        attempts=outcome.attempts,
        error=str(outcome.error),
    )
    return outcome
