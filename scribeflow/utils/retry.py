"""Generic retry helper for provider calls (tenacity based)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scribeflow.config import RetryConfig
from scribeflow.exceptions import CancelledError, NetworkError, ProviderError, ValidationError
from scribeflow.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, connection failures, 408/429/5xx are retryable; nothing else is."""
    if isinstance(exc, (CancelledError, ValidationError)):
        return False
    if isinstance(exc, NetworkError):
        return True
    if isinstance(exc, ProviderError):
        return exc.retryable
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    rate_limit_base_delay_s: float = 2.0
    retryable: Callable[[BaseException], bool] = field(default=is_retryable, compare=False)

    @property
    def max_attempts(self) -> int:
        return max(1, int(self.max_retries) + 1)

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> "RetryPolicy":
        return cls(
            max_retries=cfg.max_retries,
            base_delay_s=cfg.base_delay_s,
            max_delay_s=cfg.max_delay_s,
            rate_limit_base_delay_s=cfg.rate_limit_base_delay_s,
        )

    def wait_strategy(self) -> Callable[[RetryCallState], float]:
        normal = wait_exponential(multiplier=self.base_delay_s, max=self.max_delay_s)
        rate_limited = wait_exponential(
            multiplier=self.rate_limit_base_delay_s, max=self.max_delay_s
        )

        def _wait(state: RetryCallState) -> float:
            exc = state.outcome.exception() if state.outcome else None
            if isinstance(exc, ProviderError) and exc.rate_limited:
                return rate_limited(state)
            return normal(state)

        return _wait


def _log_retry(log: logging.Logger, label: str) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        wait_s = state.next_action.sleep if state.next_action else None
        log.warning(
            "%s retrying (attempt=%s, wait_s=%s, error=%s)",
            label,
            state.attempt_number,
            wait_s,
            exc,
        )

    return _log


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    token: CancellationToken | None = None,
    label: str = "operation",
    log: logging.Logger | None = None,
) -> T:
    """Run `operation` under `policy`.

    The token is checked before every attempt and interrupts the backoff
    sleep, so cancellation never waits out the remaining retries.
    Non-retryable errors and the last retryable error are re-raised as-is.
    """
    sleep = token.sleep if token is not None else asyncio.sleep
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(policy.retryable),
        before_sleep=_log_retry(log or logger, label),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if token is not None:
                token.raise_if_cancelled()
            return await operation()
    raise AssertionError("retry loop exited without result")  # pragma: no cover
