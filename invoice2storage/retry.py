"""Tenacity retry loop driven by RetryConfig.

Every call to :func:`retry_operation` gets its own backoff state, so an
attachment upload never inherits the delays of a previous one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential_jitter,
)

from .config import RetryConfig

logger = structlog.get_logger()


class ErrorCounter:
    """Monotonic error count shared by the phases of one run."""

    def __init__(self) -> None:
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def increment(self) -> None:
        self._count += 1

    def __bool__(self) -> bool:
        return self._count > 0


def _log_before_sleep(description: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.info(
            "retry_scheduled",
            operation=description,
            attempt=state.attempt_number,
            delay_seconds=round(delay, 3),
        )

    return _before_sleep


async def retry_operation(
    operation: Callable[[], Awaitable[None]],
    config: RetryConfig,
    errors: ErrorCounter,
    *,
    description: str,
    fatal: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Run *operation* until it succeeds or the backoff policy gives up.

    *errors* is incremented once for every failed attempt and once more
    when the operation is abandoned.  Exceptions listed in *fatal* are not
    retried.  Returns ``True`` on success; never raises for a failing
    *operation*.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts)
        | stop_after_delay(config.max_elapsed_seconds),
        wait=wait_exponential_jitter(
            multiplier=config.initial_wait_seconds,
            max=config.max_wait_seconds,
            exp_base=config.multiplier,
            jitter=config.jitter_seconds,
        ),
        retry=retry_if_not_exception_type(fatal),
        before_sleep=_log_before_sleep(description),
        sleep=sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                try:
                    await operation()
                except Exception as exc:
                    errors.increment()
                    logger.warning(
                        "operation_attempt_failed",
                        operation=description,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(exc),
                    )
                    raise
    except Exception as exc:
        errors.increment()
        logger.error(
            "retries_exhausted",
            operation=description,
            error=str(exc),
        )
        return False

    return True
