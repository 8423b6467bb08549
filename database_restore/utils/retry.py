"""
Retry Utilities for Restore Operations

Bounded retry for the one transient condition the restore flow tolerates:
the target database being in use while it is dropped. Retries use a fixed
delay with no backoff growth and no jitter; every other error propagates
immediately.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed
)

from ..exceptions import LockContention

logger = logging.getLogger(__name__)

T = TypeVar('T')

SleepFunc = Callable[[float], Awaitable[None]]


async def retry_on_lock_contention(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    delay_seconds: float,
    operation_name: str,
    sleep: SleepFunc = asyncio.sleep
) -> T:
    """
    Run ``operation`` until it stops raising LockContention.

    Args:
        operation: Zero-argument coroutine function to execute
        max_attempts: Total attempts, including the first
        delay_seconds: Fixed delay between attempts
        operation_name: Human-readable name for logging
        sleep: Coroutine used to wait between attempts

    Returns:
        Result of the first successful attempt

    Raises:
        LockContention: If every attempt hit lock contention
        Any other exception: Propagated immediately without retry

    Example:
        ```python
        await retry_on_lock_contention(
            lambda: drop_once(master),
            max_attempts=3,
            delay_seconds=2.0,
            operation_name="drop database"
        )
        ```
    """
    def _log_before_sleep(retry_state: RetryCallState) -> None:
        logger.warning(
            f"Database in use during {operation_name}, waiting {delay_seconds:.0f}s "
            f"before retry {retry_state.attempt_number}/{max_attempts}"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay_seconds),
        retry=retry_if_exception_type(LockContention),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await operation()
