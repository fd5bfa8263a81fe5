"""Bounded-retry polling for asynchronous remote operations.

A background process (e.g. a repository clone started at sandbox boot) may
not be registered yet when first queried, so fetch failures are retried on a
fixed interval up to a fixed attempt count.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sandbox.base import ProcessResult, SandboxHandle
from sandbox.errors import ProcessTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, Exception | None], None]


def _delay(interval: float, jitter: float) -> float:
    return interval + random.random() * interval * jitter  # noqa: S311


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    *,
    max_attempts: int,
    interval: float,
    jitter: float = 0.0,
    on_retry: RetryCallback | None = None,
    description: str = "operation",
) -> T:
    """Call fetch() until is_done(result) or max_attempts is exhausted.

    Exceptions raised by fetch() count as a failed attempt and are retried.
    Raises ProcessTimeoutError naming *description* when attempts run out.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            result = await fetch()
        except Exception as e:
            logger.warning("Attempt %d/%d to fetch %s failed: %s", attempt, max_attempts, description, e)
            if on_retry is not None:
                on_retry(attempt, e)
        else:
            if is_done(result):
                return result
            if on_retry is not None:
                on_retry(attempt, None)
        if attempt < max_attempts:
            await asyncio.sleep(_delay(interval, jitter))
    raise ProcessTimeoutError(description, attempts=max_attempts)


async def await_terminal(
    handle: SandboxHandle,
    process_name: str,
    *,
    max_attempts: int = 10,
    poll_interval: float = 0.5,
    max_wait: float = 60.0,
    jitter: float = 0.0,
    on_retry: RetryCallback | None = None,
) -> ProcessResult:
    """Wait for a named remote process to reach a terminal state.

    Each attempt fetches the process status; a running process is then waited
    on for at most max_wait seconds. A process still running after that wait
    consumes the attempt.
    """

    async def _check() -> ProcessResult:
        result = await handle.get_process(process_name)
        if result.status == "running":
            return await handle.wait_process(process_name, max_wait=max_wait)
        return result

    return await poll_until(
        _check,
        lambda result: result.is_terminal,
        max_attempts=max_attempts,
        interval=poll_interval,
        jitter=jitter,
        on_retry=on_retry,
        description=process_name,
    )
