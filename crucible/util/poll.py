"""Polling with bounded exponential backoff."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import PollTimeoutError, TransientProviderError
from ..settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll(
    fn: Callable[[], Awaitable[T]],
    until: Callable[[T], bool],
    *,
    description: str = "operation",
    initial_delay: float | None = None,
    max_delay: float | None = None,
    timeout: float | None = None,
    max_attempts: int | None = None,
    factor: float = 2.0,
) -> T:
    """Call `fn` until `until(result)` holds.

    The delay between attempts starts at `initial_delay` and doubles up to
    `max_delay`. TransientProviderError from `fn` counts as a failed attempt
    and is retried; any other error propagates immediately.

    Args:
        fn: Async callable returning the current state
        until: Predicate over the result that ends polling
        description: What is being waited for, used in logs and errors
        initial_delay: First delay in seconds (default: settings)
        max_delay: Delay cap in seconds (default: settings)
        timeout: Deadline in seconds (default: settings)
        max_attempts: Optional cap on the number of calls
        factor: Backoff multiplier

    Raises:
        PollTimeoutError: deadline or attempt cap reached
    """
    settings = get_settings()
    delay = settings.poll_initial_delay if initial_delay is None else initial_delay
    max_delay = settings.poll_max_delay if max_delay is None else max_delay
    timeout = settings.poll_timeout if timeout is None else timeout

    deadline = time.monotonic() + timeout
    attempts = 0
    last_error: TransientProviderError | None = None

    while True:
        attempts += 1
        try:
            result = await fn()
            if until(result):
                return result
            last_error = None
        except TransientProviderError as e:
            logger.debug(f"Transient error while waiting for {description}: {e}")
            last_error = e

        if max_attempts is not None and attempts >= max_attempts:
            break
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        await asyncio.sleep(min(delay, remaining))
        delay = min(delay * factor, max_delay)

    message = f"Timed out waiting for {description} after {attempts} attempt(s)"
    if last_error is not None:
        raise PollTimeoutError(f"{message}: {last_error}") from last_error
    raise PollTimeoutError(message)
