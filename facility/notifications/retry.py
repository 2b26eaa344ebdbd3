"""
Timeout and bounded-retry wrapper for blocking provider SDK calls.

Every call runs in a worker thread under its own timeout, so a hung
calendar request never holds up an SMS send (or vice versa).
"""

import asyncio
import logging
import random
from typing import Any, Callable

from facility.errors import ChannelUnavailable, ProviderError

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY_SECONDS = 30.0


def get_retry_delay(
    attempt: int,
    base_delay: float = 1.0,
    include_jitter: bool = True,
) -> float:
    """
    Calculate retry delay using exponential backoff with cap.

    Args:
        attempt: Zero-based attempt number (0 = first retry)
        base_delay: Delay before the first retry, in seconds
        include_jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds (base, 2*base, 4*base, ... capped at 30s)
    """
    delay = min(base_delay * 2**attempt, MAX_RETRY_DELAY_SECONDS)
    if include_jitter and delay > 0:
        # Jitter scales with delay to spread out retries
        return delay + random.uniform(0, delay * 0.1)
    return float(delay)


def is_transient_error(exception: BaseException) -> bool:
    """Default retry predicate: timeouts and connection-level failures."""
    return isinstance(exception, (asyncio.TimeoutError, TimeoutError, ConnectionError))


async def call_provider(
    func: Callable[..., Any],
    *args: Any,
    operation: str,
    timeout: float,
    max_retries: int = 0,
    backoff: float = 1.0,
    retryable: Callable[[BaseException], bool] = is_transient_error,
) -> Any:
    """
    Run a blocking provider call with a per-attempt timeout and bounded retries.

    Args:
        func: Sync SDK call (runs via asyncio.to_thread)
        operation: Label for logs and errors (e.g. "calendar.insert")
        timeout: Seconds allowed per attempt
        max_retries: Extra attempts after the first, for retryable errors only
        backoff: Base delay for exponential backoff between attempts
        retryable: Predicate deciding whether an error is worth retrying

    Raises:
        ChannelUnavailable: Passed through untouched (provider unconfigured)
        ProviderError: The call failed on its last attempt
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)
        except ChannelUnavailable:
            raise
        except Exception as e:
            if attempt >= max_retries or not retryable(e):
                raise ProviderError(operation, e) from e

            delay = get_retry_delay(attempt, base_delay=backoff)
            logger.warning(
                f"{operation} failed ({type(e).__name__}: {e}), "
                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})"
            )
            await asyncio.sleep(delay)
            attempt += 1
