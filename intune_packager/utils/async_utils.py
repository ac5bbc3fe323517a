# intune_packager/utils/async_utils.py
"""Asynchronous operation utilities"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar, Union

T = TypeVar('T')

Sleeper = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine from synchronous code (CLI entry points)

    Args:
        coro: Coroutine to run

    Returns:
        Coroutine result
    """
    return asyncio.run(coro)


async def timeout_async(coro: Coroutine[Any, Any, T],
                        timeout: float,
                        default: Any = None) -> Union[T, Any]:
    """
    Race a coroutine against a deadline, cancelling it if the deadline wins

    Args:
        coro: Coroutine to run
        timeout: Timeout in seconds
        default: Value returned on timeout

    Returns:
        Coroutine result or default
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Operation timed out after %.1fs", timeout)
        return default


async def retry_async(coro_func: Callable[..., Coroutine[Any, Any, T]],
                      *args,
                      max_attempts: int = 3,
                      delay: float = 1.0,
                      backoff: float = 2.0,
                      exceptions: tuple = (Exception,),
                      sleep: Optional[Sleeper] = None,
                      **kwargs) -> T:
    """
    Retry async operation with exponential backoff

    Args:
        coro_func: Coroutine function
        *args: Function arguments
        max_attempts: Maximum attempts, including the first
        delay: Delay before the second attempt
        backoff: Backoff multiplier
        exceptions: Exceptions that trigger a retry
        sleep: Sleep coroutine, injectable for tests
        **kwargs: Function keyword arguments

    Returns:
        Function result

    Raises:
        Last exception if all attempts fail
    """
    sleep = sleep or asyncio.sleep
    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await coro_func(*args, **kwargs)
        except exceptions as e:
            if attempt >= max_attempts:
                raise
            logger.warning("Attempt %d/%d failed: %s", attempt, max_attempts, e)
            await sleep(current_delay)
            current_delay *= backoff


def sync_to_async(func: Callable[..., T]) -> Callable[..., Coroutine[Any, Any, T]]:
    """
    Decorator to run a blocking function in the default executor

    Args:
        func: Sync function

    Returns:
        Async wrapper function
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    return wrapper
