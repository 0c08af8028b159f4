"""
azmachine/utils/async_retry.py

Provides a decorator to retry an async function multiple times upon failure.

The provisioning and teardown core never retries on its own; this decorator is
for callers (such as the CLI) that re-invoke a whole create/delete call.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional
from typing_extensions import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


def async_retry(
    retries: int = 3,
    delay: float = 1.0,
    retry_if: Optional[Callable[[Exception], bool]] = None,
) -> Callable[
    [Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]
]:
    """Decorates an async function to retry upon failure.

    The decorated function will be attempted up to `retries` times, with a delay
    of `delay` seconds between each attempt. Exceptions for which `retry_if`
    returns False are raised immediately.

    Args:
        retries (int, optional):
            Maximum number of total attempts (not just failures). Defaults to 3.
        delay (float, optional):
            Delay in seconds between attempts. Defaults to 1.0.
        retry_if (Optional[Callable[[Exception], bool]]):
            Predicate deciding whether an exception is worth another attempt.
            Defaults to retrying every exception.

    Returns:
        A decorator that, when applied to an async function, returns a wrapped
        version that retries on matching exceptions.
    """

    def decorator(
        func: Callable[P, Coroutine[Any, Any, R]]
    ) -> Callable[P, Coroutine[Any, Any, R]]:
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt_number = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    retryable = retry_if is None or retry_if(exc)
                    if not retryable or attempt_number >= retries:
                        if retryable:
                            logger.error(
                                "All %d attempts failed for %r", retries, func.__qualname__
                            )
                        raise
                    logger.warning(
                        "Attempt %d/%d for %r failed: %s",
                        attempt_number,
                        retries,
                        func.__qualname__,
                        exc,
                    )
                    attempt_number += 1
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
