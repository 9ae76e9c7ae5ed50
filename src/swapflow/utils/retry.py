"""Bounded exponential backoff for transient read failures.

Only failures that ``classify`` marks transient (network unavailable, timeout)
are retried. Everything else propagates on the first attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from swapflow.errors import classify

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    description: str = "call",
) -> T:
    """Run ``operation``, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, invoked once per attempt
        attempts: Total attempts including the first
        backoff_seconds: Delay before the second attempt, doubled afterwards
        description: Label for log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception once attempts are exhausted, or the first
        non-transient exception
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = classify(e)
            if not failure.is_transient or attempt >= attempts:
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}, {failure.kind.value}): {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
