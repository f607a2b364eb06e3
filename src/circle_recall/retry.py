"""Bounded retries with exponential backoff for provider calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from circle_recall.errors import RemoteCallError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 10.0


async def call_with_retry(
    factory: Callable[[], Awaitable[T]],
    timeout: Optional[float] = None,
    max_retries: int = 2,
    backoff: float = 0.5,
    operation: str = "remote call",
) -> T:
    """
    Await ``factory()`` until it succeeds or retries run out.

    Only retryable ``RemoteCallError`` is retried; anything else propagates
    on the first failure. Each attempt is bounded by ``timeout``, and a
    timed-out attempt counts as a retryable ``RemoteCallError``.

    Args:
        factory: Builds a fresh awaitable per attempt
        timeout: Per-attempt limit in seconds (None = unbounded)
        max_retries: Retries after the first attempt
        backoff: Initial delay, doubled after every retry
        operation: Label for log messages

    Raises:
        RemoteCallError: The last failure once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            if timeout is None:
                return await factory()
            try:
                return await asyncio.wait_for(factory(), timeout)
            except asyncio.TimeoutError as e:
                raise RemoteCallError(f"{operation} timed out after {timeout}s") from e
        except RemoteCallError as e:
            if not e.retryable or attempt >= max_retries:
                if attempt:
                    logger.error(f"All {attempt} retries exhausted for {operation}: {e}")
                raise
            delay = min(backoff * (2**attempt), MAX_BACKOFF_SECONDS)
            attempt += 1
            logger.warning(
                f"Retry {attempt}/{max_retries} for {operation} after {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)
