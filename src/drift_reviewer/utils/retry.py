"""
Retry Policy

Exponential backoff with jitter for any fallible async operation.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior."""
    retries: int = 2
    initial_delay: float = 0.5  # seconds
    max_delay: float = 15.0  # seconds

    def __post_init__(self):
        if self.retries < 0:
            raise ValueError("retries must be non-negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays must be non-negative")


def is_recoverable(error: BaseException) -> bool:
    """Default predicate: retry only errors flagged as recoverable."""
    return bool(getattr(error, "recoverable", False))


def backoff_delay(attempt: int, config: RetryConfig, rand: Callable[[], float] = random.random) -> float:
    """
    Delay before the retry following ``attempt`` (0-indexed).

    The exponential delay is capped at ``max_delay`` and then scaled by a
    random factor in [0.5, 1.0).
    """
    base = min(config.initial_delay * (2 ** attempt), config.max_delay)
    return base * (0.5 + rand() * 0.5)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        config: Retry configuration (defaults to 2 retries, 0.5s initial, 15s cap)
        should_retry: Predicate overriding the default recoverable check
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        The last error raised by the operation, immediately when it is not retryable
    """
    config = config or RetryConfig()
    predicate = should_retry or is_recoverable

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= config.retries or not predicate(e):
                raise
            delay = backoff_delay(attempt, config)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{config.retries + 1}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1
