"""
Retry Policy - Exponential backoff for transient failures.

Wraps any fallible async operation (typically opening a serial port that
is still settling after USB re-enumeration). The delay starts at
``base_delay`` and grows by ``multiplier`` after every failure, capped at
``max_delay``. When every attempt fails a ``RetryError`` carrying the
attempt count and the last underlying exception is raised.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pos_devices.core.errors import DeviceError
from pos_devices.core.logging_utils import get_module_logger

logger = get_module_logger("RetryPolicy")

T = TypeVar('T')


@dataclass(frozen=True)
class RetryOptions:
    """Backoff configuration. Delays are in seconds."""
    max_attempts: int = 10
    base_delay: float = 0.2
    max_delay: float = 10.0
    multiplier: float = 1.5
    jitter: float = 0.0  # 0.1 = +/-10%

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    def merged(self, **overrides: Any) -> "RetryOptions":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


DEFAULT_RETRY_OPTIONS = RetryOptions()


@dataclass
class RetryAttempt:
    """Record of a single failed attempt."""
    attempt_number: int
    duration_ms: float
    error: str
    next_delay: Optional[float] = None


class RetryError(DeviceError):
    """Raised once every attempt of a retried operation has failed."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: BaseException,
        history: Optional[List[RetryAttempt]] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.history: List[RetryAttempt] = history or []


def _apply_jitter(delay: float, jitter: float) -> float:
    if jitter <= 0 or delay <= 0:
        return delay
    spread = delay * jitter
    return max(0.0, delay + random.uniform(-spread, spread))


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    *,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    Args:
        operation: Zero-argument coroutine factory; an exception means failure
        options: Backoff configuration (DEFAULT_RETRY_OPTIONS if omitted)
        on_retry: Optional hook called as (attempt, error, delay) before sleeping
        sleep: Awaitable sleep function, injectable for tests

    Returns:
        Whatever the first successful attempt returned

    Raises:
        RetryError: after ``max_attempts`` consecutive failures
    """
    config = options or DEFAULT_RETRY_OPTIONS
    history: List[RetryAttempt] = []
    delay = config.base_delay
    last_error: Optional[BaseException] = None

    logger.debug(
        "Starting retry operation (max_attempts=%d, base_delay=%.3fs, max_delay=%.1fs, multiplier=%.2f)",
        config.max_attempts, config.base_delay, config.max_delay, config.multiplier,
    )

    for attempt in range(1, config.max_attempts + 1):
        started = time.monotonic()
        try:
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            duration_ms = (time.monotonic() - started) * 1000
            record = RetryAttempt(attempt_number=attempt, duration_ms=duration_ms, error=str(exc))
            history.append(record)

            if attempt == config.max_attempts:
                break

            wait = _apply_jitter(delay, config.jitter)
            record.next_delay = wait
            logger.warning(
                "Attempt %d/%d failed: %s (retrying in %.2fs)",
                attempt, config.max_attempts, exc, wait,
            )
            if on_retry:
                on_retry(attempt, exc, wait)
            await sleep(wait)
            delay = min(delay * config.multiplier, config.max_delay)
            continue

        if attempt > 1:
            logger.info("Operation succeeded on attempt %d/%d", attempt, config.max_attempts)
        return result

    assert last_error is not None
    logger.error(
        "Operation failed permanently after %d attempts: %s",
        config.max_attempts, last_error,
    )
    raise RetryError(
        f"Operation failed after {config.max_attempts} attempts. Last error: {last_error}",
        attempts=config.max_attempts,
        last_error=last_error,
        history=history,
    ) from last_error


__all__ = [
    "DEFAULT_RETRY_OPTIONS",
    "RetryAttempt",
    "RetryError",
    "RetryOptions",
    "with_exponential_backoff",
]
