"""
Connection helpers shared by every transport adapter.

- retry_policy: exponential backoff for fallible async operations
- keep_alive: periodic control-byte writes that expose dead serial links
"""

from .keep_alive import KEEP_ALIVE_BYTE, KeepAliveHeartbeat
from .retry_policy import (
    DEFAULT_RETRY_OPTIONS,
    RetryAttempt,
    RetryError,
    RetryOptions,
    with_exponential_backoff,
)

__all__ = [
    "DEFAULT_RETRY_OPTIONS",
    "KEEP_ALIVE_BYTE",
    "KeepAliveHeartbeat",
    "RetryAttempt",
    "RetryError",
    "RetryOptions",
    "with_exponential_backoff",
]
