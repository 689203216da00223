"""
Reliability module: caller-side lock acquisition policy.

- Exponential backoff with full jitter
- Polling acquisition of the session write lock
"""

from sessionstate.reliability.retry import (
    RetryPolicy,
    acquire_write_lock,
    calculate_backoff,
)

__all__ = [
    "RetryPolicy",
    "acquire_write_lock",
    "calculate_backoff",
]
