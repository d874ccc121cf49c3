"""
Reliability Module — Run deadline and bounded read retries.
"""

from .deadline import Deadline
from .retry import RetryConfig, retry_call, with_retry

__all__ = [
    "Deadline",
    "RetryConfig",
    "retry_call",
    "with_retry",
]
