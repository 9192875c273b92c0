"""HTTP transport layer shared by the source client and REST adapters."""

from __future__ import annotations

from .rate_limit import HostRateLimiter
from .retries import RetryPolicy, retry_reason
from .transport import HttpTransport

__all__ = [
    "HostRateLimiter",
    "HttpTransport",
    "RetryPolicy",
    "retry_reason",
]
