"""When and how long to wait before re-sending a failed platform request.

Every destination API (and the content source) throttles with 429 and
has the occasional 5xx.  :class:`RetryPolicy` turns the engine's retry
settings into two decisions for :class:`~crosspost.rest.HttpTransport`:
why a failure is worth retrying, and how long to sleep first.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import httpx

from crosspost.config import CrosspostConfig

RATE_LIMITED = "rate_limited"
SERVER_ERROR = "server_error"
NETWORK_ERROR = "network_error"

_SERVER_ERRORS: frozenset[int] = frozenset({500, 502, 503, 504})


def retry_reason(status_code: int | None, exception: Exception | None = None) -> str | None:
    """Classify a failure as retryable, returning the reason or ``None``.

    The reason doubles as the ``reason`` tag of ``crosspost.retries_total``.
    """
    if exception is not None:
        if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
            return NETWORK_ERROR
        return None
    if status_code == 429:
        return RATE_LIMITED
    if status_code in _SERVER_ERRORS:
        return SERVER_ERROR
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff curve for one transport.

    Attributes
    ----------
    max_attempts:
        Total attempts including the first.
    base_delay, max_delay:
        The backoff doubles from *base_delay* per attempt, up to *max_delay*.
    jitter:
        Scale the computed delay to 50-100 % of its value.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: CrosspostConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )

    def should_retry(self, reason: str | None, attempt: int) -> bool:
        """``True`` if a failure with *reason* on 0-indexed *attempt* gets another try."""
        return reason is not None and attempt + 1 < self.max_attempts

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to sleep before the attempt after *attempt*.

        A server ``Retry-After`` is obeyed as given; only the computed
        curve is capped and jittered.
        """
        if retry_after is not None:
            return max(retry_after, 0.0)
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay
