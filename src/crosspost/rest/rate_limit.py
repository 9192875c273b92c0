"""Per-host request pacing.

One transport can talk to several hosts: image downloads fan out to the
source's file storage and to arbitrary external sites, while API calls go
to a single platform host.  :class:`HostRateLimiter` keeps an independent
token bucket per host.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float = field(default_factory=time.monotonic)


class HostRateLimiter:
    """Token buckets keyed by host, refilled at *rate_rps* up to *burst*.

    Parameters
    ----------
    rate_rps:
        Sustained requests per second allowed for each host.
    burst:
        Requests a quiet host may send back to back.
    """

    def __init__(self, rate_rps: float, burst: int = 10) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")
        self.rate = rate_rps
        self.burst = burst
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def hosts(self) -> list[str]:
        with self._lock:
            return sorted(self._buckets)

    def acquire(self, host: str) -> float:
        """Take one request slot for *host*, sleeping if it is exhausted.

        Returns the seconds slept.  The sleep happens outside the lock, so
        other hosts are never held up.
        """
        key = host.lower()
        with self._lock:
            now = time.monotonic()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(tokens=float(self.burst), refilled_at=now)
            bucket.tokens = min(self.burst, bucket.tokens + (now - bucket.refilled_at) * self.rate)
            bucket.refilled_at = now
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return 0.0
            wait = (1 - bucket.tokens) / self.rate
            # The slot is spoken for once the wait elapses.
            bucket.tokens = 0.0
            bucket.refilled_at = now + wait

        time.sleep(wait)
        return wait
