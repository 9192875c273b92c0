"""Synchronous HTTP transport shared by the source client and REST adapters.

Each request goes through the same lifecycle:

1. Acquire a rate-limit slot for the target host (wait if needed).
2. Send the request under the configured timeout.
3. On ``2xx`` -- return the response.
4. On ``429`` -- honour ``Retry-After``, sleep, and retry.
5. On ``5xx`` / network error -- exponential backoff and retry.
6. On non-retryable ``4xx`` -- raise the matching typed error immediately.
7. On max attempts exceeded -- raise :class:`RetryExhaustedError`.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Any

import httpx

from crosspost.config import CrosspostConfig
from crosspost.errors import (
    AuthError,
    NetworkError,
    NotFoundError,
    RequestError,
    RetryExhaustedError,
)
from crosspost.observability import NoopMetricsHook, get_logger
from crosspost.utils.redact import redact

from .rate_limit import HostRateLimiter
from .retries import NETWORK_ERROR, RATE_LIMITED, RetryPolicy, retry_reason

log = get_logger("crosspost.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the typed error for a 4xx status that must not be retried."""
    status = response.status_code
    body = _response_body(response)
    safe_body = redact(body) if isinstance(body, dict) else body
    remote_message = body.get("message", "") if isinstance(body, dict) else body
    context = {"status_code": status, "path": path, "body": safe_body}

    if status in (401, 403):
        raise AuthError(
            message=f"Authentication failed on {method} {path}: {remote_message}",
            context=context,
        )
    if status == 404:
        raise NotFoundError(
            message=f"Resource not found on {method} {path}: {remote_message}",
            context=context,
        )
    raise RequestError(
        message=f"Client error {status} on {method} {path}: {remote_message}",
        context=context,
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class HttpTransport:
    """HTTP transport with retry, rate limiting and typed errors.

    Parameters
    ----------
    config:
        Engine configuration supplying timeouts, retry policy and metrics.
    base_url:
        Prefix for relative request paths.  Absolute URLs bypass it.
    headers:
        Headers sent with every request.
    name:
        Short label used in metric tags and log lines.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        config: CrosspostConfig,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        name: str = "http",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._name = name
        self._limiter = HostRateLimiter(rate_rps=config.rate_limit_rps, burst=10)
        self._policy = RetryPolicy.from_config(config)
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
            follow_redirects=True,
        )

    # -- public API --------------------------------------------------------

    def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute a request and return the parsed JSON body.

        An empty body (e.g. ``204``) yields ``{}``.

        Raises
        ------
        AuthError
            On 401/403 responses.
        NotFoundError
            On 404 responses.
        RequestError
            On other non-retryable 4xx responses.
        RetryExhaustedError
            When every attempt hit a retryable status.
        NetworkError
            On transport-level failures after exhausting retries.
        """
        response = self.send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            result: dict = response.json()
        except ValueError as exc:
            raise RequestError(
                message=f"Non-JSON response on {method} {path}",
                context={"status_code": response.status_code, "body": response.text[:500]},
                cause=exc,
            ) from exc
        return result

    def download(self, url: str, timeout: float | None = None) -> bytes:
        """Fetch *url* and return the raw body bytes."""
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        return self.send("GET", url, **kwargs).content

    def send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request with retries and return the successful response."""
        max_attempts = self._policy.max_attempts
        host = httpx.URL(path).host or self._client.base_url.host
        last_exception: Exception | None = None
        last_status: int | None = None
        tags = {"client": self._name, "method": method}

        for attempt in range(max_attempts):
            self._limiter.acquire(host)

            t0 = time.monotonic()
            try:
                response = self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_exception = exc
                last_status = None
                self._metrics.increment("crosspost.requests_total", tags={**tags, "status": "error"})
                log.warning(
                    "Request network error",
                    extra={
                        "extra_fields": {
                            "client": self._name,
                            "method": method,
                            "path": path,
                            "attempt": attempt + 1,
                            "error": str(exc),
                        }
                    },
                )
                if not self._policy.should_retry(retry_reason(None, exc), attempt):
                    raise NetworkError(
                        message=f"Network error on {method} {path}: {exc}",
                        context={"url": path, "attempt": attempt + 1},
                        cause=exc,
                    ) from exc
                self._metrics.increment("crosspost.retries_total", tags={**tags, "reason": NETWORK_ERROR})
                time.sleep(self._policy.delay(attempt))
                continue

            elapsed_ms = (time.monotonic() - t0) * 1000
            last_status = response.status_code
            last_exception = None
            status_tags = {**tags, "status": str(response.status_code)}
            self._metrics.increment("crosspost.requests_total", tags=status_tags)
            self._metrics.timing("crosspost.request_duration_ms", elapsed_ms, tags=status_tags)

            if 200 <= response.status_code < 300:
                return response

            reason = retry_reason(response.status_code)
            if reason is None:
                _raise_for_status(response, method, path)

            if not self._policy.should_retry(reason, attempt):
                break

            retry_after = _parse_retry_after(response) if reason == RATE_LIMITED else None
            log.warning(
                "Retryable response",
                extra={
                    "extra_fields": {
                        "client": self._name,
                        "method": method,
                        "path": path,
                        "status_code": response.status_code,
                        "retry_after": retry_after,
                        "attempt": attempt + 1,
                    }
                },
            )
            self._metrics.increment("crosspost.retries_total", tags={**tags, "reason": reason})
            time.sleep(self._policy.delay(attempt, retry_after))

        ctx: dict[str, Any] = {"attempts": max_attempts, "last_status_code": last_status}
        detail = f"last error: {last_exception}" if last_exception else f"last status: {last_status}"
        raise RetryExhaustedError(
            message=f"All {max_attempts} attempts exhausted for {method} {path} ({detail})",
            context=ctx,
            cause=last_exception,
        )

    def paginate(self, path: str, method: str = "GET", **kwargs: Any) -> Iterator[dict]:
        """Follow ``start_cursor`` / ``has_more`` pagination, yielding results.

        ``POST`` requests carry the cursor in the JSON body; ``GET``
        requests carry it in the query string.
        """
        cursor: str | None = None
        while True:
            if method.upper() == "POST":
                body: dict = dict(kwargs.get("json") or {})
                body["page_size"] = 100
                if cursor is not None:
                    body["start_cursor"] = cursor
                kwargs["json"] = body
            else:
                params: dict = dict(kwargs.get("params") or {})
                params["page_size"] = 100
                if cursor is not None:
                    params["start_cursor"] = cursor
                kwargs["params"] = params

            data = self.request(method, path, **kwargs)
            yield from data.get("results", [])

            if not data.get("has_more", False):
                break
            cursor = data.get("next_cursor")
            if cursor is None:
                break

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
