"""Error hierarchy for crosspost.

Every error raised by the engine inherits from :class:`CrosspostError`.
Each carries a machine-readable ``code`` (from :class:`ErrorCode`), a
human-readable ``message``, an optional structured ``context`` dict, and an
optional ``cause`` (chained exception).

The subclasses map onto the cycle-level outcomes the publish manager acts
on:

* :class:`ConfigError` -- fail fast, never retried automatically.
* :class:`AuthError` -- the job fails; the next cycle retries it.
* :class:`TransformError` -- the page is skipped for this cycle.
* :class:`ResourceError` -- a single image degrades; the attempt continues.
* :class:`PublishError` -- the job fails; the next cycle reruns it in full.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the engine can raise."""

    CONFIG_ERROR = "CONFIG_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    TRANSFORM_ERROR = "TRANSFORM_ERROR"
    RESOURCE_ERROR = "RESOURCE_ERROR"
    PUBLISH_ERROR = "PUBLISH_ERROR"
    PREREQUISITE_MISSING = "PREREQUISITE_MISSING"
    NETWORK_ERROR = "NETWORK_ERROR"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    REQUEST_ERROR = "REQUEST_ERROR"
    NOT_FOUND = "NOT_FOUND"
    SOURCE_ERROR = "SOURCE_ERROR"
    TIMEOUT = "TIMEOUT"
    ADAPTER_BUSY = "ADAPTER_BUSY"
    JOB_STORE_ERROR = "JOB_STORE_ERROR"
    REGISTRY_ERROR = "REGISTRY_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class CrosspostError(Exception):
    """Base exception for all crosspost errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


class _FixedCodeError(CrosspostError):
    """Helper base: subclasses pin ``code`` via the ``_code`` attribute."""

    _code: ErrorCode = ErrorCode.PUBLISH_ERROR

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self._code,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------

class ConfigError(_FixedCodeError):
    """A platform or engine configuration is missing or invalid.

    Context keys: ``platform``, ``missing_keys``.
    """

    _code = ErrorCode.CONFIG_ERROR


class AuthError(_FixedCodeError):
    """Credentials were rejected or could not be exchanged.

    Context keys: ``platform``, ``status_code`` or ``errcode``.
    """

    _code = ErrorCode.AUTH_ERROR


class TransformError(_FixedCodeError):
    """Converting the block tree to the target format failed.

    Context keys: ``platform``, ``block_type``.
    """

    _code = ErrorCode.TRANSFORM_ERROR


class ResourceError(_FixedCodeError):
    """Downloading or uploading a single embedded resource failed.

    Context keys: ``url``, ``resource_id``.
    """

    _code = ErrorCode.RESOURCE_ERROR


class PublishError(_FixedCodeError):
    """A draft or publish call on the destination platform failed.

    Context keys: ``platform``, ``stage``.
    """

    _code = ErrorCode.PUBLISH_ERROR


class PrerequisiteMissingError(PublishError):
    """A lifecycle stage was invoked before the stage it depends on.

    Context keys: ``platform``, ``missing``.
    """

    _code = ErrorCode.PREREQUISITE_MISSING


class AdapterTimeoutError(PublishError):
    """An attempt exceeded its bounded time budget.

    Context keys: ``platform``, ``timeout_seconds``.
    """

    _code = ErrorCode.TIMEOUT


class AdapterBusyError(PublishError):
    """An earlier attempt on the same adapter has not returned yet.

    The page is skipped for this cycle and retried on the next one.
    """

    _code = ErrorCode.ADAPTER_BUSY


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class NetworkError(_FixedCodeError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``, ``attempt``.
    """

    _code = ErrorCode.NETWORK_ERROR


class RetryExhaustedError(_FixedCodeError):
    """All retry attempts have been exhausted for a retryable request.

    Context keys: ``attempts``, ``last_status_code``.
    """

    _code = ErrorCode.RETRY_EXHAUSTED


class RequestError(_FixedCodeError):
    """The remote end rejected a request with a non-retryable 4xx status.

    Context keys: ``status_code``, ``body``.
    """

    _code = ErrorCode.REQUEST_ERROR


class NotFoundError(_FixedCodeError):
    """The remote end returned 404 for the requested resource.

    Context keys: ``status_code``, ``path``.
    """

    _code = ErrorCode.NOT_FOUND


class SourceError(_FixedCodeError):
    """The content provider could not deliver a page or its blocks.

    Context keys: ``page_id``.
    """

    _code = ErrorCode.SOURCE_ERROR


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class JobStoreError(_FixedCodeError):
    """The durable job store refused an operation.

    Context keys: ``job_id``, ``status``.
    """

    _code = ErrorCode.JOB_STORE_ERROR


class PlatformRegistryError(_FixedCodeError):
    """A platform adapter could not be registered or resolved.

    Context keys: ``platform``.
    """

    _code = ErrorCode.REGISTRY_ERROR


def wrap_stage_error(platform: str, stage: str, exc: Exception) -> CrosspostError:
    """Attach *platform* and *stage* context to an adapter failure.

    Typed errors keep their class and code; anything else becomes a
    :class:`PublishError`.  The returned message is what the job store
    records as the job's error text.
    """
    if isinstance(exc, CrosspostError):
        if exc.context.get("platform") == platform and exc.context.get("stage") == stage:
            return exc
        context = {**exc.context, "platform": platform, "stage": stage}
        message = f"[{platform}:{stage}] {exc.message}"
        if isinstance(exc, _FixedCodeError):
            return type(exc)(message=message, context=context, cause=exc)
        return CrosspostError(code=exc.code, message=message, context=context, cause=exc)
    return PublishError(
        message=f"[{platform}:{stage}] {exc}",
        context={"platform": platform, "stage": stage},
        cause=exc,
    )
