"""Platform registry and publish dispatch.

:class:`PublishManager` drives one page through every target platform.
For each (page, platform) pair it:

1. resolves the adapter and its configuration; a disabled platform is
   skipped without a job row;
2. claims the pair in the job store; a completed job short-circuits to
   success with that job's identity;
3. runs ``initialize`` and ``publish_direct`` on the platform's worker
   thread under the attempt timeout;
4. records the terminal status, then runs ``cleanup`` (log-only).  A
   timed-out attempt keeps its job ``in_progress`` until the worker
   returns and records the real outcome.

A failure on one platform never prevents the remaining platforms from
being attempted.
"""

from __future__ import annotations

import contextvars
import json
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import TypeVar

from crosspost.adapters import PublisherAdapter, create_adapter
from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.errors import (
    AdapterBusyError,
    AdapterTimeoutError,
    CrosspostError,
    JobStoreError,
    PlatformRegistryError,
    wrap_stage_error,
)
from crosspost.jobs import JobStore
from crosspost.models import DistributionJob, JobStatus, PublishContent, PublishResult, SourcePage
from crosspost.observability import NoopMetricsHook, get_logger, log_context

log = get_logger("crosspost.manager")

T = TypeVar("T")

# Labels used in source documents -> canonical platform keys.
PLATFORM_LABELS: dict[str, str] = {
    "Blog": "al-folio",
    "blog": "al-folio",
    "Jekyll": "al-folio",
    "jekyll": "al-folio",
    "al-folio": "al-folio",
    "微信公众号": "wechat-official",
    "WeChat": "wechat-official",
    "wechat": "wechat-official",
    "wechat-official": "wechat-official",
    "Substack": "substack",
    "substack": "substack",
}


def map_platform_labels(labels: Iterable[str]) -> list[str]:
    """Map document labels to canonical platform keys, dropping unknown ones.

    The result keeps first-seen order and has no duplicates.
    """
    platforms: list[str] = []
    for label in labels:
        key = PLATFORM_LABELS.get(label.strip())
        if key is None:
            log.warning("Unknown platform label", extra={"extra_fields": {"label": label}})
            continue
        if key not in platforms:
            platforms.append(key)
    return platforms


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class PlatformRegistry:
    """Adapters and their configuration, keyed by canonical platform name."""

    def __init__(self) -> None:
        self._adapters: dict[str, PublisherAdapter] = {}
        self._configs: dict[str, PlatformConfig] = {}

    @classmethod
    def from_config(cls, config: CrosspostConfig, **adapter_kwargs: object) -> PlatformRegistry:
        """Build a registry holding one adapter per configured platform."""
        registry = cls()
        for name, platform_config in config.platforms.items():
            registry.register(create_adapter(name, config, **adapter_kwargs), platform_config)
        return registry

    def register(self, adapter: PublisherAdapter, config: PlatformConfig) -> None:
        """Register *adapter* with its platform *config*.

        Raises
        ------
        PlatformRegistryError
            If an adapter for the same platform is already registered.
        """
        name = adapter.name
        if name in self._adapters:
            raise PlatformRegistryError(
                message=f"Adapter for platform {name} already registered",
                context={"platform": name},
            )
        self._adapters[name] = adapter
        self._configs[name] = config
        log.info("Adapter registered", extra={"extra_fields": {"platform": name}})

    def get(self, name: str) -> PublisherAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise PlatformRegistryError(
                message=f"No adapter registered for platform {name}",
                context={"platform": name},
            ) from None

    def config_for(self, name: str) -> PlatformConfig:
        try:
            return self._configs[name]
        except KeyError:
            raise PlatformRegistryError(
                message=f"No config registered for platform {name}",
                context={"platform": name},
            ) from None

    def names(self) -> list[str]:
        return list(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def close(self) -> None:
        for adapter in self._adapters.values():
            adapter.close()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

def content_snapshot(page: SourcePage) -> str:
    """JSON snapshot of the page fields a job was created from."""
    return json.dumps(
        {
            "notion_id": page.notion_id,
            "title": page.title,
            "en_title": page.en_title,
            "summary": page.summary,
            "tags": page.tags,
            "status": page.status,
            "platforms": page.platforms,
            "post_date": page.post_date.isoformat() if page.post_date else None,
            "last_edited_time": page.last_edited_time.isoformat() if page.last_edited_time else None,
        },
        ensure_ascii=False,
    )


class PublishManager:
    """Dispatches pages to platform adapters with idempotent job tracking.

    Parameters
    ----------
    registry:
        Registered adapters and configs.
    store:
        The job store; the single authority on what has been published.
    config:
        Engine configuration (attempt timeout, metrics).
    """

    def __init__(
        self,
        registry: PlatformRegistry,
        store: JobStore,
        config: CrosspostConfig | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.config = config or CrosspostConfig()
        self._metrics = self.config.metrics if self.config.metrics is not None else NoopMetricsHook()
        self._lock = threading.Lock()
        self._executors: dict[str, ThreadPoolExecutor] = {}
        self._inflight: dict[str, Future] = {}

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def targets_for(self, page: SourcePage) -> list[str]:
        """Platforms *page* should go to.

        Falls back to every registered platform when none of the page's
        labels maps to a known platform.
        """
        targets = [name for name in map_platform_labels(page.platforms) if name in self.registry]
        return targets or self.registry.names()

    def needs_publishing(self, page: SourcePage) -> bool:
        """``True`` unless every enabled target platform has a completed job."""
        enabled = [
            name for name in self.targets_for(page)
            if self.registry.config_for(name).enabled
        ]
        return not self.store.has_completed_all(page.notion_id, enabled)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def publish_to_all(self, page: SourcePage) -> dict[str, PublishResult]:
        return self.publish_to_platforms(page, self.targets_for(page))

    def publish_to_platforms(
        self,
        page: SourcePage,
        platforms: Iterable[str],
    ) -> dict[str, PublishResult]:
        """Publish *page* to each platform in turn; returns results by key."""
        results: dict[str, PublishResult] = {}
        snapshot = content_snapshot(page)
        for name in platforms:
            with log_context(page_id=page.notion_id, platform=name):
                results[name] = self._publish_one(page, name, snapshot)
        return results

    def publish_single(self, page: SourcePage, platform: str, draft: bool = False) -> PublishResult:
        """On-demand publish of *page* to one *platform*.

        With ``draft=False`` this is the scheduled path for a single
        platform.  With ``draft=True`` the attempt stops after the draft is
        saved and a ``draft`` job is recorded; drafts never count as
        completed.
        """
        with log_context(page_id=page.notion_id, platform=platform):
            if not draft:
                return self._publish_one(page, platform, content_snapshot(page))
            return self._publish_draft(page, platform)

    def _publish_draft(self, page: SourcePage, platform: str) -> PublishResult:
        resolved = self._resolve(platform)
        if isinstance(resolved, PublishResult):
            return resolved
        adapter, config = resolved
        platform_id = self.store.get_or_create_platform(platform, platform, config.enabled).id
        draft_config = PlatformConfig(
            platform_name=config.platform_name,
            enabled=config.enabled,
            settings={**config.settings, "auto_publish": "false"},
        )
        content = page.to_publish_content()

        def settle(outcome: Future) -> None:
            self._record_draft(page, platform, platform_id, adapter, content, outcome)

        try:
            future = self._submit(platform, lambda: self._attempt(adapter, draft_config, content))
        except AdapterBusyError as exc:
            return PublishResult.failure(platform, exc.message, skipped=True)
        try:
            self._wait(platform, future, settle)
        except AdapterTimeoutError as exc:
            return PublishResult.failure(platform, exc.message)
        return self._record_draft(page, platform, platform_id, adapter, content, future)

    def history(self, page_id: str) -> list[DistributionJob]:
        return self.store.history(page_id)

    def close(self, wait: bool = True) -> None:
        """Shut down the attempt workers.

        With *wait*, attempts still running after a timeout are allowed to
        finish and record their outcome first.
        """
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, name: str) -> tuple[PublisherAdapter, PlatformConfig] | PublishResult:
        try:
            adapter = self.registry.get(name)
            config = self.registry.config_for(name)
        except PlatformRegistryError as exc:
            log.error("Platform not registered", extra={"extra_fields": {"platform": name}})
            return PublishResult.failure(name, exc.message)
        if not config.enabled:
            log.info("Platform disabled, skipping", extra={"extra_fields": {"platform": name}})
            return PublishResult.failure(name, f"platform {name} is disabled", skipped=True)
        return adapter, config

    def _publish_one(self, page: SourcePage, name: str, snapshot: str) -> PublishResult:
        resolved = self._resolve(name)
        if isinstance(resolved, PublishResult):
            return resolved
        adapter, config = resolved
        if self._busy(name):
            log.warning(
                "Earlier attempt still running, skipping",
                extra={"extra_fields": {"platform": name, "page_id": page.notion_id}},
            )
            return PublishResult.failure(name, f"an earlier {name} attempt is still running", skipped=True)

        try:
            platform_id = self.store.get_or_create_platform(name, name, config.enabled).id
            claim = self.store.claim(page.notion_id, platform_id, snapshot)
        except JobStoreError as exc:
            log.error(
                "Job store unavailable",
                extra={"extra_fields": {"platform": name, "page_id": page.notion_id, "error": exc.message}},
            )
            return PublishResult.failure(name, exc.message)

        job = claim.job
        if not claim.created:
            if job.status is JobStatus.COMPLETED:
                log.info(
                    "Platform already completed, skipping",
                    extra={"extra_fields": {"platform": name, "page_id": page.notion_id, "job_id": job.id}},
                )
                return PublishResult(
                    success=True,
                    platform=name,
                    publish_id=f"existing-job-{job.id}",
                    url=job.url,
                    published_at=job.published_at,
                    skipped=True,
                    job_id=job.id,
                )
            log.warning(
                "Another attempt holds this job",
                extra={"extra_fields": {"platform": name, "page_id": page.notion_id, "job_id": job.id}},
            )
            return PublishResult.failure(
                name, f"job {job.id} is already in progress", skipped=True, job_id=job.id,
            )

        content = page.to_publish_content()
        t0 = time.monotonic()

        def settle(outcome: Future) -> None:
            self._record_outcome(page, name, job.id, adapter, content, outcome, t0)

        try:
            future = self._submit(name, lambda: self._attempt(adapter, config, content))
        except AdapterBusyError as exc:
            self._finish(job.id, JobStatus.FAILED, error=exc.message)
            return PublishResult.failure(name, exc.message, job_id=job.id)
        try:
            self._wait(name, future, settle)
        except AdapterTimeoutError as exc:
            # The worker records the terminal status when it returns.
            log.warning(
                "Attempt timed out, job left in progress",
                extra={"extra_fields": {"platform": name, "page_id": page.notion_id, "job_id": job.id}},
            )
            self._metrics.increment("crosspost.jobs_total", tags={"platform": name, "status": "timed_out"})
            return PublishResult.failure(name, exc.message, job_id=job.id)
        return self._record_outcome(page, name, job.id, adapter, content, future, t0)

    def _record_outcome(
        self,
        page: SourcePage,
        name: str,
        job_id: int,
        adapter: PublisherAdapter,
        content: PublishContent,
        outcome: Future,
        t0: float,
    ) -> PublishResult:
        exc = outcome.exception()
        if exc is not None:
            error = self._as_error(name, exc)
            self._finish(job_id, JobStatus.FAILED, error=error.message)
            self._metrics.increment("crosspost.jobs_total", tags={"platform": name, "status": "failed"})
            log.error(
                "Publish failed",
                extra={
                    "extra_fields": {
                        "platform": name,
                        "page_id": page.notion_id,
                        "job_id": job_id,
                        "error_code": error.code,
                        "error": error.message,
                    }
                },
            )
            return PublishResult.failure(name, error.message, job_id=job_id)

        result: PublishResult = outcome.result()
        published_at = result.published_at or datetime.now(timezone.utc)
        self._finish(
            job_id,
            JobStatus.COMPLETED,
            publish_id=result.publish_id,
            url=result.url,
            published_at=published_at,
        )
        result.job_id = job_id
        result.published_at = published_at
        self._metrics.increment("crosspost.jobs_total", tags={"platform": name, "status": "completed"})
        self._metrics.timing(
            "crosspost.publish_duration_ms", (time.monotonic() - t0) * 1000, tags={"platform": name},
        )
        log.info(
            "Publishing completed",
            extra={
                "extra_fields": {
                    "platform": name,
                    "page_id": page.notion_id,
                    "job_id": job_id,
                    "publish_id": result.publish_id,
                    "url": result.url,
                }
            },
        )
        self._cleanup(adapter, content)
        return result

    def _record_draft(
        self,
        page: SourcePage,
        name: str,
        platform_id: int,
        adapter: PublisherAdapter,
        content: PublishContent,
        outcome: Future,
    ) -> PublishResult:
        exc = outcome.exception()
        if exc is not None:
            error = self._as_error(name, exc)
            job = self.store.record(
                page.notion_id, platform_id, JobStatus.FAILED,
                content=content_snapshot(page), error=error.message,
            )
            return PublishResult.failure(name, error.message, job_id=job.id)

        result: PublishResult = outcome.result()
        job = self.store.record(
            page.notion_id,
            platform_id,
            JobStatus.DRAFT,
            content=content_snapshot(page),
            publish_id=result.publish_id,
            url=result.url,
        )
        result.job_id = job.id
        self._cleanup(adapter, content)
        return result

    @staticmethod
    def _attempt(
        adapter: PublisherAdapter,
        config: PlatformConfig,
        content: PublishContent,
    ) -> PublishResult:
        try:
            adapter.initialize(config)
        except Exception as exc:
            raise wrap_stage_error(adapter.name, "initialize", exc) from exc
        return adapter.publish_direct(content, config)

    # ------------------------------------------------------------------
    # Attempt workers
    # ------------------------------------------------------------------

    def _busy(self, name: str) -> bool:
        with self._lock:
            future = self._inflight.get(name)
        return future is not None and not future.done()

    def _submit(self, name: str, func: Callable[[], T]) -> Future:
        """Start *func* on the platform's single worker thread.

        Adapters are shared across attempts, so a platform never runs two
        attempts at once.

        Raises
        ------
        AdapterBusyError
            If an earlier attempt on *name* has not returned yet.
        """
        with self._lock:
            running = self._inflight.get(name)
            if running is not None and not running.done():
                raise AdapterBusyError(
                    message=f"an earlier {name} attempt is still running",
                    context={"platform": name},
                )
            executor = self._executors.get(name)
            if executor is None:
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"publish-{name}")
                self._executors[name] = executor
            # Run in a copy of the caller's context so bound log fields follow.
            future = executor.submit(contextvars.copy_context().run, func)
            self._inflight[name] = future
        return future

    def _wait(self, name: str, future: Future, on_late: Callable[[Future], object]) -> None:
        """Wait up to the attempt timeout for *future*.

        On timeout the worker cannot be interrupted; *on_late* is attached
        to record its outcome once it returns.
        """
        timeout = self.config.attempt_timeout_seconds
        try:
            future.exception(timeout=timeout)
        except FutureTimeoutError as exc:
            future.add_done_callback(self._guarded(name, on_late))
            raise AdapterTimeoutError(
                message=f"[{name}:attempt] attempt exceeded {timeout:g}s",
                context={"platform": name, "stage": "attempt", "timeout_seconds": timeout},
                cause=exc,
            ) from exc

    @staticmethod
    def _guarded(name: str, callback: Callable[[Future], object]) -> Callable[[Future], None]:
        def run(future: Future) -> None:
            try:
                callback(future)
            except Exception as exc:
                log.error(
                    "Could not record late attempt outcome",
                    extra={"extra_fields": {"platform": name, "error": str(exc)}},
                )

        return run

    @staticmethod
    def _as_error(name: str, exc: Exception) -> CrosspostError:
        if isinstance(exc, CrosspostError):
            return exc
        return wrap_stage_error(name, "attempt", exc)

    def _finish(self, job_id: int, status: JobStatus, **fields: object) -> None:
        try:
            self.store.finish(job_id, status, **fields)  # type: ignore[arg-type]
        except JobStoreError as exc:
            log.error(
                "Could not record job outcome",
                extra={"extra_fields": {"job_id": job_id, "status": status.value, "error": exc.message}},
            )

    @staticmethod
    def _cleanup(adapter: PublisherAdapter, content: PublishContent) -> None:
        try:
            adapter.cleanup(content)
        except Exception as exc:
            log.warning(
                "Cleanup failed",
                extra={"extra_fields": {"platform": adapter.name, "error": str(exc)}},
            )
