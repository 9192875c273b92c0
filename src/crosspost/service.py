"""Publish cycle and periodic scheduler."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from crosspost.config import CrosspostConfig
from crosspost.errors import CrosspostError, SourceError, TransformError
from crosspost.manager import PublishManager
from crosspost.models import PublishResult, SourcePage
from crosspost.observability import NoopMetricsHook, get_logger, log_context
from crosspost.source import NotionSource

log = get_logger("crosspost.service")


@dataclass
class CycleReport:
    """Summary of one publish cycle.

    A page counts as ``published`` when at least one platform did real
    work and none failed, ``failed`` when any platform failed, and
    ``skipped`` otherwise (nothing to do, or the page could not be read).
    """

    seen: int = 0
    published: int = 0
    failed: int = 0
    skipped: int = 0
    expired_jobs: int = 0
    results: dict[str, dict[str, PublishResult]] = field(default_factory=dict)

    def add(self, page_id: str, results: dict[str, PublishResult]) -> None:
        self.results[page_id] = results
        if any(not r.success and not r.skipped for r in results.values()):
            self.failed += 1
        elif any(r.success and not r.skipped for r in results.values()):
            self.published += 1
        else:
            self.skipped += 1


class PublishService:
    """Runs one query-then-publish cycle over the source database.

    Parameters
    ----------
    source:
        Reads pending pages and their block trees.
    manager:
        Dispatches each page to its platforms.
    config:
        Supplies the database id, ready status, page limit and stale-job
        window.
    """

    def __init__(
        self,
        source: NotionSource,
        manager: PublishManager,
        config: CrosspostConfig | None = None,
    ) -> None:
        self.source = source
        self.manager = manager
        self.config = config or manager.config
        self._metrics = self.config.metrics if self.config.metrics is not None else NoopMetricsHook()

    def run_cycle(self) -> CycleReport:
        """Publish every ready page that still has unfinished platforms.

        Raises
        ------
        SourceError
            If the database query itself fails; the cycle is abandoned.
        """
        t0 = time.monotonic()
        report = CycleReport()
        report.expired_jobs = self.manager.store.expire_stale(self.config.stale_job_seconds)

        # Only pending pages count towards the limit.
        pending: list[SourcePage] = []
        for page in self.source.query_pages(
            self.config.notion_database_id, status=self.config.publish_status,
        ):
            report.seen += 1
            if not self.manager.needs_publishing(page):
                report.skipped += 1
                continue
            pending.append(page)
            if len(pending) >= self.config.pending_page_limit:
                break
        self._metrics.gauge("crosspost.pending_pages", len(pending))
        log.info(
            "Cycle started",
            extra={"extra_fields": {"pages": report.seen, "pending": len(pending)}},
        )

        for page in pending:
            with log_context(page_id=page.notion_id):
                self._publish_page(page, report)

        elapsed_ms = (time.monotonic() - t0) * 1000
        self._metrics.timing("crosspost.cycle_duration_ms", elapsed_ms)
        log.info(
            "Cycle completed",
            extra={
                "extra_fields": {
                    "seen": report.seen,
                    "published": report.published,
                    "failed": report.failed,
                    "skipped": report.skipped,
                    "expired_jobs": report.expired_jobs,
                    "duration_ms": round(elapsed_ms, 1),
                }
            },
        )
        return report

    def _publish_page(self, page: SourcePage, report: CycleReport) -> None:
        try:
            page.blocks = self.source.fetch_blocks(page.notion_id)
            results = self.manager.publish_to_all(page)
        except (SourceError, TransformError) as exc:
            log.error(
                "Page skipped for this cycle",
                extra={
                    "extra_fields": {
                        "page_id": page.notion_id,
                        "error_code": exc.code,
                        "error": exc.message,
                    }
                },
            )
            report.skipped += 1
            return
        report.add(page.notion_id, results)


class Scheduler:
    """Runs :meth:`PublishService.run_cycle` every *interval_seconds*.

    The first cycle starts immediately.  :meth:`stop` prevents new cycles;
    a cycle already running is allowed to finish.
    """

    def __init__(self, service: PublishService, interval_seconds: float | None = None) -> None:
        self.service = service
        self.interval_seconds = interval_seconds or service.config.sync_interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="crosspost-scheduler", daemon=True)
        self._thread.start()
        log.info(
            "Scheduler started",
            extra={"extra_fields": {"interval_seconds": self.interval_seconds}},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling and wait up to *timeout* for the running cycle."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        log.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._run_once()
            if self._stop.wait(self.interval_seconds):
                break

    def _run_once(self) -> None:
        try:
            self.service.run_cycle()
        except CrosspostError as exc:
            log.error(
                "Publish cycle failed",
                extra={"extra_fields": {"error_code": exc.code, "error": exc.message}},
            )
        except Exception:
            log.exception("Publish cycle crashed")
