"""Resource processing: download, re-host and rewrite embedded images.

:class:`ResourceProcessor` runs the full pipeline over a converted body:

1. Extract candidate image references and classify them.
2. Deduplicate by exact URL and by normalised URL (query stripped).
3. For each unique asset: download once to a deterministic local path,
   hand it to the platform's upload callable, and record the
   original-URL and normalised-URL to destination-URL mappings.
4. Rewrite the body.  With a :class:`LayoutRenderer`, adjacent images are
   grouped: the first reference of a group becomes the multi-column embed
   and the rest of the group is blanked.  Without one, each reference
   simply has its URL replaced.

A failure on one image is logged and leaves its original URL in place;
it never aborts the attempt.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from crosspost.errors import CrosspostError, ResourceError
from crosspost.models import PublishContent, Resource, ResourceKind
from crosspost.observability import NoopMetricsHook, get_logger
from crosspost.rest.transport import HttpTransport
from crosspost.utils.hashing import stable_filename

from .extract import ImageOccurrence, find_occurrences, is_image_url, normalize_url
from .layout import GROUP_WINDOW, ImageGroup, LayoutRenderer, group_by_proximity

log = get_logger("crosspost.resources")

Uploader = Callable[[Resource], str]


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class ImageDownloader:
    """Downloads images to deterministic paths under a target directory.

    Parameters
    ----------
    transport:
        HTTP transport used for the GET requests.
    timeout_seconds:
        Per-download timeout.
    """

    def __init__(self, transport: HttpTransport, timeout_seconds: float = 30.0) -> None:
        self._transport = transport
        self._timeout = timeout_seconds

    def fetch(self, url: str, dest_dir: Path) -> Path:
        """Download *url* into *dest_dir*, skipping files already present.

        Raises
        ------
        ResourceError
            If the request fails or the file cannot be written.
        """
        path = Path(dest_dir) / stable_filename(url)
        if path.exists() and path.stat().st_size > 0:
            log.debug(
                "Image already downloaded",
                extra={"extra_fields": {"url": normalize_url(url), "path": str(path)}},
            )
            return path

        try:
            data = self._transport.download(url, timeout=self._timeout)
        except CrosspostError as exc:
            raise ResourceError(
                message=f"Failed to download image: {exc.message}",
                context={"url": normalize_url(url)},
                cause=exc,
            ) from exc
        if not data:
            raise ResourceError(
                message="Downloaded image is empty",
                context={"url": normalize_url(url)},
            )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ResourceError(
                message=f"Failed to store image: {exc}",
                context={"url": normalize_url(url), "path": str(path)},
                cause=exc,
            ) from exc
        return path


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class ProcessingReport:
    """Outcome of one :meth:`ResourceProcessor.process` call."""

    resources: list[Resource] = field(default_factory=list)
    url_map: dict[str, str] = field(default_factory=dict)
    groups: list[ImageGroup] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def uploaded(self) -> int:
        return sum(1 for r in self.resources if r.destination_url)


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class ResourceProcessor:
    """Extract, re-host and rewrite the images of one document body.

    Parameters
    ----------
    downloader:
        Fetches image bytes to local disk.
    upload:
        Platform capability: takes a downloaded :class:`Resource` and
        returns the destination URL.
    patterns:
        Names of the extraction patterns to apply (see
        :data:`crosspost.resources.extract.PATTERNS`).
    layout:
        Optional renderer for grouped multi-column embeds.
    skip:
        Optional predicate for URLs that are already hosted on the
        destination and must be left alone.
    window:
        Maximum gap in characters between images of one group.
    metrics:
        Metrics hook; defaults to a no-op.
    """

    def __init__(
        self,
        downloader: ImageDownloader,
        upload: Uploader,
        patterns: tuple[str, ...],
        *,
        layout: LayoutRenderer | None = None,
        skip: Callable[[str], bool] | None = None,
        window: int = GROUP_WINDOW,
        metrics: object | None = None,
    ) -> None:
        self._downloader = downloader
        self._upload = upload
        self._patterns = patterns
        self._layout = layout
        self._skip = skip
        self._window = window
        self._metrics = metrics if metrics is not None else NoopMetricsHook()

    def extract(self, body: str) -> list[ImageOccurrence]:
        """Return the candidate image references in *body*."""
        return [
            occ
            for occ in find_occurrences(body, self._patterns)
            if is_image_url(occ.url) and not (self._skip and self._skip(occ.url))
        ]

    def process(self, content: PublishContent, dest_dir: Path) -> ProcessingReport:
        """Re-host every image of *content* and rewrite ``content.body``.

        ``content.resources`` and the ``successful_uploads`` /
        ``failed_uploads`` metadata entries are updated in place.
        """
        report = ProcessingReport()
        occurrences = self.extract(content.body)
        if not occurrences:
            content.resources = []
            return report

        variants: dict[str, list[str]] = {}
        for occ in occurrences:
            urls = variants.setdefault(occ.normalized_url, [])
            if occ.url not in urls:
                urls.append(occ.url)

        for index, (normalized, urls) in enumerate(variants.items(), start=1):
            resource = Resource(
                id=f"img_{index}",
                kind=ResourceKind.IMAGE,
                url=urls[0],
                metadata={"original_url": urls[0], "normalized_url": normalized},
            )
            report.resources.append(resource)
            self._process_one(resource, urls, dest_dir, report)

        first_seen: dict[str, ImageOccurrence] = {}
        for occ in occurrences:
            first_seen.setdefault(occ.normalized_url, occ)
        report.groups = group_by_proximity(list(first_seen.values()), self._window)

        content.body = self._rewrite(content.body, occurrences, report)
        content.resources = report.resources
        content.metadata["successful_uploads"] = str(report.uploaded)
        content.metadata["failed_uploads"] = str(len(report.failures))

        log.info(
            "Processed resources",
            extra={
                "extra_fields": {
                    "content_id": content.id,
                    "images": len(report.resources),
                    "uploaded": report.uploaded,
                    "failed": len(report.failures),
                    "groups": len(report.groups),
                }
            },
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_one(
        self,
        resource: Resource,
        urls: list[str],
        dest_dir: Path,
        report: ProcessingReport,
    ) -> None:
        t0 = time.monotonic()
        try:
            resource.local_path = str(self._downloader.fetch(resource.url, dest_dir))
            destination = self._upload(resource)
        except (CrosspostError, OSError) as exc:
            report.failures[resource.url] = str(exc)
            self._metrics.increment("crosspost.images_failed_total")
            log.warning(
                "Image processing failed, keeping original URL",
                extra={
                    "extra_fields": {
                        "resource_id": resource.id,
                        "url": resource.metadata["normalized_url"],
                        "error": str(exc),
                    }
                },
            )
            return

        resource.destination_url = destination
        resource.metadata["destination_url"] = destination
        for url in urls:
            report.url_map[url] = destination
        report.url_map[resource.metadata["normalized_url"]] = destination
        self._metrics.increment("crosspost.images_processed_total")
        self._metrics.timing("crosspost.image_duration_ms", (time.monotonic() - t0) * 1000)

    def _resolve(self, url: str, url_map: dict[str, str]) -> str:
        return url_map.get(url) or url_map.get(normalize_url(url)) or url

    def _rewrite(
        self,
        body: str,
        occurrences: list[ImageOccurrence],
        report: ProcessingReport,
    ) -> str:
        replacements: dict[int, str] = {}

        if self._layout is None:
            for occ in occurrences:
                target = self._resolve(occ.url, report.url_map)
                replacements[occ.start] = occ.markup.replace(occ.url, target)
        else:
            grouped: set[int] = set()
            for group in report.groups:
                urls = [self._resolve(u, report.url_map) for u in group.urls]
                alts = [occ.alt for occ in group.occurrences]
                head, *rest = group.occurrences
                replacements[head.start] = self._layout.render(urls, alts, group.layout)
                grouped.add(head.start)
                for occ in rest:
                    replacements[occ.start] = ""
                    grouped.add(occ.start)
            # Later references to an already-embedded asset are dropped.
            for occ in occurrences:
                if occ.start not in grouped:
                    replacements[occ.start] = ""

        by_start = {occ.start: occ for occ in occurrences}
        out = body
        for start in sorted(replacements, reverse=True):
            occ = by_start[start]
            out = out[:occ.start] + replacements[start] + out[occ.end:]
        return out
