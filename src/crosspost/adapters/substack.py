"""Newsletter-platform adapter (Substack).

Posts are stored as a JSON document (``draft_body``).  The platform ties
uploaded images to a post, so the draft is created first, its images are
uploaded with its id, and the rewritten body is written back.  There is
no API to publish; :meth:`SubstackAdapter.publish` reports that a manual
step is required.
"""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.converter import DocumentConverter
from crosspost.errors import CrosspostError, PrerequisiteMissingError, PublishError
from crosspost.models import PublishContent, PublishResult, Resource
from crosspost.observability import get_logger
from crosspost.resources import ImageDownloader, ResourceProcessor
from crosspost.rest import HttpTransport

from .base import Platform, PublisherAdapter

log = get_logger("crosspost.adapters.substack")

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36"
)


def session_headers(domain: str, cookie: str) -> dict[str, str]:
    """Browser-session headers the editor API expects."""
    return {
        "Cookie": cookie,
        "Accept": "*/*",
        "Origin": f"https://{domain}",
        "Referer": f"https://{domain}/publish/post",
        "User-Agent": _USER_AGENT,
    }


def data_url(path: Path) -> str:
    mime = mimetypes.guess_type(path.name)[0] or "image/png"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class SubstackClient:
    """Client for the publication's editor API.

    Parameters
    ----------
    transport:
        HTTP transport rooted at ``https://<domain>`` carrying the session
        headers.
    """

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    def create_draft(self, title: str, subtitle: str, body: str) -> dict[str, Any]:
        return self._transport.request(
            "POST",
            "/api/v1/drafts",
            json={
                "draft_title": title,
                "draft_subtitle": subtitle,
                "draft_podcast_url": "",
                "draft_podcast_duration": None,
                "draft_body": body,
                "section_chosen": False,
                "draft_section_id": None,
                "draft_bylines": [],
                "audience": "everyone",
            },
        )

    def update_draft(self, draft_id: str, body: str, last_updated_at: str = "") -> dict[str, Any]:
        payload: dict[str, Any] = {"draft_body": body}
        if last_updated_at:
            payload["last_updated_at"] = last_updated_at
        return self._transport.request("PUT", f"/api/v1/drafts/{draft_id}", json=payload)

    def get_draft(self, draft_id: str) -> dict[str, Any]:
        return self._transport.request("GET", f"/api/v1/drafts/{draft_id}")

    def upload_image(self, path: Path, post_id: int) -> str:
        """Upload a local image for *post_id* and return its hosted URL."""
        data = self._transport.request(
            "POST",
            "/api/v1/image",
            json={"image": data_url(path), "postId": post_id},
        )
        url = data.get("url", "")
        if not url:
            raise PublishError(
                message="Image upload response did not contain a url",
                context={"platform": Platform.SUBSTACK.value, "post_id": post_id},
            )
        return url


class SubstackAdapter(PublisherAdapter):
    """Creates newsletter drafts.

    Settings: ``domain`` and ``cookie`` (required), ``auto_publish``
    (optional; publishing always needs a manual step).
    """

    platform = Platform.SUBSTACK
    required_keys = ("domain", "cookie")
    draft_before_resources = True

    def __init__(
        self,
        engine_config: CrosspostConfig | None = None,
        *,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(engine_config)
        self._http_transport = http_transport
        self._api: HttpTransport | None = None
        self._downloads: HttpTransport | None = None
        self.client: SubstackClient | None = None
        self._converter = DocumentConverter()

    def _initialize(self, config: PlatformConfig) -> None:
        self.close()
        domain = config.get("domain").removeprefix("https://").rstrip("/")
        self._api = HttpTransport(
            self.engine_config,
            base_url=f"https://{domain}",
            headers=session_headers(domain, config.get("cookie")),
            name="substack",
            transport=self._http_transport,
        )
        self._downloads = HttpTransport(
            self.engine_config, name="substack-images", transport=self._http_transport,
        )
        self.client = SubstackClient(self._api)

    def close(self) -> None:
        for transport in (self._api, self._downloads):
            if transport is not None:
                transport.close()
        self._api = self._downloads = None

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def transform_content(self, content: PublishContent) -> None:
        result = self._converter.convert(content.blocks)
        content.body = result.content

    def process_resources(self, content: PublishContent) -> None:
        """Upload images to the existing draft and store the rewritten body.

        Raises
        ------
        PrerequisiteMissingError
            If no draft has been created for *content* yet.
        """
        draft_id = content.metadata.get("draft_id", "")
        if not draft_id:
            raise PrerequisiteMissingError(
                message="draft_id not found in metadata; a draft is needed for image uploads",
                context={"platform": self.name, "missing": "draft_id"},
            )
        try:
            post_id = int(draft_id)
        except ValueError as exc:
            raise PrerequisiteMissingError(
                message=f"invalid draft_id {draft_id!r}",
                context={"platform": self.name, "missing": "draft_id"},
                cause=exc,
            ) from exc

        client = self._require_client()

        def upload(resource: Resource) -> str:
            return client.upload_image(Path(resource.local_path), post_id)

        processor = ResourceProcessor(
            ImageDownloader(self._downloads, self.engine_config.download_timeout_seconds),
            upload,
            ("document",),
            metrics=self.engine_config.metrics,
        )
        report = processor.process(content, self.attempt_dir(content))
        if not report.uploaded:
            return

        try:
            current = client.get_draft(draft_id)
            client.update_draft(draft_id, content.body, current.get("draft_updated_at", ""))
        except CrosspostError as exc:
            content.metadata["body_update_error"] = exc.message
            log.warning(
                "Draft body update failed, draft keeps original image URLs",
                extra={"extra_fields": {"draft_id": draft_id, "error": exc.message}},
            )

    def save_to_draft(self, content: PublishContent) -> PublishResult:
        data = self._require_client().create_draft(content.title, content.summary, content.body)
        draft_id = str(data.get("id", ""))
        if not draft_id:
            raise PublishError(
                message="Draft response did not contain an id",
                context={"platform": self.name},
            )
        content.metadata["draft_id"] = draft_id
        log.info(
            "Draft saved",
            extra={"extra_fields": {"content_id": content.id, "draft_id": draft_id}},
        )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=draft_id,
            metadata={
                "draft_id": draft_id,
                "uuid": str(data.get("uuid", "")),
                "draft_status": "saved",
            },
        )

    def publish(self, draft_id: str, content: PublishContent) -> PublishResult:
        log.info(
            "Draft ready, manual publishing required",
            extra={"extra_fields": {"content_id": content.id, "draft_id": draft_id}},
        )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=draft_id,
            published_at=self._now(),
            metadata={
                "draft_id": draft_id,
                "publish_status": "manual_required",
                "message": "Draft created. Publish it manually from the editor.",
            },
        )

    def get_publish_status(self, publish_id: str) -> PublishResult:
        data = self._require_client().get_draft(publish_id)
        published = bool(data.get("is_published"))
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=publish_id,
            metadata={"publish_status": "published" if published else "draft"},
        )

    def _require_client(self) -> SubstackClient:
        if self.client is None:
            raise PublishError(
                message=f"{self.name}: adapter is not initialized",
                context={"platform": self.name},
            )
        return self.client
