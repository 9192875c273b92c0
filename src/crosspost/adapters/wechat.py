"""Messaging-platform adapter (WeChat official account).

The platform takes articles as inline-styled HTML.  External links are
not clickable inside articles, so they are rewritten into numbered
superscript references with a trailing References section.  Images must
live on the platform's own CDN and are uploaded through ``media/uploadimg``.

Every API answer carries an ``errcode``; a non-zero value is an error
even on HTTP 200.
"""

from __future__ import annotations

import json
import mimetypes
import re
import time
from pathlib import Path
from typing import Any

import httpx

from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.converter import HtmlConverter
from crosspost.converter.html import H3_STYLE
from crosspost.errors import AuthError, CrosspostError, PublishError
from crosspost.models import PublishContent, PublishResult, Resource
from crosspost.observability import get_logger
from crosspost.resources import ImageDownloader, ResourceProcessor
from crosspost.rest import HttpTransport

from .base import Platform, PublisherAdapter

log = get_logger("crosspost.adapters.wechat")

API_BASE_URL = "https://api.weixin.qq.com/cgi-bin"
HOSTED_IMAGE_MARKER = "mmbiz.qpic.cn"

# Credential errors: invalid, malformed or expired access token.
_AUTH_ERRCODES: frozenset[int] = frozenset({40001, 40014, 42001})

# Refresh the cached token this many seconds before it expires.
_TOKEN_REFRESH_MARGIN = 300

_DIGEST_MAX_LENGTH = 120

_LINK_RE = re.compile(r'<a\s+[^>]*href="([^"]+)"[^>]*>(.*?)</a>', re.DOTALL)

_REFERENCE_STYLE = (
    "text-align:left;color:#ff3502;line-height:1.5;"
    "font-family:Optima-Regular, Optima, PingFangSC-light, PingFangTC-light, "
    "'PingFang SC', Cambria, Cochin, Georgia, Times, 'Times New Roman', serif;"
    "font-size:16px"
)
_REFERENCE_ITEM_STYLE = (
    "text-align:left;color:#3f3f3f;line-height:1.5;"
    "font-family:Optima-Regular, Optima, PingFangSC-light, PingFangTC-light, "
    "'PingFang SC', Cambria, Cochin, Georgia, Times, 'Times New Roman', serif;"
    "font-size:14px;margin:10px 10px"
)


def links_to_references(html: str) -> str:
    """Replace links with numbered superscripts and append a References list.

    Numbers follow the first appearance of each distinct URL; repeated
    links to the same URL share a number.
    """
    numbers: dict[str, int] = {}
    labels: dict[str, str] = {}

    def replace(match: re.Match[str]) -> str:
        url, label = match.group(1), match.group(2)
        if url not in numbers:
            numbers[url] = len(numbers) + 1
            labels[url] = label
        return f'<span style="{_REFERENCE_STYLE}">{label}<sup>[{numbers[url]}]</sup></span>'

    body = _LINK_RE.sub(replace, html)
    if not numbers:
        return html

    items = "".join(
        f'<p style="{_REFERENCE_ITEM_STYLE}">'
        f'<code style="font-size: 90%; opacity: 0.6;">[{number}]</code> '
        f"{labels[url]}: <i>{url}</i><br></p>"
        for url, number in numbers.items()
    )
    return f'{body}<h3 style="{H3_STYLE}">References</h3>{items}'


class WechatClient:
    """Thin client for the official-account REST API.

    The access token is fetched lazily and cached until shortly before it
    expires.  A credential error from any call drops the cached token so
    the next call fetches a fresh one.

    Parameters
    ----------
    transport:
        HTTP transport rooted at :data:`API_BASE_URL`.
    app_id, app_secret:
        Application credentials.
    """

    def __init__(self, transport: HttpTransport, app_id: str, app_secret: str) -> None:
        self._transport = transport
        self._app_id = app_id
        self._app_secret = app_secret
        self._token: str = ""
        self._token_expires_at: float = 0.0

    def access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        data = self._transport.request(
            "GET",
            "/token",
            params={
                "grant_type": "client_credential",
                "appid": self._app_id,
                "secret": self._app_secret,
            },
        )
        self._check(data, "token")
        token = data.get("access_token", "")
        if not token:
            raise AuthError(
                message="Token response did not contain an access_token",
                context={"platform": Platform.WECHAT.value},
            )
        expires_in = int(data.get("expires_in", 7200))
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_REFRESH_MARGIN, 0)
        log.info("Access token refreshed", extra={"extra_fields": {"expires_in": expires_in}})
        return token

    @property
    def credentials(self) -> tuple[str, str]:
        return self._app_id, self._app_secret

    def invalidate_token(self) -> None:
        self._token = ""
        self._token_expires_at = 0.0

    # -- API calls ---------------------------------------------------------

    def add_draft(self, article: dict[str, Any]) -> str:
        data = self._post_json("/draft/add", {"articles": [article]})
        return data["media_id"]

    def submit_publish(self, media_id: str) -> dict[str, Any]:
        return self._post_json("/freepublish/submit", {"media_id": media_id})

    def get_publish(self, publish_id: str) -> dict[str, Any]:
        return self._post_json("/freepublish/get", {"publish_id": publish_id})

    def upload_image(self, path: Path) -> str:
        """Upload an in-article image and return its CDN URL."""
        data = self._upload("/media/uploadimg", path)
        return data["url"]

    def upload_thumb(self, path: Path) -> str:
        """Upload a cover thumbnail as permanent material; returns its media id."""
        data = self._upload("/material/add_material", path, params={"type": "thumb"})
        return data["media_id"]

    # -- internals ---------------------------------------------------------

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        # The API rejects \u-escaped text, so UTF-8 is sent as-is.
        data = self._transport.request(
            "POST",
            path,
            params={"access_token": self.access_token()},
            content=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        self._check(data, path)
        return data

    def _upload(
        self,
        path: str,
        file_path: Path,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        mime = mimetypes.guess_type(file_path.name)[0] or "image/png"
        data = self._transport.request(
            "POST",
            path,
            params={"access_token": self.access_token(), **(params or {})},
            files={"media": (file_path.name, file_path.read_bytes(), mime)},
        )
        self._check(data, path)
        return data

    def _check(self, data: dict[str, Any], call: str) -> None:
        errcode = int(data.get("errcode") or 0)
        if errcode == 0:
            return
        errmsg = data.get("errmsg", "")
        context = {"platform": Platform.WECHAT.value, "errcode": errcode, "call": call}
        if errcode in _AUTH_ERRCODES:
            self.invalidate_token()
            raise AuthError(message=f"WeChat credential error {errcode}: {errmsg}", context=context)
        raise PublishError(message=f"WeChat API error {errcode} on {call}: {errmsg}", context=context)


class WechatAdapter(PublisherAdapter):
    """Publishes articles to an official account.

    Settings: ``app_id`` and ``app_secret`` (required);
    ``default_thumb_media_id``, ``source_url``, ``need_open_comment``,
    ``only_fans_can_comment``, ``author`` and ``auto_publish`` (optional).
    """

    platform = Platform.WECHAT
    required_keys = ("app_id", "app_secret")

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
        self.client: WechatClient | None = None
        self._converter = HtmlConverter()

    def _initialize(self, config: PlatformConfig) -> None:
        credentials = (config.get("app_id"), config.get("app_secret"))
        if self.client is not None and self._api is not None and self.client.credentials == credentials:
            # Same app: keep the client and its cached token.
            self.client.access_token()
            return
        self.close()
        self._api = HttpTransport(
            self.engine_config,
            base_url=API_BASE_URL,
            name="wechat",
            transport=self._http_transport,
        )
        self._downloads = HttpTransport(
            self.engine_config, name="wechat-images", transport=self._http_transport,
        )
        self.client = WechatClient(self._api, *credentials)
        self.client.access_token()

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
        content.body = links_to_references(result.content)

    def process_resources(self, content: PublishContent) -> None:
        client = self._require_client()
        dest_dir = self.attempt_dir(content)

        def upload(resource: Resource) -> str:
            return client.upload_image(Path(resource.local_path))

        processor = ResourceProcessor(
            ImageDownloader(self._downloads, self.engine_config.download_timeout_seconds),
            upload,
            ("html",),
            skip=lambda url: HOSTED_IMAGE_MARKER in url,
            metrics=self.engine_config.metrics,
        )
        report = processor.process(content, dest_dir)

        config = self._require_config()
        if config.get("default_thumb_media_id"):
            return
        for resource in report.resources:
            if not resource.local_path:
                continue
            try:
                content.metadata["thumb_media_id"] = client.upload_thumb(Path(resource.local_path))
            except (CrosspostError, OSError) as exc:
                log.warning(
                    "Thumbnail upload failed, continuing without cover",
                    extra={"extra_fields": {"content_id": content.id, "error": str(exc)}},
                )
            break

    def save_to_draft(self, content: PublishContent) -> PublishResult:
        if not content.title:
            raise PublishError(message="article title is required", context={"platform": self.name})
        if not content.body:
            raise PublishError(message="article content is required", context={"platform": self.name})

        config = self._require_config()
        thumb = config.get("default_thumb_media_id") or content.metadata.get("thumb_media_id", "")
        if not thumb:
            log.warning(
                "No thumbnail media id, creating draft without cover",
                extra={"extra_fields": {"content_id": content.id}},
            )
        article = {
            "title": content.title,
            "author": content.author or config.get("author"),
            "digest": content.summary[:_DIGEST_MAX_LENGTH],
            "content": content.body,
            "content_source_url": config.get("source_url"),
            "thumb_media_id": thumb,
            "show_cover_pic": 1 if thumb else 0,
            "need_open_comment": 1 if config.get_bool("need_open_comment") else 0,
            "only_fans_can_comment": 1 if config.get_bool("only_fans_can_comment") else 0,
        }
        media_id = self._require_client().add_draft(article)
        log.info(
            "Draft saved",
            extra={"extra_fields": {"content_id": content.id, "media_id": media_id}},
        )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=media_id,
            metadata={"media_id": media_id, "draft_status": "saved"},
        )

    def publish(self, draft_id: str, content: PublishContent) -> PublishResult:
        data = self._require_client().submit_publish(draft_id)
        publish_id = str(data.get("publish_id", ""))
        log.info(
            "Publish submitted",
            extra={"extra_fields": {"content_id": content.id, "publish_id": publish_id}},
        )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=publish_id,
            published_at=self._now(),
            metadata={
                "media_id": draft_id,
                "msg_id": str(data.get("msg_id", "")),
                "publish_status": "submitted",
            },
        )

    def get_publish_status(self, publish_id: str) -> PublishResult:
        data = self._require_client().get_publish(publish_id)
        status = int(data.get("publish_status", -1))
        items = (data.get("article_detail") or {}).get("item") or []
        url = items[0].get("article_url", "") if items else ""
        if status not in (0, 1):
            return PublishResult.failure(
                self.name,
                f"publish_status {status}",
                publish_id=publish_id,
                metadata={"publish_status": str(status)},
            )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=publish_id,
            url=url,
            metadata={"publish_status": "published" if status == 0 else "publishing"},
        )

    def _require_client(self) -> WechatClient:
        if self.client is None:
            raise PublishError(
                message=f"{self.name}: adapter is not initialized",
                context={"platform": self.name},
            )
        return self.client
