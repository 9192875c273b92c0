"""Tests for the messaging-platform adapter against a mocked REST API."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import image_block, text_block

from crosspost.adapters import WechatAdapter
from crosspost.adapters.wechat import links_to_references
from crosspost.config import PlatformConfig
from crosspost.errors import AuthError, PublishError
from crosspost.models import Block, PublishContent, RichTextSpan

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeWechatApi:
    """httpx.MockTransport handler emulating the official-account API."""

    def __init__(self):
        self.calls: list[str] = []
        self.requests: dict[str, httpx.Request] = {}
        self.overrides: dict[str, dict] = {}
        self.token_counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host != "api.weixin.qq.com":
            return httpx.Response(200, content=b"\x89PNG")
        path = request.url.path.removeprefix("/cgi-bin")
        self.calls.append(path)
        self.requests[path] = request
        if path in self.overrides:
            return httpx.Response(200, json=self.overrides.pop(path))
        if path == "/token":
            self.token_counter += 1
            return httpx.Response(200, json={"access_token": f"TOKEN{self.token_counter}", "expires_in": 7200})
        if path == "/draft/add":
            return httpx.Response(200, json={"media_id": "MEDIA"})
        if path == "/freepublish/submit":
            return httpx.Response(200, json={"errcode": 0, "errmsg": "ok", "publish_id": 42, "msg_id": 7})
        if path == "/freepublish/get":
            return httpx.Response(200, json={
                "publish_status": 0,
                "article_detail": {"item": [{"article_url": "https://mp.weixin.qq.com/s/x"}]},
            })
        if path == "/media/uploadimg":
            return httpx.Response(200, json={"url": "https://mmbiz.qpic.cn/hosted.png"})
        if path == "/material/add_material":
            return httpx.Response(200, json={"media_id": "THUMB"})
        return httpx.Response(404, json={"errmsg": "unknown"})

    def count(self, path: str) -> int:
        return self.calls.count(path)


def wechat_settings(**extra) -> PlatformConfig:
    return PlatformConfig(
        platform_name="wechat-official",
        settings={"app_id": "wx123", "app_secret": "secret-abcdef", **extra},
    )


def make_content(blocks=None, **overrides) -> PublishContent:
    defaults = dict(
        id="page-1",
        title="你好 World",
        summary="s" * 200,
        blocks=blocks if blocks is not None else [text_block("paragraph", "你好")],
    )
    defaults.update(overrides)
    return PublishContent(**defaults)


@pytest.fixture
def api():
    return FakeWechatApi()


@pytest.fixture
def adapter(config, api):
    wechat = WechatAdapter(config, http_transport=httpx.MockTransport(api))
    wechat.initialize(wechat_settings())
    yield wechat
    wechat.close()


# ---------------------------------------------------------------------------
# links_to_references
# ---------------------------------------------------------------------------

class TestLinksToReferences:
    def test_numbered_by_first_appearance(self):
        html = (
            '<p><a href="https://a.test">A</a> <a href="https://b.test">B</a> '
            '<a href="https://a.test">again</a></p>'
        )
        out = links_to_references(html)
        assert "<a " not in out
        assert out.count("<sup>[1]</sup>") == 2
        assert out.count("<sup>[2]</sup>") == 1
        refs = out.split("References</h3>", 1)[1]
        assert refs.index("https://a.test") < refs.index("https://b.test")
        assert refs.count("<p ") == 2

    def test_no_links_unchanged(self):
        assert links_to_references("<p>plain</p>") == "<p>plain</p>"


# ---------------------------------------------------------------------------
# Client behaviour
# ---------------------------------------------------------------------------

class TestClient:
    def test_initialize_fetches_token(self, adapter, api):
        assert api.calls == ["/token"]
        params = api.requests["/token"].url.params
        assert params["appid"] == "wx123"
        assert params["grant_type"] == "client_credential"

    def test_token_cached(self, adapter, api):
        adapter.client.add_draft({"title": "t"})
        adapter.client.add_draft({"title": "t"})
        assert api.count("/token") == 1
        assert api.requests["/draft/add"].url.params["access_token"] == "TOKEN1"

    def test_reinitialize_reuses_cached_token(self, adapter, api):
        client = adapter.client
        adapter.initialize(wechat_settings())
        assert adapter.client is client
        assert api.count("/token") == 1

    def test_changed_credentials_fetch_new_token(self, adapter, api):
        adapter.initialize(wechat_settings(app_secret="rotated-secret"))
        assert api.count("/token") == 2
        assert api.requests["/token"].url.params["secret"] == "rotated-secret"

    def test_reinitialize_after_close_fetches_token(self, adapter, api):
        adapter.close()
        adapter.initialize(wechat_settings())
        assert api.count("/token") == 2

    def test_credential_error_invalidates_token(self, adapter, api):
        api.overrides["/draft/add"] = {"errcode": 40001, "errmsg": "invalid credential"}
        with pytest.raises(AuthError):
            adapter.client.add_draft({"title": "t"})
        adapter.client.add_draft({"title": "t"})
        assert api.count("/token") == 2
        assert api.requests["/draft/add"].url.params["access_token"] == "TOKEN2"

    def test_other_errcode_is_publish_error(self, adapter, api):
        api.overrides["/freepublish/submit"] = {"errcode": 48001, "errmsg": "api unauthorized"}
        with pytest.raises(PublishError, match="48001"):
            adapter.client.submit_publish("MEDIA")

    def test_json_sent_unescaped(self, adapter, api):
        adapter.client.add_draft({"title": "你好"})
        body = api.requests["/draft/add"].content.decode("utf-8")
        assert "你好" in body
        assert json.loads(body) == {"articles": [{"title": "你好"}]}


# ---------------------------------------------------------------------------
# Adapter stages
# ---------------------------------------------------------------------------

class TestAdapter:
    def test_missing_credentials(self, config):
        with pytest.raises(Exception, match="app_secret"):
            WechatAdapter(config).initialize(PlatformConfig(platform_name="wechat-official",
                                                            settings={"app_id": "x"}))

    def test_draft_only_by_default(self, adapter, api):
        result = adapter.publish_direct(make_content())
        assert result.success
        assert result.publish_id == "MEDIA"
        assert result.metadata["publish_status"] == "draft"
        assert "/freepublish/submit" not in api.calls
        article = json.loads(api.requests["/draft/add"].content)["articles"][0]
        assert article["title"] == "你好 World"
        assert len(article["digest"]) == 120
        assert article["content"].startswith("<p style=")
        assert article["show_cover_pic"] == 0

    def test_auto_publish_submits(self, adapter, api):
        result = adapter.publish_direct(make_content(), wechat_settings(auto_publish="true"))
        assert result.publish_id == "42"
        assert result.metadata["media_id"] == "MEDIA"
        assert result.metadata["msg_id"] == "7"
        assert result.metadata["publish_status"] == "submitted"

    def test_images_uploaded_and_thumb_created(self, adapter, api):
        content = make_content([text_block("paragraph", "intro"), image_block("https://h.test/a.png")])
        adapter.publish_direct(content)
        assert api.count("/media/uploadimg") == 1
        assert api.count("/material/add_material") == 1
        assert api.requests["/material/add_material"].url.params["type"] == "thumb"
        assert b'name="media"' in api.requests["/media/uploadimg"].content
        article = json.loads(api.requests["/draft/add"].content)["articles"][0]
        assert "https://mmbiz.qpic.cn/hosted.png" in article["content"]
        assert "https://h.test/a.png" not in article["content"]
        assert article["thumb_media_id"] == "THUMB"
        assert article["show_cover_pic"] == 1

    def test_cleanup_removes_downloaded_images(self, adapter, api):
        content = make_content([image_block("https://h.test/a.png")])
        adapter.publish_direct(content)
        attempt_dir = adapter.attempt_dir(content)
        assert any(attempt_dir.iterdir())
        adapter.cleanup(content)
        assert not attempt_dir.exists()
        adapter.cleanup(content)

    def test_hosted_images_not_reuploaded(self, adapter, api):
        content = make_content([image_block("https://mmbiz.qpic.cn/already.png")])
        adapter.publish_direct(content)
        assert api.count("/media/uploadimg") == 0

    def test_default_thumb_skips_material_upload(self, config, api):
        wechat = WechatAdapter(config, http_transport=httpx.MockTransport(api))
        wechat.initialize(wechat_settings(default_thumb_media_id="FIXED"))
        wechat.publish_direct(make_content([image_block("https://h.test/a.png")]))
        assert api.count("/material/add_material") == 0
        article = json.loads(api.requests["/draft/add"].content)["articles"][0]
        assert article["thumb_media_id"] == "FIXED"

    def test_links_become_references(self, adapter, api):
        block = Block(type="paragraph", rich_text=[RichTextSpan(text="site", href="https://a.test")])
        adapter.publish_direct(make_content([block]))
        article = json.loads(api.requests["/draft/add"].content)["articles"][0]
        assert "References" in article["content"]
        assert "<sup>[1]</sup>" in article["content"]

    def test_empty_title_rejected(self, adapter):
        with pytest.raises(PublishError, match="title"):
            adapter.save_to_draft(make_content(title="", body="<p>x</p>"))

    def test_publish_status(self, adapter):
        result = adapter.get_publish_status("42")
        assert result.success
        assert result.url == "https://mp.weixin.qq.com/s/x"
        assert result.metadata["publish_status"] == "published"

    def test_failed_publish_status(self, adapter, api):
        api.overrides["/freepublish/get"] = {"publish_status": 2}
        assert not adapter.get_publish_status("42").success
