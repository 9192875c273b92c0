"""Tests for the content-provider client and its property mapping."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
from conftest import make_config

from crosspost.errors import SourceError
from crosspost.source import NotionSource, build_tree, create_notion_transport, page_from_api

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def rich(text: str) -> list[dict]:
    return [{"type": "text", "plain_text": text, "text": {"content": text}, "annotations": {}}]


def raw_page(**props) -> dict:
    properties = {
        "Name": {"type": "title", "title": rich("你好")},
        "EN Title": {"type": "rich_text", "rich_text": rich("Hello")},
        "Summary": {"type": "rich_text", "rich_text": rich("Part one. ") + rich("Part two.")},
        "Tags": {"type": "multi_select", "multi_select": [{"name": "python"}, {"name": "web"}]},
        "Status": {"type": "status", "status": {"name": "Done"}},
        "Post date": {"type": "date", "date": {"start": "2024-03-05T09:30:00.000Z"}},
        "Owner": {"type": "people", "people": [{"name": "Ann"}, {"name": "Bo"}]},
        "Platform": {"type": "multi_select", "multi_select": [{"name": "Blog"}, {"name": "WeChat"}]},
        "Content Type": {"type": "multi_select", "multi_select": [{"name": "Post"}]},
    }
    properties.update(props)
    return {
        "id": "page-1",
        "last_edited_time": "2024-03-06T00:00:00.000Z",
        "properties": properties,
    }


def paragraph(block_id: str, text: str, has_children: bool = False) -> dict:
    return {
        "id": block_id,
        "type": "paragraph",
        "has_children": has_children,
        "paragraph": {"rich_text": rich(text)},
    }


def listing(results: list[dict]) -> dict:
    return {"results": results, "has_more": False}


class FakeNotionApi:
    def __init__(self, children: dict[str, list[dict]] | None = None, fail_status: int = 0):
        self.children = children or {}
        self.fail_status = fail_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "nope"})
        path = request.url.path.removeprefix("/v1")
        if path.startswith("/databases/"):
            return httpx.Response(200, json=listing([raw_page(), {**raw_page(), "id": "page-2"}]))
        if path.startswith("/pages/"):
            return httpx.Response(200, json=raw_page())
        if path.startswith("/blocks/"):
            block_id = path.split("/")[2]
            return httpx.Response(200, json=listing(self.children.get(block_id, [])))
        return httpx.Response(404, json={"message": "unknown"})


def make_source(api: FakeNotionApi, **kwargs) -> NotionSource:
    transport = create_notion_transport(make_config(retry_max_attempts=1), httpx.MockTransport(api))
    return NotionSource(transport, **kwargs)


# ---------------------------------------------------------------------------
# page_from_api
# ---------------------------------------------------------------------------

class TestPageFromApi:
    def test_full_mapping(self):
        page = page_from_api(raw_page())
        assert page.notion_id == "page-1"
        assert page.title == "你好"
        assert page.en_title == "Hello"
        assert page.summary == "Part one. Part two."
        assert page.tags == ["python", "web"]
        assert page.status == "Done"
        assert page.post_date == datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)
        assert page.owner == "Ann, Bo"
        assert page.platforms == ["Blog", "WeChat"]
        assert page.content_type == "Post"
        assert page.last_edited_time.day == 6

    def test_defaults_for_empty_page(self):
        page = page_from_api({"id": "x", "properties": {}})
        assert page.title == "Untitled"
        assert page.status == "draft"
        assert page.post_date is None
        assert page.platforms == []

    def test_property_names_case_insensitive(self):
        raw = raw_page()
        raw["properties"]["status"] = raw["properties"].pop("Status")
        assert page_from_api(raw).status == "Done"

    def test_date_only_value(self):
        page = page_from_api(raw_page(**{"Post date": {"type": "date", "date": {"start": "2024-03-05"}}}))
        assert page.post_date == datetime(2024, 3, 5)

    def test_tags_fall_back_to_other_multi_select(self):
        raw = raw_page()
        del raw["properties"]["Tags"]
        raw["properties"]["Topics"] = {"type": "multi_select", "multi_select": [{"name": "ml"}]}
        assert page_from_api(raw).tags == ["ml"]


# ---------------------------------------------------------------------------
# NotionSource
# ---------------------------------------------------------------------------

class TestQueryPages:
    def test_status_filter_sent(self):
        api = FakeNotionApi()
        pages = list(make_source(api).query_pages("db-1", status="Done"))
        assert [p.notion_id for p in pages] == ["page-1", "page-2"]
        body = json.loads(api.requests[0].content)
        assert body["filter"] == {"property": "Status", "status": {"equals": "Done"}}
        assert api.requests[0].url.path == "/v1/databases/db-1/query"
        assert api.requests[0].headers["Authorization"] == "Bearer test-token-1234"
        assert api.requests[0].headers["Notion-Version"] == "2022-06-28"

    def test_limit(self):
        assert len(list(make_source(FakeNotionApi()).query_pages("db-1", limit=1))) == 1

    def test_failure_becomes_source_error(self):
        with pytest.raises(SourceError, match="Database query failed"):
            list(make_source(FakeNotionApi(fail_status=401)).query_pages("db-1"))


class TestFetchBlocks:
    def test_children_fetched_recursively(self):
        api = FakeNotionApi({
            "page-1": [paragraph("a", "top", has_children=True), paragraph("b", "second")],
            "a": [paragraph("a1", "child", has_children=True)],
            "a1": [paragraph("a2", "grandchild")],
        })
        blocks = make_source(api).fetch_blocks("page-1")
        assert [b.id for b in blocks] == ["a", "b"]
        assert blocks[0].children[0].id == "a1"
        assert blocks[0].children[0].children[0].rich_text[0].text == "grandchild"

    def test_max_depth_stops_recursion(self):
        api = FakeNotionApi({
            "page-1": [paragraph("a", "top", has_children=True)],
            "a": [paragraph("a1", "child", has_children=True)],
            "a1": [paragraph("a2", "grandchild")],
        })
        blocks = make_source(api, max_depth=1).fetch_blocks("page-1")
        assert blocks[0].children[0].children == []
        fetched = [r.url.path for r in api.requests]
        assert "/v1/blocks/a1/children" not in fetched

    def test_fetch_page_includes_blocks(self):
        api = FakeNotionApi({"page-1": [paragraph("a", "hello")]})
        page = make_source(api).fetch_page("page-1")
        assert page.title == "你好"
        assert page.blocks[0].rich_text[0].text == "hello"

    def test_failure_becomes_source_error(self):
        with pytest.raises(SourceError, match="Block fetch failed"):
            make_source(FakeNotionApi(fail_status=404)).fetch_blocks("page-1")


class TestBuildTree:
    def test_parent_pointers_restore_nesting(self):
        flat = [
            paragraph("a", "top"),
            {**paragraph("a1", "child"), "parent": {"type": "block_id", "block_id": "a"}},
            {**paragraph("a2", "grandchild"), "parent": {"type": "block_id", "block_id": "a1"}},
            {**paragraph("b", "root"), "parent": {"type": "page_id", "page_id": "page-1"}},
        ]
        roots = build_tree(flat)
        assert [b.id for b in roots] == ["a", "b"]
        assert roots[0].children[0].children[0].id == "a2"

    def test_unknown_parent_becomes_root(self):
        flat = [{**paragraph("x", "orphan"), "parent": {"type": "block_id", "block_id": "missing"}}]
        assert [b.id for b in build_tree(flat)] == ["x"]
