"""Tests for the block tree to JSON document converter."""

from __future__ import annotations

import json

from conftest import image_block, text_block

from crosspost.converter import DocumentConverter
from crosspost.models import Block, RichTextSpan


def convert_doc(blocks):
    result = DocumentConverter().convert(blocks)
    return json.loads(result.content), result


class TestDocument:
    def test_root_is_doc(self):
        doc, _ = convert_doc([])
        assert doc == {"type": "doc", "content": []}

    def test_paragraph(self):
        doc, _ = convert_doc([text_block("paragraph", "hi")])
        assert doc["content"] == [{"type": "paragraph", "content": [{"type": "text", "text": "hi"}]}]

    def test_heading_levels(self):
        doc, _ = convert_doc([text_block("heading_1", "a"), text_block("heading_3", "c")])
        assert [node["attrs"]["level"] for node in doc["content"]] == [1, 3]

    def test_code_block(self):
        block = Block(type="code", language="go", rich_text=[RichTextSpan(text="x")])
        doc, _ = convert_doc([block])
        assert doc["content"][0] == {
            "type": "code_block",
            "attrs": {"language": "go"},
            "content": [{"type": "text", "text": "x"}],
        }

    def test_divider_is_rule(self):
        doc, _ = convert_doc([Block(type="divider")])
        assert doc["content"] == [{"type": "horizontal_rule"}]

    def test_non_ascii_kept_verbatim(self):
        _, result = convert_doc([text_block("paragraph", "你好")])
        assert "你好" in result.content


class TestLists:
    def test_consecutive_items_grouped(self):
        doc, _ = convert_doc([text_block("bulleted_list_item", t) for t in ("a", "b")])
        assert len(doc["content"]) == 1
        assert doc["content"][0]["type"] == "bullet_list"
        assert len(doc["content"][0]["content"]) == 2

    def test_ordered_list_start_resets(self):
        doc, _ = convert_doc([
            text_block("numbered_list_item", "a"),
            text_block("numbered_list_item", "b"),
            text_block("paragraph", "break"),
            text_block("numbered_list_item", "c"),
        ])
        lists = [node for node in doc["content"] if node["type"] == "ordered_list"]
        assert [len(lst["content"]) for lst in lists] == [2, 1]
        assert [lst["attrs"]["start"] for lst in lists] == [1, 1]

    def test_kind_change_starts_new_list(self):
        doc, _ = convert_doc([
            text_block("bulleted_list_item", "a"),
            text_block("numbered_list_item", "b"),
        ])
        assert [node["type"] for node in doc["content"]] == ["bullet_list", "ordered_list"]

    def test_nested_children_inside_list_item(self):
        child = text_block("bulleted_list_item", "child")
        doc, _ = convert_doc([text_block("bulleted_list_item", "parent", children=[child])])
        item = doc["content"][0]["content"][0]
        assert item["content"][1]["type"] == "bullet_list"


class TestImages:
    def test_captioned_image_node(self):
        doc, result = convert_doc([image_block("https://h/a.png", "cap")])
        node = doc["content"][0]
        assert node["type"] == "captionedImage"
        assert node["content"][0]["attrs"]["src"] == "https://h/a.png"
        assert node["content"][0]["attrs"]["alt"] == "cap"
        assert result.image_urls == ["https://h/a.png"]

    def test_columns_flattened(self):
        columns = Block(type="column_list", children=[
            Block(type="column", children=[text_block("paragraph", "l")]),
            Block(type="column", children=[text_block("paragraph", "r")]),
        ])
        doc, _ = convert_doc([columns])
        assert [node["type"] for node in doc["content"]] == ["paragraph", "paragraph"]
