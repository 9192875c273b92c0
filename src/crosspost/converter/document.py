"""Block tree to a structured JSON document for the newsletter editor.

The editor stores posts as a ProseMirror-style tree::

    {"type": "doc", "content": [
        {"type": "heading", "attrs": {"level": 2}, "content": [...]},
        {"type": "bullet_list", "content": [{"type": "list_item", ...}]},
        ...
    ]}

Consecutive list items of the same kind are grouped into a single
``bullet_list`` / ``ordered_list`` node.  The converter's ``content`` is
the JSON serialisation of that tree.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from crosspost.models import Block

from .base import BULLETED_ITEM, NUMBERED_ITEM, BlockConverter
from .rich_text import render_doc_text

Node = dict[str, Any]

_LIST_NODE_TYPES: dict[str, str] = {
    BULLETED_ITEM: "bullet_list",
    NUMBERED_ITEM: "ordered_list",
}


def _paragraph(content: list[Node]) -> Node:
    node: Node = {"type": "paragraph"}
    if content:
        node["content"] = content
    return node


def image_node(src: str, alt: str = "") -> Node:
    """Return the editor's captioned-image node for *src*."""
    return {
        "type": "captionedImage",
        "content": [
            {
                "type": "image2",
                "attrs": {
                    "src": src,
                    "srcNoWatermark": None,
                    "fullscreen": None,
                    "imageSize": None,
                    "height": None,
                    "width": None,
                    "resizeWidth": None,
                    "bytes": None,
                    "alt": alt,
                    "title": None,
                    "type": "image/png",
                    "href": None,
                    "belowTheFold": False,
                    "topImage": False,
                    "internalRedirect": "",
                    "isProcessing": False,
                    "align": None,
                    "offset": False,
                },
            }
        ],
    }


class DocumentConverter(BlockConverter["Node | list[Node]"]):
    """Render a :class:`Block` tree to the editor's JSON document."""

    format_name = "document"

    def __init__(self) -> None:
        super().__init__()
        self._list_numbers: dict[int, int] = {}

    def _renderer_for(self, block_type: str) -> Callable[..., Node | list[Node]] | None:
        return _BLOCK_RENDERERS.get(block_type)

    # ------------------------------------------------------------------
    # Joining
    # ------------------------------------------------------------------

    def _join(self, rendered: list[tuple[Block, Node | list[Node]]]) -> list[Node]:
        nodes: list[Node] = []
        current_list: Node | None = None
        current_kind = ""

        for block, fragment in rendered:
            if block.type in _LIST_NODE_TYPES:
                if current_list is None or current_kind != block.type:
                    current_kind = block.type
                    current_list = {"type": _LIST_NODE_TYPES[block.type], "content": []}
                    if block.type == NUMBERED_ITEM:
                        start = self._list_numbers.get(id(fragment), 1)
                        current_list["attrs"] = {"start": start, "order": start}
                    nodes.append(current_list)
                current_list["content"].append(fragment)
                continue

            current_list = None
            current_kind = ""
            if isinstance(fragment, list):
                nodes.extend(fragment)
            else:
                nodes.append(fragment)

        return nodes

    def _finish(self, rendered: list[tuple[Block, Node | list[Node]]]) -> str:
        document = {"type": "doc", "content": self._join(rendered)}
        self._list_numbers = {}
        return json.dumps(document, ensure_ascii=False)

    # ------------------------------------------------------------------
    # Block renderers
    # ------------------------------------------------------------------

    def _render_paragraph(self, block: Block, depth: int) -> Node | list[Node]:
        head = [_paragraph(render_doc_text(block.rich_text))] if block.rich_text else []
        if block.children:
            return head + self._render_children(block, depth + 1)
        return head[0] if head else []

    def _render_heading(self, block: Block, level: int) -> Node:
        return {
            "type": "heading",
            "attrs": {"level": level},
            "content": render_doc_text(block.rich_text),
        }

    def _render_heading_1(self, block: Block, depth: int) -> Node:
        return self._render_heading(block, 1)

    def _render_heading_2(self, block: Block, depth: int) -> Node:
        return self._render_heading(block, 2)

    def _render_heading_3(self, block: Block, depth: int) -> Node:
        return self._render_heading(block, 3)

    def _render_list_item(self, block: Block, depth: int) -> Node:
        content: list[Node] = [_paragraph(render_doc_text(block.rich_text))]
        if block.children:
            content.extend(self._render_children(block, depth + 1))
        return {"type": "list_item", "content": content}

    def _render_bulleted_item(self, block: Block, depth: int) -> Node:
        return self._render_list_item(block, depth)

    def _render_numbered_item(self, block: Block, depth: int, number: int) -> Node:
        node = self._render_list_item(block, depth)
        self._list_numbers[id(node)] = number
        return node

    def _render_quote(self, block: Block, depth: int) -> Node:
        content: list[Node] = [_paragraph(render_doc_text(block.rich_text))]
        if block.children:
            content.extend(self._render_children(block, depth + 1))
        return {"type": "blockquote", "content": content}

    def _render_code(self, block: Block, depth: int) -> Node:
        code = "".join(span.text for span in block.rich_text)
        return {
            "type": "code_block",
            "attrs": {"language": block.language},
            "content": [{"type": "text", "text": code}],
        }

    def _render_divider(self, block: Block, depth: int) -> Node:
        return {"type": "horizontal_rule"}

    def _render_image(self, block: Block, depth: int) -> Node:
        self._record_image(block.image_url)
        return image_node(block.image_url, block.caption_text)

    def _render_container(self, block: Block, depth: int) -> list[Node]:
        return self._render_children(block, depth)


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

_BLOCK_RENDERERS: dict[str, Callable[..., Node | list[Node]]] = {
    "paragraph": DocumentConverter._render_paragraph,
    "heading_1": DocumentConverter._render_heading_1,
    "heading_2": DocumentConverter._render_heading_2,
    "heading_3": DocumentConverter._render_heading_3,
    BULLETED_ITEM: DocumentConverter._render_bulleted_item,
    "quote": DocumentConverter._render_quote,
    "code": DocumentConverter._render_code,
    "divider": DocumentConverter._render_divider,
    "image": DocumentConverter._render_image,
    "column_list": DocumentConverter._render_container,
    "column": DocumentConverter._render_container,
}
