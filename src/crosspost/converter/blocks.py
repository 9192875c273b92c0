"""Parse provider block objects into the :class:`Block` tree.

The content provider returns blocks either with their descendants nested
under a ``children`` key, or as a depth-first flattened sequence in which
each block names its parent through ``parent.block_id``.  Both shapes are
turned into an explicit tree of :class:`Block` nodes so container blocks
(columns, toggles, list items) keep their children.
"""

from __future__ import annotations

from typing import Any

from crosspost.models import Block, RichTextSpan
from crosspost.utils.text import clean_text


def parse_rich_text(segments: list[dict] | None) -> list[RichTextSpan]:
    """Convert a provider ``rich_text`` array into :class:`RichTextSpan` items.

    Segments whose text is empty are dropped.
    """
    spans: list[RichTextSpan] = []
    for seg in segments or []:
        if not isinstance(seg, dict):
            continue
        text_obj = seg.get("text") or {}
        text = seg.get("plain_text") or text_obj.get("content", "")
        if seg.get("type") == "equation" and not text:
            text = seg.get("equation", {}).get("expression", "")
        if not text:
            continue
        link = text_obj.get("link") or {}
        href = seg.get("href") or link.get("url")
        annotations = seg.get("annotations") or {}
        spans.append(
            RichTextSpan(
                text=clean_text(text),
                bold=bool(annotations.get("bold")),
                italic=bool(annotations.get("italic")),
                code=bool(annotations.get("code")),
                strikethrough=bool(annotations.get("strikethrough")),
                underline=bool(annotations.get("underline")),
                href=href or None,
            )
        )
    return spans


def resolve_image_url(payload: dict[str, Any]) -> str:
    """Return the image URL from a hosted-file or external payload.

    The hosted file wins; the external reference is used only when no
    hosted URL is present.
    """
    hosted = payload.get("file") or {}
    if isinstance(hosted, dict) and hosted.get("url"):
        return str(hosted["url"])
    external = payload.get("external") or {}
    if isinstance(external, dict) and external.get("url"):
        return str(external["url"])
    return ""


def parse_block(raw: dict[str, Any]) -> Block:
    """Parse one provider block, including any nested ``children``."""
    block_type = raw.get("type") or ""
    block_id = raw.get("id", "")
    payload = raw.get(block_type) if block_type else None
    if not isinstance(payload, dict):
        return Block(type=block_type, id=block_id, recognized=False)

    block = Block(
        type=block_type,
        id=block_id,
        rich_text=parse_rich_text(payload.get("rich_text") or payload.get("text")),
    )
    if block_type == "code":
        block.language = payload.get("language") or ""
    elif block_type == "image":
        block.image_url = resolve_image_url(payload)
        block.caption = parse_rich_text(payload.get("caption"))

    nested = raw.get("children") or payload.get("children") or []
    block.children = parse_blocks(nested)
    return block


def parse_blocks(raw_blocks: list[dict[str, Any]]) -> list[Block]:
    """Parse a block sequence into a list of root :class:`Block` nodes.

    Blocks whose ``parent.block_id`` names an earlier block in the same
    sequence are attached to it as children, preserving order.  Every
    other block is a root.
    """
    roots: list[Block] = []
    by_id: dict[str, Block] = {}

    for raw in raw_blocks:
        if not isinstance(raw, dict):
            continue
        node = parse_block(raw)
        parent = raw.get("parent") or {}
        parent_id = parent.get("block_id") if isinstance(parent, dict) else None

        if parent_id and parent_id in by_id:
            by_id[parent_id].children.append(node)
        else:
            roots.append(node)
        if node.id:
            by_id[node.id] = node

    return roots
