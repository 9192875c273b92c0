"""Format converters: block tree to Markdown, styled HTML and JSON document."""

from __future__ import annotations

from .base import BlockConverter, is_skipped
from .blocks import parse_block, parse_blocks, parse_rich_text, resolve_image_url
from .document import DocumentConverter
from .html import HtmlConverter
from .markdown import MarkdownConverter

__all__ = [
    "BlockConverter",
    "DocumentConverter",
    "HtmlConverter",
    "MarkdownConverter",
    "is_skipped",
    "parse_block",
    "parse_blocks",
    "parse_rich_text",
    "resolve_image_url",
]
