"""Content-provider client."""

from __future__ import annotations

from .notion import NotionSource, build_tree, create_notion_transport, page_from_api

__all__ = [
    "NotionSource",
    "build_tree",
    "create_notion_transport",
    "page_from_api",
]
