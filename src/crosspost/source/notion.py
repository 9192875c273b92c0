"""Content-provider client: database queries, page properties and block trees.

Pages are queried from one database and their properties mapped onto
:class:`~crosspost.models.SourcePage`.  Block children are fetched
recursively and returned as an explicit tree, so container blocks such as
columns and toggles keep their content attached.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime
from typing import Any

import httpx

from crosspost.config import CrosspostConfig
from crosspost.converter.blocks import parse_blocks
from crosspost.errors import CrosspostError, SourceError
from crosspost.models import Block, SourcePage
from crosspost.observability import get_logger
from crosspost.rest import HttpTransport

log = get_logger("crosspost.source")


def create_notion_transport(
    config: CrosspostConfig,
    transport: httpx.BaseTransport | None = None,
) -> HttpTransport:
    """HTTP transport carrying the provider's auth and version headers."""
    return HttpTransport(
        config,
        base_url=config.notion_base_url,
        headers={
            "Authorization": f"Bearer {config.notion_token}",
            "Notion-Version": config.notion_version,
            "Content-Type": "application/json",
        },
        name="notion",
        transport=transport,
    )


# ---------------------------------------------------------------------------
# Property mapping
# ---------------------------------------------------------------------------

def _property(properties: dict[str, Any], name: str, prop_type: str) -> Any:
    wanted = name.lower()
    for key, prop in properties.items():
        if key.lower() == wanted and isinstance(prop, dict) and prop.get("type") == prop_type:
            return prop.get(prop_type)
    return None


def _names(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [item["name"] for item in items if isinstance(item, dict) and item.get("name")]


def _first_plain_text(items: Any) -> str:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0].get("plain_text") or ""
    return ""


def _all_plain_text(items: Any) -> str:
    if not isinstance(items, list):
        return ""
    return "".join(item.get("plain_text") or "" for item in items if isinstance(item, dict))


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = date.fromisoformat(value[:10])
        except ValueError:
            return None
        return datetime(parsed.year, parsed.month, parsed.day)


def _title(properties: dict[str, Any]) -> str:
    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return _first_plain_text(prop.get("title")) or "Untitled"
    return "Untitled"


def _tags(properties: dict[str, Any]) -> list[str]:
    tags = _property(properties, "Tags", "multi_select")
    if tags is not None:
        return _names(tags)
    # Databases without a Tags column use their first other multi-select.
    for key, prop in properties.items():
        if key in ("Platform", "Content Type", "Content type"):
            continue
        if isinstance(prop, dict) and prop.get("type") == "multi_select":
            return _names(prop.get("multi_select"))
    return []


def page_from_api(raw: dict[str, Any]) -> SourcePage:
    """Map a provider page object onto a :class:`SourcePage` (no blocks)."""
    properties = raw.get("properties") or {}
    status = _property(properties, "Status", "status") or {}
    post_date = _property(properties, "Post date", "date") or {}
    owners = _names(_property(properties, "Owner", "people"))
    content_type = _names(_property(properties, "Content Type", "multi_select"))
    return SourcePage(
        notion_id=raw.get("id", ""),
        title=_title(properties),
        en_title=_first_plain_text(_property(properties, "EN Title", "rich_text")),
        summary=_all_plain_text(_property(properties, "Summary", "rich_text")),
        tags=_tags(properties),
        status=status.get("name") or "draft",
        post_date=_parse_datetime(post_date.get("start")),
        owner=", ".join(owners),
        platforms=_names(_property(properties, "Platform", "multi_select")),
        content_type=", ".join(content_type),
        last_edited_time=_parse_datetime(raw.get("last_edited_time")),
    )


def build_tree(flat_blocks: list[dict[str, Any]]) -> list[Block]:
    """Rebuild the block tree of an already-flattened block sequence.

    Each block is attached to the block named by its ``parent.block_id``
    when that block appears earlier in the sequence; every other block
    becomes a root.
    """
    return parse_blocks(flat_blocks)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class NotionSource:
    """Reads pages and block trees from the content provider.

    Parameters
    ----------
    transport:
        Transport created by :func:`create_notion_transport`.
    max_depth:
        Deepest nesting level fetched for block children.
    """

    def __init__(self, transport: HttpTransport, max_depth: int = 8) -> None:
        self._transport = transport
        self._max_depth = max_depth

    def query_pages(
        self,
        database_id: str,
        status: str | None = None,
        limit: int | None = None,
    ) -> Iterator[SourcePage]:
        """Yield the pages of *database_id*, optionally only those in *status*."""
        body: dict[str, Any] = {}
        if status:
            body["filter"] = {"property": "Status", "status": {"equals": status}}
        count = 0
        try:
            for raw in self._transport.paginate(
                f"/databases/{database_id}/query", method="POST", json=body,
            ):
                yield page_from_api(raw)
                count += 1
                if limit is not None and count >= limit:
                    return
        except CrosspostError as exc:
            raise SourceError(
                message=f"Database query failed: {exc.message}",
                context={"database_id": database_id},
                cause=exc,
            ) from exc

    def fetch_page(self, page_id: str) -> SourcePage:
        """Return the page with its properties and full block tree."""
        try:
            raw = self._transport.request("GET", f"/pages/{page_id}")
        except CrosspostError as exc:
            raise SourceError(
                message=f"Page fetch failed: {exc.message}",
                context={"page_id": page_id},
                cause=exc,
            ) from exc
        page = page_from_api(raw)
        page.blocks = self.fetch_blocks(page_id)
        return page

    def fetch_blocks(self, page_id: str) -> list[Block]:
        """Return the block tree of *page_id*."""
        try:
            raw_blocks = self._children(page_id, depth=0)
        except CrosspostError as exc:
            raise SourceError(
                message=f"Block fetch failed: {exc.message}",
                context={"page_id": page_id},
                cause=exc,
            ) from exc
        log.debug(
            "Fetched blocks",
            extra={"extra_fields": {"page_id": page_id, "roots": len(raw_blocks)}},
        )
        return parse_blocks(raw_blocks)

    def _children(self, block_id: str, depth: int) -> list[dict[str, Any]]:
        children = list(self._transport.paginate(f"/blocks/{block_id}/children", method="GET"))
        for child in children:
            if child.get("has_children") and depth < self._max_depth:
                child["children"] = self._children(child["id"], depth + 1)
        return children
