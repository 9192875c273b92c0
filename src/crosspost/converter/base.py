"""Shared block-tree traversal for every format converter.

A converter walks the :class:`Block` tree once, dispatching each block to
a type-specific renderer through a per-format table.  The traversal owns
the rules that must behave identically across formats:

* **Skipping** -- blocks with no usable payload (unrecognised raw block,
  empty rich text with no children, image without a URL) produce nothing.
* **Numbered lists** -- a running counter increments for each non-empty
  ``numbered_list_item`` and resets when a *rendered* block of another
  type is met.  Skipped blocks leave the counter untouched, so numbering
  survives interleaved blank blocks.
* **Unknown types** -- rendered as a plain paragraph of their rich text.
* **Image URLs** -- every rendered image URL is collected, in document
  order, for the resource processor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from crosspost.models import Block, ConversionResult

Fragment = TypeVar("Fragment")

NUMBERED_ITEM = "numbered_list_item"
BULLETED_ITEM = "bulleted_list_item"
LIST_ITEM_TYPES: frozenset[str] = frozenset({NUMBERED_ITEM, BULLETED_ITEM})

# Layout containers: rendered only through their children.
CONTAINER_TYPES: frozenset[str] = frozenset({"column_list", "column"})

# Block types that never carry rich text.
_STRUCTURAL_TYPES: frozenset[str] = frozenset({"divider", "image"}) | CONTAINER_TYPES


def is_skipped(block: Block) -> bool:
    """Return ``True`` when *block* renders to nothing in every format."""
    if not block.recognized:
        return True
    if block.type == "divider":
        return False
    if block.type == "image":
        return not block.image_url
    if block.type in CONTAINER_TYPES:
        return not block.children
    return not block.plain_text.strip() and not block.children


class BlockConverter(ABC, Generic[Fragment]):
    """Base class for the three format converters.

    Subclasses supply the per-type renderers via :meth:`_renderer_for`, and
    decide how rendered fragments are joined via :meth:`_join` and
    :meth:`_finish`.
    """

    #: Name of the target format, used in error context.
    format_name: str = ""

    def __init__(self) -> None:
        self._image_urls: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert(self, blocks: list[Block]) -> ConversionResult:
        """Render *blocks* and return the content with its image URLs."""
        self._image_urls = []
        rendered = self._render_list(blocks, depth=0)
        return ConversionResult(
            content=self._finish(rendered),
            image_urls=list(self._image_urls),
        )

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _render_list(self, blocks: list[Block], depth: int) -> list[tuple[Block, Fragment]]:
        rendered: list[tuple[Block, Fragment]] = []
        numbered_counter = 0

        for block in blocks:
            if is_skipped(block):
                continue
            if block.type == NUMBERED_ITEM:
                numbered_counter += 1
                fragment = self._render_numbered_item(block, depth, numbered_counter)
            else:
                numbered_counter = 0
                fragment = self._dispatch(block, depth)
            rendered.append((block, fragment))

        return rendered

    def _dispatch(self, block: Block, depth: int) -> Fragment:
        renderer = self._renderer_for(block.type)
        if renderer is not None:
            return renderer(self, block, depth)
        return self._render_paragraph(block, depth)

    def _render_children(self, block: Block, depth: int) -> Any:
        """Render a block's children and join them into one value."""
        return self._join(self._render_list(block.children, depth))

    def _record_image(self, url: str) -> None:
        if url and url not in self._image_urls:
            self._image_urls.append(url)

    # ------------------------------------------------------------------
    # Format hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _renderer_for(self, block_type: str) -> Callable[..., Fragment] | None:
        """Return the renderer registered for *block_type*, if any."""

    @abstractmethod
    def _render_paragraph(self, block: Block, depth: int) -> Fragment:
        """Render a paragraph; also the fallback for unknown types."""

    @abstractmethod
    def _render_numbered_item(self, block: Block, depth: int, number: int) -> Fragment:
        """Render one numbered list item with its position *number*."""

    @abstractmethod
    def _join(self, rendered: list[tuple[Block, Fragment]]) -> Any:
        """Join sibling fragments."""

    def _finish(self, rendered: list[tuple[Block, Fragment]]) -> str:
        return str(self._join(rendered))
