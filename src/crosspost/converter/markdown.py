"""Block tree to lightweight markup (Markdown) for the static-site blog.

Usage::

    from crosspost.converter.markdown import MarkdownConverter

    result = MarkdownConverter().convert(blocks)
    result.content      # Markdown body
    result.image_urls   # images referenced by the body

Images are emitted as plain ``![caption](url)`` references; the resource
processor later replaces them with the site's figure markup once the
files are stored in the repository.
"""

from __future__ import annotations

from collections.abc import Callable

from crosspost.models import Block

from .base import BULLETED_ITEM, LIST_ITEM_TYPES, BlockConverter
from .rich_text import render_markdown


class MarkdownConverter(BlockConverter[str]):
    """Render a :class:`Block` tree to Markdown.

    Sibling blocks are separated by a blank line, except consecutive list
    items, which stay on adjacent lines so they form one list.  Children of
    list items are indented by two spaces per level.
    """

    format_name = "markdown"

    def _renderer_for(self, block_type: str) -> Callable[..., str] | None:
        return _BLOCK_RENDERERS.get(block_type)

    # ------------------------------------------------------------------
    # Joining
    # ------------------------------------------------------------------

    def _join(self, rendered: list[tuple[Block, str]]) -> str:
        out: list[str] = []
        previous: Block | None = None
        for block, text in rendered:
            if not text:
                continue
            if previous is not None:
                same_list = (
                    previous.type in LIST_ITEM_TYPES
                    and block.type in LIST_ITEM_TYPES
                )
                out.append("\n" if same_list else "\n\n")
            out.append(text)
            previous = block
        return "".join(out)

    def _finish(self, rendered: list[tuple[Block, str]]) -> str:
        body = self._join(rendered)
        return f"{body}\n" if body else ""

    # ------------------------------------------------------------------
    # Block renderers
    # ------------------------------------------------------------------

    def _with_children(self, text: str, block: Block, depth: int) -> str:
        if not block.children:
            return text
        children = self._render_children(block, depth)
        if not children:
            return text
        return f"{text}\n\n{children}" if text else children

    def _render_paragraph(self, block: Block, depth: int) -> str:
        return self._with_children(render_markdown(block.rich_text), block, depth)

    def _render_heading(self, block: Block, level: int) -> str:
        return f"{'#' * level} {render_markdown(block.rich_text)}"

    def _render_heading_1(self, block: Block, depth: int) -> str:
        return self._render_heading(block, 1)

    def _render_heading_2(self, block: Block, depth: int) -> str:
        return self._render_heading(block, 2)

    def _render_heading_3(self, block: Block, depth: int) -> str:
        return self._render_heading(block, 3)

    def _render_list_item(self, block: Block, depth: int, marker: str) -> str:
        indent = "  " * depth
        text = f"{indent}{marker} {render_markdown(block.rich_text)}"
        if block.children:
            children = self._render_children(block, depth + 1)
            if children:
                text = f"{text}\n{children}"
        return text

    def _render_bulleted_item(self, block: Block, depth: int) -> str:
        return self._render_list_item(block, depth, "-")

    def _render_numbered_item(self, block: Block, depth: int, number: int) -> str:
        return self._render_list_item(block, depth, f"{number}.")

    def _render_quote(self, block: Block, depth: int) -> str:
        text = render_markdown(block.rich_text)
        quoted = "\n".join(f"> {line}" if line else ">" for line in text.split("\n"))
        return self._with_children(quoted, block, depth)

    def _render_code(self, block: Block, depth: int) -> str:
        code = "".join(span.text for span in block.rich_text)
        return f"```{block.language}\n{code}\n```"

    def _render_divider(self, block: Block, depth: int) -> str:
        return "---"

    def _render_image(self, block: Block, depth: int) -> str:
        self._record_image(block.image_url)
        return f"![{block.caption_text}]({block.image_url})"

    def _render_container(self, block: Block, depth: int) -> str:
        return self._render_children(block, depth)


# ---------------------------------------------------------------------------
# Dispatch table -- maps block type strings to unbound renderer methods.
# ---------------------------------------------------------------------------

_BLOCK_RENDERERS: dict[str, Callable[..., str]] = {
    "paragraph": MarkdownConverter._render_paragraph,
    "heading_1": MarkdownConverter._render_heading_1,
    "heading_2": MarkdownConverter._render_heading_2,
    "heading_3": MarkdownConverter._render_heading_3,
    BULLETED_ITEM: MarkdownConverter._render_bulleted_item,
    "quote": MarkdownConverter._render_quote,
    "code": MarkdownConverter._render_code,
    "divider": MarkdownConverter._render_divider,
    "image": MarkdownConverter._render_image,
    "column_list": MarkdownConverter._render_container,
    "column": MarkdownConverter._render_container,
}
