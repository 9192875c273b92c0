"""Block tree to inline-styled HTML for the messaging platform editor.

The platform strips stylesheets and ``class``-based styling from article
bodies, so every element carries its own ``style`` attribute.  Code blocks
use the editor's snippet markup: a line-index gutter with one ``<li>`` per
source line next to a ``<pre>`` holding one ``<code>`` per line.
"""

from __future__ import annotations

import html
from collections.abc import Callable

from crosspost.models import Block

from .base import BULLETED_ITEM, BlockConverter
from .rich_text import render_html

_FONT = (
    "font-family:Optima-Regular, Optima, PingFangSC-light, PingFangTC-light, "
    "'PingFang SC', Cambria, Cochin, Georgia, Times, 'Times New Roman', serif"
)
_BASE = f"text-align:left;color:#3f3f3f;line-height:1.5;{_FONT}"

PARAGRAPH_STYLE = (
    f"text-align:left;color:#3f3f3f;line-height:1.6;{_FONT};"
    "font-size:16px;margin:10px 10px"
)
H2_STYLE = (
    f"text-align:center;color:#3f3f3f;line-height:1.5;{_FONT};"
    "font-size:140%;margin:80px 10px 40px 10px;font-weight:normal"
)
H3_STYLE = f"{_BASE};font-size:120%;margin:40px 10px 20px 10px;font-weight:bold"
LIST_STYLE = f"{_BASE};font-size:16px;margin:20px 10px;margin-left:0;padding-left:20px"
LIST_ITEM_STYLE = f"{_BASE};font-size:16px;text-indent:-20px;display:block;margin:10px 10px"
QUOTE_STYLE = (
    f"text-align:left;color:rgb(91, 91, 91);line-height:1.5;{_FONT};"
    "font-size:16px;margin:20px 10px;padding:1px 0 1px 10px;"
    "background:rgba(158, 158, 158, 0.1);border-left:3px solid rgb(158,158,158)"
)
DIVIDER_STYLE = "margin: 40px 10px; border: none; border-top: 1px solid #ddd;"
IMAGE_STYLE = f"{_BASE};font-size:16px;margin:20px auto;border-radius:4px;display:block;width:100%"
NESTED_STYLE = "padding-left:20px"
COLUMNS_STYLE = "display:flex;gap:10px"
COLUMN_STYLE = "flex:1;min-width:0"

INLINE_STYLES: dict[str, str] = {
    "bold": f"{_BASE};color:#ff3502;font-size:16px",
    "italic": "color: #3498db; font-style: italic;",
    "code": (
        "text-align:left;color:#ff3502;line-height:1.5;"
        "font-family:Operator Mono, Consolas, Monaco, Menlo, monospace;"
        "font-size:90%;background:#f8f5ec;padding:3px 5px;border-radius:2px"
    ),
    "link": "color: #3498db; text-decoration: none; border-bottom: 1px dotted #3498db;",
}

DEFAULT_CODE_LANGUAGE = "bash"


class HtmlConverter(BlockConverter[str]):
    """Render a :class:`Block` tree to inline-styled HTML."""

    format_name = "html"

    def _renderer_for(self, block_type: str) -> Callable[..., str] | None:
        return _BLOCK_RENDERERS.get(block_type)

    def _join(self, rendered: list[tuple[Block, str]]) -> str:
        return "".join(fragment for _, fragment in rendered)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _text(self, block: Block) -> str:
        return render_html(block.rich_text, INLINE_STYLES)

    def _nested(self, block: Block, depth: int) -> str:
        if not block.children:
            return ""
        children = self._render_children(block, depth + 1)
        if not children:
            return ""
        return f'<section style="{NESTED_STYLE}">{children}</section>'

    # ------------------------------------------------------------------
    # Block renderers
    # ------------------------------------------------------------------

    def _render_paragraph(self, block: Block, depth: int) -> str:
        text = self._text(block)
        head = f'<p style="{PARAGRAPH_STYLE}">{text}</p>' if text else ""
        return head + self._nested(block, depth)

    def _render_h2(self, block: Block, depth: int) -> str:
        return f'<h2 style="{H2_STYLE}">{self._text(block)}</h2>'

    def _render_h3(self, block: Block, depth: int) -> str:
        return f'<h3 style="{H3_STYLE}">{self._text(block)}</h3>'

    def _render_list_item(self, block: Block, depth: int, marker: str) -> str:
        return (
            f'<p style="{LIST_STYLE}"><span style="{LIST_ITEM_STYLE}">'
            f'<span style="margin-right: 10px;">{marker}</span>{self._text(block)}'
            f"</span></p>{self._nested(block, depth)}"
        )

    def _render_bulleted_item(self, block: Block, depth: int) -> str:
        return self._render_list_item(block, depth, "•")

    def _render_numbered_item(self, block: Block, depth: int, number: int) -> str:
        return self._render_list_item(block, depth, f"{number}.")

    def _render_quote(self, block: Block, depth: int) -> str:
        inner = f'<p style="{PARAGRAPH_STYLE}">{self._text(block)}</p>'
        inner += self._nested(block, depth)
        return f'<blockquote style="{QUOTE_STYLE}">{inner}</blockquote>'

    def _render_code(self, block: Block, depth: int) -> str:
        code = "".join(span.text for span in block.rich_text)
        language = html.escape(block.language or DEFAULT_CODE_LANGUAGE, quote=True)
        lines = code.split("\n")
        gutter = "<li></li>" * len(lines)
        body = "".join(
            f'<code><span class="code-snippet_outer">{html.escape(line, quote=False) or " "}</span></code>'
            for line in lines
        )
        return (
            '<section class="code-snippet__fix code-snippet__js">'
            f'<ul class="code-snippet__line-index code-snippet__js">{gutter}</ul>'
            f'<pre class="code-snippet__js" data-lang="{language}">{body}</pre>'
            "</section>"
        )

    def _render_divider(self, block: Block, depth: int) -> str:
        return f'<hr style="{DIVIDER_STYLE}">'

    def _render_image(self, block: Block, depth: int) -> str:
        self._record_image(block.image_url)
        src = block.image_url.replace('"', "%22")
        alt = html.escape(block.caption_text, quote=True)
        return (
            f'<p style="{PARAGRAPH_STYLE}">'
            f'<img style="{IMAGE_STYLE}" src="{src}" alt="{alt}"></p>'
        )

    def _render_column_list(self, block: Block, depth: int) -> str:
        return f'<section style="{COLUMNS_STYLE}">{self._render_children(block, depth)}</section>'

    def _render_column(self, block: Block, depth: int) -> str:
        return f'<section style="{COLUMN_STYLE}">{self._render_children(block, depth)}</section>'


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

_BLOCK_RENDERERS: dict[str, Callable[..., str]] = {
    "paragraph": HtmlConverter._render_paragraph,
    "heading_1": HtmlConverter._render_h2,
    "heading_2": HtmlConverter._render_h2,
    "heading_3": HtmlConverter._render_h3,
    BULLETED_ITEM: HtmlConverter._render_bulleted_item,
    "quote": HtmlConverter._render_quote,
    "code": HtmlConverter._render_code,
    "divider": HtmlConverter._render_divider,
    "image": HtmlConverter._render_image,
    "column_list": HtmlConverter._render_column_list,
    "column": HtmlConverter._render_column,
}
