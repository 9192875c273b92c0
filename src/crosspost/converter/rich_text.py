"""Inline rendering of rich-text spans for every target format.

All three renderers apply annotations in one fixed nesting order, each
wrapping the previous result (innermost first)::

    bold -> italic -> code -> strikethrough -> underline -> link

so a span that is bold, italic and linked always comes out as a link
around an italic run around a bold run.
"""

from __future__ import annotations

import html
from collections.abc import Mapping
from typing import Any

from crosspost.models import RichTextSpan

ANNOTATION_ORDER: tuple[str, ...] = (
    "bold",
    "italic",
    "code",
    "strikethrough",
    "underline",
)

# Lightweight-markup delimiters per annotation.
_MARKDOWN_WRAPPERS: dict[str, tuple[str, str]] = {
    "bold": ("**", "**"),
    "italic": ("*", "*"),
    "code": ("`", "`"),
    "strikethrough": ("~~", "~~"),
    "underline": ("<u>", "</u>"),
}

_HTML_TAGS: dict[str, str] = {
    "bold": "strong",
    "italic": "em",
    "code": "code",
    "strikethrough": "s",
    "underline": "u",
}

# Document-model mark names per annotation.
_DOC_MARKS: dict[str, str] = {
    "bold": "strong",
    "italic": "em",
    "code": "code",
    "strikethrough": "strikethrough",
    "underline": "underline",
}


def plain_text(spans: list[RichTextSpan]) -> str:
    """Concatenate the raw text of *spans*."""
    return "".join(span.text for span in spans)


def render_markdown(spans: list[RichTextSpan]) -> str:
    """Render spans as lightweight markup (``**bold**``, ``[text](url)``...)."""
    parts: list[str] = []
    for span in spans:
        text = span.text
        for name in ANNOTATION_ORDER:
            if getattr(span, name):
                opening, closing = _MARKDOWN_WRAPPERS[name]
                text = f"{opening}{text}{closing}"
        if span.href:
            text = f"[{text}]({span.href})"
        parts.append(text)
    return "".join(parts)


def render_html(
    spans: list[RichTextSpan],
    styles: Mapping[str, str] | None = None,
) -> str:
    """Render spans as HTML with text escaped.

    Parameters
    ----------
    spans:
        The spans to render.
    styles:
        Optional inline ``style`` attribute values keyed by annotation name
        (``"bold"``, ``"italic"``, ``"code"``...) or ``"link"``.
    """
    styles = styles or {}
    parts: list[str] = []
    for span in spans:
        text = html.escape(span.text, quote=False)
        for name in ANNOTATION_ORDER:
            if getattr(span, name):
                tag = _HTML_TAGS[name]
                text = f"<{tag}{_style_attr(styles.get(name))}>{text}</{tag}>"
        if span.href:
            href = html.escape(span.href, quote=True)
            text = f'<a href="{href}"{_style_attr(styles.get("link"))}>{text}</a>'
        parts.append(text)
    return "".join(parts)


def render_doc_text(spans: list[RichTextSpan]) -> list[dict[str, Any]]:
    """Render spans as document-model ``text`` nodes with ``marks``.

    Marks are listed innermost first, following the fixed annotation
    order, with the link mark last.
    """
    nodes: list[dict[str, Any]] = []
    for span in spans:
        node: dict[str, Any] = {"type": "text", "text": span.text}
        marks: list[dict[str, Any]] = [
            {"type": _DOC_MARKS[name]}
            for name in ANNOTATION_ORDER
            if getattr(span, name)
        ]
        if span.href:
            marks.append({
                "type": "link",
                "attrs": {
                    "href": span.href,
                    "target": "_blank",
                    "rel": "noopener noreferrer nofollow",
                    "class": None,
                },
            })
        if marks:
            node["marks"] = marks
        nodes.append(node)
    return nodes


def _style_attr(style: str | None) -> str:
    return f' style="{style}"' if style else ""
