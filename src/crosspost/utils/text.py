"""Text helpers shared by converters and adapters."""

from __future__ import annotations

import re

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9\u4e00-\u9fff]+")
_SLUG_MAX_LENGTH = 50


def clean_text(text: str) -> str:
    """Replace non-breaking spaces with regular spaces."""
    return text.replace("\u00a0", " ")


def slugify(text: str, max_length: int = _SLUG_MAX_LENGTH) -> str:
    """Return a URL slug: lowercase, runs of other characters become ``-``.

    CJK ideographs are kept as-is.  The result is truncated to
    *max_length* characters and never starts or ends with ``-``.

    Examples
    --------
    >>> slugify("Hello, World!")
    'hello-world'
    """
    slug = _SLUG_INVALID_RE.sub("-", text.lower()).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def escape_yaml(value: str) -> str:
    """Escape *value* for use inside a double-quoted YAML scalar."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
    )


def parse_tags(raw: str | list[str] | None) -> list[str]:
    """Normalise tags given as a list or as ``"[a, b]"`` / ``"a,b"`` text."""
    if not raw:
        return []
    if isinstance(raw, list):
        items = raw
    else:
        items = raw.strip().strip("[]").split(",")
    return [tag.strip().strip("\"'") for tag in items if tag and tag.strip().strip("\"'")]
