"""Image reference extraction and classification.

Finds embedded image references in converted output and decides which of
them are candidates for re-hosting.  Three markup families are
recognised, each with its own pattern:

* lightweight markup -- ``![alt](url)``
* site embed -- ``{% include figure.liquid ... path="url" ... %}``
* literal tags -- ``<img ... src="url" ...>``

plus the ``"src"`` attribute of image nodes in the JSON document format.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)\)")
LIQUID_FIGURE_RE = re.compile(r'{%\s*include\s+figure\.liquid[^%]*path="([^"]+)"[^%]*%}')
HTML_IMG_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""")
DOCUMENT_IMAGE_RE = re.compile(r'"src":\s*"([^"]+)"')

_HTML_ALT_RE = re.compile(r"""alt=["']([^"']*)["']""")

# Pattern name -> (compiled regex, URL group index).
PATTERNS: dict[str, tuple[re.Pattern[str], int]] = {
    "markdown": (MARKDOWN_IMAGE_RE, 2),
    "liquid": (LIQUID_FIGURE_RE, 1),
    "html": (HTML_IMG_RE, 1),
    "document": (DOCUMENT_IMAGE_RE, 1),
}

_IMAGE_EXTENSIONS: frozenset[str] = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
})

# Signed-URL host used by the content provider for uploaded files.
_SOURCE_FILE_HOSTS: frozenset[str] = frozenset({
    "prod-files-secure.s3.us-west-2.amazonaws.com",
})


@dataclass(frozen=True)
class ImageOccurrence:
    """One image reference found in a document body."""

    url: str
    start: int
    end: int
    markup: str
    alt: str = ""
    pattern: str = ""

    @property
    def normalized_url(self) -> str:
        return normalize_url(self.url)


def normalize_url(url: str) -> str:
    """Strip the query string and fragment from *url*.

    The content provider reissues signed URLs for the same asset with fresh
    credentials in the query string, so the remainder identifies the asset.
    """
    parsed = urlparse(url)
    if not parsed.scheme:
        return url.split("?", 1)[0].split("#", 1)[0]
    return parsed._replace(query="", fragment="").geturl()


def is_image_url(url: str) -> bool:
    """Return ``True`` if *url* is a remote image worth re-hosting.

    A URL qualifies when it is ``http(s)`` and either its path carries a
    known image extension, or it points at the content provider's file
    hosting.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    path = parsed.path.lower()
    if any(path.endswith(ext) or f"{ext}/" in path for ext in _IMAGE_EXTENSIONS):
        return True
    if parsed.hostname in _SOURCE_FILE_HOSTS:
        return True
    lowered = url.lower()
    return "notion" in lowered and "image" in lowered


def find_occurrences(content: str, pattern_names: tuple[str, ...]) -> list[ImageOccurrence]:
    """Return every image reference matched by *pattern_names*, in order.

    When two patterns match overlapping text the earlier, longer match wins.
    """
    found: list[ImageOccurrence] = []
    for name in pattern_names:
        regex, group = PATTERNS[name]
        for match in regex.finditer(content):
            markup = match.group(0)
            alt = ""
            if name == "markdown":
                alt = match.group(1)
            elif name == "html":
                alt_match = _HTML_ALT_RE.search(markup)
                alt = alt_match.group(1) if alt_match else ""
            found.append(
                ImageOccurrence(
                    url=match.group(group),
                    start=match.start(),
                    end=match.end(),
                    markup=markup,
                    alt=alt,
                    pattern=name,
                )
            )

    found.sort(key=lambda occ: (occ.start, -(occ.end - occ.start)))
    result: list[ImageOccurrence] = []
    last_end = -1
    for occ in found:
        if occ.start < last_end:
            continue
        result.append(occ)
        last_end = occ.end
    return result
