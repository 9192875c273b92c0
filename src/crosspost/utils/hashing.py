"""MD5 helpers for deterministic resource names.

Downloaded images are stored under a name derived from their normalised
URL, so a re-run of the same attempt finds the file already present and
skips the download.  These hashes are **not** used for security purposes.
"""

from __future__ import annotations

import hashlib
import posixpath
from urllib.parse import urlparse

_DEFAULT_EXTENSION = ".png"

_KNOWN_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
})


def md5_hash(data: str) -> str:
    """Return the hex-encoded MD5 digest of *data* (UTF-8 encoded).

    Examples
    --------
    >>> md5_hash("hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def stable_filename(url: str, length: int = 16) -> str:
    """Return a deterministic file name for the asset behind *url*.

    The stem is a truncated MD5 of the URL with its query string and
    fragment removed, so signed variants of one asset share a name.  The
    extension is taken from the URL path when it is a known image
    extension, otherwise ``.png``.

    Examples
    --------
    >>> stable_filename("https://x.test/a/b.JPG?sig=1") == stable_filename("https://x.test/a/b.JPG?sig=2")
    True
    """
    parsed = urlparse(url)
    normalized = parsed._replace(query="", fragment="").geturl()
    ext = posixpath.splitext(parsed.path)[1].lower()
    if ext not in _KNOWN_EXTENSIONS:
        ext = _DEFAULT_EXTENSION
    return f"{md5_hash(normalized)[:length]}{ext}"
