"""Utility helpers: hashing, redaction and text normalisation."""

from __future__ import annotations

from .hashing import md5_hash, stable_filename
from .redact import redact
from .text import clean_text, escape_yaml, parse_tags, slugify

__all__ = [
    "clean_text",
    "escape_yaml",
    "md5_hash",
    "parse_tags",
    "redact",
    "slugify",
    "stable_filename",
]
