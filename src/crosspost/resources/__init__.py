"""Embedded-resource pipeline: extraction, grouping, re-hosting, rewriting."""

from __future__ import annotations

from .extract import ImageOccurrence, find_occurrences, is_image_url, normalize_url
from .layout import (
    GROUP_WINDOW,
    FigureLayoutRenderer,
    ImageGroup,
    LayoutRenderer,
    group_by_proximity,
    layout_for,
)
from .processor import ImageDownloader, ProcessingReport, ResourceProcessor

__all__ = [
    "GROUP_WINDOW",
    "FigureLayoutRenderer",
    "ImageDownloader",
    "ImageGroup",
    "ImageOccurrence",
    "LayoutRenderer",
    "ProcessingReport",
    "ResourceProcessor",
    "find_occurrences",
    "group_by_proximity",
    "is_image_url",
    "layout_for",
    "normalize_url",
]
