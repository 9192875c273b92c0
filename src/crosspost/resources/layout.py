"""Spatial grouping of adjacent images into multi-column layouts.

Images that sit close together in a document body (each one starting
within :data:`GROUP_WINDOW` characters of the previous one) are shown
side by side.  Group size selects the layout: 1 to 4 images map to 1 to 4
columns; larger groups fall back to a two-column grid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from crosspost.models import ImageLayout

from .extract import ImageOccurrence

GROUP_WINDOW = 200

_LAYOUTS: dict[int, ImageLayout] = {
    1: ImageLayout.SINGLE,
    2: ImageLayout.TWO_COLUMN,
    3: ImageLayout.THREE_COLUMN,
    4: ImageLayout.FOUR_COLUMN,
}


@dataclass
class ImageGroup:
    """A run of adjacent images rendered as one embed."""

    occurrences: list[ImageOccurrence] = field(default_factory=list)

    @property
    def layout(self) -> ImageLayout:
        return layout_for(len(self.occurrences))

    @property
    def urls(self) -> list[str]:
        return [occ.url for occ in self.occurrences]


def layout_for(count: int) -> ImageLayout:
    """Return the layout for a group of *count* images."""
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")
    return _LAYOUTS.get(count, ImageLayout.TWO_COLUMN)


def group_by_proximity(
    occurrences: list[ImageOccurrence],
    window: int = GROUP_WINDOW,
) -> list[ImageGroup]:
    """Group *occurrences* that start within *window* characters of the previous one.

    Occurrences are stably sorted by start offset first.  Distances are
    measured between start offsets, so a long signed URL counts towards
    the window.
    """
    groups: list[ImageGroup] = []
    last_start: int | None = None
    for occ in sorted(occurrences, key=lambda o: o.start):
        if last_start is None or occ.start - last_start > window:
            groups.append(ImageGroup())
        groups[-1].occurrences.append(occ)
        last_start = occ.start
    return groups


class LayoutRenderer(Protocol):
    """Produces the embed markup for a group of hosted images."""

    def render(self, urls: list[str], alts: list[str], layout: ImageLayout) -> str:
        ...


class FigureLayoutRenderer:
    """Bootstrap-grid figure rows used by the static-site theme.

    Each row holds up to ``layout.columns`` figures; the two-column fallback
    for large groups wraps onto as many rows as needed.
    """

    _FIGURE = (
        '{{% include figure.liquid loading="eager" path="{url}" '
        'class="img-fluid rounded z-depth-1" zoomable=true %}}'
    )

    def render(self, urls: list[str], alts: list[str], layout: ImageLayout) -> str:
        if layout is ImageLayout.SINGLE and len(urls) == 1:
            return (
                '<div class="row mt-3">\n'
                '    <div class="col-sm mt-0 mb-0">\n'
                f"        {self._FIGURE.format(url=urls[0])}\n"
                "    </div>\n"
                "</div>"
            )

        rows: list[str] = []
        step = layout.columns
        for offset in range(0, len(urls), step):
            cells = "".join(
                '    <div class="col-sm mt-3 mt-md-0">\n'
                f"        {self._FIGURE.format(url=url)}\n"
                "    </div>\n"
                for url in urls[offset:offset + step]
            )
            rows.append(f'<div class="row mt-3">\n{cells}</div>')
        return "\n".join(rows)
