"""
Pure geometry helpers on grid boxes.

Boxes are anything with x, y, w, h attributes (GridBox or PixelRect).
Boxes that are exactly touching (sharing an edge) are NOT considered
intercepting.
"""

from typing import Iterable, List, Sequence

from .types import UNSET, Entry, GridBox, PixelRect

# Unresolved coordinates sort after every real one
UNKNOWN_COORD = 10_000


def intercepts(a, b) -> bool:
    """Check if two boxes overlap."""
    return not (
        a.y >= b.y + b.h or a.y + a.h <= b.y or a.x + a.w <= b.x or a.x >= b.x + b.w
    )


def touching(a, b) -> bool:
    """Check if `a` overlaps `b` grown by half a cell on every side."""
    grown = PixelRect(x=b.x - 0.5, y=b.y - 0.5, w=b.w + 1.0, h=b.h + 1.0)
    return intercepts(a, grown)


def sort_key(entry: Entry):
    x, y = entry.position.x, entry.position.y
    return (
        UNKNOWN_COORD if y == UNSET else y,
        UNKNOWN_COORD if x == UNSET else x,
    )


def sort_entries(entries: Iterable[Entry], descending: bool = False) -> List[Entry]:
    """Return entries ordered top-left first (or bottom-right first)."""
    return sorted(entries, key=sort_key, reverse=descending)


def occupied_rows(boxes: Iterable[GridBox]) -> int:
    """Number of rows spanned from row 0 to the lowest box bottom."""
    rows = 0
    for box in boxes:
        rows = max(rows, box.y + box.h)
    return rows


def pixel_rect(
    box: GridBox,
    cell_width: float,
    cell_height: float,
    margins: Sequence[float] = (0.0, 0.0, 0.0, 0.0),
) -> PixelRect:
    """Map a grid box to pixels. Margins are (top, right, bottom, left)."""
    top, right, bottom, left = margins
    return PixelRect(
        x=box.x * cell_width + left,
        y=box.y * cell_height + top,
        w=box.w * cell_width - right - left,
        h=box.h * cell_height - top - bottom,
    )
