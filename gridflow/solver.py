"""
Placement solver: empty-space search and bounds normalization.

All functions here are pure. They take the grid dimensions explicitly and
return new boxes; the engine decides what to commit.
"""

from typing import Optional, Sequence, Tuple

from .geometry import intercepts, occupied_rows
from .types import UNSET, Entry, GridBox


def find_empty_space(
    box: GridBox,
    column: int,
    boxes: Sequence[GridBox],
    after: Optional[GridBox] = None,
    max_row: int = 0,
    row_limit: Optional[int] = None,
) -> Optional[Tuple[int, int]]:
    """Find the first free (x, y) for a box of the given size.

    Cells are scanned in row-major order, starting just past `after` when
    given. Returns None when no position fits inside the scan bounds.
    """
    w = 1 if box.w == UNSET else box.w
    h = 1 if box.h == UNSET else box.h
    if w > column:
        return None

    start = after.y * column + after.x + after.w if after is not None else 0
    if max_row > 0:
        if h > max_row:
            return None
        end = column * max_row
    else:
        if row_limit is None:
            row_limit = occupied_rows(boxes) + h
        end = column * row_limit

    for i in range(max(start, 0), end):
        x, y = i % column, i // column
        if x + w > column:
            continue
        if max_row > 0 and y + h > max_row:
            break
        probe = GridBox(x, y, w, h)
        if not any(intercepts(probe, other) for other in boxes):
            return (x, y)
    return None


def clamp_size(entry: Entry, w: int, h: int) -> Tuple[int, int]:
    """Apply the entry's max then min size constraints."""
    if entry.max_w > 0:
        w = min(w, entry.max_w)
    if entry.max_h > 0:
        h = min(h, entry.max_h)
    if entry.min_w > 0:
        w = max(w, entry.min_w)
    if entry.min_h > 0:
        h = max(h, entry.min_h)
    return w, h


def overflows_column(box: GridBox, column: int) -> bool:
    """True when a box, unresolved fields defaulted, sticks out past `column`."""
    x = box.x if box.x >= 0 else 0
    w = box.w if box.w >= 0 else 1
    return x + w > column


def normalize_bounds(
    entry: Entry,
    box: GridBox,
    column: int,
    max_row: int = 0,
    resizing: bool = False,
) -> GridBox:
    """Clamp `box` for `entry` into the grid.

    Size constraints apply first (a min width wider than the grid is
    ignored), then the box is limited to the grid size and slid back
    inside: a resize shrinks the box, a move shifts it.
    """
    x, y, w, h = box.as_tuple()
    if entry.max_w > 0:
        w = min(w, entry.max_w)
    if entry.max_h > 0:
        h = min(h, entry.max_h)
    if 0 < entry.min_w <= column:
        w = max(w, entry.min_w)
    if entry.min_h > 0:
        h = max(h, entry.min_h)

    if w > column:
        w = column
    elif w < 1:
        w = 1
    if max_row > 0 and h > max_row:
        h = max_row
    elif h < 1:
        h = 1

    x = min(max(x, 0), column - 1)
    y = max(y, 0)
    if max_row > 0:
        y = min(y, max_row - 1)

    if x + w > column:
        if resizing:
            w = column - x
        else:
            x = column - w
    if max_row > 0 and y + h > max_row:
        if resizing:
            h = max_row - y
        else:
            y = max_row - h

    return GridBox(x, y, w, h)


def changed_position(entry: Entry, box: GridBox) -> bool:
    """Check whether moving `entry` to `box` would change anything.

    Unresolved w/h are taken from the entry. Size constraints are applied
    before the size comparison, so a resize the constraints undo is not a
    change.
    """
    w = entry.w if box.w in (UNSET, 0) else box.w
    h = entry.h if box.h in (UNSET, 0) else box.h
    if entry.x != box.x or entry.y != box.y:
        return True
    w, h = clamp_size(entry, w, h)
    return entry.w != w or entry.h != h
