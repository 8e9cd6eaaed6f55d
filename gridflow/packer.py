"""
Gravity packing.
"""

from typing import TYPE_CHECKING

from .resolver import collide

if TYPE_CHECKING:
    from .engine import GridEngine


def pack_entries(grid: "GridEngine") -> int:
    """Float entries upward. Returns how many entries moved.

    Without float mode every unlocked entry rises until it hits something
    (the topmost entry goes straight to row 0). In float mode only entries
    that were pushed below their settled row walk back up toward it, one
    row at a time, stopping at the first blocked row. Entries inside a
    move transaction stay put, and float mode leaves a column reflow alone.
    """
    grid.sort_entries()
    entries = grid.entries
    moved = 0

    if grid.float_mode:
        if grid.in_column_resize:
            return 0
        for entry in entries:
            prev = entry.prev_position
            if entry.updating or not prev.valid() or entry.y <= prev.y:
                continue
            start = entry.y
            new_y = entry.y
            while new_y > prev.y:
                probe = entry.position.with_y(new_y - 1)
                if collide(entries, entry, probe) is not None:
                    break
                new_y -= 1
            if new_y != start:
                entry.position = entry.position.with_y(new_y)
                entry.dirty = True
                moved += 1
        return moved

    for i, entry in enumerate(entries):
        if entry.locked:
            continue
        start = entry.y
        while entry.y > 0:
            new_y = 0 if i == 0 else entry.y - 1
            if i != 0 and collide(entries, entry, entry.position.with_y(new_y)) is not None:
                break
            entry.position = entry.position.with_y(new_y)
            entry.dirty = True
        if entry.y != start:
            moved += 1
    return moved
