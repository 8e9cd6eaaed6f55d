"""
Column reflow and per-column layout caching.

When the grid narrows, the wide layout is remembered under its column
count so growing back restores it exactly instead of scaling twice.
Edits made while narrow are fed back into the wider cached layouts.
"""

import logging
import math
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .geometry import sort_entries
from .solver import find_empty_space
from .types import UNSET, CachedBox, ColumnFlags, Entry, EntryId, GridBox

if TYPE_CHECKING:
    from .engine import GridEngine

logger = logging.getLogger("gridflow.reflow")

# remap(new_column, old_column, placed, remaining): place every entry of
# `remaining` and append it to `placed`
RemapFn = Callable[[int, int, List[Entry], List[Entry]], None]

LayoutCache = Dict[int, List[CachedBox]]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# Cache
# =============================================================================


def cache_layout(grid: "GridEngine", entries: List[Entry], column: int) -> None:
    """Remember the current boxes of `entries` under `column`."""
    grid.layout_cache[column] = [
        CachedBox(e.entry_id, e.x, e.y, e.w) for e in entries
    ]
    grid.oplog.cache(column, len(entries))


def find_cached(cache: LayoutCache, entry_id: EntryId, column: int) -> int:
    """Index of `entry_id` in the cached layout for `column`, or -1."""
    for i, cached in enumerate(cache.get(column, ())):
        if cached.entry_id == entry_id:
            return i
    return -1


def cache_one(grid: "GridEngine", entry: Entry, box: GridBox, column: int) -> None:
    """Insert or replace one entry's box in the cached layout for `column`."""
    if entry.auto_position or box.x == UNSET:
        cached = CachedBox(entry.entry_id, UNSET, UNSET, box.w, auto_position=entry.auto_position)
    else:
        cached = CachedBox(entry.entry_id, box.x, box.y, box.w)

    layout = grid.layout_cache.setdefault(column, [])
    index = find_cached(grid.layout_cache, entry.entry_id, column)
    if index == -1:
        layout.append(cached)
    else:
        layout[index] = cached


def forget(cache: LayoutCache, entry_id: EntryId) -> None:
    """Drop an entry from every cached layout."""
    for column, layout in cache.items():
        cache[column] = [c for c in layout if c.entry_id != entry_id]


def propagate_to_cache(grid: "GridEngine", entries: List[Entry]) -> None:
    """Feed edits of `entries` into the wider cached layouts.

    Narrower cached layouts are stale once the wide layout changes and are
    dropped.
    """
    cache = grid.layout_cache
    if not cache or grid.in_column_resize:
        return

    for column in list(cache):
        if column == grid.column:
            continue
        if column < grid.column:
            del cache[column]
            continue

        ratio = column / grid.column
        layout = cache[column]
        for entry in entries:
            prev = entry.prev_position
            if not prev.valid():
                continue
            index = find_cached(cache, entry.entry_id, column)
            if index == -1:
                continue
            cached = layout[index]
            x, y, w = cached.x, cached.y, cached.w
            if y >= 0 and entry.y != prev.y:
                y += entry.y - prev.y
            if entry.x != prev.x:
                x = round_half_up(entry.x * ratio)
            if entry.w != prev.w:
                w = round_half_up(entry.w * ratio)
            layout[index] = CachedBox(cached.entry_id, x, y, w, cached.auto_position)


# =============================================================================
# Reflow
# =============================================================================


def _scale(
    entries: List[Entry], new_column: int, old_column: int, flags: ColumnFlags
) -> None:
    ratio = new_column / old_column
    move = bool(flags & (ColumnFlags.MOVE | ColumnFlags.MOVE_SCALE))
    scale = bool(flags & (ColumnFlags.SCALE | ColumnFlags.MOVE_SCALE))
    for entry in entries:
        if new_column == 1:
            x = 0
        elif move:
            x = round_half_up(entry.x * ratio)
        else:
            x = min(entry.x, new_column - 1)

        if new_column == 1 or old_column == 1:
            w = 1
        elif scale:
            w = round_half_up(entry.w * ratio) or 1
        else:
            w = min(entry.w, new_column)

        entry.position = GridBox(x, entry.y, w, entry.h)
        entry.dirty = True


def column_changed(
    grid: "GridEngine",
    old_column: int,
    new_column: int,
    flags: ColumnFlags = ColumnFlags.MOVE_SCALE,
    remap: Optional[RemapFn] = None,
) -> None:
    """Re-flow every entry from `old_column` to `new_column` columns.

    grid.column must already be `new_column`.
    """
    if not grid.entries or flags == ColumnFlags.NONE:
        return

    compact_mode = bool(flags & (ColumnFlags.COMPACT | ColumnFlags.LIST))
    if compact_mode:
        grid.sort_entries()

    if new_column < old_column:
        cache_layout(grid, grid.entries, old_column)

    grid.batch_update(True)
    placed: List[Entry] = []
    remaining = list(grid.entries) if compact_mode else sort_entries(grid.entries, descending=True)
    by_id = {e.entry_id: e for e in remaining}

    if new_column > old_column and grid.layout_cache:
        cached = grid.layout_cache.get(new_column, [])
        widest = max(grid.layout_cache)
        if not cached and widest != old_column and grid.layout_cache[widest]:
            logger.debug(f"No layout cached at {new_column}, restoring from {widest}")
            old_column = widest
            for box in grid.layout_cache[widest]:
                entry = by_id.get(box.entry_id)
                if entry is None:
                    continue
                x, y = entry.x, entry.y
                if not compact_mode and not box.auto_position:
                    x = box.x if box.x != UNSET else x
                    y = box.y if box.y != UNSET else y
                entry.position = GridBox(x, y, box.w, entry.h)
                if not box.placed:
                    entry.auto_position = True

        for box in cached:
            entry = by_id.get(box.entry_id)
            if entry is None or entry not in remaining:
                continue
            if compact_mode:
                entry.position = entry.position.resized_to(box.w, entry.h)
                continue

            x, y = box.x, box.y
            if not box.placed:
                spot = find_empty_space(
                    GridBox(UNSET, UNSET, box.w, entry.h),
                    new_column,
                    [p.position for p in placed],
                    max_row=grid.max_row,
                )
                if spot is None:
                    continue
                x, y = spot
            entry.position = GridBox(x, y, box.w, entry.h)
            placed.append(entry)
            remaining.remove(entry)

    if compact_mode:
        compact(grid, flags, do_sort=False)
    else:
        if remaining:
            if remap is not None:
                remap(new_column, old_column, placed, remaining)
                placed.extend(e for e in remaining if e not in placed)
            else:
                _scale(remaining, new_column, old_column, flags)
                placed.extend(remaining)

        grid.in_column_resize = True
        grid.entries = []
        for entry in sort_entries(placed, descending=True):
            grid._add_entry(entry, trigger_events=False)

    for entry in grid.entries:
        if entry.position != entry.prev_position:
            entry.dirty = True

    grid.batch_update(False, do_pack=not compact_mode)
    grid.in_column_resize = False


def compact(grid: "GridEngine", flags: ColumnFlags = ColumnFlags.COMPACT, do_sort: bool = True) -> None:
    """Re-place every unlocked entry at the first free spot, top-left first.

    With LIST each entry is searched for after the previous one, keeping
    reading order.
    """
    if not grid.entries:
        return
    if do_sort:
        grid.sort_entries()

    was_batch = grid.batch_mode
    if not was_batch:
        grid.batch_update(True)
    was_column_resize = grid.in_column_resize
    grid.in_column_resize = True

    previous = grid.entries
    grid.entries = []
    for index, entry in enumerate(previous):
        after = None
        if not entry.locked:
            entry.auto_position = True
            if flags & ColumnFlags.LIST and index:
                after = previous[index - 1]
        grid._add_entry(entry, trigger_events=False, after=after)

    grid.in_column_resize = was_column_resize
    if not was_batch:
        grid.batch_update(False)
