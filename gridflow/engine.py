"""
GridEngine: the placement engine behind a dashboard grid.

The engine tracks caller-owned Entry objects and keeps them from
overlapping as they are inserted, moved, resized, removed, or re-flowed to
a new column count. Changes are reported to subscribers as LayoutChange
records, once per settle point (immediately, or when a batch ends).

Typical use:

    grid = GridEngine(GridOptions(column=12))
    a = grid.insert(Entry("a", GridBox(0, 0, 4, 2)))
    grid.move(a, MoveOptions(box=GridBox(4, 0, 4, 2)))

Interactive drags wrap a series of moves in begin_transaction() /
end_transaction() so the engine can pick swap partners by drag direction
and undo the whole drag with cancel_transaction().
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, List, Optional

from .changeset import EntryChange, LayoutChange, LayoutCheckpoint, snapshot_layout
from .config import FRAMES_PER_PUSH, GridOptions
from .geometry import occupied_rows, pixel_rect, sort_entries
from .oplog import OpLog
from .packer import pack_entries
from .reflow import (
    LayoutCache,
    RemapFn,
    cache_one,
    column_changed,
    compact,
    find_cached,
    forget,
    propagate_to_cache,
)
from .resolver import (
    CascadeUnresolved,
    collide,
    collide_all,
    fix_collisions,
    move_entry,
    swap_entries,
)
from .solver import changed_position, find_empty_space, normalize_bounds, overflows_column
from .types import (
    UNSET,
    ColumnFlags,
    ContractViolation,
    Entry,
    EntryId,
    GridBox,
    MoveOptions,
    MoveResult,
)

logger = logging.getLogger("gridflow.engine")

Listener = Callable[[LayoutChange], None]


class GridEngine:
    """Tracks entries on a grid and resolves their collisions."""

    def __init__(self, options: Optional[GridOptions] = None, oplog: Optional[OpLog] = None, **overrides):
        options = options or GridOptions()
        if overrides:
            options = replace(options, **overrides)
        self.options = options
        self.oplog = oplog if oplog is not None else OpLog()

        self.column = options.column
        self.max_row = options.max_row
        self.float_mode = options.float_mode
        self.batch_mode = False
        self._prev_float = False

        self.entries: List[Entry] = []
        self.layout_cache: LayoutCache = {}
        self.has_locked = False
        self.loading = False
        self.in_column_resize = False
        self.extra_drag_row = 0
        self.max_cascade_depth = options.max_cascade_depth or max(
            1, sys.getrecursionlimit() // FRAMES_PER_PUSH
        )

        self._added: List[Entry] = []
        self._removed: List[Entry] = []
        self._listeners: List[Listener] = []
        self._transactions: Dict[EntryId, LayoutCheckpoint] = {}
        self._ignore_layout_changes = False
        self._dry_run = False
        self._cascade_steps = 0
        self._cascade_depth = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self.entries))

    def __contains__(self, entry: object) -> bool:
        return any(e is entry for e in self.entries)

    def get(self, entry_id: EntryId) -> Optional[Entry]:
        for entry in self.entries:
            if entry.entry_id == entry_id:
                return entry
        return None

    # =========================================================================
    # Queries
    # =========================================================================

    def collide(self, skip: Optional[Entry], area: GridBox, skip2: Optional[Entry] = None) -> Optional[Entry]:
        return collide(self.entries, skip, area, skip2)

    def collide_all(self, skip: Optional[Entry], area: GridBox, skip2: Optional[Entry] = None) -> List[Entry]:
        return collide_all(self.entries, skip, area, skip2)

    def get_occupied_row_count(self) -> int:
        return occupied_rows(e.position for e in self.entries)

    def find_empty_space(self, box: GridBox, after: Optional[Entry] = None) -> Optional[GridBox]:
        """Where a box of this size would land if inserted now."""
        spot = find_empty_space(
            box,
            self.column,
            [e.position for e in self.entries],
            after.position if after is not None else None,
            self.max_row,
            self.options.find_space_row_limit,
        )
        if spot is None:
            return None
        return GridBox(spot[0], spot[1], box.w if box.w != UNSET else 1, box.h if box.h != UNSET else 1)

    def sort_entries(self, descending: bool = False) -> None:
        self.entries = sort_entries(self.entries, descending)

    def cache_rects(
        self,
        cell_width: Optional[float] = None,
        cell_height: Optional[float] = None,
        margins=None,
    ) -> None:
        """Store every entry's pixel rect, for drag direction coverage."""
        cell_width = cell_width or self.options.cell_width
        cell_height = cell_height or self.options.cell_height
        margins = margins or self.options.margins
        for entry in self.entries:
            entry.rect = pixel_rect(entry.position, cell_width, cell_height, margins)

    # =========================================================================
    # Bounds
    # =========================================================================

    def _bound_fix(self, entry: Entry, box: GridBox, resizing: bool = False) -> GridBox:
        reference = self.options.reference_column
        if (
            overflows_column(box, self.column)
            and self.column < reference
            and not self.in_column_resize
            and find_cached(self.layout_cache, entry.entry_id, reference) == -1
        ):
            w = box.w if box.w >= 0 else 1
            x = min(box.x, reference - 1) if box.x != UNSET else UNSET
            cache_one(self, entry, GridBox(x, box.y, min(w, reference), box.h), reference)
            logger.debug(f"Cached {entry.entry_id!r} at {reference} columns before clamping {box}")
        return normalize_bounds(entry, box, self.column, self.max_row, resizing)

    def normalize_bounds(self, entry: Entry, resizing: bool = False) -> Entry:
        """Clamp an entry's own box into the grid, marking it dirty if it changed."""
        box = self._bound_fix(entry, entry.position, resizing)
        if box != entry.position:
            entry.position = box
            entry.dirty = True
        return entry

    def changed_position(self, entry: Entry, box: GridBox) -> bool:
        return changed_position(entry, box)

    # =========================================================================
    # Notifications
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def save_initial(self) -> None:
        """Make the current boxes the settled ones."""
        for entry in self.entries:
            entry.prev_position = entry.position
            entry.dirty = False

    def clean_entries(self) -> None:
        if self.batch_mode:
            return
        for entry in self.entries:
            entry.dirty = False
            entry.last_tried = GridBox()

    def _notify(self, before: Optional[Dict[EntryId, GridBox]] = None) -> None:
        """Report pending changes to listeners.

        While a transaction is open the report is provisional: boxes are
        not settled, so float packing and the layout cache still see the
        pre-drag layout.
        """
        if self.batch_mode or self._dry_run:
            return

        added_ids = {id(e) for e in self._added}
        changed = []
        dirty = []
        for entry in self.entries:
            if not entry.dirty:
                continue
            dirty.append(entry)
            if id(entry) in added_ids:
                continue
            if before is not None and entry.entry_id in before:
                old = before[entry.entry_id]
            else:
                old = entry.prev_position if entry.prev_position.valid() else GridBox()
            if old != entry.position:
                changed.append(EntryChange(entry.entry_id, old, entry.position))

        change = LayoutChange(
            added=tuple(e.entry_id for e in self._added),
            removed=tuple(e.entry_id for e in self._removed),
            changed=tuple(changed),
        )
        self._added.clear()
        self._removed.clear()

        if not self._transactions:
            if not self._ignore_layout_changes:
                propagate_to_cache(self, dirty)
            self.save_initial()

        if change.is_empty:
            return
        self.oplog.notify(change)
        for listener in list(self._listeners):
            listener(change)

    # =========================================================================
    # Batching and packing
    # =========================================================================

    def batch_update(self, flag: bool = True, do_pack: bool = True) -> None:
        """Enter or leave batch mode.

        While batched, packing and notifications are held back and entries
        float freely; leaving packs once and notifies once.
        """
        if self.batch_mode == flag:
            return
        self.batch_mode = flag
        if flag:
            self._prev_float = self.float_mode
            self.float_mode = True
            self.save_initial()
        else:
            self.float_mode = self._prev_float
            if do_pack:
                self._pack()
            self._notify()

    @contextmanager
    def batch(self, do_pack: bool = True):
        """Context manager form of batch_update(). Nested use is a no-op."""
        was_batch = self.batch_mode
        if not was_batch:
            self.batch_update(True)
        try:
            yield self
        finally:
            if not was_batch:
                self.batch_update(False, do_pack=do_pack)

    def _pack(self) -> None:
        if self.batch_mode:
            return
        moved = pack_entries(self)
        self.oplog.pack(moved, self.float_mode)

    def pack(self) -> None:
        self._pack()
        self._notify()

    def set_float(self, value: bool) -> None:
        """Toggle float mode. Turning it off packs immediately."""
        if self.float_mode == value:
            return
        self.float_mode = value
        if not value:
            self.pack()

    # =========================================================================
    # Rollback
    # =========================================================================

    def _rollback(self, checkpoint: LayoutCheckpoint, exc: CascadeUnresolved, was_batch: bool) -> None:
        checkpoint.restore(self)
        if self.batch_mode and not was_batch:
            self.batch_mode = False
            self.float_mode = self._prev_float
        self.loading = False
        self.in_column_resize = False
        logger.info(f"Unresolved cascade, restored layout: {exc}")
        self.oplog.unresolved(exc.entry, exc.steps)
        self.oplog.rollback("cascade", len(self.entries))

    # =========================================================================
    # Membership
    # =========================================================================

    def insert(
        self,
        entry: Entry,
        trigger_events: bool = True,
        after: Optional[Entry] = None,
    ) -> Optional[Entry]:
        """Start tracking `entry`.

        Entries without a resolved x/y (or with auto_position set) go to the
        first free spot, after `after` when given. An explicit box that hits
        something moves the newcomer below it. Returns the entry, or None
        when no free spot exists.
        """
        if self.get(entry.entry_id) is not None:
            raise ContractViolation(f"Entry {entry.entry_id!r} is already tracked")

        self._cascade_steps = 0
        checkpoint = LayoutCheckpoint.capture(self)
        original = entry.position
        was_batch = self.batch_mode
        if not was_batch:
            self.batch_update(True)
        self.loading = True
        try:
            placed = self._add_entry(entry, trigger_events, after)
        except CascadeUnresolved as exc:
            self._rollback(checkpoint, exc, was_batch=True)
            entry.position = original
            placed = None
        finally:
            self.loading = False
        if not was_batch:
            self.batch_update(False)
        return placed

    def _add_entry(
        self,
        entry: Entry,
        trigger_events: bool = False,
        after: Optional[Entry] = None,
    ) -> Optional[Entry]:
        if not entry.position.valid():
            entry.auto_position = True

        box = self._bound_fix(entry, entry.position)
        if box != entry.position:
            entry.position = box
            entry.dirty = True

        skip_collision = False
        if entry.auto_position:
            spot = self.find_empty_space(box, after)
            if spot is not None:
                if spot != box:
                    entry.dirty = True
                entry.position = spot
                entry.auto_position = False
                skip_collision = True
            elif not self.in_column_resize:
                logger.debug(f"No free space for {entry.entry_id!r} {box} in {self.column} columns")
                return None

        if entry.locked:
            self.has_locked = True
        self.entries.append(entry)
        if trigger_events:
            self._added.append(entry)
        self.oplog.add(entry)

        if not skip_collision:
            fix_collisions(self, entry)
        if not self.batch_mode:
            self._pack()
            self._notify()
        return entry

    def remove(self, entry: Entry, trigger_events: bool = True) -> bool:
        """Stop tracking `entry`. Returns False if it was not tracked.

        The gap it leaves is not packed.
        """
        if entry not in self:
            return False

        self.entries = [e for e in self.entries if e is not entry]
        forget(self.layout_cache, entry.entry_id)
        self._transactions.pop(entry.entry_id, None)
        entry.updating = entry.moving = entry.skip_down = False
        self.has_locked = any(e.locked for e in self.entries)
        if trigger_events:
            self._removed.append(entry)
        self.oplog.remove(entry)
        logger.debug(f"Removed {entry.entry_id!r}")
        self._notify()
        return True

    def remove_all(self, trigger_events: bool = True) -> None:
        with self.batch(do_pack=False):
            for entry in list(self.entries):
                self.remove(entry, trigger_events)
        self.layout_cache.clear()

    # =========================================================================
    # Moves
    # =========================================================================

    def _require_tracked(self, entry: Entry) -> None:
        if entry not in self:
            raise ContractViolation(f"Entry {entry.entry_id!r} is not tracked by this grid")

    def _begin_update(self, entry: Entry) -> None:
        if entry.updating:
            return
        entry.updating = True
        entry.skip_down = False
        if not self.batch_mode:
            self.save_initial()

    def _end_update(self, entry: Entry) -> None:
        entry.updating = False
        entry.skip_down = False

    def _pin(self, entry: Entry, options: MoveOptions) -> MoveOptions:
        """Working copy of `options` with the requested box filled in and pinned."""
        requested = options.box.with_default(entry.position)
        if entry.no_move:
            requested = requested.moved_to(entry.x, entry.y)
        if entry.no_resize:
            requested = requested.resized_to(entry.w, entry.h)
        return replace(options, box=requested)

    def move(self, entry: Entry, options: MoveOptions) -> MoveResult:
        """Move and/or resize `entry` to options.box, pushing neighbours.

        Unset fields of the box keep the entry's current value. no_move and
        no_resize pin the position or size the caller asks for. A cascade
        that exhausts its step limit, or cannot push a neighbour out of the
        way under max_row, restores the layout and comes back unresolved.
        Only options.collide is written back.
        """
        self._require_tracked(entry)
        work = self._pin(entry, options)
        requested = work.box

        resizing = requested.w != entry.w or requested.h != entry.h
        target = normalize_bounds(entry, requested, self.column, self.max_row, resizing)
        if not work.force_collide and target == entry.position:
            return MoveResult(changed=False)

        implicit = not entry.updating
        if implicit:
            self._begin_update(entry)
        self._cascade_steps = 0
        checkpoint = LayoutCheckpoint.capture(self)
        try:
            changed = move_entry(self, entry, work)
            result = MoveResult(changed=changed, collide=work.collide)
        except CascadeUnresolved as exc:
            self._rollback(checkpoint, exc, was_batch=self.batch_mode)
            result = MoveResult(changed=False, resolved=False, collide=work.collide)
        options.collide = work.collide

        if implicit:
            self._end_update(entry)
            self._notify()
        logger.debug(f"move {entry.entry_id!r} -> {entry.position} changed={result.changed}")
        return result

    def check_move_feasible(self, entry: Entry, options: MoveOptions) -> bool:
        """Move `entry` only if the result keeps within max_row.

        With a row ceiling the move is first tried with the ceiling lifted;
        if the layout grows past it the try is undone, and a blocked drag
        falls back to swapping with the neighbour it was dragged onto.
        """
        self._require_tracked(entry)
        work = self._pin(entry, options)
        if not changed_position(entry, work.box):
            return False
        work.pack = True

        if self.max_row <= 0:
            result = self.move(entry, work)
            options.collide = result.collide
            return result.changed

        rows_before = self.get_occupied_row_count()
        implicit = not entry.updating
        if implicit:
            self._begin_update(entry)
        self._cascade_steps = 0
        checkpoint = LayoutCheckpoint.capture(self)

        max_row = self.max_row
        self.max_row = 0
        self._dry_run = True
        try:
            moved = move_entry(self, entry, work)
        except CascadeUnresolved as exc:
            logger.debug(f"Dry run gave up: {exc}")
            moved = False
        finally:
            self.max_row = max_row
            self._dry_run = False
        options.collide = work.collide

        can_move = moved and self.get_occupied_row_count() <= max(rows_before, max_row)
        if not can_move:
            checkpoint.restore(self)
            self.oplog.rollback("dry_run", len(self.entries))
            if not work.resizing and work.collide is not None:
                can_move = swap_entries(self, entry, work.collide)

        if implicit:
            self._end_update(entry)
        self._notify()
        return can_move

    # =========================================================================
    # Transactions
    # =========================================================================

    def begin_transaction(self, entry: Entry) -> None:
        """Start an interactive drag/resize of `entry`. Idempotent."""
        self._require_tracked(entry)
        if entry.entry_id in self._transactions:
            return
        self.clean_entries()
        self._transactions[entry.entry_id] = LayoutCheckpoint.capture(self)
        self._begin_update(entry)
        entry.moving = True
        self.cache_rects()
        logger.debug(f"Begin transaction on {entry.entry_id!r} at {entry.position}")

    def end_transaction(self, entry: Entry) -> None:
        """Finish the drag of `entry`, pack, and notify."""
        if self._transactions.pop(entry.entry_id, None) is None:
            raise ContractViolation(f"No open transaction for {entry.entry_id!r}")
        entry.moving = False
        self.extra_drag_row = 0
        for other in self.entries:
            if other.updating and other.entry_id not in self._transactions:
                self._end_update(other)
        self._pack()
        self._notify()

    def cancel_transaction(self, entry: Entry) -> bool:
        """Put everything back where it was when the transaction began."""
        checkpoint = self._transactions.pop(entry.entry_id, None)
        if checkpoint is None:
            return False

        shown = snapshot_layout(self.entries)
        checkpoint.restore(self)
        entry.moving = False
        self._end_update(entry)
        self.extra_drag_row = 0

        for other in self.entries:
            if shown.get(other.entry_id) != other.position:
                other.dirty = True
        self.oplog.rollback("cancel", len(self.entries))
        self._notify(before=shown)
        return True

    def in_transaction(self, entry: Entry) -> bool:
        return entry.entry_id in self._transactions

    # =========================================================================
    # Columns
    # =========================================================================

    def set_column(
        self,
        count: int,
        flags: ColumnFlags = ColumnFlags.MOVE_SCALE,
        remap: Optional[RemapFn] = None,
    ) -> None:
        """Change the column count and re-flow the entries to fit."""
        if count < 1 or count == self.column:
            return
        old = self.column
        logger.info(f"Column change {old} -> {count} ({flags.describe()})")
        self.oplog.column(old, count, flags.describe())

        self._cascade_steps = 0
        checkpoint = LayoutCheckpoint.capture(self)
        was_batch = self.batch_mode
        self.column = count
        self._ignore_layout_changes = True
        try:
            column_changed(self, old, count, flags, remap)
        except CascadeUnresolved as exc:
            self.column = old
            self._rollback(checkpoint, exc, was_batch)
        finally:
            self._ignore_layout_changes = False

    def compact(self, flags: ColumnFlags = ColumnFlags.COMPACT, do_sort: bool = True) -> None:
        """Re-place entries top-left first, closing every gap."""
        self._cascade_steps = 0
        checkpoint = LayoutCheckpoint.capture(self)
        was_batch = self.batch_mode
        try:
            compact(self, flags, do_sort)
        except CascadeUnresolved as exc:
            self._rollback(checkpoint, exc, was_batch)
