"""
Unit tests for GridEngine operations.
"""

import pytest

from ..changeset import LayoutChange
from ..config import GridOptions
from ..engine import GridEngine
from ..oplog import OpLog
from ..types import CachedBox, ColumnFlags, ContractViolation, Entry, GridBox, MoveOptions


def make_grid(**options) -> GridEngine:
    return GridEngine(GridOptions(**options), oplog=OpLog())


def add(grid: GridEngine, name: str, x: int, y: int, w: int, h: int, **attrs) -> Entry:
    entry = grid.insert(Entry(name, GridBox(x, y, w, h), **attrs))
    assert entry is not None
    return entry


def layout(grid: GridEngine) -> dict:
    return {e.entry_id: e.position.as_tuple() for e in grid.entries}


def changed_boxes(change: LayoutChange) -> dict:
    return {c.entry_id: (c.before.as_tuple(), c.after.as_tuple()) for c in change.changed}


# ═══════════════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════════════


def test_overrides_replace_options():
    grid = GridEngine(GridOptions(column=12), column=6, float_mode=True)
    assert grid.column == 6
    assert grid.float_mode
    assert grid.options.column == 6


def test_empty_grid():
    grid = GridEngine()
    assert len(grid) == 0
    assert grid.get_occupied_row_count() == 0
    assert grid.get("missing") is None


# ═══════════════════════════════════════════════════════════════════════════════
# Insert
# ═══════════════════════════════════════════════════════════════════════════════


class TestInsert:
    def test_tracks_and_notifies(self):
        grid = make_grid()
        changes = []
        grid.subscribe(changes.append)

        a = add(grid, "a", 0, 0, 2, 2)

        assert a in grid
        assert grid.get("a") is a
        assert changes == [LayoutChange(added=("a",))]

    def test_duplicate_id_rejected(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 1, 1)
        with pytest.raises(ContractViolation):
            grid.insert(Entry("a", GridBox(2, 0, 1, 1)))
        assert len(grid) == 1

    def test_overlapping_newcomer_moves_below(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        b = add(grid, "b", 1, 0, 2, 2)
        assert a.position.as_tuple() == (0, 0, 2, 2)
        assert b.position.as_tuple() == (1, 2, 2, 2)

    def test_gravity_pulls_up(self):
        grid = make_grid()
        a = add(grid, "a", 3, 7, 2, 2)
        assert a.position.as_tuple() == (3, 0, 2, 2)

    def test_float_keeps_gap(self):
        grid = make_grid(float_mode=True)
        a = add(grid, "a", 0, 3, 1, 1)
        assert a.position.as_tuple() == (0, 3, 1, 1)

    def test_auto_position_flag(self):
        grid = make_grid(column=4)
        add(grid, "a", 0, 0, 1, 1)
        b = grid.insert(Entry("b", GridBox(3, 3, 1, 1), auto_position=True))
        assert b.position.as_tuple() == (1, 0, 1, 1)

    def test_after(self):
        grid = make_grid(column=4, float_mode=True)
        a = add(grid, "a", 1, 0, 1, 1)
        b = grid.insert(Entry("b", GridBox(w=1, h=1)), after=a)
        assert b.position.as_tuple() == (2, 0, 1, 1)

    def test_no_room_returns_none(self):
        grid = make_grid(column=2, max_row=1)
        add(grid, "a", 0, 0, 2, 1)
        b = Entry("b", GridBox(w=1, h=1))
        assert grid.insert(b) is None
        assert b not in grid
        assert len(grid) == 1

    def test_clamped_into_narrow_grid_caches_wide_box(self):
        grid = make_grid(column=6)
        a = add(grid, "a", 4, 0, 4, 1)

        assert a.position.as_tuple() == (2, 0, 4, 1)
        assert grid.layout_cache[12] == [CachedBox("a", 4, 0, 4)]

        grid.set_column(12)
        assert a.position.as_tuple() == (4, 0, 4, 1)

    def test_locked_sets_flag(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 1, 1, locked=True)
        assert grid.has_locked
        assert grid.oplog.events[0].fields["locked"] is True


# ═══════════════════════════════════════════════════════════════════════════════
# Remove
# ═══════════════════════════════════════════════════════════════════════════════


class TestRemove:
    def test_remove_leaves_gap(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 1, 1)
        b = add(grid, "b", 0, 1, 1, 1)
        changes = []
        grid.subscribe(changes.append)

        assert grid.remove(a)

        assert a not in grid
        assert b.position.as_tuple() == (0, 1, 1, 1)
        assert changes == [LayoutChange(removed=("a",))]

    def test_remove_unknown(self):
        grid = make_grid()
        assert not grid.remove(Entry("ghost", GridBox(0, 0, 1, 1)))

    def test_remove_twice(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 1, 1)
        assert grid.remove(a)
        assert not grid.remove(a)

    def test_remove_drops_cached_boxes(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 4, 1)
        add(grid, "b", 4, 0, 4, 1)
        grid.set_column(6)
        assert find_ids(grid.layout_cache[12]) == {"a", "b"}

        grid.remove(a)
        assert find_ids(grid.layout_cache[12]) == {"b"}

    def test_remove_locked_clears_flag(self):
        grid = make_grid()
        lock = add(grid, "lock", 0, 0, 1, 1, locked=True)
        grid.remove(lock)
        assert not grid.has_locked

    def test_remove_all(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 4, 1)
        add(grid, "b", 4, 0, 4, 1)
        grid.set_column(6)
        changes = []
        grid.subscribe(changes.append)

        grid.remove_all()

        assert len(grid) == 0
        assert grid.layout_cache == {}
        assert len(changes) == 1
        assert set(changes[0].removed) == {"a", "b"}


def find_ids(cached) -> set:
    return {c.entry_id for c in cached}


# ═══════════════════════════════════════════════════════════════════════════════
# Move
# ═══════════════════════════════════════════════════════════════════════════════


class TestMove:
    def test_unchanged_box_is_a_no_op(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        changes = []
        grid.subscribe(changes.append)
        events = len(grid.oplog.events)

        result = grid.move(a, MoveOptions(box=GridBox(0, 0, 2, 2)))

        assert not result.changed
        assert result.resolved
        assert len(grid.oplog.events) == events
        assert changes == []

    def test_partial_box_keeps_current_values(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        grid.move(a, MoveOptions(box=GridBox(x=5)))
        assert a.position.as_tuple() == (5, 0, 2, 2)

    def test_move_notifies_once(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        changes = []
        grid.subscribe(changes.append)

        grid.move(a, MoveOptions(box=GridBox(4, 0, 2, 2)))

        assert len(changes) == 1
        assert changed_boxes(changes[0]) == {"a": ((0, 0, 2, 2), (4, 0, 2, 2))}
        assert a.prev_position.as_tuple() == (4, 0, 2, 2)
        assert not a.updating

    def test_clamped_to_grid(self):
        grid = make_grid(column=6)
        a = add(grid, "a", 0, 0, 2, 1)
        grid.move(a, MoveOptions(box=GridBox(5, 0, 2, 1)))
        assert a.position.as_tuple() == (4, 0, 2, 1)

    def test_no_move_pins_position(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2, no_move=True)

        assert not grid.move(a, MoveOptions(box=GridBox(3, 0, 2, 2))).changed
        assert a.position.as_tuple() == (0, 0, 2, 2)

        assert grid.move(a, MoveOptions(box=GridBox(3, 0, 3, 2))).changed
        assert a.position.as_tuple() == (0, 0, 3, 2)

    def test_no_resize_pins_size(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2, no_resize=True)

        assert grid.move(a, MoveOptions(box=GridBox(2, 0, 4, 4))).changed
        assert a.position.as_tuple() == (2, 0, 2, 2)

    def test_untracked_entry_rejected(self):
        grid = make_grid()
        with pytest.raises(ContractViolation):
            grid.move(Entry("ghost", GridBox(0, 0, 1, 1)), MoveOptions(box=GridBox(1, 0)))

    def test_resize_pushes_neighbour_down(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 1)
        b = add(grid, "b", 0, 1, 2, 1)

        grid.move(a, MoveOptions(box=GridBox(0, 0, 2, 3)))

        assert a.position.as_tuple() == (0, 0, 2, 3)
        assert b.position.as_tuple() == (0, 3, 2, 1)


# ═══════════════════════════════════════════════════════════════════════════════
# Transactions
# ═══════════════════════════════════════════════════════════════════════════════


class TestTransactions:
    def test_end_without_begin(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 1, 1)
        with pytest.raises(ContractViolation):
            grid.end_transaction(a)

    def test_begin_is_idempotent(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 1, 1)
        grid.begin_transaction(a)
        grid.begin_transaction(a)
        assert grid.in_transaction(a)
        assert a.moving and a.updating

        grid.end_transaction(a)
        assert not grid.in_transaction(a)
        assert not (a.moving or a.updating)

    def test_begin_caches_rects(self):
        grid = make_grid(cell_width=10, cell_height=20)
        a = add(grid, "a", 1, 0, 2, 1)
        grid.begin_transaction(a)
        assert (a.rect.x, a.rect.y, a.rect.w, a.rect.h) == (10, 0, 20, 20)

    def test_cancel_restores_layout(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        b = add(grid, "b", 0, 2, 2, 2)
        changes = []
        grid.subscribe(changes.append)

        grid.begin_transaction(b)
        grid.move(b, MoveOptions(box=GridBox(0, 0, 2, 2)))
        assert layout(grid) == {"a": (0, 2, 2, 2), "b": (0, 0, 2, 2)}

        assert grid.cancel_transaction(b)

        assert a.position.as_tuple() == (0, 0, 2, 2)
        assert b.position.as_tuple() == (0, 2, 2, 2)
        assert not (b.moving or b.updating)
        assert changed_boxes(changes[-1]) == {
            "a": ((0, 2, 2, 2), (0, 0, 2, 2)),
            "b": ((0, 0, 2, 2), (0, 2, 2, 2)),
        }
        with pytest.raises(ContractViolation):
            grid.end_transaction(b)

    def test_cancel_without_transaction(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 1, 1)
        assert not grid.cancel_transaction(a)

    def test_drag_notifications_do_not_settle(self):
        grid = make_grid(float_mode=True)
        a = add(grid, "a", 0, 0, 1, 1)
        b = add(grid, "b", 0, 1, 1, 1)

        grid.begin_transaction(a)
        grid.move(a, MoveOptions(box=GridBox(0, 1, 1, 1)))
        assert b.position.as_tuple() == (0, 2, 1, 1)
        assert b.prev_position.as_tuple() == (0, 1, 1, 1)

        # dragging away lets the pushed neighbour float back
        grid.move(a, MoveOptions(box=GridBox(3, 0, 1, 1)))
        grid.end_transaction(a)

        assert a.position.as_tuple() == (3, 0, 1, 1)
        assert b.position.as_tuple() == (0, 1, 1, 1)


# ═══════════════════════════════════════════════════════════════════════════════
# Batching and packing
# ═══════════════════════════════════════════════════════════════════════════════


class TestBatch:
    def test_nested_batch_settles_once(self):
        grid = make_grid()
        changes = []
        grid.subscribe(changes.append)
        with grid.batch():
            with grid.batch():
                add(grid, "a", 0, 0, 1, 1)
            assert grid.batch_mode
            assert changes == []
        assert not grid.batch_mode
        assert len(changes) == 1

    def test_float_restored_after_batch(self):
        grid = make_grid()
        grid.batch_update(True)
        assert grid.float_mode
        grid.batch_update(True)
        grid.batch_update(False)
        assert not grid.float_mode

    def test_batch_without_pack(self):
        grid = make_grid()
        with grid.batch(do_pack=False):
            a = add(grid, "a", 0, 5, 1, 1)
        assert a.y == 5
        assert grid.oplog.count("PACK") == 0

    def test_set_float_off_packs(self):
        grid = make_grid(float_mode=True)
        a = add(grid, "a", 0, 3, 1, 1)
        changes = []
        grid.subscribe(changes.append)

        grid.set_float(False)

        assert a.y == 0
        assert changed_boxes(changes[0]) == {"a": ((0, 3, 1, 1), (0, 0, 1, 1))}

    def test_locked_entry_does_not_rise(self):
        grid = make_grid(float_mode=True)
        lock = add(grid, "lock", 0, 4, 1, 1, locked=True)
        grid.set_float(False)
        assert lock.y == 4


# ═══════════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════════


class TestQueries:
    def test_collide(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 2, 2)
        b = add(grid, "b", 2, 0, 2, 2)
        assert grid.collide(None, GridBox(1, 1, 1, 1)) is a
        assert grid.collide(a, GridBox(1, 1, 2, 1)) is b
        assert grid.collide(a, GridBox(1, 1, 2, 1), skip2=b) is None
        assert set(e.entry_id for e in grid.collide_all(None, GridBox(1, 0, 2, 1))) == {"a", "b"}

    def test_occupied_rows(self):
        grid = make_grid(float_mode=True)
        add(grid, "a", 0, 2, 1, 3)
        assert grid.get_occupied_row_count() == 5

    def test_find_empty_space(self):
        grid = make_grid(column=4)
        add(grid, "a", 0, 0, 3, 1)
        assert grid.find_empty_space(GridBox(w=1, h=1)) == GridBox(3, 0, 1, 1)
        assert grid.find_empty_space(GridBox(w=2, h=2)) == GridBox(0, 1, 2, 2)

    def test_normalize_bounds_marks_dirty(self):
        grid = make_grid()
        entry = Entry("a", GridBox(11, 0, 3, 1))
        grid.normalize_bounds(entry)
        assert entry.position.as_tuple() == (9, 0, 3, 1)
        assert entry.dirty

    def test_unsubscribe(self):
        grid = make_grid()
        changes = []
        unsubscribe = grid.subscribe(changes.append)
        unsubscribe()
        unsubscribe()
        add(grid, "a", 0, 0, 1, 1)
        assert changes == []


# ═══════════════════════════════════════════════════════════════════════════════
# Columns
# ═══════════════════════════════════════════════════════════════════════════════


class TestColumns:
    def test_same_or_invalid_count_ignored(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 4, 1)
        grid.set_column(12)
        grid.set_column(0)
        assert grid.column == 12
        assert grid.oplog.count("COLUMN") == 0

    def test_none_flags_leave_entries(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 4, 2)
        grid.set_column(6, ColumnFlags.NONE)
        assert grid.column == 6
        assert a.position.as_tuple() == (0, 0, 4, 2)

    def test_move_without_scale(self):
        grid = make_grid()
        a = add(grid, "a", 6, 0, 4, 1)
        grid.set_column(6, ColumnFlags.MOVE)
        assert a.position.as_tuple() == (2, 0, 4, 1)

    def test_scale_without_move(self):
        grid = make_grid()
        a = add(grid, "a", 3, 0, 4, 1)
        grid.set_column(6, ColumnFlags.SCALE)
        assert a.position.as_tuple() == (3, 0, 2, 1)

    def test_reflow_notifies_changes_without_feeding_cache(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 4, 2)
        changes = []
        grid.subscribe(changes.append)

        grid.set_column(6)

        assert changed_boxes(changes[-1]) == {"a": ((0, 0, 4, 2), (0, 0, 2, 2))}
        assert grid.layout_cache[12] == [CachedBox("a", 0, 0, 4)]

    def test_remap(self):
        grid = make_grid()
        add(grid, "a", 0, 0, 4, 1)
        add(grid, "b", 4, 0, 4, 1)
        calls = []

        def remap(new_column, old_column, placed, remaining):
            calls.append((new_column, old_column))
            for row, entry in enumerate(remaining):
                entry.position = GridBox(0, row, 1, 1)
                placed.append(entry)

        grid.set_column(3, remap=remap)

        assert calls == [(3, 12)]
        assert layout(grid) == {"b": (0, 0, 1, 1), "a": (0, 1, 1, 1)}

    def test_narrow_cache_dropped_after_wide_edit(self):
        grid = make_grid()
        a = add(grid, "a", 0, 0, 4, 2)
        grid.set_column(6)
        grid.set_column(3)
        grid.set_column(12)
        assert 6 in grid.layout_cache

        grid.move(a, MoveOptions(box=GridBox(1, 0, 4, 2)))
        assert 6 not in grid.layout_cache


# ═══════════════════════════════════════════════════════════════════════════════
# Compact
# ═══════════════════════════════════════════════════════════════════════════════


class TestCompact:
    def test_compact_fills_holes(self):
        grid = make_grid(column=4, float_mode=True)
        add(grid, "a", 0, 0, 3, 1)
        add(grid, "b", 0, 1, 2, 1)
        c = add(grid, "c", 0, 2, 1, 1)

        grid.compact()

        assert c.position.as_tuple() == (3, 0, 1, 1)

    def test_list_keeps_reading_order(self):
        grid = make_grid(column=4, float_mode=True)
        add(grid, "a", 0, 0, 3, 1)
        b = add(grid, "b", 0, 1, 2, 1)
        c = add(grid, "c", 0, 2, 1, 1)

        grid.compact(ColumnFlags.LIST)

        assert b.position.as_tuple() == (0, 1, 2, 1)
        assert c.position.as_tuple() == (2, 1, 1, 1)

    def test_compact_skips_locked(self):
        grid = make_grid(column=4, float_mode=True)
        lock = add(grid, "lock", 2, 2, 1, 1, locked=True)
        grid.compact()
        assert lock.position.as_tuple() == (2, 2, 1, 1)

    def test_compact_column_change(self):
        grid = make_grid(column=4)
        add(grid, "a", 0, 0, 2, 1)
        add(grid, "b", 2, 0, 2, 1)
        grid.set_column(2, ColumnFlags.COMPACT)
        assert layout(grid) == {"a": (0, 0, 2, 1), "b": (0, 1, 2, 1)}
