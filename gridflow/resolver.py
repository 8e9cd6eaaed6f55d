"""
Collision resolution for GridEngine.

move_entry() is the core of every mutation: it normalizes the requested
box, finds what is in the way and either swaps with a dragged-over
neighbour or cascades neighbours (or the mover) downward until nothing
overlaps. Functions here take the engine as their first argument and
mutate the entries it tracks.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from .config import COVERAGE_THRESHOLD
from .geometry import intercepts, pixel_rect, touching
from .solver import normalize_bounds
from .types import Entry, GridBox, MoveOptions, PixelRect

if TYPE_CHECKING:
    from .engine import GridEngine

logger = logging.getLogger("gridflow.engine")


class CascadeUnresolved(RuntimeError):
    """A cascade could not settle.

    Raised from deep inside recursive pushes and caught by the public
    engine operation, which then rolls the layout back.
    """

    def __init__(self, entry: Entry, steps: int, message: str):
        super().__init__(f"cascade for {entry.entry_id!r} {message}")
        self.entry = entry
        self.steps = steps


class CascadeLimitExceeded(CascadeUnresolved):
    """A cascade ran out of steps or nesting depth."""

    def __init__(self, entry: Entry, steps: int):
        super().__init__(entry, steps, f"gave up after {steps} steps")


class CascadeBlocked(CascadeUnresolved):
    """A push could not move its entry (row ceiling) while the overlap remained."""

    def __init__(self, entry: Entry, steps: int):
        super().__init__(entry, steps, f"is blocked at {entry.position}")


# =============================================================================
# Queries
# =============================================================================


def collide(
    entries: List[Entry],
    skip: Optional[Entry],
    area: GridBox,
    skip2: Optional[Entry] = None,
) -> Optional[Entry]:
    """Return the first entry (other than the skipped ones) overlapping `area`."""
    for entry in entries:
        if entry is skip or entry is skip2:
            continue
        if intercepts(entry.position, area):
            return entry
    return None


def collide_all(
    entries: List[Entry],
    skip: Optional[Entry],
    area: GridBox,
    skip2: Optional[Entry] = None,
) -> List[Entry]:
    """Return every entry (other than the skipped ones) overlapping `area`."""
    return [
        entry
        for entry in entries
        if entry is not skip and entry is not skip2 and intercepts(entry.position, area)
    ]


def direction_coverage(
    entry: Entry, options: MoveOptions, collides: List[Entry]
) -> Optional[Entry]:
    """Pick the collider a drag has covered the most of along its approach.

    The dragged rect is stretched back to where the entry started, so a
    fast drag still counts what it passed over. A neighbour qualifies once
    more than half of it is covered. The pick is stored on options.collide.
    """
    r0 = entry.rect
    if options.rect is None or r0 is None:
        return None

    r = options.rect
    if r.y > r0.y:
        ry, rh = r0.y, r.h + (r.y - r0.y)
    else:
        ry, rh = r.y, r.h + (r0.y - r.y)
    if r.x > r0.x:
        rx, rw = r0.x, r.w + (r.x - r0.x)
    else:
        rx, rw = r.x, r.w + (r0.x - r.x)

    best: Optional[Entry] = None
    best_over = COVERAGE_THRESHOLD
    for other in collides:
        if other.locked or other.rect is None:
            break
        r2 = other.rect
        y_over = x_over = float("inf")
        if r0.y < r2.y:
            y_over = (ry + rh - r2.y) / r2.h
        elif r0.y + r0.h > r2.y + r2.h:
            y_over = (r2.y + r2.h - ry) / r2.h
        if r0.x < r2.x:
            x_over = (rx + rw - r2.x) / r2.w
        elif r0.x + r0.w > r2.x + r2.w:
            x_over = (r2.x + r2.w - rx) / r2.w
        over = min(x_over, y_over)
        if over > best_over:
            best_over = over
            best = other

    options.collide = best
    return best


# =============================================================================
# Swap
# =============================================================================


def swap_entries(grid: "GridEngine", a: Entry, b: Entry) -> bool:
    """Exchange two neighbouring entries in place.

    Works for equal sizes sharing a row or column, equal widths stacked in
    one column, or equal heights side by side in one row. The boxes must
    touch. Locked entries never swap.
    """
    if a.locked or b.locked:
        return False

    pa, pb = a.position, b.position
    if pa.w == pb.w and pa.h == pb.h and (pa.x == pb.x or pa.y == pb.y) and touching(pa, pb):
        pass
    elif pa.w == pb.w and pa.x == pb.x and touching(pa, pb):
        if pb.y < pa.y:
            a, b = b, a
    elif pa.h == pb.h and pa.y == pb.y and touching(pa, pb):
        if pb.x < pa.x:
            a, b = b, a
    else:
        return False

    pa, pb = a.position, b.position
    b.position = pb.moved_to(pa.x, pa.y)
    if pa.h != pb.h:
        a.position = pa.moved_to(pb.x, pa.y + pb.h)
    elif pa.w != pb.w:
        a.position = pa.moved_to(pa.x + pb.w, pb.y)
    else:
        a.position = pa.moved_to(pb.x, pb.y)
    a.dirty = b.dirty = True

    logger.debug(f"Swapped {a.entry_id!r} {a.position} with {b.entry_id!r} {b.position}")
    grid.oplog.swap(a, b)
    return True


# =============================================================================
# Move and cascade
# =============================================================================


def use_entire_row_area(grid: "GridEngine", entry: Entry, target: GridBox) -> bool:
    """Whether the cascade should clear the whole row band under `target`."""
    gravity = not grid.float_mode or (grid.batch_mode and not grid._prev_float)
    return (
        gravity
        and not grid.has_locked
        and (not entry.moving or entry.skip_down or target.y <= entry.y)
    )


def _drag_rect(grid: "GridEngine", options: MoveOptions, target: GridBox) -> PixelRect:
    opts = grid.options
    return pixel_rect(
        target,
        options.cell_width or opts.cell_width,
        options.cell_height or opts.cell_height,
        (
            options.margin_top or opts.margin_top,
            options.margin_right or opts.margin_right,
            options.margin_bottom or opts.margin_bottom,
            options.margin_left or opts.margin_left,
        ),
    )


def move_entry(grid: "GridEngine", entry: Entry, options: MoveOptions) -> bool:
    """Move/resize `entry` to options.box, pushing whatever is in the way.

    Returns True when the entry's box changed.
    """
    default_pack = False
    if options.pack is None and not grid.batch_mode:
        options.pack = default_pack = True

    requested = options.box.with_default(entry.position)
    resizing = requested.w != entry.w or requested.h != entry.h
    target = grid._bound_fix(entry, requested, resizing)
    options.box = target
    if not options.force_collide and target == entry.position:
        return False

    prev = entry.position
    collides = collide_all(grid.entries, entry, target, options.skip)
    need_to_move = True
    if collides:
        active_drag = entry.moving and not options.nested
        if active_drag:
            if options.rect is None:
                options.rect = _drag_rect(grid, options, target)
            collider = direction_coverage(entry, options, collides)
        else:
            collider = collides[0]

        if collider is not None:
            need_to_move = not fix_collisions(grid, entry, target, collider, options)
        else:
            need_to_move = False
            if default_pack:
                options.pack = None

    if need_to_move:
        entry.dirty = True
        entry.position = target
        grid.oplog.move(entry, prev, nested=options.nested)

    if options.pack:
        grid._pack()
        grid._notify()

    return entry.position != prev


def _push(grid: "GridEngine", entry: Entry, options: MoveOptions) -> bool:
    grid._cascade_steps += 1
    if grid._cascade_steps > grid.options.max_cascade_steps:
        raise CascadeLimitExceeded(entry, grid._cascade_steps)
    # each nested push holds a few interpreter frames
    if grid._cascade_depth >= grid.max_cascade_depth:
        raise CascadeLimitExceeded(entry, grid._cascade_steps)
    grid._cascade_depth += 1
    try:
        return move_entry(grid, entry, options)
    finally:
        grid._cascade_depth -= 1


def fix_collisions(
    grid: "GridEngine",
    entry: Entry,
    target: Optional[GridBox] = None,
    collider: Optional[Entry] = None,
    options: Optional[MoveOptions] = None,
) -> bool:
    """Resolve overlaps between `entry` at `target` and its neighbours.

    Returns True when the entry itself was moved (or swapped). A push that
    cannot make progress while the overlap remains raises CascadeBlocked.
    """
    if target is None:
        target = entry.position
    if options is None:
        options = MoveOptions()

    grid.sort_entries(descending=True)

    if collider is None:
        collider = collide(grid.entries, entry, target)
    if collider is None:
        return False

    if entry.moving and not options.nested and not grid.float_mode:
        if swap_entries(grid, entry, collider):
            return True

    row_area = not grid.loading and use_entire_row_area(grid, entry, target)
    area = target
    if row_area:
        area = GridBox(0, target.y, grid.column, target.h)
        collider = collide(grid.entries, entry, area, options.skip)

    limit = grid.options.cascade_limit
    if limit is None:
        limit = 2 * len(grid.entries) + 1

    did_move = False
    counter = 0
    while True:
        if collider is None:
            collider = collide(grid.entries, entry, area, options.skip)
        if collider is None:
            break
        counter += 1
        if counter > limit:
            raise CascadeLimitExceeded(entry, counter)

        c = collider.position
        push_mover = (
            collider.locked
            or grid.loading
            or (
                entry.moving
                and not entry.skip_down
                and target.y > entry.y
                and not grid.float_mode
                and (
                    collide(grid.entries, collider, c.with_y(entry.y), entry) is None
                    or collide(grid.entries, collider, c.with_y(target.y - c.h), entry) is None
                )
            )
        )

        if push_mover:
            entry.skip_down = entry.skip_down or target.y > entry.y
            below = normalize_bounds(entry, target.with_y(c.bottom), grid.column, grid.max_row)
            if below == target:
                raise CascadeBlocked(entry, grid._cascade_steps)
            if (collider.locked or grid.loading) and below == entry.position:
                moved = True
            else:
                moved = _push(grid, entry, MoveOptions(box=below, nested=True, pack=False))
            if (collider.locked or grid.loading) and moved:
                target = entry.position
            elif not collider.locked and moved and options.pack:
                grid._pack()
                target = target.with_y(collider.position.bottom)
                entry.position = target
            did_move = did_move or moved
        else:
            moved = _push(
                grid,
                collider,
                MoveOptions(
                    box=c.with_y(target.bottom),
                    skip=entry,
                    nested=True,
                    pack=False,
                ),
            )

        if not moved:
            raise CascadeBlocked(entry if push_mover else collider, grid._cascade_steps)
        collider = None
        if not row_area:
            area = target

    return did_move
