"""
Pixel-space drag and resize on top of GridEngine transactions.
"""

import logging
from typing import Optional

from .engine import GridEngine
from .reflow import round_half_up
from .types import Entry, GridBox, MoveOptions, PixelRect

logger = logging.getLogger("gridflow.engine")


class DragController:
    """Turns pixel positions reported by a UI into engine moves.

    Positions are the top-left corner of the dragged item relative to the
    grid origin and snap to the nearest cell. While the dragged item sits
    on something, the container grows by `extra_drag_row` rows so there is
    room to drop it below the last row.
    """

    def __init__(
        self,
        grid: GridEngine,
        cell_width: Optional[float] = None,
        cell_height: Optional[float] = None,
    ):
        self.grid = grid
        self.cell_width = cell_width or grid.options.cell_width
        self.cell_height = cell_height or grid.options.cell_height

    def start(self, entry: Entry) -> None:
        self.grid.begin_transaction(entry)
        self.grid.cache_rects(self.cell_width, self.cell_height)

    def to_grid(self, px: float, py: float):
        return round_half_up(px / self.cell_width), round_half_up(py / self.cell_height)

    def _rect(self, px: float, py: float, w: int, h: int) -> PixelRect:
        top, right, bottom, left = self.grid.options.margins
        return PixelRect(
            x=px + left,
            y=py + top,
            w=w * self.cell_width - right - left,
            h=h * self.cell_height - top - bottom,
        )

    def _update_extra_row(self, entry: Entry, target: GridBox) -> None:
        grid = self.grid
        if grid.collide(entry, target) is None:
            grid.extra_drag_row = 0
            return
        row = grid.get_occupied_row_count()
        extra = max(0, target.y + entry.h - row)
        if grid.max_row and row + extra > grid.max_row:
            extra = max(0, grid.max_row - row)
        grid.extra_drag_row = extra

    def _try(self, entry: Entry, target: GridBox, options: MoveOptions) -> bool:
        if target == entry.position or target == entry.last_tried:
            return False
        entry.last_tried = target
        if not self.grid.check_move_feasible(entry, options):
            return False
        self.grid.cache_rects(self.cell_width, self.cell_height)
        entry.skip_down = False
        self.grid.extra_drag_row = 0
        return True

    def drag_to(self, entry: Entry, px: float, py: float) -> bool:
        """Drag `entry` so its top-left corner is at (px, py).

        Returns True when the layout changed.
        """
        if not self.grid.in_transaction(entry):
            self.start(entry)
        x, y = self.to_grid(px, py)
        target = GridBox(x, y, entry.w, entry.h)
        self._update_extra_row(entry, target)

        options = MoveOptions(
            box=target,
            rect=self._rect(px, py, entry.w, entry.h),
            cell_width=self.cell_width,
            cell_height=self.cell_height,
        )
        moved = self._try(entry, target, options)
        if moved:
            logger.debug(f"Dragged {entry.entry_id!r} to {entry.position}")
        return moved

    def resize_to(self, entry: Entry, pw: float, ph: float) -> bool:
        """Resize `entry` to a pixel size, keeping its top-left cell."""
        if not self.grid.in_transaction(entry):
            self.start(entry)
        w = max(1, round_half_up(pw / self.cell_width))
        h = max(1, round_half_up(ph / self.cell_height))
        target = GridBox(entry.x, entry.y, w, h)
        options = MoveOptions(
            box=target,
            resizing=True,
            cell_width=self.cell_width,
            cell_height=self.cell_height,
        )
        return self._try(entry, target, options)

    def release(self, entry: Entry, commit: bool = True) -> None:
        """Drop `entry`, keeping the drag result or putting everything back."""
        if commit:
            self.grid.end_transaction(entry)
        else:
            self.grid.cancel_transaction(entry)
        self.grid.extra_drag_row = 0

    def container_rows(self) -> int:
        return self.grid.get_occupied_row_count() + self.grid.extra_drag_row

    def container_height(self) -> float:
        return self.container_rows() * self.cell_height
