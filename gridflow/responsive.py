"""
Responsive column counts.

A ColumnPolicy picks the column count from the width available to the
grid, either from a fixed column width or from a list of breakpoints.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .engine import GridEngine
from .reflow import round_half_up
from .types import ColumnFlags


@dataclass(frozen=True)
class Breakpoint:
    """At `width` or narrower, use `column` columns (0 keeps the current count)."""

    width: float
    column: int
    flags: ColumnFlags = ColumnFlags.NONE


@dataclass
class ColumnPolicy:
    column_width: Optional[float] = None
    column_max: int = 12
    breakpoints: List[Breakpoint] = field(default_factory=list)
    flags: ColumnFlags = ColumnFlags.MOVE_SCALE

    @property
    def active(self) -> bool:
        return bool(self.column_width) or bool(self.breakpoints)


def resolve_column(
    policy: ColumnPolicy, available_width: float, current: int
) -> Tuple[int, ColumnFlags]:
    """Column count and reflow flags for `available_width`.

    With a column width the count is the number of such columns that fit,
    capped at column_max. Otherwise breakpoints are walked widest first,
    and each one at least as wide as the available width applies.
    """
    if not policy.active:
        return current, policy.flags

    if policy.column_width:
        column = min(round_half_up(available_width / policy.column_width), policy.column_max)
    else:
        column = policy.column_max
        for bp in sorted(policy.breakpoints, key=lambda b: b.width, reverse=True):
            if available_width > bp.width:
                break
            column = bp.column or current
    column = max(column, 1)

    flags = policy.flags
    for bp in policy.breakpoints:
        if bp.column == column:
            if bp.flags:
                flags = bp.flags
            break
    return column, flags


def apply_responsive(grid: GridEngine, policy: ColumnPolicy, available_width: float) -> bool:
    """Re-flow `grid` for `available_width`. Returns True if the column count changed."""
    column, flags = resolve_column(policy, available_width, grid.column)
    if column == grid.column:
        return False
    grid.set_column(column, flags)
    return True
