"""Grid placement engine for dashboard layouts."""

from .changeset import EntryChange, LayoutChange
from .config import GridOptions
from .engine import GridEngine
from .types import (
    ColumnFlags,
    ContractViolation,
    Entry,
    GridBox,
    MoveOptions,
    MoveResult,
)

__all__ = [
    "ColumnFlags",
    "ContractViolation",
    "Entry",
    "EntryChange",
    "GridBox",
    "GridEngine",
    "GridOptions",
    "LayoutChange",
    "MoveOptions",
    "MoveResult",
]
