"""
Core data types for the grid placement engine.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Hashable, Optional, Tuple

EntryId = Hashable

# Sentinel for an unresolved ("auto") coordinate or size
UNSET = -1


class ContractViolation(AssertionError):
    """Raised when a caller breaks an engine contract (a caller bug)."""


class ColumnFlags(IntFlag):
    """How entries are re-flowed when the column count changes."""

    NONE = 0
    MOVE_SCALE = 1 << 0
    COMPACT = 1 << 1
    LIST = 1 << 2
    SCALE = 1 << 3
    MOVE = 1 << 4

    @classmethod
    def from_string(cls, value: str) -> "ColumnFlags":
        flags = cls.NONE
        for name in value.replace("|", ",").split(","):
            name = name.strip()
            if name:
                flags |= cls[name.upper()]
        return flags

    def describe(self) -> str:
        names = [f.name for f in ColumnFlags if f.value and self & f]
        return "|".join(names) or "NONE"


@dataclass(frozen=True, eq=False)
class GridBox:
    """Integer grid box. Any field may be UNSET (-1)."""

    x: int = UNSET
    y: int = UNSET
    w: int = UNSET
    h: int = UNSET

    def valid(self) -> bool:
        return self.x != UNSET and self.y != UNSET

    def resolved(self) -> bool:
        return self.valid() and self.w != UNSET and self.h != UNSET

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GridBox):
            return NotImplemented
        return (
            self.x == other.x
            and self.y == other.y
            and _size(self.w) == _size(other.w)
            and _size(self.h) == _size(other.h)
        )

    def __hash__(self) -> int:
        return hash((self.x, self.y, _size(self.w), _size(self.h)))

    def __str__(self) -> str:
        return f"({self.x},{self.y},{self.w},{self.h})"

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.w, self.h)

    def with_default(self, defaults: "GridBox") -> "GridBox":
        """Fill UNSET fields from `defaults`."""
        return GridBox(
            x=defaults.x if self.x == UNSET else self.x,
            y=defaults.y if self.y == UNSET else self.y,
            w=defaults.w if self.w == UNSET else self.w,
            h=defaults.h if self.h == UNSET else self.h,
        )

    def moved_to(self, x: int, y: int) -> "GridBox":
        return GridBox(x=x, y=y, w=self.w, h=self.h)

    def with_y(self, y: int) -> "GridBox":
        return GridBox(x=self.x, y=y, w=self.w, h=self.h)

    def resized_to(self, w: int, h: int) -> "GridBox":
        return GridBox(x=self.x, y=self.y, w=w, h=h)

    @classmethod
    def from_sequence(cls, values) -> "GridBox":
        x, y, w, h = (int(v) for v in values)
        return cls(x=x, y=y, w=w, h=h)


def _size(value: int) -> int:
    return 1 if value == UNSET else value


@dataclass(frozen=True)
class PixelRect:
    """Pixel-space rectangle, used to judge drag direction coverage."""

    x: float
    y: float
    w: float
    h: float


@dataclass(frozen=True)
class CachedBox:
    """One entry of a cached per-column layout. Height is never cached."""

    entry_id: EntryId
    x: int
    y: int
    w: int
    auto_position: bool = False

    @property
    def placed(self) -> bool:
        return not self.auto_position and self.x != UNSET and self.y != UNSET


@dataclass(eq=False)
class Entry:
    """A rectangle placed on the grid.

    Entries belong to the caller; the engine only keeps references to them.
    Equality is identity.
    """

    entry_id: EntryId
    position: GridBox = field(default_factory=GridBox)
    min_w: int = 0
    min_h: int = 0
    max_w: int = 0
    max_h: int = 0
    locked: bool = False
    no_move: bool = False
    no_resize: bool = False
    auto_position: bool = False
    auto_size: bool = False

    # Bookkeeping owned by the engine
    dirty: bool = False
    updating: bool = False
    moving: bool = False
    skip_down: bool = False
    prev_position: GridBox = field(default_factory=GridBox)
    rect: Optional[PixelRect] = None
    last_tried: GridBox = field(default_factory=GridBox)

    @property
    def x(self) -> int:
        return self.position.x

    @property
    def y(self) -> int:
        return self.position.y

    @property
    def w(self) -> int:
        return self.position.w

    @property
    def h(self) -> int:
        return self.position.h

    def __repr__(self) -> str:
        return f"Entry({self.entry_id!r}, {self.position})"


@dataclass
class MoveOptions:
    """Request for one move/resize, plus the collider found while resolving it.

    `pack` left as None means "pack afterwards unless nothing could move".
    Cell size and margins of 0 fall back to the engine's options.
    GridEngine.move() and check_move_feasible() resolve a copy, so one
    instance can be reused across frames; only `collide` is written back.
    """

    box: GridBox = field(default_factory=GridBox)
    skip: Optional[Entry] = None
    pack: Optional[bool] = None
    nested: bool = False
    force_collide: bool = False
    resizing: bool = False
    cell_width: float = 0.0
    cell_height: float = 0.0
    margin_top: float = 0.0
    margin_right: float = 0.0
    margin_bottom: float = 0.0
    margin_left: float = 0.0
    rect: Optional[PixelRect] = None
    collide: Optional[Entry] = None


@dataclass(frozen=True)
class MoveResult:
    """Outcome of GridEngine.move(). Truthy when the entry changed."""

    changed: bool
    resolved: bool = True
    collide: Optional[Entry] = None

    def __bool__(self) -> bool:
        return self.changed
