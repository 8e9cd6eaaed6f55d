"""
Engine configuration.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Tuple

DEFAULT_COLUMN = 12
# Column count the layout cache treats as the "full width" layout
REFERENCE_COLUMN = 12
DEFAULT_MAX_CASCADE_STEPS = 10_000
# Interpreter frames reserved per nested push when deriving the depth cap
FRAMES_PER_PUSH = 8
# Minimum fraction of a neighbour a drag must cover to pick it as collider
COVERAGE_THRESHOLD = 0.5


@dataclass
class GridOptions:
    """Options for a GridEngine.

    max_row == 0 means unbounded. Cell sizes are the pixel size of one grid
    unit; the default of 1.0 makes pixel rects equal to grid boxes.
    cascade_limit caps one collision-fixing loop (None: twice the entry
    count plus one); max_cascade_steps caps all pushes of one operation and
    max_cascade_depth caps how deeply pushes nest (None: derived from the
    interpreter recursion limit).
    find_space_row_limit caps the empty-space scan when max_row is 0
    (None: occupied rows plus the entry height).
    """

    column: int = DEFAULT_COLUMN
    max_row: int = 0
    float_mode: bool = False
    cell_width: float = 1.0
    cell_height: float = 1.0
    margin_top: float = 0.0
    margin_right: float = 0.0
    margin_bottom: float = 0.0
    margin_left: float = 0.0
    cascade_limit: Optional[int] = None
    max_cascade_steps: int = DEFAULT_MAX_CASCADE_STEPS
    max_cascade_depth: Optional[int] = None
    find_space_row_limit: Optional[int] = None
    reference_column: int = REFERENCE_COLUMN

    def __post_init__(self):
        if self.column < 1:
            raise ValueError(f"column must be >= 1, got {self.column}")
        if self.max_row < 0:
            raise ValueError(f"max_row must be >= 0, got {self.max_row}")
        if self.cell_width <= 0 or self.cell_height <= 0:
            raise ValueError("cell size must be positive")
        if self.max_cascade_steps < 1:
            raise ValueError("max_cascade_steps must be >= 1")
        if self.max_cascade_depth is not None and self.max_cascade_depth < 1:
            raise ValueError("max_cascade_depth must be >= 1")

    @property
    def margins(self) -> Tuple[float, float, float, float]:
        return (self.margin_top, self.margin_right, self.margin_bottom, self.margin_left)

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "GridOptions":
        """Build options from a plain mapping; missing keys keep defaults.

        A single `margin` key sets all four margins.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known - {"margin"}
        if unknown:
            raise ValueError(f"Unknown grid options: {sorted(unknown)}")

        values = {k: v for k, v in config.items() if k in known}
        if "margin" in config:
            for side in ("margin_top", "margin_right", "margin_bottom", "margin_left"):
                values.setdefault(side, config["margin"])
        return cls(**values)
