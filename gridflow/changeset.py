"""
Change records, checkpoints, and line serialization for gridflow.

This module contains:
1. Serialization utilities (format_line, parse_line, etc.)
2. LayoutChange - what a notification pass reports to subscribers
3. LayoutCheckpoint - the journal used to roll a tentative move back
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from .types import Entry, EntryId, GridBox

if TYPE_CHECKING:
    from .engine import GridEngine


# =============================================================================
# Serialization Utilities
# =============================================================================


def format_value(value: Any) -> str:
    """Format a value for serialization."""
    if isinstance(value, GridBox):
        return format_value(list(value.as_tuple()))
    if isinstance(value, str):
        if not value or any(c in value for c in ' =",[]'):
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    if value is None:
        return "none"
    return format_value(str(value))


def parse_value(s: str) -> Any:
    """Parse a serialized value."""
    s = s.strip()

    if s.startswith('"') and s.endswith('"') and len(s) >= 2:
        return s[1:-1].replace('\\"', '"').replace("\\\\", "\\")

    if s.startswith("[") and s.endswith("]"):
        inner = s[1:-1].strip()
        if not inner:
            return []
        return [parse_value(item) for item in _split(inner, ",")]

    if s == "true":
        return True
    if s == "false":
        return False
    if s == "none":
        return None

    try:
        if "." in s:
            return float(s)
        return int(s)
    except ValueError:
        return s


def _split(s: str, sep: str) -> List[str]:
    """Split on `sep`, ignoring separators inside quotes or brackets."""
    parts = []
    current = []
    in_quotes = False
    depth = 0
    escape = False

    for c in s:
        if escape:
            escape = False
        elif c == "\\":
            escape = True
        elif c == '"':
            in_quotes = not in_quotes
        elif c == "[" and not in_quotes:
            depth += 1
        elif c == "]" and not in_quotes:
            depth -= 1
        elif c == sep and not in_quotes and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(c)

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def format_line(kind: str, fields: Dict[str, Any]) -> str:
    """Format a single line: KIND key=value key=value ..."""
    parts = [kind]
    for key, value in fields.items():
        parts.append(f"{key}={format_value(value)}")
    return " ".join(parts)


def parse_line(line: str) -> Tuple[str, Dict[str, Any]]:
    """Parse a single line into (kind, fields) tuple."""
    line = line.strip()
    if not line or line.startswith("#"):
        raise ValueError(f"Cannot parse empty or comment line: {line!r}")

    tokens = _split(line, " ")
    kind = tokens[0]
    fields: Dict[str, Any] = {}

    for token in tokens[1:]:
        if "=" not in token:
            raise ValueError(f"Invalid field (no '='): {token!r}")
        key, value_str = token.split("=", 1)
        fields[key] = parse_value(value_str)

    return kind, fields


# =============================================================================
# Layout changes
# =============================================================================


@dataclass(frozen=True)
class EntryChange:
    """One entry's box before and after a change.

    `before` is an unset GridBox when the entry had no settled box.
    """

    entry_id: EntryId
    before: GridBox
    after: GridBox


@dataclass(frozen=True)
class LayoutChange:
    """Everything one notification pass reports."""

    added: Tuple[EntryId, ...] = ()
    removed: Tuple[EntryId, ...] = ()
    changed: Tuple[EntryChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    def to_plaintext(self) -> str:
        """Serialize to plaintext - one line per change."""
        lines: List[str] = []
        for entry_id in self.added:
            lines.append(format_line("ADDED", {"id": entry_id}))
        for entry_id in self.removed:
            lines.append(format_line("REMOVED", {"id": entry_id}))
        for change in self.changed:
            lines.append(
                format_line(
                    "CHANGED",
                    {"id": change.entry_id, "from": change.before, "to": change.after},
                )
            )
        if not lines:
            return ""
        return "\n".join(lines) + "\n"


def snapshot_layout(entries: Iterable[Entry]) -> Dict[EntryId, GridBox]:
    """Map of entry id to current box."""
    return {e.entry_id: e.position for e in entries}


def diff_layouts(
    before: Dict[EntryId, GridBox], after: Dict[EntryId, GridBox]
) -> LayoutChange:
    """Build a LayoutChange by comparing two snapshots.

    Ordering follows `after` for added and changed ids, `before` for
    removed ones.
    """
    added = tuple(k for k in after if k not in before)
    removed = tuple(k for k in before if k not in after)
    changed = tuple(
        EntryChange(k, before[k], box)
        for k, box in after.items()
        if k in before and before[k] != box
    )
    return LayoutChange(added=added, removed=removed, changed=changed)


# =============================================================================
# Checkpoints
# =============================================================================


@dataclass(frozen=True)
class _EntryState:
    entry: Entry
    position: GridBox
    dirty: bool
    skip_down: bool
    auto_position: bool


@dataclass
class LayoutCheckpoint:
    """Journal of the mutable layout state of an engine.

    Captures entry order and each tracked entry's box and flags, plus the
    pending notification lists and the layout cache, so a tentative move
    can be undone exactly.
    """

    order: List[Entry] = field(default_factory=list)
    states: List[_EntryState] = field(default_factory=list)
    pending_added: int = 0
    pending_removed: int = 0
    layout_cache: Dict[int, list] = field(default_factory=dict)
    has_locked: bool = False

    @classmethod
    def capture(cls, grid: "GridEngine") -> "LayoutCheckpoint":
        return cls(
            order=list(grid.entries),
            states=[
                _EntryState(e, e.position, e.dirty, e.skip_down, e.auto_position)
                for e in grid.entries
            ],
            pending_added=len(grid._added),
            pending_removed=len(grid._removed),
            layout_cache={k: list(v) for k, v in grid.layout_cache.items()},
            has_locked=grid.has_locked,
        )

    def restore(self, grid: "GridEngine") -> None:
        grid.entries = list(self.order)
        for state in self.states:
            state.entry.position = state.position
            state.entry.dirty = state.dirty
            state.entry.skip_down = state.skip_down
            state.entry.auto_position = state.auto_position
        del grid._added[self.pending_added:]
        del grid._removed[self.pending_removed:]
        grid.layout_cache = {k: list(v) for k, v in self.layout_cache.items()}
        grid.has_locked = self.has_locked

    def position_of(self, entry: Entry) -> Optional[GridBox]:
        for state in self.states:
            if state.entry is entry:
                return state.position
        return None
