"""
Engine operation log for debugging and testing.

Records every action the engine takes for deterministic snapshot testing.
Each operation is a structured OpEvent serialized as one human-readable line.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

from .changeset import LayoutChange, format_line, parse_line
from .types import Entry, GridBox


OpKind = Literal[
    "ADD",
    "REMOVE",
    "MOVE",
    "PUSH",
    "SWAP",
    "PACK",
    "NOTIFY",
    "COLUMN",
    "CACHE",
    "UNRESOLVED",
    "ROLLBACK",
]


@dataclass(frozen=True)
class OpEvent:
    """A single structured operation event."""

    kind: OpKind
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_line(self) -> str:
        """Serialize to a single human-readable line."""
        return format_line(self.kind, self.fields)

    @classmethod
    def from_line(cls, line: str) -> "OpEvent":
        """Parse a single line back to OpEvent."""
        kind, fields = parse_line(line)
        return cls(kind=kind, fields=fields)


@dataclass
class OpLog:
    """Accumulates engine operations. Disabled logs drop every event."""

    events: List[OpEvent] = field(default_factory=list)
    enabled: bool = True

    def emit(self, event: OpEvent) -> None:
        """Append an event to the log."""
        if self.enabled:
            self.events.append(event)

    def count(self, kind: OpKind) -> int:
        return sum(1 for event in self.events if event.kind == kind)

    def clear(self) -> None:
        self.events.clear()

    # =========================================================================
    # Membership
    # =========================================================================

    def add(self, entry: Entry) -> None:
        fields: Dict[str, Any] = {"id": entry.entry_id, "box": entry.position}
        if entry.locked:
            fields["locked"] = True
        self.emit(OpEvent(kind="ADD", fields=fields))

    def remove(self, entry: Entry) -> None:
        self.emit(OpEvent(kind="REMOVE", fields={"id": entry.entry_id}))

    # =========================================================================
    # Placement
    # =========================================================================

    def move(self, entry: Entry, before: GridBox, nested: bool = False) -> None:
        self.emit(OpEvent(
            kind="PUSH" if nested else "MOVE",
            fields={"id": entry.entry_id, "from": before, "to": entry.position},
        ))

    def swap(self, a: Entry, b: Entry) -> None:
        self.emit(OpEvent(
            kind="SWAP",
            fields={"a": a.entry_id, "a_box": a.position, "b": b.entry_id, "b_box": b.position},
        ))

    def pack(self, moved: int, float_mode: bool) -> None:
        fields: Dict[str, Any] = {"moved": moved}
        if float_mode:
            fields["float"] = True
        self.emit(OpEvent(kind="PACK", fields=fields))

    def unresolved(self, entry: Entry, steps: int) -> None:
        self.emit(OpEvent(kind="UNRESOLVED", fields={"id": entry.entry_id, "steps": steps}))

    def rollback(self, reason: str, entries: int) -> None:
        self.emit(OpEvent(kind="ROLLBACK", fields={"reason": reason, "entries": entries}))

    # =========================================================================
    # Columns and notifications
    # =========================================================================

    def column(self, old: int, new: int, flags: str) -> None:
        self.emit(OpEvent(kind="COLUMN", fields={"from": old, "to": new, "flags": flags}))

    def cache(self, column: int, entries: int) -> None:
        self.emit(OpEvent(kind="CACHE", fields={"column": column, "entries": entries}))

    def notify(self, change: LayoutChange) -> None:
        fields: Dict[str, Any] = {}
        if change.added:
            fields["added"] = sorted(map(str, change.added))
        if change.removed:
            fields["removed"] = sorted(map(str, change.removed))
        if change.changed:
            fields["changed"] = sorted(str(c.entry_id) for c in change.changed)
        self.emit(OpEvent(kind="NOTIFY", fields=fields))

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_plaintext(self) -> str:
        """Serialize to plaintext - one line per event."""
        if not self.events:
            return ""
        lines = [event.to_line() for event in self.events]
        return "\n".join(lines) + "\n"

    def log_to(self, logger) -> None:
        """Log all events as DEBUG-level messages."""
        for event in self.events:
            logger.debug(f"OPLOG {event.to_line()}")

    @classmethod
    def from_plaintext(cls, text: str) -> "OpLog":
        """Parse plaintext back to OpLog."""
        events: List[OpEvent] = []
        for line in text.strip().split("\n"):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            events.append(OpEvent.from_line(line))
        return cls(events=events)
