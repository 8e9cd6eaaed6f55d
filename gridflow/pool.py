"""
Caller-side entry storage for immediate-mode UIs.

An immediate-mode UI re-declares its grid items every frame. EntryPool
keeps one Entry per id across frames, hands out generation-checked
references, and reports the entries that stopped being declared so they
can be removed from the engine.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .types import ContractViolation, Entry, EntryId, GridBox


@dataclass(frozen=True)
class EntryRef:
    """Handle to a pooled entry. Goes stale once the entry is collected."""

    entry_id: EntryId
    generation: int


@dataclass
class _Slot:
    entry: Optional[Entry] = None
    generation: int = 0
    touched: bool = False


@dataclass
class EntryPool:
    slots: List[_Slot] = field(default_factory=list)
    index: Dict[EntryId, int] = field(default_factory=dict)
    free: List[int] = field(default_factory=list)
    generation: int = 0

    def __len__(self) -> int:
        return len(self.index)

    def __iter__(self) -> Iterator[Entry]:
        for slot_index in self.index.values():
            yield self.slots[slot_index].entry

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self.index

    def find_or_create(self, entry_id: EntryId, box: Optional[GridBox] = None, **attrs) -> Entry:
        """Return the live entry for `entry_id`, creating it on first use.

        `box` and `attrs` only apply to a newly created entry. Either way
        the entry counts as touched for this frame.
        """
        slot_index = self.index.get(entry_id)
        if slot_index is None:
            entry = Entry(entry_id, position=box if box is not None else GridBox(), **attrs)
            # generations are pool-wide so a handle never matches a reused slot
            self.generation += 1
            if self.free:
                slot_index = self.free.pop()
                slot = self.slots[slot_index]
                slot.entry = entry
                slot.generation = self.generation
            else:
                slot_index = len(self.slots)
                self.slots.append(_Slot(entry=entry, generation=self.generation))
            self.index[entry_id] = slot_index

        slot = self.slots[slot_index]
        slot.touched = True
        return slot.entry

    def get(self, entry_id: EntryId) -> Optional[Entry]:
        slot_index = self.index.get(entry_id)
        if slot_index is None:
            return None
        return self.slots[slot_index].entry

    def ref(self, entry_id: EntryId) -> EntryRef:
        slot_index = self.index.get(entry_id)
        if slot_index is None:
            raise KeyError(entry_id)
        return EntryRef(entry_id, self.slots[slot_index].generation)

    def resolve(self, ref: EntryRef) -> Entry:
        """Entry behind `ref`. Raises ContractViolation for a stale handle."""
        slot_index = self.index.get(ref.entry_id)
        if slot_index is None or self.slots[slot_index].generation != ref.generation:
            raise ContractViolation(f"Stale entry reference {ref}")
        return self.slots[slot_index].entry

    def begin_frame(self) -> None:
        for slot_index in self.index.values():
            self.slots[slot_index].touched = False

    def collect(self) -> List[Entry]:
        """Evict entries not touched since begin_frame() and return them."""
        evicted = []
        for entry_id, slot_index in list(self.index.items()):
            slot = self.slots[slot_index]
            if slot.touched:
                continue
            evicted.append(slot.entry)
            slot.entry = None
            del self.index[entry_id]
            self.free.append(slot_index)
        return evicted
