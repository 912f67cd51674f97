"""Best-fit, worst-fit and two-bin placement policies."""

from __future__ import annotations

from collections.abc import Iterable

from mallocsim.freelist import Allocator, FreeList, FreeSlot
from mallocsim.system import SystemMemory

SIZE_BOUNDARY = 1000


def best_fit(slots: Iterable[FreeSlot], size: int) -> FreeSlot | None:
    """Return the smallest slot holding ``size`` bytes; the earliest wins a tie."""
    chosen: FreeSlot | None = None
    for slot in slots:
        if slot.size >= size and (chosen is None or slot.size < chosen.size):
            chosen = slot
    return chosen


def worst_fit(slots: Iterable[FreeSlot], size: int) -> FreeSlot | None:
    """Return the largest slot holding ``size`` bytes; the earliest wins a tie.

    A slot of size zero is never chosen.
    """
    chosen: FreeSlot | None = None
    largest = 0
    for slot in slots:
        if slot.size >= size and slot.size > largest:
            largest = slot.size
            chosen = slot
    return chosen


class BestFitAllocator(Allocator):
    """Takes the smallest free slot that is large enough."""

    def find_slot(self, size: int) -> FreeSlot | None:
        return best_fit(self.free_list, size)


class WorstFitAllocator(Allocator):
    """Takes the largest free slot that is large enough."""

    def find_slot(self, size: int) -> FreeSlot | None:
        return worst_fit(self.free_list, size)


class TwoBinAllocator(Allocator):
    """Keeps slots below ``SIZE_BOUNDARY`` bytes apart from larger ones.

    Small requests search the small bin by best fit first; anything not
    served there takes the first large enough slot in the large bin.
    """

    def __init__(self, system: SystemMemory) -> None:
        super().__init__(system)
        self.bins: tuple[FreeList, FreeList] = (FreeList(), FreeList())

    def initialize(self) -> None:
        super().initialize()
        self.bins = (FreeList(), FreeList())

    def bin_index(self, size: int) -> int:
        """Return 0 for the small bin, 1 for the large one."""
        return 0 if size < SIZE_BOUNDARY else 1

    def find_slot(self, size: int) -> FreeSlot | None:
        if size < SIZE_BOUNDARY:
            slot = best_fit(self.bins[0], size)
            if slot is not None:
                return slot
        return next((slot for slot in self.bins[1] if slot.size >= size), None)

    def add_free(self, slot: FreeSlot) -> None:
        self.bins[self.bin_index(slot.size)].push(slot)

    def remove_free(self, slot: FreeSlot) -> None:
        self.bins[self.bin_index(slot.size)].remove(slot)