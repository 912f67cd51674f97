"""Fourteen size bins with a preference for the next larger bin."""

from __future__ import annotations

from mallocsim.bins import FourteenBinAllocator, fourteen_bin_index
from mallocsim.freelist import FreeSlot

LAST_BIN = 13


def larger_bin_index(size: int) -> int:
    """Return the bin one step above the bin ``size`` falls into.

    Everything from 3000 bytes on maps to the last bin, 13.
    """
    if size < 1000:
        return size // 100 + 1
    return min(10 + size // 1000, LAST_BIN)


class AdvancedFourteenBinAllocator(FourteenBinAllocator):
    """Fourteen bins; a request prefers the head of the next larger bin.

    Every slot in the next larger bin is big enough, so when that bin is not
    empty its head is taken at once. Otherwise the search runs first fit
    over the request's own bin and every bin above it. When the next larger
    bin is the last one and holds slots, only the last bin is searched.
    """

    def find_slot(self, size: int) -> FreeSlot | None:
        index = larger_bin_index(size)
        if len(self.bins[index]):
            if index < LAST_BIN:
                return next(iter(self.bins[index]))
        else:
            index = fourteen_bin_index(size)
        for free_list in self.bins[index:]:
            slot = next((slot for slot in free_list if slot.size >= size), None)
            if slot is not None:
                return slot
        return None