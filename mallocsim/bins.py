"""Segregated free lists: allocators that sort free slots into size bins."""

from __future__ import annotations

from abc import abstractmethod

from mallocsim.fits import best_fit
from mallocsim.freelist import Allocator, FreeList, FreeSlot
from mallocsim.system import SystemMemory

SIZE_BOUNDARY = 1000


def four_bin_index(size: int) -> int:
    """Bin of ``size`` among four bins, 1000 bytes wide, the last one open-ended."""
    return min(size // SIZE_BOUNDARY, 3)


def fourteen_bin_index(size: int) -> int:
    """Bin of ``size`` among fourteen bins.

    Below 1000 bytes the bins are 100 bytes wide; above that they are 1000
    bytes wide, and everything from 4000 bytes on shares the last bin.
    """
    if size < 1000:
        return size // 100
    return min(9 + size // 1000, 13)


def twenty_five_bin_index(size: int) -> int:
    """Bin of ``size`` among twenty-five bins.

    Sizes below 128 bytes use bins 0 to 3, 32 bytes each. Larger sizes fall
    into one bin per power-of-two range (4, 8, 12, 16 and 20), and anything
    from 4096 bytes on goes to the last bin, 24. The bins in between stay
    empty.
    """
    if size < 128:
        return size // 32
    if size < 256:
        return 4
    if size < 512:
        return 8
    if size < 1024:
        return 12
    if size < 2048:
        return 16
    if size < 4096:
        return 20
    return 24


class BinnedAllocator(Allocator):
    """Keeps free slots in ``bin_count`` lists chosen by :meth:`bin_index`.

    A request is served by best fit from its own bin, moving on to larger
    bins until one holds a slot that is large enough.
    """

    bin_count: int

    def __init__(self, system: SystemMemory) -> None:
        super().__init__(system)
        self.bins: tuple[FreeList, ...] = self._empty_bins()

    def _empty_bins(self) -> tuple[FreeList, ...]:
        return tuple(FreeList() for _ in range(self.bin_count))

    def initialize(self) -> None:
        super().initialize()
        self.bins = self._empty_bins()

    @abstractmethod
    def bin_index(self, size: int) -> int:
        """Return the bin a slot of ``size`` bytes belongs to."""

    def _best_fit_from(self, bins: tuple[FreeList, ...], size: int) -> FreeSlot | None:
        for free_list in bins:
            slot = best_fit(free_list, size)
            if slot is not None:
                return slot
        return None

    def find_slot(self, size: int) -> FreeSlot | None:
        return self._best_fit_from(self.bins[self.bin_index(size):], size)

    def add_free(self, slot: FreeSlot) -> None:
        self.bins[self.bin_index(slot.size)].push(slot)

    def remove_free(self, slot: FreeSlot) -> None:
        self.bins[self.bin_index(slot.size)].remove(slot)


class FourBinAllocator(BinnedAllocator):
    """Four bins, each 1000 bytes wide."""

    bin_count = 4

    def bin_index(self, size: int) -> int:
        return four_bin_index(size)


class FourteenBinAllocator(BinnedAllocator):
    """Fourteen bins; the search always starts from the smallest bin."""

    bin_count = 14

    def bin_index(self, size: int) -> int:
        return fourteen_bin_index(size)

    def find_slot(self, size: int) -> FreeSlot | None:
        # The starting bin is taken from the head of bin 0, which only ever
        # holds slots below 100 bytes, so every search begins at bin 0.
        return self._best_fit_from(self.bins, size)


class TwentyFiveBinAllocator(BinnedAllocator):
    """Twenty-five bins with a first-fit fallback to the last one.

    Best fit runs over the bins from the request's own up to bin 22; if
    none of them serves, the first large enough slot in bin 24 is taken.
    """

    bin_count = 25

    def bin_index(self, size: int) -> int:
        return twenty_five_bin_index(size)

    def find_slot(self, size: int) -> FreeSlot | None:
        slot = self._best_fit_from(self.bins[self.bin_index(size):self.bin_count - 2], size)
        if slot is not None:
            return slot
        return next((slot for slot in self.bins[-1] if slot.size >= size), None)