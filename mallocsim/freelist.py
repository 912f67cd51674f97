"""Free lists and the allocator skeleton shared by every placement policy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass

from mallocsim.system import PAGE_SIZE, SystemMemory

METADATA_SIZE = 16
MAX_OBJECT_SIZE = PAGE_SIZE - METADATA_SIZE


@dataclass(frozen=True)
class FreeSlot:
    """A free region: ``address`` is where its metadata sits, ``size`` excludes it."""

    address: int
    size: int

    @property
    def payload(self) -> int:
        """Address of the first usable byte."""
        return self.address + METADATA_SIZE


class FreeList:
    """Free slots, newest first. Pushing places a slot at the head."""

    def __init__(self) -> None:
        self._slots: dict[int, FreeSlot] = {}

    def push(self, slot: FreeSlot) -> None:
        """Put ``slot`` at the head of the list."""
        if slot.address in self._slots:
            raise ValueError(f"slot at {slot.address} is already free")
        self._slots[slot.address] = slot

    def remove(self, slot: FreeSlot) -> None:
        """Take ``slot`` out of the list."""
        if self._slots.get(slot.address) != slot:
            raise ValueError(f"slot at {slot.address} is not in the free list")
        del self._slots[slot.address]

    def __iter__(self) -> Iterator[FreeSlot]:
        return reversed(list(self._slots.values()))

    def __len__(self) -> int:
        return len(self._slots)


class Allocator(ABC):
    """Carves objects out of pages taken from a :class:`SystemMemory`.

    Every object is preceded by ``METADATA_SIZE`` bytes of metadata. When no
    free slot fits, a fresh page is mapped. A slot is split when what is left
    over is larger than the metadata; otherwise the object keeps the whole
    slot. Freed objects go back to the free list without coalescing.
    """

    def __init__(self, system: SystemMemory) -> None:
        self.system = system
        self.free_list = FreeList()
        self._allocated: dict[int, int] = {}

    def initialize(self) -> None:
        """Start from an empty heap."""
        self.free_list = FreeList()
        self._allocated = {}

    def malloc(self, size: int) -> int:
        """Allocate ``size`` bytes and return the object's address."""
        if size < 0 or size > MAX_OBJECT_SIZE:
            raise ValueError(f"object size must be between 0 and {MAX_OBJECT_SIZE}: {size}")
        slot = self.find_slot(size)
        while slot is None:
            page = self.system.mmap(PAGE_SIZE)
            self.add_free(FreeSlot(page, PAGE_SIZE - METADATA_SIZE))
            slot = self.find_slot(size)
        self.remove_free(slot)
        address = slot.payload
        remaining = slot.size - size
        if remaining > METADATA_SIZE:
            self._allocated[address] = size
            self.add_free(FreeSlot(address + size, remaining - METADATA_SIZE))
        else:
            self._allocated[address] = slot.size
        return address

    def free(self, address: int) -> None:
        """Return the object at ``address`` to the free list."""
        try:
            size = self._allocated.pop(address)
        except KeyError:
            raise ValueError(f"address {address} is not an allocated object") from None
        self.add_free(FreeSlot(address - METADATA_SIZE, size))

    def finalize(self) -> None:
        """Hook run at the end of a challenge; the heap is left as it is."""

    @abstractmethod
    def find_slot(self, size: int) -> FreeSlot | None:
        """Choose a free slot of at least ``size`` bytes, or None."""

    def add_free(self, slot: FreeSlot) -> None:
        """Put a slot on the free list."""
        self.free_list.push(slot)

    def remove_free(self, slot: FreeSlot) -> None:
        """Take a slot off the free list."""
        self.free_list.remove(slot)


class FirstFitAllocator(Allocator):
    """Takes the first slot, from the head, that is large enough."""

    def find_slot(self, size: int) -> FreeSlot | None:
        return next((slot for slot in self.free_list if slot.size >= size), None)