"""Simulated operating-system memory: page mappings, byte storage and statistics."""

from __future__ import annotations

from bisect import bisect_right, insort
from dataclasses import dataclass
from typing import TextIO

PAGE_SIZE = 4096
_BASE_ADDRESS = 0x10000000


@dataclass
class Stats:
    """Counters gathered while a challenge runs."""

    begin_time: float = 0.0
    end_time: float = 0.0
    mmap_size: int = 0
    munmap_size: int = 0
    allocated_size: int = 0
    freed_size: int = 0


class SystemMemory:
    """Hands out page-aligned regions and stores their bytes.

    Every mapping and unmapping is counted in :attr:`stats` and, when a
    trace stream is given, logged as ``m <address> <size>`` or
    ``u <address> <size>`` lines.
    """

    def __init__(self, trace: TextIO | None = None) -> None:
        self.trace = trace
        self.stats = Stats()
        self._regions: dict[int, bytearray] = {}
        self._starts: list[int] = []
        self._next_address = _BASE_ADDRESS

    def mmap(self, size: int) -> int:
        """Map ``size`` zeroed bytes and return the start address."""
        if size <= 0 or size % PAGE_SIZE:
            raise ValueError(f"mmap size must be a positive multiple of {PAGE_SIZE}: {size}")
        address = self._next_address
        self._next_address += size
        self.stats.mmap_size += size
        self._add_region(address, bytearray(size))
        if self.trace is not None:
            self.trace.write(f"m {address} {size}\n")
        return address

    def munmap(self, address: int, size: int) -> None:
        """Unmap ``[address, address + size)``; it must lie in one mapping."""
        if size <= 0 or size % PAGE_SIZE:
            raise ValueError(f"munmap size must be a positive multiple of {PAGE_SIZE}: {size}")
        if address % PAGE_SIZE:
            raise ValueError(f"munmap address is not page aligned: {address}")
        start, buffer = self._locate(address, size)
        offset = address - start
        left = buffer[:offset]
        right = buffer[offset + size:]
        self._remove_region(start)
        if left:
            self._add_region(start, left)
        if right:
            self._add_region(address + size, right)
        self.stats.munmap_size += size
        if self.trace is not None:
            self.trace.write(f"u {address} {size}\n")

    def write(self, address: int, data: bytes) -> None:
        """Store ``data`` at ``address``; the whole range must be mapped."""
        start, buffer = self._locate(address, len(data))
        offset = address - start
        buffer[offset:offset + len(data)] = data

    def read(self, address: int, size: int) -> bytes:
        """Return ``size`` bytes starting at ``address``."""
        if size < 0:
            raise ValueError(f"negative read size: {size}")
        start, buffer = self._locate(address, size)
        offset = address - start
        return bytes(buffer[offset:offset + size])

    def _add_region(self, start: int, buffer: bytearray) -> None:
        self._regions[start] = buffer
        insort(self._starts, start)

    def _remove_region(self, start: int) -> None:
        del self._regions[start]
        self._starts.remove(start)

    def _locate(self, address: int, size: int) -> tuple[int, bytearray]:
        index = bisect_right(self._starts, address) - 1
        if index >= 0:
            start = self._starts[index]
            buffer = self._regions[start]
            if address + size <= start + len(buffer) and address < start + len(buffer):
                return start, buffer
        raise ValueError(f"range [{address}, {address + size}) is not mapped")