"""Replay an allocation trace into a timeline of resident memory."""

from __future__ import annotations

import argparse
import re
import sys
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from mallocsim.tracefmt import format_hex

INT64_MAX = (1 << 63) - 1
INT64_MIN = -(1 << 63)

_OP = re.compile(r"\s*(\S)")
_HEX = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9A-Fa-f]))?([0-9A-Fa-f]+)")


class TraceError(Exception):
    """A trace cannot be read or replayed."""


class TraceEvent(NamedTuple):
    """One operation read from a trace."""

    op: str
    address: int
    size: int | None = None
    old_address: int | None = None


@dataclass(frozen=True)
class TimelineRow:
    """State of the timeline after one operation."""

    count: int
    resident_size: int
    allocated_total: int
    resident_delta: int
    freed_total: int

    def __str__(self) -> str:
        return "\t".join(
            str(value)
            for value in (
                self.count,
                self.resident_size,
                self.allocated_total,
                self.resident_delta,
                self.freed_total,
            )
        )


def _to_int64(value: int) -> int:
    value &= (1 << 64) - 1
    return value - (1 << 64) if value > INT64_MAX else value


def _read_hex(text: str, pos: int) -> tuple[int | None, int]:
    match = _HEX.match(text, pos)
    if match is None:
        return None, pos
    value = int(match[2], 16)
    if match[1] == "-":
        value = -value
    return _to_int64(value), match.end()


def parse_trace(text: str) -> Iterator[TraceEvent]:
    """Yield the events of a trace; reading stops at the first unreadable op.

    Raises TraceError when an allocation or reallocation lacks its operands.
    """
    pos = 0
    while True:
        op_match = _OP.match(text, pos)
        if op_match is None:
            return
        op = op_match[1]
        address, pos = _read_hex(text, op_match.end())
        if address is None:
            return
        if op == "a":
            size, pos = _read_hex(text, pos)
            if size is None:
                raise TraceError("Failed to read size for alloc")
            yield TraceEvent(op, address, size)
        elif op == "r":
            size, pos = _read_hex(text, pos)
            old_address = None
            if size is not None:
                old_address, pos = _read_hex(text, pos)
            if size is None or old_address is None:
                raise TraceError("Failed to read size and old_addr for realloc")
            yield TraceEvent(op, address, size, old_address)
        else:
            yield TraceEvent(op, address)


class Timeline:
    """Tracks live allocations, resident size and the address range touched."""

    def __init__(self) -> None:
        self.alloc_sizes: dict[int, int] = {}
        self.peak_size = 0
        self.resident_size = 0
        self.allocated_total = 0
        self.freed_total = 0
        self.range_begin = INT64_MAX
        self.range_end = INT64_MIN
        self.count = 0
        self.ops: list[tuple[str, int, int]] = []
        self.unknown_frees: list[int] = []
        self._last_resident_size = 0

    def _trace(self, op: str, address: int, size: int) -> None:
        self.ops.append((op, address, size))
        self.range_begin = min(self.range_begin, address)
        self.range_end = max(self.range_end, address + size)

    def record_alloc(self, address: int, size: int) -> None:
        """Account for ``size`` bytes allocated at ``address``.

        An address already live keeps its first recorded size.
        """
        self.alloc_sizes.setdefault(address, size)
        self.resident_size += size
        self.allocated_total += size
        self.peak_size = max(self.peak_size, self.resident_size)
        self._trace("a", address, size)

    def record_free(self, address: int) -> bool:
        """Account for freeing ``address``; False if it was never allocated."""
        size = self.alloc_sizes.pop(address, None)
        if size is None:
            self.unknown_frees.append(address)
            return False
        self.resident_size -= size
        self.freed_total += size
        self._trace("f", address, size)
        return True

    def apply(
        self,
        op: str,
        address: int,
        size: int | None = None,
        old_address: int | None = None,
    ) -> TimelineRow:
        """Replay one operation and return the resulting row."""
        if op == "a":
            if size is None:
                raise TraceError("Failed to read size for alloc")
            self.record_alloc(address, size)
        elif op == "r":
            if size is None or old_address is None:
                raise TraceError("Failed to read size and old_addr for realloc")
            if old_address:
                self.record_free(old_address)
            self.record_alloc(address, size)
        elif op == "f":
            self.record_free(address)
        else:
            raise TraceError(f"Unknown op: {op} at count {self.count}")
        row = TimelineRow(
            self.count,
            self.resident_size,
            self.allocated_total,
            self.resident_size - self._last_resident_size,
            self.freed_total,
        )
        self._last_resident_size = self.resident_size
        self.count += 1
        return row

    def summary(self) -> str:
        """Closing report of the replay."""
        lines = [
            f"count: {self.count}",
            f"peak_size: {self.peak_size}",
            f"resident_size at last: {self.resident_size}",
            f"allocation_size_accumlated: {self.allocated_total}",
            f"range_begin: {self.range_begin}",
            f"range_end: {self.range_end}",
            f"range_size: {self.range_end - self.range_begin}",
        ]
        return "\n".join(lines) + "\n"


def main(argv: Sequence[str] | None = None) -> int:
    """Read a trace on stdin, print the timeline and write the op log."""
    parser = argparse.ArgumentParser(description="Turn an allocation trace into a timeline.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("trace.txt"),
        help="file receiving the decimal op log (default: trace.txt)",
    )
    args = parser.parse_args(argv)
    try:
        out_file = open(args.output, "w", encoding="ascii")
    except OSError:
        print("Failed to open trace file")
        return 1
    timeline = Timeline()
    with out_file:
        written = 0
        reported = 0
        try:
            for event in parse_trace(sys.stdin.read()):
                row = timeline.apply(*event)
                for address in timeline.unknown_frees[reported:]:
                    print(f"Addr 0x{format_hex(address)} is being freed but not allocated")
                reported = len(timeline.unknown_frees)
                out_file.writelines(
                    f"{op} {address} {size}\n" for op, address, size in timeline.ops[written:]
                )
                written = len(timeline.ops)
                print(row)
        except TraceError as error:
            print(error)
            return 1
    sys.stderr.write(timeline.summary())
    return 0