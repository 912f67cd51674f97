import io

import pytest

from mallocsim.system import PAGE_SIZE, Stats, SystemMemory


def test_mmap_counts_size_and_aligns():
    memory = SystemMemory()
    address = memory.mmap(4096)
    assert address % PAGE_SIZE == 0
    assert memory.stats.mmap_size == 4096
    memory.mmap(2 * 4096)
    assert memory.stats.mmap_size == 3 * 4096


def test_mmap_rejects_unaligned_size():
    memory = SystemMemory()
    with pytest.raises(ValueError):
        memory.mmap(100)
    with pytest.raises(ValueError):
        memory.mmap(0)
    assert memory.stats.mmap_size == 0


def test_fresh_memory_is_zeroed():
    memory = SystemMemory()
    address = memory.mmap(4096)
    assert memory.read(address, 4096) == bytes(4096)


def test_write_read_round_trip():
    memory = SystemMemory()
    address = memory.mmap(4096)
    memory.write(address + 100, b"hello")
    assert memory.read(address + 100, 5) == b"hello"
    assert memory.read(address + 99, 1) == b"\x00"


def test_regions_do_not_overlap():
    memory = SystemMemory()
    first = memory.mmap(4096)
    second = memory.mmap(4096)
    assert abs(second - first) >= 4096
    memory.write(first, b"\x07" * 4096)
    assert memory.read(second, 4096) == bytes(4096)


def test_read_unmapped_raises():
    memory = SystemMemory()
    address = memory.mmap(4096)
    with pytest.raises(ValueError):
        memory.read(address - 1, 1)
    with pytest.raises(ValueError):
        memory.read(address + 4096, 1)


def test_write_past_region_end_raises():
    memory = SystemMemory()
    address = memory.mmap(4096)
    with pytest.raises(ValueError):
        memory.write(address + 4090, b"x" * 10)


def test_munmap_releases_and_counts():
    memory = SystemMemory()
    address = memory.mmap(4096)
    memory.munmap(address, 4096)
    assert memory.stats.munmap_size == 4096
    with pytest.raises(ValueError):
        memory.read(address, 1)


def test_partial_munmap_keeps_rest():
    memory = SystemMemory()
    address = memory.mmap(3 * 4096)
    memory.write(address, b"a")
    memory.write(address + 2 * 4096, b"c")
    memory.munmap(address + 4096, 4096)
    assert memory.read(address, 1) == b"a"
    assert memory.read(address + 2 * 4096, 1) == b"c"
    with pytest.raises(ValueError):
        memory.read(address + 4096, 1)


def test_munmap_rejects_misaligned_or_unmapped():
    memory = SystemMemory()
    address = memory.mmap(4096)
    with pytest.raises(ValueError):
        memory.munmap(address + 8, 4096)
    with pytest.raises(ValueError):
        memory.munmap(address, 100)
    with pytest.raises(ValueError):
        memory.munmap(address + 4096, 4096)
    assert memory.stats.munmap_size == 0


def test_trace_lines():
    trace = io.StringIO()
    memory = SystemMemory(trace)
    address = memory.mmap(4096)
    memory.munmap(address, 4096)
    assert trace.getvalue() == f"m {address} 4096\nu {address} 4096\n"


def test_stats_defaults():
    stats = Stats()
    assert (stats.mmap_size, stats.munmap_size, stats.allocated_size, stats.freed_size) == (0, 0, 0, 0)
    assert SystemMemory().stats == stats