import random

import pytest

from mallocsim.advanced import AdvancedFourteenBinAllocator, larger_bin_index
from mallocsim.bins import fourteen_bin_index
from mallocsim.freelist import METADATA_SIZE
from mallocsim.system import PAGE_SIZE, SystemMemory


@pytest.fixture
def allocator():
    alloc = AdvancedFourteenBinAllocator(SystemMemory())
    alloc.initialize()
    return alloc


@pytest.mark.parametrize("size", [0, 8, 99, 100, 550, 999, 1000, 1500, 2999])
def test_larger_bin_is_one_above_fit_bin(size):
    assert larger_bin_index(size) == fourteen_bin_index(size) + 1


@pytest.mark.parametrize("size", [3000, 3500, 4000, 4080])
def test_larger_bin_is_capped_at_last_bin(size):
    assert larger_bin_index(size) == 13


def test_empty_heap_finds_no_slot(allocator):
    assert allocator.find_slot(16) is None


def test_prefers_head_of_larger_bin_over_exact_fit(allocator):
    first = allocator.malloc(200)
    second = allocator.malloc(300)
    allocator.free(first)
    allocator.free(second)
    assert allocator.malloc(200) == second


def test_falls_back_to_own_bin_when_larger_bin_is_empty(allocator):
    first = allocator.malloc(300)
    allocator.malloc(500)
    allocator.free(first)
    assert allocator.malloc(300) == first


def test_large_request_maps_a_page(allocator):
    address = allocator.malloc(3500)
    assert allocator.system.stats.mmap_size == PAGE_SIZE
    assert address % PAGE_SIZE == METADATA_SIZE


def test_live_objects_never_overlap_and_keep_their_data(allocator):
    rng = random.Random(5)
    live = {}
    freed_reads = []
    freed_expected = []
    for step in range(400):
        if live and rng.random() < 0.4:
            address = rng.choice(sorted(live))
            data = live.pop(address)
            freed_reads.append(allocator.system.read(address, len(data)))
            freed_expected.append(data)
            allocator.free(address)
        else:
            size = rng.randrange(1, 501) * 8
            address = allocator.malloc(size)
            data = bytes([step % 251 + 1]) * size
            allocator.system.write(address, data)
            live[address] = data
    assert len(freed_expected) > 0
    assert freed_reads == freed_expected
    assert len(live) > 1
    spans = sorted((address, address + len(data)) for address, data in live.items())
    gaps = [start - end for (_begin, end), (start, _stop) in zip(spans, spans[1:])]
    assert min(gaps) >= 0
    live_reads = [allocator.system.read(address, len(data)) for address, data in live.items()]
    assert live_reads == list(live.values())