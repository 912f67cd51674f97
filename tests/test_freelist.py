import random

import pytest

from mallocsim.freelist import (
    MAX_OBJECT_SIZE,
    METADATA_SIZE,
    FirstFitAllocator,
    FreeList,
    FreeSlot,
)
from mallocsim.system import PAGE_SIZE, SystemMemory


def test_push_puts_slot_at_head():
    free_list = FreeList()
    a = FreeSlot(1000, 64)
    b = FreeSlot(2000, 32)
    free_list.push(a)
    free_list.push(b)
    assert list(free_list) == [b, a]
    assert len(free_list) == 2


def test_remove_middle_slot():
    free_list = FreeList()
    slots = [FreeSlot(100 * n, 8) for n in range(1, 4)]
    for slot in slots:
        free_list.push(slot)
    free_list.remove(slots[1])
    assert list(free_list) == [slots[2], slots[0]]


def test_push_duplicate_and_remove_missing_raise():
    free_list = FreeList()
    slot = FreeSlot(100, 8)
    free_list.push(slot)
    with pytest.raises(ValueError):
        free_list.push(slot)
    with pytest.raises(ValueError):
        free_list.remove(FreeSlot(200, 8))
    assert len(free_list) == 1


def make_allocator():
    allocator = FirstFitAllocator(SystemMemory())
    allocator.initialize()
    return allocator


def test_first_malloc_maps_a_page_and_splits():
    allocator = make_allocator()
    address = allocator.malloc(128)
    assert allocator.system.stats.mmap_size == PAGE_SIZE
    assert (address - METADATA_SIZE) % PAGE_SIZE == 0
    (rest,) = list(allocator.free_list)
    assert rest.address == address + 128
    assert rest.size == PAGE_SIZE - METADATA_SIZE - 128 - METADATA_SIZE


def test_no_split_when_remainder_too_small():
    allocator = make_allocator()
    address = allocator.malloc(MAX_OBJECT_SIZE - METADATA_SIZE)
    assert len(allocator.free_list) == 0
    allocator.free(address)
    (slot,) = list(allocator.free_list)
    assert slot == FreeSlot(address - METADATA_SIZE, MAX_OBJECT_SIZE)


def test_free_puts_slot_at_head():
    allocator = make_allocator()
    address = allocator.malloc(64)
    allocator.free(address)
    head = next(iter(allocator.free_list))
    assert head == FreeSlot(address - METADATA_SIZE, 64)


def test_free_unknown_address_raises():
    allocator = make_allocator()
    address = allocator.malloc(64)
    with pytest.raises(ValueError):
        allocator.free(address + 8)
    allocator.free(address)
    with pytest.raises(ValueError):
        allocator.free(address)


def test_new_page_when_nothing_fits():
    allocator = make_allocator()
    allocator.malloc(4000)
    allocator.malloc(4000)
    assert allocator.system.stats.mmap_size == 2 * PAGE_SIZE


def test_first_fit_takes_head_match():
    allocator = make_allocator()
    a = allocator.malloc(128)
    b = allocator.malloc(128)
    allocator.free(a)
    allocator.free(b)
    c = allocator.malloc(64)
    assert c == b
    head = next(iter(allocator.free_list))
    assert head.address == b + 64
    assert head.size == 128 - 64 - METADATA_SIZE


def test_find_slot_none_when_empty():
    allocator = make_allocator()
    assert allocator.find_slot(8) is None


def test_initialize_resets_heap():
    allocator = make_allocator()
    address = allocator.malloc(64)
    allocator.initialize()
    assert len(allocator.free_list) == 0
    with pytest.raises(ValueError):
        allocator.free(address)


def test_oversized_request_raises():
    allocator = make_allocator()
    with pytest.raises(ValueError):
        allocator.malloc(MAX_OBJECT_SIZE + 8)
    with pytest.raises(ValueError):
        allocator.malloc(-8)


def test_objects_never_overlap_and_are_writable():
    allocator = make_allocator()
    rng = random.Random(12)
    live = {}
    freed_reads = []
    freed_expected = []
    for step in range(400):
        if live and rng.random() < 0.4:
            address = rng.choice(list(live))
            size, tag = live.pop(address)
            freed_reads.append(allocator.system.read(address, size))
            freed_expected.append(bytes([tag]) * size)
            allocator.free(address)
        else:
            size = rng.randrange(1, 500) * 8
            address = allocator.malloc(size)
            tag = step % 255 + 1
            allocator.system.write(address, bytes([tag]) * size)
            live[address] = (size, tag)
    assert len(freed_expected) > 0
    assert freed_reads == freed_expected
    assert len(live) > 1
    spans = sorted((address, address + size) for address, (size, _tag) in live.items())
    gaps = [start - end for (_begin, end), (start, _stop) in zip(spans, spans[1:])]
    assert min(gaps) >= METADATA_SIZE
    live_reads = [allocator.system.read(address, size) for address, (size, _tag) in live.items()]
    live_expected = [bytes([tag]) * size for _address, (size, tag) in live.items()]
    assert live_reads == live_expected