# mallocsim

`mallocsim` simulates `malloc` and `free` on top of 4096-byte pages taken
from a pretend operating system. Allocation strategies can be compared for
speed and memory utilization without touching real memory.

## What is inside

- `mallocsim.system`: `SystemMemory` hands out page-aligned, zero-filled
  regions (`mmap`, `munmap`) and stores bytes in them (`write`, `read`).
  Its `stats` attribute is a `Stats` record of the bytes mapped, unmapped,
  allocated and freed. When it is given a text stream, each mapping is
  logged as `m <address> <size>` and each unmapping as `u <address> <size>`.
- `mallocsim.freelist`: `FreeSlot`, `FreeList` (newest slot first) and the
  `Allocator` base class with `initialize`, `malloc`, `free` and `finalize`.
  Every object has 16 bytes of metadata in front of it, so the largest
  object is 4080 bytes. When no free slot fits, a new page is mapped. A
  slot is split when the rest is larger than the metadata. Freed slots are
  not merged with their neighbours, and pages are never unmapped.
  `FirstFitAllocator` takes the first slot that is large enough.
- `mallocsim.fits`: `BestFitAllocator` and `WorstFitAllocator`, with the
  search helpers `best_fit` and `worst_fit`. `TwoBinAllocator` keeps slots
  below 1000 bytes apart from larger ones.
- `mallocsim.bins`: segregated free lists. `FourBinAllocator`,
  `FourteenBinAllocator` and `TwentyFiveBinAllocator` use the bin functions
  `four_bin_index`, `fourteen_bin_index` and `twenty_five_bin_index`.
- `mallocsim.advanced`: `AdvancedFourteenBinAllocator` first takes the
  head of the next larger bin (`larger_bin_index`) when that bin is not
  empty.
- `mallocsim.challenge`: the benchmark. It has `run_challenge`,
  `run_challenges`, `ChallengeConfig`, `ChallengeResult`,
  `format_comparison`, `format_score`, and `object_size` and
  `object_lifetime` for the random workload.
- `mallocsim.tracefmt`: formats allocation trace lines in upper-case hex.
  It has `format_malloc`, `format_free`, `format_realloc`, `format_hex`
  and `trace_file_name`.
- `mallocsim.timeline`: reads such traces and replays them. It has
  `parse_trace`, `Timeline` and `TraceError`.

## Installing

```
pip install .
```

## Running the challenge

```
mallocsim-challenge [--allocator NAME] [--trace DIR]
```

The random number generator is seeded with 12. After a warm-up run there
are five challenges, with object sizes 128, 16, 16–128, 256–4000 and
8–4000 bytes. Each challenge runs first with the first-fit allocator and
then with the allocator chosen by `--allocator`. For both, a table of the
time in milliseconds and the utilization percentage is printed. A score
line follows at the end.

The allocator names are `first-fit` (the default), `best-fit`,
`worst-fit`, `two-bin`, `four-bin`, `fourteen-bin`, `twenty-five-bin` and
`advanced-fourteen-bin`.

`--trace DIR` runs a smaller workload and writes `trace<N>_simple.txt` and
`trace<N>_my.txt` into `DIR`. They hold the `m`, `u`, `a` (allocate) and
`f` (free) lines, with addresses and sizes in decimal. A warning is printed
before and after the run, and in this mode no score line is printed.

An object whose first or last byte was overwritten while it was alive
makes `run_challenge` raise `RuntimeError`.

## Using an allocator directly

```python
from mallocsim.system import SystemMemory
from mallocsim.fits import BestFitAllocator

system = SystemMemory(None)
allocator = BestFitAllocator(system)
allocator.initialize()
address = allocator.malloc(128)
system.write(address, b"\x01" * 128)
allocator.free(address)
allocator.finalize()
print(system.stats.mmap_size)  # 4096
```

## Turning a trace into a timeline

```
mallocsim-timeline [--output FILE] < recorded_trace.txt
```

Each input operation is in hexadecimal: `a <address> <size>`,
`f <address>` or `r <new address> <size> <old address>`. For every
operation a tab-separated row is printed on standard output. The row holds
the operation count, the resident size, the accumulated allocation size,
the change in resident size and the accumulated freed size. Freeing an
address that was never allocated prints a notice and changes nothing.

The replayed operations are written in decimal to `--output`, which is
`trace.txt` by default, so do not read the input from that same file. A
summary goes to standard error at the end. It holds the operation count,
the peak size, the last resident size, the accumulated allocation size and
the address range touched. An unknown operation or a missing operand stops
the command with exit status 1.

## What it does not do

`mallocsim.tracefmt` only formats trace lines. Nothing in the package
records the allocations of a running program, so traces for
`mallocsim-timeline` have to be produced some other way. The timeline is
printed as text; the package does not draw plots.

## Running the tests

```
pip install .[test]
pytest
```