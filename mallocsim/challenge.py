"""The malloc challenge: a randomised allocation workload and its scoring."""

from __future__ import annotations

import argparse
import math
import random
import sys
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, TextIO

from mallocsim.advanced import AdvancedFourteenBinAllocator
from mallocsim.bins import FourBinAllocator, FourteenBinAllocator, TwentyFiveBinAllocator
from mallocsim.fits import BestFitAllocator, TwoBinAllocator, WorstFitAllocator
from mallocsim.freelist import Allocator, FirstFitAllocator
from mallocsim.system import Stats, SystemMemory

AllocatorFactory = Callable[[SystemMemory], Allocator]

ALIGNMENT = 8
FIRST_CHALLENGE = 1
LAST_CHALLENGE = 5
CHALLENGE_SIZES = ((128, 128), (16, 16), (16, 128), (256, 4000), (8, 4000))

ALLOCATORS: dict[str, AllocatorFactory] = {
    "first-fit": FirstFitAllocator,
    "best-fit": BestFitAllocator,
    "worst-fit": WorstFitAllocator,
    "two-bin": TwoBinAllocator,
    "four-bin": FourBinAllocator,
    "fourteen-bin": FourteenBinAllocator,
    "twenty-five-bin": TwentyFiveBinAllocator,
    "advanced-fourteen-bin": AdvancedFourteenBinAllocator,
}

_LAMBDA = 1.0
_THRESHOLD = 6.0
_TRACE_WARNING = (
    "!!! WARNING - MALLOC_TRACE is enabled.\n"
    "The result will be different compare to normal builds.\n"
)


def _exponential(rng: random.Random) -> float:
    """Draw from an exponential distribution, clipped at the threshold."""
    u = rng.random()
    if u == 0.0:
        return _THRESHOLD
    return min(-_LAMBDA * math.log(u), _THRESHOLD)


def object_size(rng: random.Random, min_size: int, max_size: int) -> int:
    """Return an 8-byte aligned size in ``[min_size, max_size]``, skewed to small."""
    if min_size > max_size:
        raise ValueError(f"min_size {min_size} exceeds max_size {max_size}")
    if min_size % ALIGNMENT:
        raise ValueError(f"min_size must be a multiple of {ALIGNMENT}: {min_size}")
    tau = _exponential(rng)
    result = int((max_size - min_size) * tau / _THRESHOLD) + min_size
    return result // ALIGNMENT * ALIGNMENT


def object_lifetime(rng: random.Random, min_epoch: int, max_epoch: int) -> int:
    """Return a lifetime in epochs in ``[min_epoch, max_epoch]``, skewed to short."""
    if min_epoch > max_epoch:
        raise ValueError(f"min_epoch {min_epoch} exceeds max_epoch {max_epoch}")
    tau = _exponential(rng)
    return int((max_epoch - min_epoch) * tau / _THRESHOLD + min_epoch)


@dataclass(frozen=True)
class ChallengeConfig:
    """Shape of the workload; ``trace_dir`` turns on trace files."""

    epochs_per_cycle: int = 100
    objects_per_epoch_small: int = 100
    objects_per_epoch_large: int = 2000
    cycles: int = 10
    never_freed_ratio: float = 0.04
    seed: int = 12
    trace_dir: Path | None = None

    @classmethod
    def traced(cls, trace_dir: Path) -> ChallengeConfig:
        """A smaller workload that writes trace files into ``trace_dir``."""
        return cls(
            epochs_per_cycle=10,
            objects_per_epoch_small=25,
            objects_per_epoch_large=50,
            trace_dir=Path(trace_dir),
        )


@dataclass(frozen=True)
class ChallengeResult:
    """Statistics of one challenge run and the scores derived from them."""

    stats: Stats

    @property
    def time_ms(self) -> int:
        return int((self.stats.end_time - self.stats.begin_time) * 1000)

    @property
    def utilization_percentage(self) -> int:
        """Share of the mapped memory held by live objects; 0 when nothing is mapped."""
        mapped = self.stats.mmap_size - self.stats.munmap_size
        if mapped == 0:
            return 0
        live = self.stats.allocated_size - self.stats.freed_size
        return int(100.0 * live / mapped)


class _LiveObject(NamedTuple):
    address: int
    size: int
    tag: int


def _check_tag(system: SystemMemory, obj: _LiveObject) -> None:
    if obj.size == 0:
        return
    first = system.read(obj.address, 1)[0]
    last = system.read(obj.address + obj.size - 1, 1)[0]
    if first != obj.tag or last != obj.tag:
        raise RuntimeError(f"An allocated object is broken at address {obj.address}")


def run_challenge(
    allocator_factory: AllocatorFactory,
    min_size: int,
    max_size: int,
    rng: random.Random,
    config: ChallengeConfig | None = None,
    trace: TextIO | None = None,
) -> ChallengeResult:
    """Run one challenge with a fresh allocator and return its statistics.

    Raises RuntimeError when an object's contents were overwritten while it
    was alive.
    """
    config = config or ChallengeConfig()
    epochs = config.epochs_per_cycle
    system = SystemMemory(trace)
    allocator = allocator_factory(system)
    # The extra list holds objects that are never freed.
    schedule: list[list[_LiveObject]] = [[] for _ in range(epochs + 1)]
    never_freed = schedule[epochs]
    allocator.initialize()
    stats = system.stats
    stats.begin_time = time.time()
    tag = 0
    for _cycle in range(config.cycles):
        for epoch in range(epochs):
            count = config.objects_per_epoch_large if epoch == 0 else config.objects_per_epoch_small
            for _ in range(count):
                size = object_size(rng, min_size, max_size)
                lifetime = object_lifetime(rng, 1, epochs)
                stats.allocated_size += size
                address = allocator.malloc(size)
                if trace is not None:
                    trace.write(f"a {address} {size}\n")
                system.write(address, bytes([tag]) * size)
                obj = _LiveObject(address, size, tag)
                # Tag 0 is skipped after wrapping: fresh pages are zero-filled.
                tag = (tag + 1) % 256 or 1
                if rng.random() < config.never_freed_ratio:
                    never_freed.append(obj)
                else:
                    schedule[(epoch + lifetime) % epochs].append(obj)
            for obj in schedule[epoch]:
                stats.freed_size += obj.size
                _check_tag(system, obj)
                if trace is not None:
                    trace.write(f"f {obj.address} {obj.size}\n")
                allocator.free(obj.address)
            schedule[epoch].clear()
    stats.end_time = time.time()
    allocator.finalize()
    return ChallengeResult(stats)


def format_comparison(index: int, simple: ChallengeResult, mine: ChallengeResult) -> str:
    """Render the side-by-side table for one challenge."""
    if not FIRST_CHALLENGE <= index <= LAST_CHALLENGE:
        raise ValueError(
            f"challenge index must be between {FIRST_CHALLENGE} and {LAST_CHALLENGE}: {index}"
        )
    dashes = "-" * 15
    lines = [
        "=" * 52,
        f"Challenge #{index}    | {'simple_malloc':>15} => {'my_malloc':>15}",
        f"{dashes:<16}+ {dashes:>15} => {dashes:>15}",
        f"{'Time [ms]':>16}| {simple.time_ms:>15d} => {mine.time_ms:>15d}",
        f"{'Utilization [%] ':>16}| {simple.utilization_percentage:>15d}"
        f" => {mine.utilization_percentage:>15d}",
    ]
    return "\n".join(lines) + "\n"


def format_score(results: Sequence[ChallengeResult]) -> str:
    """Render the comma-separated score line for the given results."""
    scores = "".join(f"{r.time_ms},{r.utilization_percentage}," for r in results)
    return (
        "\nChallenge done!\n"
        "Please copy & paste the following data in the score sheet!\n"
        f"{scores}\n"
    )


@contextmanager
def _trace_file(config: ChallengeConfig, name: str) -> Iterator[TextIO | None]:
    if config.trace_dir is None:
        yield None
        return
    with open(config.trace_dir / name, "w", encoding="ascii") as trace:
        yield trace


def run_challenges(
    allocator_factory: AllocatorFactory,
    config: ChallengeConfig | None = None,
    out: TextIO | None = None,
) -> list[ChallengeResult]:
    """Run all challenges, comparing first fit with ``allocator_factory``.

    Returns the results of ``allocator_factory`` in challenge order.
    """
    config = config or ChallengeConfig()
    out = out or sys.stdout
    rng = random.Random(config.seed)
    tracing = config.trace_dir is not None
    if tracing:
        out.write(_TRACE_WARNING)
    run_challenge(FirstFitAllocator, 128, 128, rng, config)
    results: list[ChallengeResult] = []
    for index, (min_size, max_size) in enumerate(CHALLENGE_SIZES, start=FIRST_CHALLENGE):
        with _trace_file(config, f"trace{index}_simple.txt") as trace:
            simple = run_challenge(FirstFitAllocator, min_size, max_size, rng, config, trace)
        with _trace_file(config, f"trace{index}_my.txt") as trace:
            mine = run_challenge(allocator_factory, min_size, max_size, rng, config, trace)
        out.write(format_comparison(index, simple, mine))
        results.append(mine)
    if tracing:
        out.write(_TRACE_WARNING)
    else:
        out.write(format_score(results))
    return results


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Run the malloc challenge.")
    parser.add_argument(
        "--allocator",
        choices=sorted(ALLOCATORS),
        default="first-fit",
        help="placement policy to compare with first fit",
    )
    parser.add_argument(
        "--trace",
        type=Path,
        metavar="DIR",
        help="write trace files into DIR, using a smaller workload",
    )
    args = parser.parse_args(argv)
    config = ChallengeConfig.traced(args.trace) if args.trace else ChallengeConfig()
    print("Welcome to the malloc challenge!")
    run_challenges(ALLOCATORS[args.allocator], config, sys.stdout)
    return 0