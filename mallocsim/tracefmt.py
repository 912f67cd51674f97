"""Line formats for allocation traces recorded by an allocation hook."""

from __future__ import annotations

_UINT64_MASK = (1 << 64) - 1


def format_hex(value: int) -> str:
    """Render ``value`` as unsigned 64-bit upper-case hex without leading zeros."""
    return f"{value & _UINT64_MASK:X}"


def format_malloc(address: int, size: int) -> str:
    """Trace line for an allocation of ``size`` bytes at ``address``."""
    return f"a {format_hex(address)} {format_hex(size)}\n"


def format_free(address: int) -> str:
    """Trace line for freeing the object at ``address``."""
    return f"f {format_hex(address)}\n"


def format_realloc(new_address: int, size: int, old_address: int) -> str:
    """Trace line for moving ``old_address`` to ``new_address`` with ``size`` bytes."""
    return f"r {format_hex(new_address)} {format_hex(size)} {format_hex(old_address)}\n"


def trace_file_name(token: int) -> str:
    """Name of the trace file identified by ``token``."""
    return f"trace_{format_hex(token)}.txt"