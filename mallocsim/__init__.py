"""Simulated heap allocators, an allocator benchmark challenge and trace timelines."""

__version__ = "0.1.0"