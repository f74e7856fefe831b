"""Kernel timers, a space-time stack profiler and data-file report tools for profiling events."""

__version__ = "0.1.0"