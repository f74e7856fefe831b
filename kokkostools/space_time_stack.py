"""Space-time-stack profiler state: timed call tree plus memory high-water marks."""

from __future__ import annotations

import os
import re
import resource
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence, TextIO

from .stack import Space, StackKind, StackNode, get_space_name

DEFAULT_THRESHOLD = 0.1
JSON_EXPORT_VARIABLE = "KOKKOS_PROFILE_EXPORT_JSON"
JSON_EXPORT_FILE = "noname.json"

_RULE = "===================\n"
_TOP_DOWN_HEADER = (
    "<average time> <percent of total time> <percent time in Kokkos> "
    "<percent MPI imbalance> <remainder> <kernels per second> "
    "<number of calls> <name> [type]\n"
)
_BOTTOM_UP_HEADER = (
    "<average time> <percent of total time> <percent time in Kokkos> "
    "<percent MPI imbalance> <number of calls> <name> [type]\n"
)
_USAGE = """
Default value: 0.1

Description:
  Provide a decimal threshold value of percent of parent time for output.
  Timers below this threshold will not be output.  Set to 0 to get unfiltered
  reports.

Example:
  The following example would set the threshold to 10%
    <exe> [--kokkos-tools-args 10 ]
"""
_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


def _pointer(ptr: int) -> str:
    return "0" if ptr == 0 else f"{ptr:#x}"


@dataclass(frozen=True)
class Allocation:
    """One live allocation and the frame it was made in."""

    name: str
    ptr: int
    size: int
    frame: StackNode = field(compare=False, repr=False)

    @property
    def key(self) -> tuple[int, int]:
        return (self.size, self.ptr)

    @property
    def sort_key(self) -> tuple[int, int]:
        """Largest first, then by address."""
        return (-self.size, self.ptr)


@dataclass
class Allocations:
    """Live allocations of one memory space and their total size in bytes."""

    total_size: int = 0
    entries: dict[tuple[int, int], Allocation] = field(default_factory=dict)

    def __iter__(self) -> Iterator[Allocation]:
        return iter(sorted(self.entries.values(), key=lambda a: a.sort_key))

    def __len__(self) -> int:
        return len(self.entries)

    def allocate(self, name: str, ptr: int, size: int, frame: StackNode) -> None:
        allocation = Allocation(name, ptr, size, frame)
        if allocation.key in self.entries:
            raise ValueError(
                f"allocation of {size} bytes at {_pointer(ptr)} is already recorded"
            )
        self.entries[allocation.key] = allocation
        self.total_size += size

    def deallocate(self, name: str, ptr: int, size: int, frame: StackNode) -> bool:
        """Forget an allocation; warn on stderr and return False if it was unknown."""
        found = self.entries.pop((size, ptr), None)
        if found is None:
            sys.stderr.write(
                f'WARNING! allocation("{name}", {_pointer(ptr)}, {size}), '
                f'deallocated at "{frame.full_name()}",  '
                "was not in the currently allocated set!\n"
            )
            return False
        self.total_size -= found.size
        return True

    def copy(self) -> Allocations:
        return Allocations(self.total_size, dict(self.entries))

    def report(self) -> str:
        """Text listing of the allocations that make up at least 0.1% of the total."""
        lines = [
            f"MAX MEMORY ALLOCATED: {self.total_size / 1024.0:.1f} kB\n",
            "ALLOCATIONS AT TIME OF HIGH WATER MARK:\n",
        ]
        for allocation in self:
            percent = allocation.size / self.total_size * 100.0
            if percent < 0.1:
                continue
            frame_name = allocation.frame.full_name()
            full_name = f"{frame_name}/{allocation.name}" if frame_name else allocation.name
            lines.append(f"  {percent:.1f}% {full_name}\n")
        lines.append("\n")
        return "".join(lines)


class State:
    """Profiling state of one process between init and finalize."""

    def __init__(self, output_threshold: float = DEFAULT_THRESHOLD) -> None:
        self.output_threshold = output_threshold
        self.stack_root = StackNode(None, "", StackKind.REGION)
        self.stack_frame = self.stack_root
        self.current_allocations = {space: Allocations() for space in Space}
        self.hwm_allocations = {space: Allocations() for space in Space}
        self.stack_frame.begin()

    def begin_frame(self, name: str, kind: StackKind) -> StackNode:
        self.stack_frame = self.stack_frame.get_child(name, kind)
        self.stack_frame.begin()
        return self.stack_frame

    def end_frame(self, end_time: float) -> None:
        if self.stack_frame.parent is None:
            raise RuntimeError("no active frame to end")
        self.stack_frame.end(end_time)
        self.stack_frame = self.stack_frame.parent

    def begin_kernel(self, name: str, kind: StackKind) -> int:
        """Enter a kernel frame and return the id that must end it."""
        return id(self.begin_frame(name, kind))

    def end_kernel(self, kernel_id: int) -> None:
        end_time = time.perf_counter()
        if kernel_id != id(self.stack_frame):
            raise RuntimeError(
                f'Expected "{self.stack_frame.full_name()}" to end, got different kernel ID'
            )
        self.end_frame(end_time)

    def push_region(self, name: str) -> None:
        self.begin_frame(name, StackKind.REGION)

    def pop_region(self) -> None:
        self.end_frame(time.perf_counter())

    def allocate(self, space: Space, name: str, ptr: int, size: int) -> None:
        current = self.current_allocations[Space(space)]
        current.allocate(name, ptr, size, self.stack_frame)
        if current.total_size > self.hwm_allocations[Space(space)].total_size:
            self.hwm_allocations[Space(space)] = current.copy()

    def deallocate(self, space: Space, name: str, ptr: int, size: int) -> None:
        self.current_allocations[Space(space)].deallocate(name, ptr, size, self.stack_frame)

    def begin_deep_copy(
        self, dst_space: Space, dst_name: str, src_space: Space, src_name: str
    ) -> StackNode:
        frame_name = (
            f'"{dst_name}"="{src_name}" '
            f"({get_space_name(dst_space)}->{get_space_name(src_space)})"
        )
        return self.begin_frame(frame_name, StackKind.COPY)

    def end_deep_copy(self) -> None:
        self.end_frame(time.perf_counter())

    def finalize(self, stream: TextIO | None = None) -> Path | None:
        """Close the root frame and write the report.

        With KOKKOS_PROFILE_EXPORT_JSON set, the top-down tree goes to
        noname.json in the working directory and its path is returned.
        """
        out = sys.stdout if stream is None else stream
        end_time = time.perf_counter()
        if self.stack_frame is not self.stack_root:
            raise RuntimeError(
                f'Program ended before "{self.stack_frame.full_name()}" ended'
            )
        root = self.stack_root
        root.end(end_time)
        root.adopt()
        root.reduce()

        if os.environ.get(JSON_EXPORT_VARIABLE) is not None:
            path = Path(JSON_EXPORT_FILE)
            with open(path, "w", encoding="utf-8") as fout:
                root.print_json(fout, self.output_threshold)
            return path

        inverted = root.invert()
        inverted.reduce()

        out.write("\nBEGIN KOKKOS PROFILING REPORT:\n")
        out.write(f"TOTAL TIME: {root.max_runtime:g} seconds\n")
        out.write("TOP-DOWN TIME TREE:\n")
        out.write(_TOP_DOWN_HEADER)
        out.write(_RULE)
        root.print_tree(out, self.output_threshold)
        out.write("BOTTOM-UP TIME TREE:\n")
        out.write(_BOTTOM_UP_HEADER)
        out.write(_RULE)
        inverted.print_tree(out, self.output_threshold)
        for space in Space:
            out.write(f"KOKKOS {get_space_name(space)} SPACE:\n")
            out.write(_RULE)
            out.write(self.hwm_allocations[space].report())
        out.write(process_hwm_report())
        out.write("END KOKKOS PROFILING REPORT.\n")
        out.flush()
        return None


def process_hwm_report() -> str:
    """Peak resident memory of this process as reported by the OS."""
    hwm = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return f"Host process high water mark memory consumption: {hwm} kB\n\n"


def _strtod(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group().strip()) if match else 0.0


def print_help(exe: str) -> None:
    sys.stdout.write(f"usage: {exe}[--kokkos-tools-args <threshold>]\n{_USAGE}")


def parse_args(argv: Sequence[str]) -> float:
    """Output threshold from tool arguments; argv[0] is the executable name."""
    if len(argv) <= 1:
        return DEFAULT_THRESHOLD
    if len(argv) == 2:
        return _strtod(argv[1])
    print_help(argv[0])
    raise SystemExit(1)