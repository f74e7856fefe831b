"""Profiling hooks that time kernels and regions and write a binary data file."""

from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

from .kernel_info import KernelExecutionType, seconds, write_data_file
from .shared import KernelTimerState


class KernelTimer:
    """Collects kernel and region timings for one process."""

    def __init__(self, output_dir: str | Path | None = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else Path.cwd()
        self.state = KernelTimerState()

    def init_library(self, load_seq: int, interface_version: int) -> None:
        self.state.output_delimiter = os.environ.get("KOKKOSP_OUTPUT_DELIM", " ")
        self.state.regions = [None] * len(self.state.regions)
        print(
            f"KokkosP: Simple Kernel Timer Library Initialized "
            f"(sequence is {load_seq}, version: {interface_version})"
        )
        self.state.init_time = seconds()

    def finalize_library(self) -> Path:
        """Write the timings to ``<host>-<pid>.dat`` and return its path."""
        total_execute_time = seconds() - self.state.init_time
        path = self.output_dir / f"{socket.gethostname()}-{os.getpid()}.dat"
        write_data_file(path, total_execute_time, self.state.sorted_entries())
        print(f"KokkosP: Kernel timing written to {path.resolve()} ")
        return path

    def _begin(self, name: str, kernel_type: KernelExecutionType) -> int:
        kernel_id = self.state.uniq_id
        self.state.uniq_id += 1
        if not name:
            raise ValueError("Error: kernel is empty")
        self.state.increment_counter(name, kernel_type)
        return kernel_id

    def _end(self) -> None:
        if self.state.current_entry is None:
            raise RuntimeError("no kernel has been started")
        self.state.current_entry.add_from_timer()

    def begin_parallel_for(self, name: str, dev_id: int) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_FOR)

    def end_parallel_for(self, kernel_id: int) -> None:
        self._end()

    def begin_parallel_scan(self, name: str, dev_id: int) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_SCAN)

    def end_parallel_scan(self, kernel_id: int) -> None:
        self._end()

    def begin_parallel_reduce(self, name: str, dev_id: int) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_REDUCE)

    def end_parallel_reduce(self, kernel_id: int) -> None:
        self._end()

    def push_profile_region(self, name: str) -> None:
        self.state.increment_counter_region(name, KernelExecutionType.REGION)

    def pop_profile_region(self) -> None:
        state = self.state
        state.current_region_level -= 1
        if state.current_region_level < 0:
            state.current_region_level = 0
            previous = []
            for region in state.regions[:5]:
                if region is None:
                    break
                previous.append(region.name)
            listed = f" {';'.join(previous)}" if previous else ""
            sys.stderr.write(
                "WARNING:: Kokkos::Profiling::popRegion() called outside "
                " of an actve region. Previous regions: " + listed + "\n"
            )
        else:
            state.regions[state.current_region_level].add_from_timer()