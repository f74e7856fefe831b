"""Profiling hooks that time kernels and write a per-process JSON summary."""

from __future__ import annotations

import math
import os
import socket
from pathlib import Path

from .kernel_info import KernelExecutionType, seconds
from .shared import KernelTimerState

_KERNEL_INFO_INDENT = "       "


def _ratio(numerator: float, denominator: float) -> float:
    """Floating-point division that yields inf or nan instead of raising."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


class KernelTimerJson:
    """Collects kernel timings and writes them as JSON when finalized."""

    def __init__(self, output_dir: str | Path | None = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else Path.cwd()
        self.state = KernelTimerState()

    def init_library(self, load_seq: int, interface_version: int) -> None:
        self.state.output_delimiter = os.environ.get("KOKKOSP_OUTPUT_DELIM", " ")
        print(
            f"KokkosP: LDMS JSON Connector Initialized "
            f"(sequence is {load_seq}, version: {interface_version})"
        )
        self.state.init_time = seconds()

    def finalize_library(self) -> Path:
        """Write ``<host>-<pid>-<rank>.json`` and return its path."""
        finish_time = seconds()
        rank = os.environ.get("OMPI_COMM_WORLD_RANK")
        rank_text = "0" if rank is None else rank
        path = self.output_dir / f"{socket.gethostname()}-{os.getpid()}-{rank_text}.json"

        total_execute_time = finish_time - self.state.init_time
        entries = self.state.sorted_entries()
        kernel_times = sum(entry.time for entry in entries)
        percent_kokkos = _ratio(kernel_times, total_execute_time) * 100.0

        with open(path, "w", encoding="utf-8") as out:
            out.write('{\n"kokkos-kernel-data" : {\n')
            out.write(f'    "mpi-rank"               : {rank_text},\n')
            out.write(f'    "total-app-time"         : {total_execute_time:10.3f},\n')
            out.write(f'    "total-kernel-times"     : {kernel_times:10.3f},\n')
            out.write(
                f'    "total-non-kernel-times" : {total_execute_time - kernel_times:10.3f},\n'
            )
            out.write(f'    "percent-in-kernels"     : {percent_kokkos:6.2f},\n')
            out.write(f'    "unique-kernel-calls"    : {len(entries):22d},\n')
            out.write("\n")
            out.write('    "kernel-perf-info"       : [\n')
            for position, entry in enumerate(entries):
                if position:
                    out.write(",\n")
                entry.write_json(out, _KERNEL_INFO_INDENT)
            out.write("\n")
            out.write("    ]\n")
            out.write("}\n}")
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