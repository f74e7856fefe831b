"""Bookkeeping shared by the simple kernel timer tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .kernel_info import KernelExecutionType, KernelPerformanceInfo

MAX_REGION_DEPTH = 512


@dataclass
class KernelTimerState:
    """Timing records by name, plus the kernel and region stack being timed."""

    uniq_id: int = 0
    current_entry: KernelPerformanceInfo | None = None
    count_map: dict[str, KernelPerformanceInfo] = field(default_factory=dict)
    init_time: float = 0.0
    output_delimiter: str = " "
    current_region_level: int = 0
    regions: list[KernelPerformanceInfo | None] = field(
        default_factory=lambda: [None] * MAX_REGION_DEPTH
    )

    def _entry(self, name: str, kernel_type: KernelExecutionType) -> KernelPerformanceInfo:
        entry = self.count_map.get(name)
        if entry is None:
            entry = KernelPerformanceInfo(name, kernel_type)
            self.count_map[name] = entry
        return entry

    def increment_counter(
        self, name: str, kernel_type: KernelExecutionType
    ) -> KernelPerformanceInfo:
        """Make the record for ``name`` current and start its timer."""
        self.current_entry = self._entry(name, kernel_type)
        self.current_entry.start_timer()
        return self.current_entry

    def increment_counter_region(
        self, name: str, kernel_type: KernelExecutionType
    ) -> KernelPerformanceInfo:
        """Push the record for ``name`` on the region stack and start its timer."""
        if self.current_region_level >= MAX_REGION_DEPTH:
            raise IndexError(f"regions nested deeper than {MAX_REGION_DEPTH}")
        entry = self._entry(name, kernel_type)
        self.regions[self.current_region_level] = entry
        entry.start_timer()
        self.current_region_level += 1
        return entry

    def sorted_entries(self) -> list[KernelPerformanceInfo]:
        """Records in name order."""
        return [self.count_map[name] for name in sorted(self.count_map)]


def sort_by_time(kernels: Iterable[KernelPerformanceInfo]) -> list[KernelPerformanceInfo]:
    """Records ordered by total time, longest first."""
    return sorted(kernels, key=lambda k: k.time, reverse=True)