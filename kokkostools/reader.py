"""Merge simple-kernel-timer data files and print a text report."""

from __future__ import annotations

import math
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .kernel_info import KernelExecutionType, KernelPerformanceInfo, read_data_file
from .shared import sort_by_time

_USAGE_ERROR = 255
_RULE = "-" * 73 + "\n"

_LABELS = {
    KernelExecutionType.PARALLEL_FOR: " (ParFor)  ",
    KernelExecutionType.PARALLEL_REDUCE: " (ParRed)  ",
    KernelExecutionType.PARALLEL_SCAN: " (ParScan) ",
    KernelExecutionType.REGION: " (REGION)  ",
}
_FIXED_LABELS = {**_LABELS, KernelExecutionType.REGION: " (Region)  "}


def _ratio(numerator: float, denominator: float) -> float:
    """Floating-point division that yields inf or nan instead of raising."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def merge_data_files(
    paths: Iterable[str | Path],
) -> tuple[float, list[KernelPerformanceInfo]]:
    """Sum execute times and merge records of the same name across data files.

    Records are returned in the order their names first appear.
    """
    total_execute_time = 0.0
    merged: dict[str, KernelPerformanceInfo] = {}
    for path in paths:
        execute_time, kernels = read_data_file(path)
        total_execute_time += execute_time
        for kernel in kernels:
            if not kernel.name:
                continue
            existing = merged.get(kernel.name)
            if existing is None:
                merged[kernel.name] = kernel
            else:
                existing.add_time(kernel.time)
                existing.add_call_count(kernel.call_count)
    return total_execute_time, list(merged.values())


def _entry(
    kernel: KernelPerformanceInfo,
    delimiter: str,
    fixed_width: bool,
    kernels_time: float,
    execute_time: float,
) -> str:
    d = delimiter
    per_call = _ratio(kernel.time, float(kernel.call_count))
    of_kernels = _ratio(kernel.time, kernels_time) * 100.0
    of_total = _ratio(kernel.time, execute_time) * 100.0
    if fixed_width:
        label = _FIXED_LABELS[kernel.kernel_type]
        return (
            f"- {kernel.name:>100}\n"
            f"{label:>11}{d}{kernel.time:15.5f}{d}{kernel.call_count:12d}{d}"
            f"{per_call:15.5f}{d}{of_kernels:7.3f}{d}{of_total:7.3f}\n"
        )
    label = _LABELS[kernel.kernel_type]
    return (
        f"- {kernel.name}\n"
        f"{label}{d}{kernel.time:f}{d}{kernel.call_count}{d}"
        f"{per_call:f}{d}{of_kernels:f}{d}{of_total:f}\n"
    )


def format_report(
    execute_time: float,
    kernels: Iterable[KernelPerformanceInfo],
    delimiter: str = " ",
    fixed_width: bool = False,
) -> str:
    """Render regions, kernels and a summary, each ordered by time, longest first."""
    ordered = sort_by_time(kernels)
    non_regions = [k for k in ordered if k.kernel_type != KernelExecutionType.REGION]
    regions = [k for k in ordered if k.kernel_type == KernelExecutionType.REGION]
    kernels_time = sum(k.time for k in non_regions)
    kernels_calls = sum(k.call_count for k in non_regions)

    parts = ["Regions: \n\n"]
    parts.extend(
        _entry(k, delimiter, fixed_width, kernels_time, execute_time) for k in regions
    )
    parts += ["\n", _RULE, "Kernels: \n\n"]
    parts.extend(
        _entry(k, delimiter, fixed_width, kernels_time, execute_time) for k in non_regions
    )
    percent = _ratio(kernels_time, execute_time) * 100
    parts += [
        "\n",
        _RULE,
        "Summary:\n",
        "\n",
        f"Total Execution Time (incl. Kokkos + non-Kokkos):      {execute_time:20.5f} seconds\n",
        f"Total Time in Kokkos kernels:                          {kernels_time:20.5f} seconds\n",
        "   -> Time outside Kokkos kernels:                     "
        f"{execute_time - kernels_time:20.5f} seconds\n",
        f"   -> Percentage in Kokkos kernels:                    {percent:20.2f} %\n",
        f"Total Calls to Kokkos Kernels:                         {kernels_calls:20d}\n",
        "\n",
        _RULE,
    ]
    return "".join(parts)


def _atoi(text: str) -> int:
    text = text.lstrip()
    sign = 1
    if text[:1] in "+-" and text:
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for char in text:
        if not char.isdigit():
            break
        digits += char
    return sign * int(digits) if digits else 0


def _usage() -> int:
    sys.stderr.write("Did you specify any data files on the command line!\n")
    sys.stderr.write("Usage: ./reader file1.dat [fileX.dat]*\n")
    return _USAGE_ERROR


def main(argv: Sequence[str] | None = None) -> int:
    """Print a report for the data files named on the command line."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        return _usage()

    delimiter = " "
    fixed_width = 0
    remaining = iter(args)
    files: list[str] = []
    for arg in remaining:
        if not arg.startswith("-"):
            files.append(arg)
            files.extend(remaining)
            break
        if arg in ("--delimiter", "--fixed-width"):
            value = next(remaining, None)
            if value is None:
                return _usage()
            if arg == "--delimiter":
                delimiter = value[:1]
            else:
                fixed_width = _atoi(value)

    try:
        execute_time, kernels = merge_data_files(files)
    except (OSError, ValueError) as error:
        sys.stderr.write(f"{error}\n")
        return 1
    sys.stdout.write(format_report(execute_time, kernels, delimiter, bool(fixed_width)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())