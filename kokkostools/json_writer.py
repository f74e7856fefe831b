"""Merge simple-kernel-timer data files and print them as JSON."""

from __future__ import annotations

import math
import sys
from typing import Iterable, Sequence

from .kernel_info import KernelExecutionType, KernelPerformanceInfo
from .reader import merge_data_files
from .shared import sort_by_time

_USAGE_ERROR = 255
_ENTRY_INDENT = "    "

_TYPE_NAMES = {
    KernelExecutionType.PARALLEL_FOR: '"PARALLEL_FOR"',
    KernelExecutionType.PARALLEL_REDUCE: '"PARALLEL_REDUCE"',
    KernelExecutionType.PARALLEL_SCAN: '"PARALLEL_SCAN"',
    KernelExecutionType.REGION: '"REGION"',
}


def _number(value: float) -> str:
    return format(value, "g")


def _percent(part: float, whole: float) -> float:
    if whole == 0:
        return math.nan if part == 0 else math.copysign(math.inf, part)
    return 100.0 * part / whole


def _entry(kernel: KernelPerformanceInfo, indent: str) -> str:
    return (
        f"{indent}{{\n"
        f'{indent}  "kernel-name": "{kernel.name}",\n'
        f'{indent}  "call-count": {kernel.call_count},\n'
        f'{indent}  "total-time": {_number(kernel.time)},\n'
        f'{indent}  "time-per-call": {_number(kernel.time_per_call)},\n'
        f'{indent}  "kernel-type": {_TYPE_NAMES[kernel.kernel_type]}\n'
        f"{indent}}}"
    )


def _array(kernels: list[KernelPerformanceInfo]) -> str:
    return ",\n".join(_entry(kernel, _ENTRY_INDENT) for kernel in kernels) + "\n"


def format_json(execute_time: float, kernels: Iterable[KernelPerformanceInfo]) -> str:
    """Render totals plus region and kernel records, longest time first."""
    ordered = sort_by_time(kernels)
    regions = [k for k in ordered if k.kernel_type == KernelExecutionType.REGION]
    non_regions = [k for k in ordered if k.kernel_type != KernelExecutionType.REGION]
    kernels_time = sum(k.time for k in non_regions)
    kernels_calls = sum(k.call_count for k in non_regions)
    return (
        "{\n"
        f'  "total-app-time" : {_number(execute_time)},\n'
        f'  "total-kernel-time" : {_number(kernels_time)},\n'
        f'  "total-non-kernel-time" : {_number(execute_time - kernels_time)},\n'
        f'  "percent-in-kernels" : {_number(_percent(kernels_time, execute_time))},\n'
        f'  "unique-kernel-calls" : {kernels_calls},\n'
        '  "region-data" : [\n'
        f"{_array(regions)}"
        "  ],\n"
        '  "kernel-data" : [\n'
        f"{_array(non_regions)}"
        "  ]\n"
        "}\n"
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Print the data files named on the command line as one JSON document."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        sys.stderr.write("Did you specify any data files on the command line!\n")
        sys.stderr.write("Usage: ./kp_json_writer file1.dat [fileX.dat]*\n")
        return _USAGE_ERROR

    first_file = next((i for i, arg in enumerate(args) if not arg.startswith("-")), len(args))
    try:
        execute_time, kernels = merge_data_files(args[first_file:])
    except (OSError, ValueError) as error:
        sys.stderr.write(f"{error}\n")
        return 1
    sys.stdout.write(format_json(execute_time, kernels))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())