# kokkostools

Profiling tools that collect timing data from Kokkos-style profiling events,
such as parallel for, reduce and scan kernels, regions, allocations and deep
copies. The package also has two command-line tools that read and summarise
the results.

It uses only the standard library. The space-time stack profiler reads peak
memory through the `resource` module, so that part needs a POSIX system.

## Modules

- `kokkostools.kernel_info`: the `KernelPerformanceInfo` record (name,
  `KernelExecutionType`, call count, total time, sum of squared times), plus
  `read_data_file` and `write_data_file` for the binary `.dat` format. A
  `.dat` file holds one little-endian double (the execute time) followed by
  length-prefixed records.
- `kokkostools.shared`: `KernelTimerState`, which holds records by name and
  the region stack (at most 512 levels deep), and `sort_by_time`, which sorts
  records by total time, longest first.
- `kokkostools.kernel_timer`: `KernelTimer`. It times kernels and regions.
  `finalize_library()` writes `<hostname>-<pid>.dat` to its output directory
  and returns the path.
- `kokkostools.kernel_timer_json`: `KernelTimerJson`. It times kernels (there
  are no region hooks). `finalize_library()` writes
  `<hostname>-<pid>-<rank>.json`, where the rank comes from
  `OMPI_COMM_WORLD_RANK` and defaults to `0`.
- `kokkostools.reader`: `merge_data_files`, `format_report` and the
  `kp-reader` command.
- `kokkostools.json_writer`: `format_json` and the `kp-json-writer` command.
- `kokkostools.stack`: `Space`, `StackKind`, `get_space`, `get_space_name` and
  `StackNode`, the call tree. A `StackNode` can be adopted, inverted into a
  bottom-up tree, printed as text (`print_tree`) and printed as JSON
  (`print_json`).
- `kokkostools.space_time_stack`: `State`, the space-time stack profiler. It
  also provides `Allocation`, `Allocations`, `process_hwm_report`,
  `parse_args` and `print_help`.

## Installation

```
pip install .
```

## Command-line tools

To summarise one or more `.dat` files as a text report of regions, kernels
and totals:

```
kp-reader [--delimiter C] [--fixed-width N] file1.dat [fileX.dat ...]
```

- `--delimiter` uses the first character of its value between columns.
- `--fixed-width` switches to padded columns when N is not zero.

To print the same data as one JSON document on standard output:

```
kp-json-writer file1.dat [fileX.dat ...]
```

Both tools merge records that have the same kernel name across files and sum
the execute times of all files. They sort entries by total time, longest
first. Exit codes are as follows:

- 255 when no arguments are given.
- 1 when a file cannot be read or is truncated.
- 0 otherwise.

## Using the timers from Python

```python
from kokkostools.kernel_timer import KernelTimer

timer = KernelTimer(output_dir=".")
timer.init_library(0, 20211015)
timer.push_profile_region("setup")
kid = timer.begin_parallel_for("fill", 0)
timer.end_parallel_for(kid)
timer.pop_profile_region()
path = timer.finalize_library()   # <hostname>-<pid>.dat
```

An empty kernel name raises `ValueError`. Ending a kernel before any kernel
has begun raises `RuntimeError`. Popping more regions than were pushed
writes a warning to standard error.

```python
import sys
from kokkostools.stack import StackKind
from kokkostools.space_time_stack import State

state = State(output_threshold=0.1)
state.push_region("solve")
kid = state.begin_kernel("axpy", StackKind.FOR)
state.end_kernel(kid)
state.pop_region()
state.finalize(sys.stdout)
```

`State.finalize` writes a report with these parts:

- the total time;
- a top-down time tree;
- a bottom-up time tree;
- the allocations at the high-water mark of each memory space;
- the process's peak resident memory.

If `KOKKOS_PROFILE_EXPORT_JSON` is set, `finalize` writes only the top-down
tree, as JSON, to `noname.json` in the working directory and returns that
path.

Ending a kernel with the wrong id raises `RuntimeError`. So does finalizing
while a frame is still open. Freeing an allocation that was never recorded
writes a warning to standard error.

`parse_args(argv)` turns tool arguments (`argv[0]` is the executable name)
into the output threshold. The threshold is the percentage of total time a
node must reach before it is printed, and defaults to 0.1. With more than one
argument, `parse_args` prints the help and exits with status 1.

## What this package does not do

- It does not attach to a running application. Nothing calls the hooks
  automatically; your code must call `init_library`, the begin and end
  methods, and `finalize_library` (or `State.finalize`) itself.
- There is no multi-process reduction. `StackNode.reduce` sets the maximum and
  average times from this process alone, so imbalance figures are always 0%.
- It does not demangle kernel names. Names are stored and printed as given.