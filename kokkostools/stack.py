"""Call-stack tree of kernels and regions for the space-time-stack profiler."""

from __future__ import annotations

import math
import time
from collections import deque
from enum import IntEnum
from typing import Callable, TextIO


class Space(IntEnum):
    """Memory space an allocation or copy lives in."""

    HOST = 0
    CUDA = 1
    HIP = 2
    SYCL = 3
    OMPT = 4


class StackKind(IntEnum):
    """Kind of frame on the profiling stack."""

    FOR = 0
    REDUCE = 1
    SCAN = 2
    REGION = 3
    COPY = 4


_SPACE_NAMES = {
    Space.HOST: "HOST",
    Space.CUDA: "CUDA",
    Space.SYCL: "SYCL",
    Space.OMPT: "OpenMPTarget",
    Space.HIP: "HIP",
}

_KIND_LABELS = {
    StackKind.FOR: "for",
    StackKind.REDUCE: "reduce",
    StackKind.SCAN: "scan",
    StackKind.REGION: "region",
    StackKind.COPY: "copy",
}

_KERNEL_KINDS = frozenset({StackKind.FOR, StackKind.REDUCE, StackKind.SCAN, StackKind.COPY})


def get_space(handle_name: str) -> Space:
    """Map a space handle name to its Space; raise ValueError for unknown names."""
    if handle_name.startswith("Cuda"):
        return Space.CUDA
    if handle_name.startswith("SYCL"):
        return Space.SYCL
    if handle_name.startswith("OpenMPTarget"):
        return Space.OMPT
    if handle_name.startswith("HIP"):
        return Space.HIP
    if handle_name == "Host":
        return Space.HOST
    raise ValueError(f"unknown memory space {handle_name!r}")


def get_space_name(space: int) -> str:
    """Display name of a memory space."""
    try:
        return _SPACE_NAMES[Space(space)]
    except ValueError:
        raise ValueError(f"unknown memory space {space!r}") from None


def _ratio(numerator: float, denominator: float) -> float:
    """Floating-point division that yields inf or nan instead of raising."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


class StackNode:
    """One frame of the call tree, with its accumulated timings."""

    def __init__(self, parent: StackNode | None, name: str, kind: StackKind) -> None:
        self.parent = parent
        self.name = name
        self.kind = StackKind(kind)
        self.children: dict[tuple[StackKind, str], StackNode] = {}
        self.total_runtime = 0.0
        self.total_kokkos_runtime = 0.0
        self.max_runtime = 0.0
        self.avg_runtime = 0.0
        self.number_of_calls = 0
        # kernel calls (not region calls) at and below this node
        self.total_number_of_kernel_calls = 0
        self.start_time = 0.0

    def __repr__(self) -> str:
        return f"StackNode({self.full_name()!r}, {self.kind.name})"

    def _ordered_children(self) -> list[StackNode]:
        return [self.children[key] for key in sorted(self.children)]

    def _children_by_time(self) -> list[StackNode]:
        seen: set[tuple[float, str]] = set()
        unique = []
        for child in self._ordered_children():
            key = (child.total_runtime, child.name)
            if key in seen:
                continue
            seen.add(key)
            unique.append(child)
        unique.sort(key=lambda c: (-c.total_runtime, c.name))
        return unique

    def get_child(self, name: str, kind: StackKind) -> StackNode:
        """Return the child with this name and kind, creating it if needed."""
        key = (StackKind(kind), name)
        child = self.children.get(key)
        if child is None:
            child = StackNode(self, name, key[0])
            self.children[key] = child
        return child

    def full_name(self) -> str:
        """Slash-separated path from the top of the tree to this node."""
        parts = [self.name]
        node = self.parent
        while node is not None:
            if not (node.name == "" and node.parent is None):
                parts.append(node.name)
            node = node.parent
        return "/".join(reversed(parts))

    def begin(self) -> None:
        """Count one more call and start timing it."""
        self.number_of_calls += 1
        if self.kind in _KERNEL_KINDS:
            self.total_number_of_kernel_calls += 1
        self.start_time = time.perf_counter()

    def end(self, end_time: float) -> None:
        """Stop timing; ``end_time`` is a time.perf_counter() reading."""
        self.total_runtime += end_time - self.start_time

    def adopt(self) -> None:
        """Roll kernel time and kernel call counts up from the children."""
        if self.kind != StackKind.REGION:
            self.total_kokkos_runtime += self.total_runtime
        for child in self._ordered_children():
            child.adopt()
            self.total_kokkos_runtime += child.total_kokkos_runtime
            self.total_number_of_kernel_calls += child.total_number_of_kernel_calls

    def invert(self) -> StackNode:
        """Build the bottom-up tree: self times keyed by the path back to the root."""
        inv_root = StackNode(None, "", StackKind.REGION)
        queue: deque[StackNode] = deque([self])
        while queue:
            node = queue.popleft()
            self_time = node.total_runtime
            self_kokkos_time = node.total_kokkos_runtime
            calls = node.number_of_calls
            for child in node._ordered_children():
                self_time -= child.total_runtime
                self_kokkos_time -= child.total_kokkos_runtime
                queue.append(child)
            # floating point may leave a tiny negative instead of zero
            self_time = max(self_time, 0.0)
            self_kokkos_time = max(self_kokkos_time, 0.0)

            inv_node = inv_root
            current: StackNode | None = node
            while True:
                inv_node.total_runtime += self_time
                inv_node.number_of_calls += calls
                inv_node.total_kokkos_runtime += self_kokkos_time
                if current is None:
                    break
                inv_node = inv_node.get_child(current.name, current.kind)
                current = current.parent
        return inv_root

    def reduce(self) -> None:
        """Set the maximum and average runtimes of every node for a single process."""
        queue: deque[StackNode] = deque([self])
        while queue:
            node = queue.popleft()
            node.max_runtime = node.total_runtime
            node.avg_runtime = node.total_runtime
            queue.extend(node._ordered_children())

    def _region_stats(self) -> tuple[float, float]:
        child_runtime = sum(child.total_runtime for child in self._ordered_children())
        remainder = (1.0 - _ratio(child_runtime, self.total_runtime)) * 100.0
        kps = _ratio(float(self.total_number_of_kernel_calls), self.avg_runtime)
        return remainder, kps

    def _print_recursive(
        self,
        stream: TextIO,
        my_indent: str,
        child_indent: str,
        tree_time: float,
        threshold: float,
    ) -> None:
        percent = _ratio(self.total_runtime, tree_time) * 100.0
        if percent < threshold:
            return
        if self.name:
            imbalance = (_ratio(self.max_runtime, self.avg_runtime) - 1.0) * 100.0
            percent_kokkos = _ratio(self.total_kokkos_runtime, self.total_runtime) * 100.0
            line = f"{my_indent}{self.avg_runtime:.2e} sec "
            if self.kind == StackKind.REGION:
                remainder, kps = self._region_stats()
                line += (
                    f"{percent:.1f}% {percent_kokkos:.1f}% {imbalance:.1f}% "
                    f"{remainder:.1f}% {kps:.2e} {self.number_of_calls} {self.name}"
                )
            else:
                line += (
                    f"{percent:.1f}% {percent_kokkos:.1f}% {imbalance:.1f}% "
                    f"------ {self.number_of_calls} {self.name}"
                )
            stream.write(f"{line} [{_KIND_LABELS[self.kind]}]\n")
        children = self._children_by_time()
        for position, child in enumerate(children):
            last = position == len(children) - 1
            grandchild_indent = child_indent + ("    " if last else "|   ")
            child._print_recursive(
                stream, child_indent + "|-> ", grandchild_indent, tree_time, threshold
            )

    def print_tree(self, stream: TextIO, threshold: float = 0.1) -> None:
        """Write the tree as indented text, skipping nodes below ``threshold`` percent."""
        self._print_recursive(stream, "", "", self.total_runtime, threshold)
        stream.write("\n")

    def _print_recursive_json(
        self,
        stream: TextIO,
        parent: StackNode | None,
        tree_time: float,
        threshold: float,
        emit_separator: Callable[[], None],
    ) -> None:
        percent = _ratio(self.total_runtime, tree_time) * 100.0
        if percent < threshold:
            return
        if self.name:
            emit_separator()
            imbalance = (_ratio(self.max_runtime, self.avg_runtime) - 1.0) * 100.0
            percent_kokkos = _ratio(self.total_kokkos_runtime, self.total_runtime) * 100.0
            stream.write("{\n")
            stream.write(f'"average-time" : {self.avg_runtime:.2e},\n')
            stream.write(f'"percent" : {percent:.1f},\n')
            stream.write(f'"percent-kokkos" : {percent_kokkos:.1f},\n')
            stream.write(f'"imbalance" : {imbalance:.1f},\n')
            if self.kind == StackKind.REGION:
                remainder, kps = self._region_stats()
                stream.write(f'"remainder" : {remainder:.1f},\n')
                stream.write(f'"kernels-per-second" : {kps:.2e},\n')
            else:
                stream.write('"remainder" : "N/A",\n')
                stream.write('"kernels-per-second" : "N/A",\n')
            stream.write(f'"number-of-calls" : {self.number_of_calls},\n')
            escaped = self.name.replace('"', '\\"')
            stream.write(f'"name" : "{escaped}",\n')
            parent_id = "0" if parent is None else f"{id(parent):#x}"
            stream.write(f'"parent-id" : "{parent_id}",\n')
            stream.write(f'"id" : "{id(self):#x}",\n')
            stream.write(f'"kernel-type" : "{_KIND_LABELS[self.kind]}"')
            stream.write("\n}")
        for child in self._children_by_time():
            child._print_recursive_json(stream, self, tree_time, threshold, emit_separator)

    def print_json(self, stream: TextIO, threshold: float = 0.1) -> None:
        """Write the tree as a JSON document, skipping nodes below ``threshold`` percent."""
        written = False

        def emit_separator() -> None:
            nonlocal written
            if written:
                stream.write(",\n")
            written = True

        stream.write("{\n")
        stream.write('"space-time-stack-data" : [\n')
        self._print_recursive_json(stream, None, self.total_runtime, threshold, emit_separator)
        stream.write("\n")
        stream.write("]\n}\n")