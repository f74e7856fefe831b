"""Per-kernel timing records and the binary data-file format they are stored in."""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Iterable, TextIO

_LENGTH = struct.Struct("<I")
_EXECUTE_TIME = struct.Struct("<d")
_TAIL = struct.Struct("<QddI")
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class KernelExecutionType(IntEnum):
    """Kind of work a timing record describes."""

    PARALLEL_FOR = 0
    PARALLEL_REDUCE = 1
    PARALLEL_SCAN = 2
    REGION = 3


def seconds() -> float:
    """Wall-clock time in seconds."""
    return time.time()


@dataclass
class KernelPerformanceInfo:
    """Accumulated call count and run time of one named kernel or region."""

    name: str
    kernel_type: KernelExecutionType = KernelExecutionType.PARALLEL_FOR
    call_count: int = 0
    time: float = 0.0
    time_sq: float = 0.0
    start_time: float = field(default=0.0, compare=False, repr=False)

    def increment_count(self) -> None:
        self.call_count += 1

    def add_time(self, t: float) -> None:
        self.time += t
        self.time_sq += t * t

    def add_call_count(self, calls: int) -> None:
        self.call_count += calls

    def start_timer(self) -> None:
        self.start_time = seconds()

    def add_from_timer(self) -> None:
        """Add the time since the last start_timer() as one more call."""
        self.add_time(seconds() - self.start_time)
        self.increment_count()

    @property
    def time_per_call(self) -> float:
        return self.time / max(1, self.call_count)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> KernelPerformanceInfo | None:
        """Read one record; return None when no further record starts in the stream."""
        header = stream.read(_LENGTH.size)
        if len(header) != _LENGTH.size:
            return None
        (record_len,) = _LENGTH.unpack(header)
        entry = stream.read(record_len)
        if len(entry) != record_len or record_len < _LENGTH.size:
            raise ValueError("truncated kernel record")
        (name_len,) = _LENGTH.unpack_from(entry, 0)
        offset = _LENGTH.size + name_len
        if offset + _TAIL.size > record_len:
            raise ValueError("truncated kernel record")
        name = entry[_LENGTH.size:offset].decode(_ENCODING, _ERRORS)
        call_count, total, total_sq, raw_type = _TAIL.unpack_from(entry, offset)
        try:
            kernel_type = KernelExecutionType(raw_type)
        except ValueError:
            kernel_type = KernelExecutionType.PARALLEL_FOR
        return cls(name, kernel_type, call_count, total, total_sq)

    def write_binary(self, stream: BinaryIO) -> None:
        """Write this record in the length-prefixed binary layout."""
        name = self.name.encode(_ENCODING, _ERRORS)
        entry = (
            _LENGTH.pack(len(name))
            + name
            + _TAIL.pack(self.call_count, self.time, self.time_sq, int(self.kernel_type))
        )
        stream.write(_LENGTH.pack(len(entry)))
        stream.write(entry)

    def write_json(self, stream: TextIO, indent: str) -> None:
        """Write this record as a JSON object, indented by ``indent``."""
        inner = indent + "    "
        if self.kernel_type == KernelExecutionType.PARALLEL_FOR:
            type_name = "PARALLEL-FOR"
        elif self.kernel_type == KernelExecutionType.PARALLEL_REDUCE:
            type_name = "PARALLEL-REDUCE"
        else:
            type_name = "PARALLEL-SCAN"
        stream.write(f"{indent}{{\n")
        stream.write(f'{inner}"kernel-name"    : "{self.name}",\n')
        stream.write(f'{inner}"call-count"     : {self.call_count},\n')
        stream.write(f'{inner}"total-time"     : {self.time:f},\n')
        stream.write(f'{inner}"time-per-call"  : {self.time_per_call:16.8f},\n')
        stream.write(f'{inner}"kernel-type"    : "{type_name}"\n')
        stream.write(f"{indent}}}")


def read_data_file(path: str | Path) -> tuple[float, list[KernelPerformanceInfo]]:
    """Return the execute time and every record stored in a data file."""
    with open(path, "rb") as stream:
        header = stream.read(_EXECUTE_TIME.size)
        execute_time = (
            _EXECUTE_TIME.unpack(header)[0] if len(header) == _EXECUTE_TIME.size else 0.0
        )
        kernels = []
        while (kernel := KernelPerformanceInfo.read_from(stream)) is not None:
            kernels.append(kernel)
    return execute_time, kernels


def write_data_file(
    path: str | Path, execute_time: float, kernels: Iterable[KernelPerformanceInfo]
) -> None:
    """Write the execute time followed by each record to a data file."""
    with open(path, "wb") as stream:
        stream.write(_EXECUTE_TIME.pack(execute_time))
        for kernel in kernels:
            kernel.write_binary(stream)