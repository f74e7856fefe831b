import json

import pytest

from kokkostools.json_writer import format_json, main
from kokkostools.kernel_info import (
    KernelExecutionType,
    KernelPerformanceInfo,
    write_data_file,
)


def _kernels():
    return [
        KernelPerformanceInfo("small", KernelExecutionType.PARALLEL_SCAN, 1, 1.0, 1.0),
        KernelPerformanceInfo("big", KernelExecutionType.PARALLEL_FOR, 4, 3.0, 4.0),
        KernelPerformanceInfo("outer", KernelExecutionType.REGION, 1, 6.0, 36.0),
        KernelPerformanceInfo("idle", KernelExecutionType.PARALLEL_REDUCE, 0, 0.0, 0.0),
    ]


def test_document_is_valid_json_with_sections():
    data = json.loads(format_json(8.0, _kernels()))
    assert [entry["kernel-name"] for entry in data["region-data"]] == ["outer"]
    assert [entry["kernel-name"] for entry in data["kernel-data"]] == [
        "big",
        "small",
        "idle",
    ]
    assert [entry["kernel-type"] for entry in data["kernel-data"]] == [
        "PARALLEL_FOR",
        "PARALLEL_SCAN",
        "PARALLEL_REDUCE",
    ]


def test_totals_exclude_regions():
    kernels = _kernels()
    data = json.loads(format_json(8.0, kernels))
    non_regions = [k for k in kernels if k.kernel_type != KernelExecutionType.REGION]
    assert data["total-app-time"] == 8.0
    assert data["total-kernel-time"] == pytest.approx(sum(k.time for k in non_regions))
    assert data["total-kernel-time"] + data["total-non-kernel-time"] == pytest.approx(8.0)
    assert data["unique-kernel-calls"] == sum(k.call_count for k in non_regions)
    assert data["percent-in-kernels"] == 50


def test_time_per_call_guards_zero_calls():
    data = json.loads(format_json(8.0, _kernels()))
    for entry in data["kernel-data"]:
        assert entry["time-per-call"] == pytest.approx(
            entry["total-time"] / max(1, entry["call-count"])
        )


def test_empty_sections_still_valid():
    data = json.loads(format_json(1.0, []))
    assert data["region-data"] == []
    assert data["kernel-data"] == []
    assert data["unique-kernel-calls"] == 0


def test_main_reads_files_and_skips_options(tmp_path, capsys):
    path = tmp_path / "run.dat"
    write_data_file(path, 8.0, _kernels())
    assert main(["--pretty", str(path), str(path)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["total-app-time"] == 16.0
    big = next(entry for entry in data["kernel-data"] if entry["kernel-name"] == "big")
    assert big["call-count"] == 4 + 4


def test_main_without_arguments_reports_usage(capsys):
    assert main([]) == 255
    assert "Usage: ./kp_json_writer file1.dat [fileX.dat]*" in capsys.readouterr().err


def test_main_missing_file_fails(tmp_path, capsys):
    assert main([str(tmp_path / "absent.dat")]) == 1
    assert "absent.dat" in capsys.readouterr().err