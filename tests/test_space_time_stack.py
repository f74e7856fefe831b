import io

import pytest

from kokkostools.space_time_stack import (
    Allocations,
    State,
    parse_args,
    print_help,
    process_hwm_report,
)
from kokkostools.stack import Space, StackKind, StackNode


@pytest.fixture
def root():
    return StackNode(None, "", StackKind.REGION)


def test_allocations_total_and_order(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 8, root)
    allocs.allocate("b", 0x20, 64, root)
    allocs.allocate("c", 0x05, 8, root)
    assert allocs.total_size == 80
    assert [a.name for a in allocs] == ["b", "c", "a"]


def test_duplicate_allocation_raises(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 8, root)
    with pytest.raises(ValueError):
        allocs.allocate("again", 0x10, 8, root)


def test_deallocate_known(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 8, root)
    assert allocs.deallocate("a", 0x10, 8, root) is True
    assert allocs.total_size == 0
    assert len(allocs) == 0


def test_deallocate_unknown_warns(root, capsys):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 8, root)
    assert allocs.deallocate("ghost", 0x99, 8, root) is False
    assert allocs.total_size == 8
    err = capsys.readouterr().err
    assert err.startswith('WARNING! allocation("ghost", 0x99, 8)')
    assert "was not in the currently allocated set!" in err


def test_report_names_frames(root):
    frame = root.get_child("outer", StackKind.REGION)
    allocs = Allocations()
    allocs.allocate("buf", 0x10, 1024, frame)
    text = allocs.report()
    assert text.startswith("MAX MEMORY ALLOCATED: 1.0 kB\n")
    assert "ALLOCATIONS AT TIME OF HIGH WATER MARK:\n" in text
    assert "  100.0% outer/buf\n" in text


def test_report_skips_tiny_allocations(root):
    allocs = Allocations()
    allocs.allocate("big", 0x10, 100000, root)
    allocs.allocate("tiny", 0x20, 1, root)
    text = allocs.report()
    assert "big" in text
    assert "tiny" not in text


def test_copy_is_independent(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 8, root)
    snapshot = allocs.copy()
    allocs.deallocate("a", 0x10, 8, root)
    assert snapshot.total_size == 8
    assert [a.name for a in snapshot] == ["a"]


def test_kernel_ids_must_match():
    state = State(0.0)
    outer = state.begin_kernel("outer", StackKind.FOR)
    state.begin_kernel("inner", StackKind.FOR)
    with pytest.raises(RuntimeError, match="outer/inner"):
        state.end_kernel(outer)


def test_kernel_frames_nest_and_return():
    state = State(0.0)
    kid = state.begin_kernel("k", StackKind.REDUCE)
    assert state.stack_frame.full_name() == "k"
    state.end_kernel(kid)
    assert state.stack_frame is state.stack_root


def test_regions_count_calls():
    state = State()
    for _ in range(2):
        state.push_region("r")
        state.pop_region()
    node = state.stack_root.get_child("r", StackKind.REGION)
    assert node.number_of_calls == 2
    assert node.total_runtime >= 0.0


def test_pop_without_push_raises():
    state = State()
    with pytest.raises(RuntimeError):
        state.pop_region()


def test_high_water_mark_is_kept():
    state = State()
    state.allocate(Space.HOST, "a", 0x10, 100)
    state.allocate(Space.HOST, "b", 0x20, 200)
    state.deallocate(Space.HOST, "a", 0x10, 100)
    state.deallocate(Space.HOST, "b", 0x20, 200)
    assert state.current_allocations[Space.HOST].total_size == 0
    assert state.hwm_allocations[Space.HOST].total_size == 300
    assert state.hwm_allocations[Space.CUDA].total_size == 0


def test_deep_copy_frame():
    state = State()
    node = state.begin_deep_copy(Space.HOST, "dst", Space.CUDA, "src")
    assert node.name == '"dst"="src" (HOST->CUDA)'
    assert node.kind == StackKind.COPY
    state.end_deep_copy()
    assert state.stack_frame is state.stack_root


def test_finalize_with_open_frame_raises():
    state = State()
    state.push_region("open")
    with pytest.raises(RuntimeError, match='"open"'):
        state.finalize(io.StringIO())


def test_finalize_text_report(monkeypatch):
    monkeypatch.delenv("KOKKOS_PROFILE_EXPORT_JSON", raising=False)
    state = State(0.0)
    kid = state.begin_kernel("kern", StackKind.FOR)
    state.end_kernel(kid)
    out = io.StringIO()
    assert state.finalize(out) is None
    text = out.getvalue()
    assert text.startswith("\nBEGIN KOKKOS PROFILING REPORT:\nTOTAL TIME: ")
    assert text.endswith("END KOKKOS PROFILING REPORT.\n")
    assert "TOP-DOWN TIME TREE:\n" in text
    assert "BOTTOM-UP TIME TREE:\n" in text
    assert "kern [for]" in text
    for name in ("HOST", "CUDA", "HIP", "SYCL", "OpenMPTarget"):
        assert f"KOKKOS {name} SPACE:\n" in text


def test_finalize_json_export(monkeypatch, tmp_path):
    monkeypatch.setenv("KOKKOS_PROFILE_EXPORT_JSON", "1")
    monkeypatch.chdir(tmp_path)
    state = State(0.0)
    kid = state.begin_kernel("kern", StackKind.SCAN)
    state.end_kernel(kid)
    out = io.StringIO()
    path = state.finalize(out)
    assert out.getvalue() == ""
    content = (tmp_path / path).read_text()
    assert content.startswith('{\n"space-time-stack-data" : [\n')
    assert '"name" : "kern"' in content
    assert '"kernel-type" : "scan"' in content


def test_process_hwm_report_shape():
    text = process_hwm_report()
    assert text.startswith("Host process high water mark memory consumption: ")
    assert text.endswith(" kB\n\n")


def test_parse_args_default():
    assert parse_args(["exe"]) == 0.1


@pytest.mark.parametrize("arg, expected", [("10", 10.0), ("2.5abc", 2.5), ("junk", 0.0)])
def test_parse_args_threshold(arg, expected):
    assert parse_args(["exe", arg]) == expected


def test_parse_args_too_many(capsys):
    with pytest.raises(SystemExit) as excinfo:
        parse_args(["prog", "1", "2"])
    assert excinfo.value.code == 1
    assert capsys.readouterr().out.startswith("usage: prog[--kokkos-tools-args <threshold>]\n")


def test_print_help(capsys):
    print_help("tool")
    out = capsys.readouterr().out
    assert out.startswith("usage: tool[--kokkos-tools-args <threshold>]\n")
    assert "Default value: 0.1" in out