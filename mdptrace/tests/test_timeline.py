"""Tests for call, interrupt and interval reconstruction."""

import pytest

from mdptrace.decoder import decode
from mdptrace.events import INTERRUPT_LANE, MAIN_LANE, cycle_to_us
from mdptrace.intervals import read_intervals
from mdptrace.symbols import SymbolTable
from mdptrace.timeline import find_subroutine_exit, reconstruct


@pytest.fixture
def symbols() -> SymbolTable:
    table = SymbolTable()
    table.add(0x100, "Foo")
    table.add(0x200, "Bar")
    table.add(0x300, "HBlankHandler")
    table.add(0x300, "VBlankHandler")
    table.add(0x400, "Region_start")
    table.add(0x480, "Region_end")
    return table


def _spans(events):
    return [(e.name, e.ts, e.dur, e.tid) for e in events]


def test_single_call(capture, symbols) -> None:
    trace = decode(capture().enter(10, 0x2000, 0x100).exit(50, 0x2000).build())
    events = reconstruct(trace, symbols=symbols)
    assert _spans(events) == [("Foo", 10.0, 40.0, MAIN_LANE)]
    assert events[0].phase == "X"


def test_clock_rate_scales_times(capture, symbols) -> None:
    trace = decode(
        capture(mclk=2_000_000).enter(10, 0x2000, 0x100).exit(50, 0x2000).build()
    )
    (event,) = reconstruct(trace, symbols=symbols)
    assert event.ts == cycle_to_us(10, 2_000_000.0) == 5.0
    assert event.dur == 20.0


def test_exit_matched_by_stack_pointer(capture, symbols) -> None:
    # Foo calls Bar; Bar's exit is deeper on the stack and must not end Foo.
    data = (
        capture()
        .enter(0, 0x2000, 0x100)
        .enter(10, 0x1FFC, 0x200)
        .exit(20, 0x1FF8)
        .exit(30, 0x1FFC)
        .build()
    )
    events = reconstruct(decode(data), symbols=symbols)
    assert _spans(events) == [
        ("Foo", 0.0, 30.0, MAIN_LANE),
        ("Bar", 10.0, 10.0, MAIN_LANE),
    ]


def test_return_address_slack_is_four_bytes(capture) -> None:
    data = (
        capture()
        .enter(0, 0x2000, 0x100)
        .exit(5, 0x1FFB)
        .exit(9, 0x1FFC)
        .build()
    )
    trace = decode(data)
    assert find_subroutine_exit(trace.packets, 0).cycle == 9


def test_recursion(capture, symbols) -> None:
    data = (
        capture()
        .enter(0, 0x2000, 0x100)
        .enter(10, 0x1FFC, 0x100)
        .enter(20, 0x1FF8, 0x100)
        .exit(30, 0x1FF4)
        .exit(40, 0x1FF8)
        .exit(50, 0x1FFC)
        .build()
    )
    events = reconstruct(decode(data), symbols=symbols)
    assert [(e.ts, e.ts + e.dur) for e in events] == [
        (0.0, 50.0),
        (10.0, 40.0),
        (20.0, 30.0),
    ]


def test_unmatched_enter_runs_to_end_of_trace(capture, symbols) -> None:
    data = capture().enter(10, 0x2000, 0x100).vint(60).build()
    events = reconstruct(decode(data), symbols=symbols)
    assert _spans(events)[0] == ("Foo", 10.0, 51.0, MAIN_LANE)


def test_unresolved_address_uses_hex_name(capture) -> None:
    data = capture().enter(0, 0x2000, 0xBEEF).exit(1, 0x2000).build()
    (event,) = reconstruct(decode(data))
    assert event.name == "0xbeef"


def test_interrupt_inside_subroutine(capture, symbols) -> None:
    data = (
        capture()
        .enter(0, 0x2000, 0x100)
        .irq(10, 0x300, sp=0x1FF0)
        .enter(12, 0x1FEC, 0x200)
        .exit(18, 0x1FEC)
        .irq_exit(20)
        .enter(25, 0x1FF8, 0x200)
        .exit(28, 0x1FF8)
        .exit(30, 0x2000)
        .build()
    )
    events = reconstruct(decode(data), symbols=symbols)
    assert _spans(events) == [
        ("Foo", 0.0, 30.0, MAIN_LANE),
        ("VBlankHandler", 10.0, 10.0, INTERRUPT_LANE),
        ("Bar", 12.0, 6.0, INTERRUPT_LANE),
        ("Bar", 25.0, 3.0, MAIN_LANE),
    ]


def test_unmatched_interrupt_runs_to_end(capture, symbols) -> None:
    data = capture().irq(10, 0x300).hint(20).build()
    (event,) = reconstruct(decode(data), symbols=symbols)
    assert (event.ts, event.dur, event.tid) == (10.0, 11.0, INTERRUPT_LANE)


def test_vint_marker_ignores_current_lane(capture) -> None:
    data = capture().vint(5).irq(6, 0x300).vint(7).irq_exit(8).build()
    markers = [e for e in reconstruct(decode(data)) if e.name == "VInt"]
    assert len(markers) == 2
    for marker in markers:
        assert marker.phase == "i"
        assert marker.tid == INTERRUPT_LANE
        assert marker.dur == 0.0
        assert marker.scope == "g"


def test_hint_and_exits_emit_nothing(capture) -> None:
    data = capture().hint(1).exit(2, 0).irq_exit(3).build()
    assert reconstruct(decode(data)) == []


def test_empty_trace_has_no_events(capture) -> None:
    assert reconstruct(decode(capture().build())) == []


def test_intervals_follow_breakpoints(capture, symbols) -> None:
    registry = read_intervals(
        "Region\nRegion_start, Region_end, tagged, Logic", symbols
    )
    data = (
        capture()
        .breakpoint(10, 0x400)
        .enter(12, 0x2000, 0x100)
        .breakpoint(14, 0x400)
        .exit(16, 0x2000)
        .breakpoint(20, 0x480)
        .breakpoint(22, 0x400)
        .build()
    )
    events = reconstruct(decode(data), registry, symbols)
    assert _spans(events) == [
        ("Foo", 12.0, 4.0, MAIN_LANE),
        ("Region", 10.0, 10.0, MAIN_LANE),
        ("tagged", 10.0, 10.0, 2),
    ]
    # The last start is left open and never reported.
    assert [d.name for d in registry.open_intervals()] == ["Region", "tagged"]


def test_events_keep_packet_order(capture, symbols) -> None:
    data = (
        capture()
        .enter(0, 0x2000, 0x100)
        .vint(3)
        .enter(5, 0x1FF8, 0x200)
        .exit(6, 0x1FF8)
        .exit(9, 0x2000)
        .build()
    )
    names = [e.name for e in reconstruct(decode(data), symbols=symbols)]
    assert names == ["Foo", "VInt", "Bar"]
