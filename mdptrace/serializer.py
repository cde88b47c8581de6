"""Write reconstructed timelines as Chrome JSON or Perfetto traces."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from retrobus_perfetto import PerfettoTraceBuilder

from .config import ConverterConfig
from .events import (
    INTERRUPT_LANE,
    MAIN_LANE,
    PHASE_COMPLETE,
    PHASE_INSTANT,
    PHASE_METADATA,
    TimelineEvent,
)

logger = logging.getLogger(__name__)

BUILTIN_LANES = {MAIN_LANE: "Main thread", INTERRUPT_LANE: "Interrupts"}


def _metadata(name: str, tid: int, args: Dict[str, Any]) -> TimelineEvent:
    return TimelineEvent(name=name, phase=PHASE_METADATA, ts=0.0, tid=tid, args=args)


def lane_names(lanes: Mapping[str, int]) -> Dict[int, str]:
    """All lanes by id, built-in ones first, custom ones in id order."""
    names = dict(BUILTIN_LANES)
    for name, tid in sorted(lanes.items(), key=lambda item: item[1]):
        names[tid] = name
    return names


def metadata_events(
    lanes: Mapping[str, int], process_name: Optional[str] = None
) -> List[TimelineEvent]:
    """Process and thread naming records that precede the timeline."""
    if process_name is None:
        process_name = ConverterConfig.process_name()
    events = [
        _metadata("process_name", MAIN_LANE, {"name": process_name}),
        _metadata("thread_name", MAIN_LANE, {"name": BUILTIN_LANES[MAIN_LANE]}),
        _metadata(
            "thread_name", INTERRUPT_LANE, {"name": BUILTIN_LANES[INTERRUPT_LANE]}
        ),
        _metadata("thread_sort_index", MAIN_LANE, {"sort_index": MAIN_LANE}),
        _metadata("thread_sort_index", INTERRUPT_LANE, {"sort_index": INTERRUPT_LANE}),
    ]
    for name, tid in sorted(lanes.items(), key=lambda item: item[1]):
        events.append(_metadata("thread_name", tid, {"name": name}))
        events.append(_metadata("thread_sort_index", tid, {"sort_index": tid}))
    return events


def build_document(
    events: Iterable[TimelineEvent],
    lanes: Mapping[str, int],
    process_name: Optional[str] = None,
) -> Dict[str, Any]:
    trace_events = [e.to_json() for e in metadata_events(lanes, process_name)]
    trace_events.extend(e.to_json() for e in events)
    return {
        "traceEvents": trace_events,
        "displayTimeUnit": ConverterConfig.DISPLAY_TIME_UNIT,
    }


def write_json(path: Union[str, Path], document: Mapping[str, Any]) -> int:
    """Write the document compactly; returns the number of bytes written."""
    start = time.perf_counter()
    data = json.dumps(document, separators=(",", ":")).encode("utf-8")
    Path(path).write_bytes(data)
    logger.info(
        "Wrote %.1f MB of json in %.3f ms",
        len(data) / 1_000_000,
        (time.perf_counter() - start) * 1000,
    )
    return len(data)


def _us_to_ns(value: float) -> int:
    return int(round(value * 1000))


class _LaneTracks:
    """Thread tracks backing one lane.

    Perfetto pairs slice ends with the most recent open begin on a track, so
    each track only receives properly nested slices. A slice that partially
    overlaps everything open on the existing tracks gets a new track.
    """

    def __init__(self, builder: PerfettoTraceBuilder, name: str) -> None:
        self._builder = builder
        self._name = name
        self.tracks: List[int] = [builder.add_thread(name)]
        self._open_ends: List[List[int]] = [[]]

    @property
    def primary(self) -> int:
        return self.tracks[0]

    def place(self, start: int, end: int) -> int:
        """Track for a slice; slices must arrive ordered by start time."""
        for track_uuid, open_ends in zip(self.tracks, self._open_ends):
            while open_ends and open_ends[-1] <= start:
                open_ends.pop()
            if not open_ends or end <= open_ends[-1]:
                open_ends.append(end)
                return track_uuid
        track_uuid = self._builder.add_thread(f"{self._name} #{len(self.tracks) + 1}")
        self.tracks.append(track_uuid)
        self._open_ends.append([end])
        return track_uuid


def write_perfetto(
    path: Union[str, Path],
    events: Sequence[TimelineEvent],
    lanes: Mapping[str, int],
    process_name: Optional[str] = None,
) -> None:
    """Write a Perfetto protobuf trace.

    Each lane gets a thread track; overlapping slices that do not nest
    spill onto extra tracks named after the lane.
    """
    if process_name is None:
        process_name = ConverterConfig.process_name()
    start = time.perf_counter()
    builder = PerfettoTraceBuilder(process_name)
    tracks: Dict[int, _LaneTracks] = {}
    for tid, name in lane_names(lanes).items():
        tracks[tid] = _LaneTracks(builder, name)

    def lane(tid: int) -> _LaneTracks:
        if tid not in tracks:
            tracks[tid] = _LaneTracks(builder, f"Lane {tid}")
        return tracks[tid]

    slices = sorted(
        (e for e in events if e.phase == PHASE_COMPLETE),
        key=lambda e: (_us_to_ns(e.ts), -_us_to_ns(e.end)),
    )
    for event in slices:
        begin, end = _us_to_ns(event.ts), _us_to_ns(event.end)
        track_uuid = lane(event.tid).place(begin, end)
        slice_event = builder.begin_slice(track_uuid, event.name, begin)
        if event.args:
            slice_event.add_annotations(event.args)
        builder.end_slice(track_uuid, end)

    for event in events:
        if event.phase != PHASE_INSTANT:
            continue
        instant = builder.add_instant_event(
            lane(event.tid).primary, event.name, _us_to_ns(event.ts)
        )
        if event.args:
            instant.add_annotations(event.args)

    builder.save(str(path))
    logger.info(
        "Wrote perfetto trace with %d events in %.3f ms",
        len(events),
        (time.perf_counter() - start) * 1000,
    )
