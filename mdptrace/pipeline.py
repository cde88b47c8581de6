"""End-to-end conversion: capture bytes in, timeline out."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .decoder import decode
from .events import TimelineEvent
from .intervals import IntervalRegistry, read_intervals
from .packets import ParsedTrace
from .serializer import build_document
from .symbols import SymbolTable, read_symbols
from .timeline import reconstruct

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    trace: ParsedTrace
    symbols: SymbolTable
    registry: IntervalRegistry
    events: List[TimelineEvent]

    def document(self, process_name: Optional[str] = None) -> Dict[str, Any]:
        return build_document(self.events, self.registry.lanes, process_name)


def convert(
    trace_data: bytes,
    symbol_data: Optional[bytes] = None,
    interval_data: Union[str, bytes, None] = None,
) -> ConversionResult:
    """Decode a capture and rebuild its timeline.

    Every input is parsed before reconstruction starts, so malformed input
    raises a ``ConversionError`` before any event exists.
    """
    start = time.perf_counter()
    trace = decode(trace_data)
    logger.info(
        "Decoded %d packets in %.3f ms",
        len(trace.packets),
        (time.perf_counter() - start) * 1000,
    )

    symbols = read_symbols(symbol_data) if symbol_data is not None else SymbolTable()
    if interval_data is not None:
        registry = read_intervals(interval_data, symbols)
    else:
        registry = IntervalRegistry()

    start = time.perf_counter()
    events = reconstruct(trace, registry, symbols)
    logger.info(
        "Generated %d output events in %.3f ms",
        len(events),
        (time.perf_counter() - start) * 1000,
    )
    return ConversionResult(trace=trace, symbols=symbols, registry=registry, events=events)
