"""Profiler capture to trace-viewer timeline converter."""

from .decoder import MDP_VERSION, decode, iter_packets
from .errors import (
    ConversionError,
    IntervalDefinitionError,
    SymbolFormatError,
    TraceFormatError,
)
from .events import TimelineEvent, cycle_to_us
from .intervals import (
    IntervalDefinition,
    IntervalRegistry,
    IntervalTableBuilder,
    read_intervals,
)
from .packets import Packet, PacketType, ParsedTrace
from .pipeline import ConversionResult, convert
from .symbols import SymbolTable, read_symbols
from .timeline import TimelineReconstructor, reconstruct

__all__ = [
    "MDP_VERSION",
    "decode",
    "iter_packets",
    "ConversionError",
    "IntervalDefinitionError",
    "SymbolFormatError",
    "TraceFormatError",
    "TimelineEvent",
    "cycle_to_us",
    "IntervalDefinition",
    "IntervalRegistry",
    "IntervalTableBuilder",
    "read_intervals",
    "Packet",
    "PacketType",
    "ParsedTrace",
    "ConversionResult",
    "convert",
    "SymbolTable",
    "read_symbols",
    "TimelineReconstructor",
    "reconstruct",
]
