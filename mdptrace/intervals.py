"""User-defined intervals: code regions bounded by start and end addresses.

Intervals are tracked independently of the call/interrupt structure. Each
definition line names one or more start addresses and one or more end
addresses; reaching any start opens the interval and reaching any end
closes it, emitting one duration event. A definition may be placed on a
named lane so related intervals are grouped on their own track.

Definition file syntax, one interval per line::

    // comment
    starts, ends[, display name[, lane name]]
    token

``starts`` and ``ends`` are ``;``-separated tokens. A token is a symbol
name, a hexadecimal address, or a prefix matching every
``mdp_label_<prefix>*`` symbol. A bare ``token`` line is shorthand for
``token_start, token_end``.
"""

from __future__ import annotations

import bisect
import logging
import os
import re
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from lark import Lark, Transformer
from lark.exceptions import UnexpectedInput

from .errors import IntervalDefinitionError
from .events import FIRST_CUSTOM_LANE, MAIN_LANE, TimelineEvent
from .symbols import SymbolTable

logger = logging.getLogger(__name__)

LABEL_PREFIX = "mdp_label_"
START_SUFFIX = "_start"
END_SUFFIX = "_end"

_ADDRESS_MASK = 0xFFFFFFFF
_HEX_TOKEN = re.compile(r"(?:0[xX])?[0-9a-fA-F]+")

grammar_path = os.path.join(os.path.dirname(__file__), "intervals.lark")
with open(grammar_path, "r") as f:
    interval_grammar = f.read()

interval_parser = Lark(interval_grammar, parser="lalr")


@dataclass
class ParsedDefinition:
    starts: List[str]
    ends: List[str]
    name: Optional[str] = None
    lane: Optional[str] = None


class DefinitionTransformer(Transformer):
    def definition(self, items: List) -> ParsedDefinition:
        if len(items) == 1:
            tokens = items[0]
            return ParsedDefinition(
                starts=[token + START_SUFFIX for token in tokens],
                ends=[token + END_SUFFIX for token in tokens],
            )
        parsed = ParsedDefinition(starts=items[0], ends=items[1])
        if len(items) >= 3:
            parsed.name = items[2]
        if len(items) >= 4:
            parsed.lane = items[3]
        return parsed

    def endpoints(self, items: List) -> List[str]:
        return [str(item) for item in items]

    def text(self, items: List) -> str:
        return str(items[0]).strip() if items else ""


def parse_definition(line: str, line_number: Optional[int] = None) -> ParsedDefinition:
    """Parse a single definition line."""
    try:
        tree = interval_parser.parse(line)
    except UnexpectedInput as e:
        raise IntervalDefinitionError(
            f"Cannot parse interval definition {line!r} (column {e.column})",
            line_number,
        ) from None
    return DefinitionTransformer().transform(tree)


@dataclass
class IntervalDefinition:
    name: str
    lane: int = MAIN_LANE
    # Cycle at which the interval was last opened; None while closed.
    open_since: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.open_since is not None


@dataclass
class IntervalRegistry:
    """Interval definitions indexed by the addresses that start and end them.

    ``starts`` and ``ends`` map an address to indices into ``definitions``.
    After construction only the ``open_since`` state of each definition
    changes.
    """

    definitions: List[IntervalDefinition] = field(default_factory=list)
    starts: Dict[int, List[int]] = field(default_factory=dict)
    ends: Dict[int, List[int]] = field(default_factory=dict)
    lanes: Dict[str, int] = field(default_factory=dict)

    def on_breakpoint(self, pc: int, cycle: int, mclk: float) -> List[TimelineEvent]:
        """Close intervals ending at ``pc``, then open intervals starting there.

        Closing first lets one address end an interval and begin the next.
        Ends of intervals that are not open and starts of intervals that are
        already open are ignored.
        """
        events: List[TimelineEvent] = []
        for index in self.ends.get(pc, ()):
            definition = self.definitions[index]
            if definition.open_since is None:
                continue
            events.append(
                TimelineEvent.complete(
                    definition.name,
                    definition.open_since,
                    cycle,
                    definition.lane,
                    mclk,
                )
            )
            definition.open_since = None
        for index in self.starts.get(pc, ()):
            definition = self.definitions[index]
            if definition.open_since is None:
                definition.open_since = cycle
        return events

    def open_intervals(self) -> List[IntervalDefinition]:
        return [d for d in self.definitions if d.is_open]

    def reset(self) -> None:
        for definition in self.definitions:
            definition.open_since = None

    def breakpoint_addresses(self) -> List[int]:
        """Every address at which the emulator must report a breakpoint."""
        return sorted(set(self.starts) | set(self.ends))

    def write_breakpoints(self, path: Union[str, Path]) -> int:
        """Write the breakpoint addresses as native-endian u32 values."""
        addresses = self.breakpoint_addresses()
        Path(path).write_bytes(
            b"".join(struct.pack("=I", address) for address in addresses)
        )
        logger.debug("Wrote %d breakpoint addresses to %s", len(addresses), path)
        return len(addresses)

    def __len__(self) -> int:
        return len(self.definitions)


class IntervalTableBuilder:
    """Builds an ``IntervalRegistry`` from definition lines.

    The builder owns the lane id counter. Once ``build`` has returned, the
    builder refuses further lines.
    """

    def __init__(self, symbols: SymbolTable) -> None:
        self._symbols = symbols
        self._sorted_labels = sorted(symbols.label_to_address)
        self._definitions: List[IntervalDefinition] = []
        self._starts: Dict[int, List[int]] = {}
        self._ends: Dict[int, List[int]] = {}
        self._lanes: Dict[str, int] = {}
        self._next_lane = FIRST_CUSTOM_LANE
        self._built = False

    def resolve_token(self, token: str, line_number: Optional[int] = None) -> List[int]:
        """Resolve a token to one or more addresses."""
        address = self._symbols.address_of(token)
        if address is not None:
            return [address]

        if _HEX_TOKEN.fullmatch(token):
            value = int(token, 16)
            if value <= _ADDRESS_MASK:
                return [value]

        prefix = LABEL_PREFIX + token
        matches = []
        i = bisect.bisect_left(self._sorted_labels, prefix)
        while i < len(self._sorted_labels) and self._sorted_labels[i].startswith(prefix):
            matches.append(self._symbols.label_to_address[self._sorted_labels[i]])
            i += 1
        if not matches:
            raise IntervalDefinitionError(
                f"{token} not found in the symbol file", line_number
            )
        return matches

    def lane_for(self, lane_name: str) -> int:
        lane = self._lanes.get(lane_name)
        if lane is None:
            lane = self._next_lane
            self._next_lane += 1
            self._lanes[lane_name] = lane
            logger.debug("Assigned lane %d to %r", lane, lane_name)
        return lane

    def add_line(self, line: str, line_number: Optional[int] = None) -> Optional[int]:
        """Add one definition line; returns its index, or None if skipped."""
        if self._built:
            raise RuntimeError("IntervalTableBuilder has already been built")
        line = line.rstrip("\r")
        stripped = line.strip()
        if not stripped or stripped.startswith("//") or stripped.startswith(","):
            return None

        parsed = parse_definition(line, line_number)
        index = len(self._definitions)
        for token in parsed.starts:
            for address in self.resolve_token(token, line_number):
                self._starts.setdefault(address, []).append(index)
        for token in parsed.ends:
            for address in self.resolve_token(token, line_number):
                self._ends.setdefault(address, []).append(index)

        lane = MAIN_LANE if parsed.lane is None else self.lane_for(parsed.lane)
        name = line if parsed.name is None else parsed.name
        self._definitions.append(IntervalDefinition(name=name, lane=lane))
        return index

    def add_lines(self, lines: Iterable[str]) -> None:
        for line_number, line in enumerate(lines, start=1):
            self.add_line(line, line_number)

    def build(self, text: Union[str, bytes, None] = None) -> IntervalRegistry:
        if text is not None:
            if isinstance(text, bytes):
                text = text.decode("utf-8", errors="replace")
            self.add_lines(text.split("\n"))
        self._built = True
        registry = IntervalRegistry(
            definitions=self._definitions,
            starts=self._starts,
            ends=self._ends,
            lanes=dict(self._lanes),
        )
        logger.debug(
            "Built %d intervals over %d addresses, %d custom lanes",
            len(registry),
            len(registry.breakpoint_addresses()),
            len(registry.lanes),
        )
        return registry


def read_intervals(data: Union[str, bytes], symbols: SymbolTable) -> IntervalRegistry:
    """Build the interval registry from the text of a definition file."""
    return IntervalTableBuilder(symbols).build(data)
