"""Rebuild timed call, interrupt and interval events from decoded packets.

Enter packets are paired with the exit that ends them by scanning forward
through the rest of the trace. Subroutine exits are matched on the stack
pointer, since cycle order alone breaks down once interrupts land inside
subroutine bodies or a routine recurses. Interrupts do not nest, so an
interrupt enter pairs with the next interrupt exit.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .events import INTERRUPT_LANE, MAIN_LANE, TimelineEvent
from .intervals import IntervalRegistry
from .packets import Packet, PacketType, ParsedTrace
from .symbols import SymbolTable

logger = logging.getLogger(__name__)

# The return address is still on the stack when the exit packet is captured.
RETURN_ADDRESS_SIZE = 4

VINT_NAME = "VInt"


def find_subroutine_exit(packets: Sequence[Packet], index: int) -> Optional[Packet]:
    """Return the exit matching the subroutine enter at ``index``, if any."""
    enter_sp = packets[index].stack_pointer
    for j in range(index + 1, len(packets)):
        candidate = packets[j]
        if candidate.type is not PacketType.SUBROUTINE_EXIT:
            continue
        if candidate.stack_pointer + RETURN_ADDRESS_SIZE >= enter_sp:
            return candidate
    return None


def find_interrupt_exit(packets: Sequence[Packet], index: int) -> Optional[Packet]:
    for j in range(index + 1, len(packets)):
        candidate = packets[j]
        if candidate.type is PacketType.INTERRUPT_EXIT:
            return candidate
    return None


class TimelineReconstructor:
    """Single pass over the packets, producing events in packet order."""

    def __init__(
        self,
        trace: ParsedTrace,
        registry: Optional[IntervalRegistry] = None,
        symbols: Optional[SymbolTable] = None,
    ) -> None:
        self.trace = trace
        self.registry = registry if registry is not None else IntervalRegistry()
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.current_lane = MAIN_LANE
        self.events: List[TimelineEvent] = []

    def run(self) -> List[TimelineEvent]:
        packets = self.trace.packets
        if not packets:
            return self.events
        end_of_trace = self.trace.last_cycle + 1
        mclk = self.trace.mclk

        for i, packet in enumerate(packets):
            kind = packet.type
            if kind is PacketType.SUBROUTINE_ENTER:
                match = find_subroutine_exit(packets, i)
                end = match.cycle if match is not None else end_of_trace
                self.events.append(
                    TimelineEvent.complete(
                        self.symbols.name_for(packet.address),
                        packet.cycle,
                        end,
                        self.current_lane,
                        mclk,
                    )
                )
            elif kind is PacketType.INTERRUPT_ENTER:
                self.current_lane = INTERRUPT_LANE
                match = find_interrupt_exit(packets, i)
                end = match.cycle if match is not None else end_of_trace
                self.events.append(
                    TimelineEvent.complete(
                        self.symbols.name_for(packet.address),
                        packet.cycle,
                        end,
                        INTERRUPT_LANE,
                        mclk,
                    )
                )
            elif kind is PacketType.INTERRUPT_EXIT:
                self.current_lane = MAIN_LANE
            elif kind is PacketType.VINT:
                self.events.append(
                    TimelineEvent.instant(VINT_NAME, packet.cycle, INTERRUPT_LANE, mclk)
                )
            elif kind is PacketType.MANUAL_BREAKPOINT:
                self.events.extend(
                    self.registry.on_breakpoint(packet.address, packet.cycle, mclk)
                )
            # Subroutine exits are only match targets; hint packets are not shown.

        still_open = self.registry.open_intervals()
        if still_open:
            logger.debug(
                "%d intervals still open at end of trace: %s",
                len(still_open),
                ", ".join(d.name for d in still_open),
            )
        return self.events


def reconstruct(
    trace: ParsedTrace,
    registry: Optional[IntervalRegistry] = None,
    symbols: Optional[SymbolTable] = None,
) -> List[TimelineEvent]:
    """Convert decoded packets into timeline events."""
    return TimelineReconstructor(trace, registry, symbols).run()
