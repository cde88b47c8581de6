"""Packet model for the binary profiler capture."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple


class PacketType(IntEnum):
    """Packet type tags as written by the emulator-side profiler."""

    SUBROUTINE_ENTER = 0
    SUBROUTINE_EXIT = 1
    INTERRUPT_ENTER = 2
    INTERRUPT_EXIT = 3
    HINT = 4
    VINT = 5
    ADJUST_CYCLES = 6
    MANUAL_BREAKPOINT = 7

    @property
    def has_payload(self) -> bool:
        return self in _PAYLOAD_TYPES


_PAYLOAD_TYPES = frozenset(
    {
        PacketType.SUBROUTINE_ENTER,
        PacketType.INTERRUPT_ENTER,
        PacketType.ADJUST_CYCLES,
        PacketType.MANUAL_BREAKPOINT,
    }
)


@dataclass(frozen=True)
class Packet:
    """One decoded packet.

    ``cycle`` is absolute: any cycle offset adjustments seen earlier in the
    stream are already applied. ``address`` carries the target of an
    enter packet or the pc of a manual breakpoint, and is ``None`` for the
    payload-less types.
    """

    type: PacketType
    cycle: int
    stack_pointer: int
    address: Optional[int] = None


@dataclass(frozen=True)
class ParsedTrace:
    """Decoded capture: packets in file order plus header fields."""

    packets: Tuple[Packet, ...]
    mclk: float
    m68k_divider: int
    version: int

    @property
    def last_cycle(self) -> Optional[int]:
        if not self.packets:
            return None
        return self.packets[-1].cycle
