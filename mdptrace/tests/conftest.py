"""Shared fixtures for building synthetic profiler captures."""

from __future__ import annotations

import struct
from typing import Optional

import pytest

from mdptrace.decoder import HEADER_SIZE, MDP_VERSION
from mdptrace.packets import PacketType


class CaptureWriter:
    """Assemble a capture byte by byte, the way the emulator writes it."""

    def __init__(
        self, mclk: int = 1_000_000, divider: int = 7, version: int = MDP_VERSION
    ) -> None:
        header = bytearray(HEADER_SIZE)
        header[0:3] = b"MDP"
        header[3] = version
        struct.pack_into("=II", header, 4, mclk, divider)
        self.data = bytearray(header)

    def packet(
        self,
        packet_type: PacketType,
        cycle: int,
        sp: int = 0,
        payload: Optional[int] = None,
    ) -> "CaptureWriter":
        self.data += struct.pack("=BII", int(packet_type), cycle, sp)
        if payload is not None:
            self.data += struct.pack("=I", payload)
        return self

    def enter(self, cycle: int, sp: int, target: int) -> "CaptureWriter":
        return self.packet(PacketType.SUBROUTINE_ENTER, cycle, sp, target)

    def exit(self, cycle: int, sp: int) -> "CaptureWriter":
        return self.packet(PacketType.SUBROUTINE_EXIT, cycle, sp)

    def irq(self, cycle: int, target: int, sp: int = 0) -> "CaptureWriter":
        return self.packet(PacketType.INTERRUPT_ENTER, cycle, sp, target)

    def irq_exit(self, cycle: int, sp: int = 0) -> "CaptureWriter":
        return self.packet(PacketType.INTERRUPT_EXIT, cycle, sp)

    def hint(self, cycle: int) -> "CaptureWriter":
        return self.packet(PacketType.HINT, cycle)

    def vint(self, cycle: int) -> "CaptureWriter":
        return self.packet(PacketType.VINT, cycle)

    def adjust(self, delta: int) -> "CaptureWriter":
        return self.packet(PacketType.ADJUST_CYCLES, 0, 0, delta)

    def breakpoint(self, cycle: int, pc: int) -> "CaptureWriter":
        return self.packet(PacketType.MANUAL_BREAKPOINT, cycle, 0, pc)

    def build(self) -> bytes:
        return bytes(self.data)


@pytest.fixture
def capture():
    """Factory for fresh ``CaptureWriter`` instances."""
    return CaptureWriter
