"""Decoder for ``.mdp`` profiler captures.

Layout::

    offset 3    format version (u8)
    offset 4    master clock rate (u32, native endian)
    offset 8    68000 clock divider (u32, native endian)
    offset 256  packet stream

Every packet is a u8 type tag, a u32 cycle count relative to the running
cycle offset and a u32 stack pointer, followed by a u32 payload for the
types that carry one.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Iterator, Tuple

from .errors import TraceFormatError
from .packets import Packet, PacketType, ParsedTrace

logger = logging.getLogger(__name__)

MDP_VERSION = 1
HEADER_SIZE = 256

_U32 = struct.Struct("=I")
_PACKET_HEAD = struct.Struct("=BII")


@dataclass
class _Cursor:
    """Sequential reader over the capture bytes."""

    data: bytes
    idx: int = 0

    def _require(self, count: int, what: str) -> None:
        if self.idx + count > len(self.data):
            raise TraceFormatError(
                f"Truncated {what} at offset {self.idx}: need {count} bytes, "
                f"have {len(self.data) - self.idx} remaining"
            )

    def read_u32(self, what: str = "packet") -> int:
        self._require(_U32.size, what)
        (value,) = _U32.unpack_from(self.data, self.idx)
        self.idx += _U32.size
        return value

    def read_head(self) -> Tuple[int, int, int]:
        self._require(_PACKET_HEAD.size, "packet")
        head = _PACKET_HEAD.unpack_from(self.data, self.idx)
        self.idx += _PACKET_HEAD.size
        return head

    def at_end(self) -> bool:
        return self.idx >= len(self.data)


def read_header(data: bytes) -> Tuple[int, float, int]:
    """Return ``(version, mclk, m68k_divider)`` from the capture header."""
    if len(data) < 12:
        raise TraceFormatError(
            f"Capture is {len(data)} bytes, too short for the 12-byte header"
        )
    version = data[3]
    if version != MDP_VERSION:
        logger.warning(
            "This file is using mdp file format version %d but this "
            "application is using version %d",
            version,
            MDP_VERSION,
        )
    (mclk,) = _U32.unpack_from(data, 4)
    if mclk == 0:
        raise TraceFormatError("Capture header has a zero master clock rate")
    (divider,) = _U32.unpack_from(data, 8)
    return version, float(mclk), divider


def iter_packets(data: bytes) -> Iterator[Packet]:
    """Yield packets from the stream following the header.

    Cycle offset adjustment packets are folded into the absolute cycle of
    the packets after them and are not yielded.
    """
    cursor = _Cursor(data, HEADER_SIZE)
    cycle_offset = 0
    while not cursor.at_end():
        start = cursor.idx
        tag, cycle32, stack_pointer = cursor.read_head()
        try:
            packet_type = PacketType(tag)
        except ValueError:
            raise TraceFormatError(
                f"Unknown packet type {tag} at offset {start}"
            ) from None

        address = None
        if packet_type.has_payload:
            address = cursor.read_u32(f"{packet_type.name} payload")

        if packet_type is PacketType.ADJUST_CYCLES:
            cycle_offset += address
            continue

        yield Packet(
            type=packet_type,
            cycle=cycle_offset + cycle32,
            stack_pointer=stack_pointer,
            address=address,
        )


def decode(data: bytes) -> ParsedTrace:
    """Decode a whole capture. Any malformed packet aborts the decode."""
    version, mclk, divider = read_header(data)
    packets = tuple(iter_packets(data))
    logger.debug(
        "Decoded %d packets (mclk=%s, divider=%d)", len(packets), mclk, divider
    )
    return ParsedTrace(
        packets=packets, mclk=mclk, m68k_divider=divider, version=version
    )
