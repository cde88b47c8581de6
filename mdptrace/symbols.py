"""Symbol tables from the assemblers and linkers used to build the traced ROM.

Three formats are recognised by their leading bytes:

* ``MND``: binary symbol file written by asm68k
* ``Segment CODE``: the listing-style symbol dump written by AS
* anything else: ``nm``-style ``address type name`` text
"""

from __future__ import annotations

import bisect
import logging
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import SymbolFormatError

logger = logging.getLogger(__name__)

ASM68K_MAGIC = b"MND"
AS_MAGIC = b"Segment CODE"
ASM68K_HEADER_SIZE = 8

ASM68K_GLOBAL_LABEL = 2
ASM68K_LOCAL_LABEL = 6

_ADDRESS_MASK = 0xFFFFFFFF


@dataclass
class SymbolTable:
    """Bidirectional address/label mapping.

    An address can carry several labels (a routine and its local aliases);
    the most recently added one is used as the display name.
    """

    address_to_labels: Dict[int, List[str]] = field(default_factory=dict)
    label_to_address: Dict[str, int] = field(default_factory=dict)

    def add(self, address: int, label: str) -> None:
        self.address_to_labels.setdefault(address, []).append(label)
        self.label_to_address[label] = address

    def labels_at(self, address: int) -> List[str]:
        return self.address_to_labels.get(address, [])

    def address_of(self, label: str) -> Optional[int]:
        return self.label_to_address.get(label)

    def name_for(self, address: int) -> str:
        labels = self.labels_at(address)
        if labels:
            return labels[-1]
        return hex(address)

    def __len__(self) -> int:
        return len(self.label_to_address)


def read_symbols(data: bytes) -> SymbolTable:
    """Parse a symbol file, picking the reader from its signature."""
    if data[: len(ASM68K_MAGIC)] == ASM68K_MAGIC:
        logger.debug("Reading asm68k symbol file")
        table = read_asm68k_symbols(data)
    elif data[: len(AS_MAGIC)] == AS_MAGIC:
        logger.debug("Reading AS symbol listing")
        table = read_as_symbols(data)
    else:
        logger.debug("Reading nm-style symbol table")
        table = read_nm_symbols(data)
    logger.debug(
        "Loaded %d labels at %d addresses", len(table), len(table.address_to_labels)
    )
    return table


def read_asm68k_symbols(data: bytes) -> SymbolTable:
    # Local labels follow all globals, so their parent is already known.
    table = SymbolTable()
    sorted_addresses: List[int] = []
    i = ASM68K_HEADER_SIZE
    while i < len(data):
        if i + 6 > len(data):
            raise SymbolFormatError(f"Truncated asm68k symbol record at offset {i}")
        (address,) = struct.unpack_from("<I", data, i)
        label_type = data[i + 4]
        label_len = data[i + 5]
        i += 6
        if i + label_len > len(data):
            raise SymbolFormatError(f"Truncated asm68k label at offset {i}")
        raw_label = data[i : i + label_len].decode("utf-8", errors="replace")
        i += label_len

        if label_type == ASM68K_GLOBAL_LABEL:
            label = raw_label
        elif label_type == ASM68K_LOCAL_LABEL:
            pos = bisect.bisect_left(sorted_addresses, address)
            if pos == 0:
                raise SymbolFormatError(
                    f"Got local label {raw_label} without a parent"
                )
            parent = table.address_to_labels[sorted_addresses[pos - 1]]
            label = parent[-1] + raw_label
        else:
            raise SymbolFormatError(
                f"Unknown label type: {label_type} for {raw_label}"
            )

        if address not in table.address_to_labels:
            bisect.insort(sorted_addresses, address)
        table.add(address, label)
    return table


def read_as_symbols(data: bytes) -> SymbolTable:
    text = data.decode("utf-8", errors="replace")
    _, sep, section = text.partition("Symbols in Segment")
    if not sep:
        raise SymbolFormatError("Error parsing as symbols: no symbol section")

    table = SymbolTable()
    for line in section.splitlines()[1:]:
        if not line:
            continue
        fields = line.split()
        if len(fields) < 2:
            raise SymbolFormatError(f"Error parsing as symbols: {line!r}")
        name, symbol_type = fields[0], fields[1]
        if symbol_type != "Int":
            continue
        if len(fields) < 3:
            raise SymbolFormatError(f"Error parsing as symbols: {line!r}")
        try:
            address = int(fields[2], 16)
        except ValueError:
            continue
        table.add(address & _ADDRESS_MASK, name)
    return table


def read_nm_symbols(data: bytes) -> SymbolTable:
    text = data.decode("utf-8", errors="replace")
    table = SymbolTable()
    for line in text.split("\n"):
        fields = line.split()
        if len(fields) != 3:
            continue
        try:
            address = int(fields[0], 16)
        except ValueError:
            continue
        if address > _ADDRESS_MASK:
            continue
        table.add(address, fields[2])
    return table
