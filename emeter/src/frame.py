"""
Speedwire container framing for emeter datagrams.

Computes the tag-header overhead for a requested datagram size, writes the
outer framing into a preallocated buffer and hands out a bounded write cursor
over the emeter payload.

Datagram layout (big-endian)::

    0   "SMA\\0"                      signature
    4   0x0004 0x02A0 0x00000001      tag0: length, id, group
    12  <len>  0x0010                 data2 tag: length, id
    16  <protocol id>                 0x6069 emeter / 0x6081 extended emeter
    18  susy id (u16)                 device identity
    20  serial number (u32)
    24  time in ms (u32)
    28  OBIS elements ...
    n-4 0x0000 0x0000                 end-of-data tag

The data2 tag length counts the protocol id and the emeter payload, so it is
always ``total - HEADER_OVERHEAD``.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Extended protocol id only applies with the frequency element

TODO:
- None
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from emeter.src.obis import channel_layout, wire_length

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SIGNATURE: bytes = b"SMA\x00"
TAG0_ID: int = 0x02A0
DATA2_ID: int = 0x0010
END_OF_DATA: bytes = b"\x00\x00\x00\x00"
DEFAULT_GROUP: int = 1

SIGNATURE_LENGTH: int = 4
TAG_HEADER_LENGTH: int = 4
TAG0_LENGTH: int = TAG_HEADER_LENGTH + 4

HEADER_OVERHEAD: int = (
    SIGNATURE_LENGTH + TAG0_LENGTH + TAG_HEADER_LENGTH + len(END_OF_DATA)
)
"""Bytes outside the data2 tag payload: signature, tag0, data2 tag header
and the trailing end-of-data tag."""

DATA2_LENGTH_OFFSET: int = SIGNATURE_LENGTH + TAG0_LENGTH  # 12
PROTOCOL_ID_OFFSET: int = DATA2_LENGTH_OFFSET + TAG_HEADER_LENGTH  # 16
PAYLOAD_OFFSET: int = PROTOCOL_ID_OFFSET + 2  # 18

SUSY_ID_OFFSET: int = PAYLOAD_OFFSET
SERIAL_NUMBER_OFFSET: int = PAYLOAD_OFFSET + 2
TIME_OFFSET: int = PAYLOAD_OFFSET + 6
FIRST_ELEMENT_OFFSET: int = PAYLOAD_OFFSET + 10  # 28

IDENTITY_LENGTH: int = FIRST_ELEMENT_OFFSET - PAYLOAD_OFFSET
MIN_CELL_LENGTH: int = 12
MAX_PACKET_SIZE: int = 0xFFFF

MIN_PACKET_SIZE: int = HEADER_OVERHEAD + 2 + IDENTITY_LENGTH + MIN_CELL_LENGTH
"""Smallest datagram that fits the framing, device identity and one cell."""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class FrameConfigError(ValueError):
    """The requested datagram size cannot hold a valid emeter packet."""


class CursorOverrunError(RuntimeError):
    """A write would cross the end of the cursor's region."""


# ---------------------------------------------------------------------------
# Protocol variants
# ---------------------------------------------------------------------------


class ProtocolVariant(enum.Enum):
    """Emeter protocol flavours.

    Sunny Home Manager 2.07.x introduced the extended emeter protocol id.
    Its datagrams are two bytes longer; the extra bytes are zero and follow
    the last OBIS element so every element keeps its classic byte offset.
    Meters only send the extended id together with the grid frequency
    element; without frequency they fall back to the classic id.
    """

    EMETER = (0x6069, 0)
    EXTENDED_EMETER = (0x6081, 2)

    def __init__(self, protocol_id: int, padding: int) -> None:
        self.protocol_id = protocol_id
        self.padding = padding

    @classmethod
    def select(
        cls, extended: bool, include_frequency: bool = True
    ) -> ProtocolVariant:
        if extended and include_frequency:
            return cls.EXTENDED_EMETER
        return cls.EMETER


def default_packet_size(*, include_frequency: bool, extended: bool) -> int:
    """Return the datagram size a real meter uses for this variant.

    600 bytes without frequency, 608 with frequency and 610 for the
    extended protocol.  Extended without frequency is sent as 600 bytes.
    """
    elements = sum(wire_length(ch) for ch in channel_layout(include_frequency))
    variant = ProtocolVariant.select(extended, include_frequency)
    return HEADER_OVERHEAD + 2 + IDENTITY_LENGTH + elements + variant.padding


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


class WriteCursor:
    """Bounded write position over a region of a buffer.

    Args:
        buffer: Target buffer, modified in place.
        start: First writable offset.
        end: Offset one past the last writable byte.
    """

    def __init__(self, buffer: bytearray, start: int, end: int) -> None:
        if not 0 <= start <= end <= len(buffer):
            raise CursorOverrunError(
                f"Invalid cursor region [{start}, {end}) for buffer of "
                f"{len(buffer)} bytes"
            )
        self._buffer = buffer
        self._offset = start
        self._end = end

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return self._end - self._offset

    def write(self, data: bytes) -> int:
        """Copy *data* at the current offset and advance past it.

        Returns:
            The new offset.

        Raises:
            CursorOverrunError: If *data* does not fit in the remaining
                region.  Nothing is written in that case.
        """
        size = len(data)
        if size > self.remaining:
            raise CursorOverrunError(
                f"Write of {size} bytes at offset {self._offset} overruns "
                f"region end {self._end}"
            )
        self._buffer[self._offset : self._offset + size] = data
        self._offset += size
        return self._offset

    def pad(self, count: int) -> int:
        """Write *count* zero bytes."""
        return self.write(bytes(count))


# ---------------------------------------------------------------------------
# Frame
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PacketFrame:
    """Resolved framing for one datagram size and protocol variant.

    Attributes:
        total_size: Datagram length in bytes.
        variant: Protocol variant (selects protocol id and padding).
        data2_length: Value of the data2 tag length field.
        end_of_payload: Offset of the end-of-data tag; the element cursor
            must stop exactly here.
    """

    total_size: int
    variant: ProtocolVariant
    data2_length: int
    end_of_payload: int

    @classmethod
    def create(cls, total_size: int, variant: ProtocolVariant) -> PacketFrame:
        """Validate *total_size* and compute the frame geometry.

        Raises:
            FrameConfigError: If *total_size* cannot hold the framing, the
                device identity and at least one 12-byte cell, or does not
                fit the 16-bit tag length field.
        """
        if total_size < MIN_PACKET_SIZE:
            raise FrameConfigError(
                f"Packet size {total_size} is smaller than the minimum "
                f"{MIN_PACKET_SIZE} (header overhead {HEADER_OVERHEAD}, "
                f"identity {IDENTITY_LENGTH}, one cell {MIN_CELL_LENGTH})"
            )
        if total_size > MAX_PACKET_SIZE:
            raise FrameConfigError(
                f"Packet size {total_size} exceeds {MAX_PACKET_SIZE} bytes"
            )
        return cls(
            total_size=total_size,
            variant=variant,
            data2_length=total_size - HEADER_OVERHEAD,
            end_of_payload=total_size - len(END_OF_DATA),
        )

    @property
    def protocol_id(self) -> int:
        return self.variant.protocol_id

    def allocate(self) -> bytearray:
        """Return a zeroed buffer of :attr:`total_size` with framing written."""
        buffer = bytearray(self.total_size)
        self.write_header(buffer)
        return buffer

    def write_header(self, buffer: bytearray) -> None:
        """Write signature, tag0, data2 tag header, protocol id and the
        end-of-data tag into *buffer*."""
        if len(buffer) != self.total_size:
            raise FrameConfigError(
                f"Buffer is {len(buffer)} bytes, frame expects {self.total_size}"
            )
        buffer[0:SIGNATURE_LENGTH] = SIGNATURE
        struct.pack_into(
            ">HHI", buffer, SIGNATURE_LENGTH, 4, TAG0_ID, DEFAULT_GROUP
        )
        struct.pack_into(
            ">HHH",
            buffer,
            DATA2_LENGTH_OFFSET,
            self.data2_length,
            DATA2_ID,
            self.protocol_id,
        )
        buffer[self.end_of_payload :] = END_OF_DATA

    def cursor(self, buffer: bytearray) -> WriteCursor:
        """Return a cursor over the OBIS element region of *buffer*."""
        return WriteCursor(buffer, FIRST_ELEMENT_OFFSET, self.end_of_payload)
