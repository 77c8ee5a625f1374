"""
Emeter packet assembler.

Populates a preallocated datagram buffer from a MeasurementSnapshot: framing,
device identity, timestamp and every OBIS element in canonical order.  After
each assembly the final cursor position is checked against the frame's
end-of-payload offset.  A mismatch means the channel layout and the packet
size disagree; it would corrupt every cycle identically, so it is raised as
:class:`AssemblyError` rather than logged and ignored.

The assembler also walks an assembled buffer back into decoded elements for
self-verification and diagnostics.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from emeter.src import codec
from emeter.src.frame import (
    DATA2_ID,
    FIRST_ELEMENT_OFFSET,
    PROTOCOL_ID_OFFSET,
    SERIAL_NUMBER_OFFSET,
    SIGNATURE,
    SUSY_ID_OFFSET,
    TIME_OFFSET,
    CursorOverrunError,
    PacketFrame,
    ProtocolVariant,
)
from emeter.src.obis import wire_length

if TYPE_CHECKING:
    from emeter.src.codec import DecodedElement
    from emeter.src.models import DeviceIdentity, MeasurementSnapshot
    from emeter.src.obis import ChannelDef

class AssemblyError(RuntimeError):
    """The element cursor did not end at the expected end-of-payload offset."""


class EmeterPacketAssembler:
    """Writes emeter datagrams into a reusable buffer.

    Args:
        frame: Resolved packet framing (size, variant, end-of-payload).
        channels: Ordered channels to emit, normally
            :func:`~emeter.src.obis.channel_layout`.
        logger: Logger to report through; defaults to the module logger.
    """

    def __init__(
        self,
        frame: PacketFrame,
        channels: Sequence[ChannelDef],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._frame = frame
        self._channels = tuple(channels)
        self._logger = logger or logging.getLogger(__name__)
        self._last_offset: int | None = None

    @property
    def frame(self) -> PacketFrame:
        return self._frame

    @property
    def channels(self) -> tuple[ChannelDef, ...]:
        return self._channels

    @property
    def last_offset(self) -> int | None:
        """Cursor position after the most recent :meth:`assemble` call."""
        return self._last_offset

    def expected_payload_length(self) -> int:
        """Bytes the channel layout plus variant padding occupy."""
        elements = sum(wire_length(ch) for ch in self._channels)
        return elements + self._frame.variant.padding

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(
        self,
        buffer: bytearray,
        snapshot: MeasurementSnapshot,
        identity: DeviceIdentity,
        timestamp_ms: int,
    ) -> None:
        """Populate *buffer* in place from *snapshot*.

        Writes the framing, the identity fields (SUSy id and serial number)
        and the time field, then one element per channel in order, then the
        variant padding.  Call :meth:`verify` afterwards.

        Raises:
            AssemblyError: If the elements do not fit the frame.
            ValueError: If a snapshot value cannot be encoded.
        """
        self._frame.write_header(buffer)
        struct.pack_into(">H", buffer, SUSY_ID_OFFSET, identity.susy_id)
        struct.pack_into(
            ">I", buffer, SERIAL_NUMBER_OFFSET, identity.serial_number
        )
        self.set_time(buffer, timestamp_ms)

        cursor = self._frame.cursor(buffer)
        try:
            for channel in self._channels:
                cell = codec.encode(channel, snapshot[channel.name])
                cursor.write(cell[: wire_length(channel)])
            if self._frame.variant.padding:
                cursor.pad(self._frame.variant.padding)
        except CursorOverrunError as exc:
            self._last_offset = None
            raise AssemblyError(f"Channel layout overruns the packet: {exc}") from exc
        self._last_offset = cursor.offset

    @staticmethod
    def set_time(buffer: bytearray, timestamp_ms: int) -> None:
        """Refresh the 32-bit millisecond time field; the value wraps."""
        struct.pack_into(">I", buffer, TIME_OFFSET, timestamp_ms & 0xFFFFFFFF)

    def verify(self) -> None:
        """Check the last assembly ended exactly at the end-of-payload offset.

        Raises:
            AssemblyError: On mismatch, or if nothing was assembled yet.
        """
        if self._last_offset is None:
            raise AssemblyError("verify() called before assemble()")
        if self._last_offset != self._frame.end_of_payload:
            self._logger.error(
                "Invalid udp packet size: elements end at %d, "
                "end-of-data tag starts at %d",
                self._last_offset,
                self._frame.end_of_payload,
            )
            raise AssemblyError(
                f"Element cursor ended at offset {self._last_offset}, expected "
                f"{self._frame.end_of_payload} (packet size "
                f"{self._frame.total_size})"
            )

    # ------------------------------------------------------------------
    # Self-verification
    # ------------------------------------------------------------------

    def iter_elements(self, buffer: bytes | bytearray) -> Iterator[DecodedElement]:
        """Decode OBIS elements from an assembled buffer in wire order."""
        return iter_elements(buffer, end=self._frame.end_of_payload)

    def log_elements(self, buffer: bytes | bytearray) -> None:
        """Log every decoded element at DEBUG level."""
        for element in self.iter_elements(buffer):
            self._logger.debug(
                "%s %s %s", element.obis, element.raw_text, element.converted_text
            )


def is_emeter_packet(buffer: bytes | bytearray) -> bool:
    """Return True if *buffer* carries an emeter or extended emeter payload."""
    if len(buffer) < FIRST_ELEMENT_OFFSET or bytes(buffer[:4]) != SIGNATURE:
        return False
    tag_id, protocol_id = struct.unpack_from(">HH", buffer, PROTOCOL_ID_OFFSET - 2)
    known = {variant.protocol_id for variant in ProtocolVariant}
    return tag_id == DATA2_ID and protocol_id in known


def iter_elements(
    buffer: bytes | bytearray, *, end: int | None = None
) -> Iterator[DecodedElement]:
    """Decode OBIS elements starting at the first element offset.

    Stops at *end* (default: 4 bytes before the end of the buffer) or at
    the first all-zero header, which marks padding or end-of-data.
    """
    limit = len(buffer) - 4 if end is None else end
    offset = FIRST_ELEMENT_OFFSET
    while offset + 4 <= limit:
        header = bytes(buffer[offset : offset + 4])
        if header == b"\x00\x00\x00\x00":
            break
        length = codec.element_length(header)
        if offset + length > limit:
            break
        yield codec.decode(bytes(buffer[offset : offset + length]))
        offset += length
