"""
OBIS element codec for Speedwire emeter datagrams.

Encodes one (channel, value) pair into a 12-byte cell and decodes a cell back
into printable raw and converted values for self-verification.

Cell layout (big-endian)::

    offset 0   B  measurement channel (0, or 144 for the version element)
    offset 1   C  measurement index
    offset 2   D  value type (4 = actual, 8 = counter, 0 = version)
    offset 3   E  tariff (always 0)
    offset 4   value: 4 bytes (actual, version) or 8 bytes (counter)
    remaining bytes are zero

Only the first :func:`~emeter.src.obis.wire_length` bytes of a cell are
copied into the datagram.

These are pure functions: no I/O, no clock, no state.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass

from emeter.src.obis import (
    CHANNELS_BY_OBIS,
    COUNTER,
    VALUE_WIDTHS,
    VERSION,
    ChannelDef,
)

CELL_SIZE: int = 12
"""Width of an encoded cell, the largest element a datagram can carry."""

_HEADER = struct.Struct(">BBBB")
_ACTUAL = struct.Struct(">i")
_COUNTER = struct.Struct(">q")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _scale(value: float, divisor: int) -> int:
    """Scale *value* by *divisor*, rounding half away from zero."""
    scaled = value * divisor
    return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))


def pack_version(version: str) -> bytes:
    """Pack a dotted firmware version (``"2.03.4.R"``) into 4 bytes.

    Raises:
        ValueError: If *version* is not ``major.minor.build.rev`` with
            numeric parts in 0..255 and a single ASCII revision character.
            Versions that do not fit are rejected rather than truncated.
    """
    parts = version.split(".")
    if len(parts) != 4:
        raise ValueError(
            f"Firmware version '{version}' must have 4 dot-separated parts"
        )
    *numbers, revision = parts
    try:
        values = [int(n) for n in numbers]
    except ValueError:
        raise ValueError(
            f"Firmware version '{version}': major/minor/build must be numeric"
        ) from None
    if any(not 0 <= v <= 255 for v in values):
        raise ValueError(
            f"Firmware version '{version}': numeric parts must be within 0..255"
        )
    if len(revision) != 1 or not revision.isascii():
        raise ValueError(
            f"Firmware version '{version}': revision must be one ASCII character"
        )
    return bytes([*values, ord(revision)])


def unpack_version(data: bytes) -> str:
    """Inverse of :func:`pack_version`."""
    major, minor, build, revision = data[:4]
    return f"{major}.{minor:02d}.{build}.{chr(revision)}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def encode(channel: ChannelDef, value: float | str) -> bytes:
    """Encode *value* for *channel* into a 12-byte cell.

    Args:
        channel: Channel definition supplying OBIS header and divisor.
        value: Engineering value (float) for numeric channels, dotted
            version string for the version channel.

    Returns:
        Exactly :data:`CELL_SIZE` bytes.

    Raises:
        ValueError: If the value kind does not match the channel, or the
            scaled integer does not fit the channel's value width.
    """
    header = _HEADER.pack(*channel.obis)

    if channel.obis_type == VERSION:
        if not isinstance(value, str):
            raise ValueError(f"Channel '{channel.name}' expects a version string")
        body = pack_version(value)
    else:
        if isinstance(value, str):
            raise ValueError(f"Channel '{channel.name}' expects a numeric value")
        raw = _scale(float(value), channel.divisor)
        packer = _COUNTER if channel.obis_type == COUNTER else _ACTUAL
        try:
            body = packer.pack(raw)
        except struct.error:
            raise ValueError(
                f"Channel '{channel.name}': value {value} (raw {raw}) does not "
                f"fit in {packer.size} bytes"
            ) from None

    return (header + body).ljust(CELL_SIZE, b"\x00")


@dataclass(frozen=True, slots=True)
class DecodedElement:
    """A decoded OBIS element.

    Attributes:
        obis: Header string ``"B:C.D.E"``.
        channel: Matching channel definition, or ``None`` if unknown.
        raw: Wire integer, or the version string for version elements.
        value: Raw divided by the channel divisor (engineering units).
    """

    obis: str
    channel: ChannelDef | None
    raw: int | str
    value: float | str

    @property
    def raw_text(self) -> str:
        return str(self.raw)

    @property
    def converted_text(self) -> str:
        if self.channel is None or isinstance(self.value, str):
            return str(self.value)
        unit = f" {self.channel.unit}" if self.channel.unit else ""
        return f"{self.value:g}{unit}"

    def __str__(self) -> str:
        name = self.channel.name if self.channel is not None else "unknown"
        return f"{self.obis} {name} {self.raw_text} {self.converted_text}"


def decode(cell: bytes) -> DecodedElement:
    """Decode a cell (or a wire element of at least 8 bytes).

    Raises:
        ValueError: If *cell* is too short for its declared value type.
    """
    if len(cell) < 4:
        raise ValueError(f"OBIS element too short: {len(cell)} bytes")
    b, c, d, e = _HEADER.unpack_from(cell, 0)
    obis = f"{b}:{c}.{d}.{e}"
    channel = CHANNELS_BY_OBIS.get((b, c, d, e))

    needed = 4 + (8 if d == COUNTER else 4)
    if len(cell) < needed:
        raise ValueError(
            f"OBIS element {obis} needs {needed} bytes, got {len(cell)}"
        )

    if d == VERSION and b == 144:
        version = unpack_version(cell[4:8])
        return DecodedElement(obis=obis, channel=channel, raw=version, value=version)

    raw = (_COUNTER if d == COUNTER else _ACTUAL).unpack_from(cell, 4)[0]
    divisor = channel.divisor if channel is not None else 1
    return DecodedElement(obis=obis, channel=channel, raw=raw, value=raw / divisor)


def element_length(header: bytes) -> int:
    """Wire length of the element whose 4-byte header is *header*."""
    d = header[2]
    if d not in VALUE_WIDTHS:
        raise ValueError(f"Unknown OBIS value type {d}")
    return 4 + VALUE_WIDTHS[d]
