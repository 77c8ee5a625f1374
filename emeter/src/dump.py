"""
Emeter packet dump -- diagnostic tool.

Assembles the reference-scenario datagram for a packet variant and prints the
framing fields and every decoded OBIS element (header, raw wire value,
converted value).  Use this to compare the emulator's output byte for byte
with a capture from a real meter.

Usage:
    python -m emeter.src.dump
    python -m emeter.src.dump --no-frequency --hex
    python -m emeter.src.dump --extended --susy-id 372 --serial 1234567890

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Extended flag without frequency dumps the classic 600-byte packet
"""

from __future__ import annotations

import argparse
import struct
import sys
from typing import TextIO

from emeter.src.assembler import (
    EmeterPacketAssembler,
    is_emeter_packet,
    iter_elements,
)
from emeter.src.frame import (
    DATA2_LENGTH_OFFSET,
    PROTOCOL_ID_OFFSET,
    SERIAL_NUMBER_OFFSET,
    SUSY_ID_OFFSET,
    TIME_OFFSET,
    PacketFrame,
    ProtocolVariant,
    default_packet_size,
)
from emeter.src.main import reference_snapshot
from emeter.src.models import DeviceIdentity
from emeter.src.obis import channel_layout
from emeter.src.source import default_firmware_version


def hexdump(data: bytes, width: int = 16) -> str:
    """Return a classic offset / hex / ASCII dump of *data*."""
    lines = []
    for offset in range(0, len(data), width):
        chunk = data[offset : offset + width]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        text = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{offset:04x}  {hex_part:<{width * 3}} {text}")
    return "\n".join(lines)


def build_reference_packet(
    *,
    include_frequency: bool = True,
    extended: bool = False,
    identity: DeviceIdentity | None = None,
    timestamp_ms: int = 0,
) -> bytearray:
    """Assemble and verify the reference-scenario packet for a variant."""
    variant = ProtocolVariant.select(extended, include_frequency)
    frame = PacketFrame.create(
        default_packet_size(include_frequency=include_frequency, extended=extended),
        variant,
    )
    assembler = EmeterPacketAssembler(frame, channel_layout(include_frequency))
    buffer = frame.allocate()
    firmware = default_firmware_version(
        include_frequency=include_frequency, extended=extended
    )
    assembler.assemble(
        buffer,
        reference_snapshot(firmware),
        identity or DeviceIdentity(susy_id=349, serial_number=1901567274),
        timestamp_ms,
    )
    assembler.verify()
    return buffer


def describe(buffer: bytes | bytearray, out: TextIO) -> None:
    """Print framing fields and decoded elements of an emeter datagram."""
    if not is_emeter_packet(buffer):
        out.write("not an emeter packet\n")
        return
    (data2_length,) = struct.unpack_from(">H", buffer, DATA2_LENGTH_OFFSET)
    (protocol_id,) = struct.unpack_from(">H", buffer, PROTOCOL_ID_OFFSET)
    (susy_id,) = struct.unpack_from(">H", buffer, SUSY_ID_OFFSET)
    (serial,) = struct.unpack_from(">I", buffer, SERIAL_NUMBER_OFFSET)
    (timer,) = struct.unpack_from(">I", buffer, TIME_OFFSET)
    out.write(
        f"length={len(buffer)} data2_length={data2_length} "
        f"protocol=0x{protocol_id:04x} susy_id={susy_id} serial={serial} "
        f"time={timer}\n"
    )
    for element in iter_elements(buffer):
        out.write(f"{element}\n")


def main(argv: list[str] | None = None, out: TextIO = sys.stdout) -> int:
    parser = argparse.ArgumentParser(description="Dump a reference emeter packet")
    parser.add_argument("--no-frequency", action="store_true")
    parser.add_argument("--extended", action="store_true")
    parser.add_argument("--susy-id", type=int, default=349)
    parser.add_argument("--serial", type=int, default=1901567274)
    parser.add_argument("--hex", action="store_true", help="also print a hexdump")
    args = parser.parse_args(argv)

    buffer = build_reference_packet(
        include_frequency=not args.no_frequency,
        extended=args.extended,
        identity=DeviceIdentity(susy_id=args.susy_id, serial_number=args.serial),
    )
    describe(buffer, out)
    if args.hex:
        out.write(hexdump(bytes(buffer)) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
