"""
Tests for the OBIS element codec.

Tests verify:
- Encoded cells are exactly 12 bytes with the OBIS header first.
- Numeric values are scaled by the channel divisor and rounded.
- Decoding returns the engineering value within one wire unit, for every
  numeric channel.
- Firmware versions pack into 4 bytes; malformed versions are rejected.
- Values that overflow the wire width are rejected.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Round trip covers every numeric channel

TODO:
- None
"""

from __future__ import annotations

import struct

import pytest
from emeter.src import codec
from emeter.src.obis import (
    ALL_CHANNELS,
    CHANNELS_BY_NAME,
    SOFTWARE_VERSION,
    ChannelDef,
)

# Per value kind: a value on the wire grid and one between grid steps.
_SAMPLES: dict[str, tuple[float, ...]] = {
    "power": (121.6, 3419.57),
    "energy": (1320.34, 0.0000001),
    "current": (0.23, 16.0004),
    "voltage": (231.97, 229.9996),
    "power_factor": (-0.54, 0.9995),
    "frequency": (50.16, 49.9871),
}

# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


class TestEncode:
    """encode() produces a 12-byte cell."""

    def test_total_active_power(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["positive_active_power_total"], 121.6)
        assert len(cell) == codec.CELL_SIZE
        assert cell[:4] == bytes([0, 1, 4, 0])
        assert struct.unpack_from(">i", cell, 4)[0] == 1216
        assert cell[8:] == b"\x00\x00\x00\x00"

    def test_energy_counter_is_eight_bytes(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["positive_active_energy_total"], 50.0)
        assert cell[:4] == bytes([0, 1, 8, 0])
        assert struct.unpack_from(">q", cell, 4)[0] == 180_000_000

    def test_voltage_is_millivolts(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["voltage_l1"], 230.1)
        assert struct.unpack_from(">i", cell, 4)[0] == 230_100

    def test_rounds_half_away_from_zero(self) -> None:
        power = CHANNELS_BY_NAME["negative_active_power_total"]
        assert struct.unpack_from(">i", codec.encode(power, 0.05), 4)[0] == 1
        assert struct.unpack_from(">i", codec.encode(power, -0.05), 4)[0] == -1

    def test_negative_power_factor(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["power_factor_l2"], -0.79)
        assert struct.unpack_from(">i", cell, 4)[0] == -790

    def test_version_cell(self) -> None:
        cell = codec.encode(SOFTWARE_VERSION, "2.03.4.R")
        assert cell == bytes([144, 0, 0, 0, 2, 3, 4, ord("R")]) + bytes(4)

    def test_string_for_numeric_channel_rejected(self) -> None:
        with pytest.raises(ValueError, match="numeric"):
            codec.encode(CHANNELS_BY_NAME["frequency"], "50")

    def test_number_for_version_channel_rejected(self) -> None:
        with pytest.raises(ValueError, match="version string"):
            codec.encode(SOFTWARE_VERSION, 2.0)

    def test_actual_value_overflow_rejected(self) -> None:
        # 3e8 W * 10 exceeds a signed 32-bit integer.
        with pytest.raises(ValueError, match="does not fit"):
            codec.encode(CHANNELS_BY_NAME["positive_active_power_total"], 3e8)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


class TestDecode:
    """decode() recovers engineering values and names the channel."""

    @pytest.mark.parametrize(
        ("channel", "value"),
        [
            (channel, value)
            for channel in ALL_CHANNELS
            if channel.is_numeric
            for value in _SAMPLES[channel.kind]
        ],
        ids=lambda p: p.name if isinstance(p, ChannelDef) else str(p),
    )
    def test_value_within_one_unit(self, channel: ChannelDef, value: float) -> None:
        element = codec.decode(codec.encode(channel, value))

        assert element.channel is channel
        assert element.value == pytest.approx(value, abs=1 / channel.divisor)

    def test_obis_string(self) -> None:
        element = codec.decode(codec.encode(CHANNELS_BY_NAME["voltage_l2"], 230.66))
        assert element.obis == "0:52.4.0"
        assert element.raw == 230_660
        assert element.converted_text == "230.66 V"

    def test_version_element(self) -> None:
        element = codec.decode(codec.encode(SOFTWARE_VERSION, "2.03.4.R"))
        assert element.channel is SOFTWARE_VERSION
        assert element.value == "2.03.4.R"
        assert str(element) == "144:0.0.0 software_version 2.03.4.R 2.03.4.R"

    def test_wire_length_element_decodes(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["current_l1"], 0.18)
        element = codec.decode(cell[:8])
        assert element.value == pytest.approx(0.18)

    def test_unknown_header_decodes_without_channel(self) -> None:
        element = codec.decode(bytes([0, 99, 4, 0, 0, 0, 0, 7]))
        assert element.channel is None
        assert element.value == 7
        assert str(element).startswith("0:99.4.0 unknown")

    def test_truncated_counter_rejected(self) -> None:
        cell = codec.encode(CHANNELS_BY_NAME["positive_active_energy_total"], 1.0)
        with pytest.raises(ValueError, match="needs 12 bytes"):
            codec.decode(cell[:8])


class TestElementLength:
    def test_lengths(self) -> None:
        assert codec.element_length(bytes([0, 1, 4, 0])) == 8
        assert codec.element_length(bytes([0, 1, 8, 0])) == 12
        assert codec.element_length(bytes([144, 0, 0, 0])) == 8

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown OBIS value type"):
            codec.element_length(bytes([0, 1, 7, 0]))


# ---------------------------------------------------------------------------
# Firmware version packing
# ---------------------------------------------------------------------------


class TestVersionPacking:
    """pack_version() accepts major.minor.build.rev only."""

    def test_pack(self) -> None:
        assert codec.pack_version("2.03.4.R") == b"\x02\x03\x04R"
        assert codec.pack_version("2.0.18.R") == b"\x02\x00\x12R"

    def test_unpack_pads_minor(self) -> None:
        assert codec.unpack_version(b"\x02\x00\x12R") == "2.00.18.R"

    @pytest.mark.parametrize(
        "version",
        ["2.03.4", "2.03.4.R.1", "2.x.4.R", "2.03.256.R", "2.03.4.RC", "2.03.4."],
    )
    def test_malformed_versions_rejected(self, version: str) -> None:
        with pytest.raises(ValueError, match="Firmware version"):
            codec.pack_version(version)
