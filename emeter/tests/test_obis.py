"""
Tests for the emeter OBIS channel map.

Verifies channel map integrity, emission order, divisors and wire lengths.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import dataclasses

import pytest
from emeter.src.obis import (
    ACTUAL,
    ALL_CHANNELS,
    CHANNELS_BY_NAME,
    CHANNELS_BY_OBIS,
    COUNTER,
    ENERGY_DIVISOR,
    FREQUENCY,
    MILLI_DIVISOR,
    POWER_DIVISOR,
    SOFTWARE_VERSION,
    VERSION,
    ChannelDef,
    channel_layout,
    wire_length,
)

# (index, type) of every element a frequency-capable meter emits, in order.
_TOTALS = [
    (1, ACTUAL), (1, COUNTER), (2, ACTUAL), (2, COUNTER),
    (3, ACTUAL), (3, COUNTER), (4, ACTUAL), (4, COUNTER),
    (9, ACTUAL), (9, COUNTER), (10, ACTUAL), (10, COUNTER),
    (13, ACTUAL), (14, ACTUAL),
]  # fmt: skip


def _phase(base: int) -> list[tuple[int, int]]:
    return [
        (base + 1, ACTUAL), (base + 1, COUNTER), (base + 2, ACTUAL), (base + 2, COUNTER),
        (base + 3, ACTUAL), (base + 3, COUNTER), (base + 4, ACTUAL), (base + 4, COUNTER),
        (base + 9, ACTUAL), (base + 9, COUNTER), (base + 10, ACTUAL), (base + 10, COUNTER),
        (base + 11, ACTUAL), (base + 12, ACTUAL), (base + 13, ACTUAL),
    ]  # fmt: skip


EXPECTED_ORDER = [*_TOTALS, *_phase(20), *_phase(40), *_phase(60), (0, VERSION)]


# ---------------------------------------------------------------------------
# Emission order
# ---------------------------------------------------------------------------


class TestEmissionOrder:
    """Channels are listed in the order a real meter emits them."""

    def test_full_layout_order(self) -> None:
        layout = channel_layout(include_frequency=True)
        assert [(ch.index, ch.obis_type) for ch in layout] == EXPECTED_ORDER

    def test_channel_counts(self) -> None:
        assert len(channel_layout(include_frequency=True)) == 60
        assert len(channel_layout(include_frequency=False)) == 59

    def test_layout_without_frequency_drops_only_frequency(self) -> None:
        with_freq = channel_layout(include_frequency=True)
        without = channel_layout(include_frequency=False)
        assert FREQUENCY in with_freq
        assert FREQUENCY not in without
        assert [ch for ch in with_freq if ch is not FREQUENCY] == without

    def test_frequency_follows_total_power_factor(self) -> None:
        layout = channel_layout(include_frequency=True)
        position = layout.index(FREQUENCY)
        assert layout[position - 1].name == "power_factor_total"
        assert layout[position + 1].name == "positive_active_power_l1"

    def test_software_version_is_last(self) -> None:
        for include_frequency in (True, False):
            assert channel_layout(include_frequency)[-1] is SOFTWARE_VERSION

    def test_layout_is_a_fresh_list(self) -> None:
        layout = channel_layout()
        layout.clear()
        assert len(channel_layout()) == 60


# ---------------------------------------------------------------------------
# Channel definitions
# ---------------------------------------------------------------------------


class TestChannelDefinitions:
    """Divisors, units and OBIS headers per channel kind."""

    @pytest.mark.parametrize(
        ("kind", "divisor"),
        [
            ("power", POWER_DIVISOR),
            ("energy", ENERGY_DIVISOR),
            ("current", MILLI_DIVISOR),
            ("voltage", MILLI_DIVISOR),
            ("power_factor", MILLI_DIVISOR),
            ("frequency", MILLI_DIVISOR),
        ],
    )
    def test_divisor_per_kind(self, kind: str, divisor: int) -> None:
        channels = [ch for ch in ALL_CHANNELS if ch.kind == kind]
        assert channels
        assert all(ch.divisor == divisor for ch in channels)

    def test_energy_channels_are_counters(self) -> None:
        for ch in ALL_CHANNELS:
            if ch.kind == "energy":
                assert ch.obis_type == COUNTER, ch.name
            elif ch.kind != "version":
                assert ch.obis_type == ACTUAL, ch.name

    def test_software_version_header(self) -> None:
        assert SOFTWARE_VERSION.obis == (144, 0, 0, 0)
        assert not SOFTWARE_VERSION.is_numeric

    def test_phase_current_and_voltage_indices(self) -> None:
        assert CHANNELS_BY_NAME["current_l1"].index == 31
        assert CHANNELS_BY_NAME["voltage_l2"].index == 52
        assert CHANNELS_BY_NAME["power_factor_l3"].index == 73
        assert CHANNELS_BY_NAME["negative_apparent_energy_l3"].index == 70

    def test_tariff_is_zero(self) -> None:
        assert all(ch.tariff == 0 for ch in ALL_CHANNELS)

    def test_channel_def_is_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            FREQUENCY.divisor = 1  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Lookups and wire lengths
# ---------------------------------------------------------------------------


class TestLookups:
    """Name and OBIS lookups cover every channel exactly once."""

    def test_no_duplicate_names(self) -> None:
        assert len(CHANNELS_BY_NAME) == len(ALL_CHANNELS)

    def test_no_duplicate_obis_headers(self) -> None:
        assert len(CHANNELS_BY_OBIS) == len(ALL_CHANNELS)

    def test_obis_lookup_returns_channel(self) -> None:
        ch = CHANNELS_BY_OBIS[(0, 1, 4, 0)]
        assert isinstance(ch, ChannelDef)
        assert ch.name == "positive_active_power_total"


class TestWireLength:
    """Actual values take 8 bytes on the wire, counters 12."""

    def test_actual_value_length(self) -> None:
        assert wire_length(CHANNELS_BY_NAME["voltage_l1"]) == 8

    def test_counter_length(self) -> None:
        assert wire_length(CHANNELS_BY_NAME["positive_active_energy_total"]) == 12

    def test_version_length(self) -> None:
        assert wire_length(SOFTWARE_VERSION) == 8

    def test_element_region_sizes(self) -> None:
        assert sum(wire_length(ch) for ch in channel_layout(True)) == 576
        assert sum(wire_length(ch) for ch in channel_layout(False)) == 568
