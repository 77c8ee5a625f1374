"""
SMA emeter OBIS channel map -- single source of truth.

Defines every measurement channel carried in a Speedwire emeter datagram:
OBIS identifier fields, value kind, engineering unit and the divisor that maps
the engineering value to the integer transmitted on the wire.

Channels are listed in the exact order a real SMA Energy Meter emits them.
Most open source consumers do not parse OBIS identifiers; they read values at
fixed byte offsets.  The order of :data:`ALL_CHANNELS` is therefore part of the
wire contract and must not be rearranged.

References:
    - SMA EMETER Protocol Technical Information v1.0
    - https://github.com/RalfOGit/libspeedwire

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# OBIS value types (the D field of the identifier)
# ---------------------------------------------------------------------------

ACTUAL: int = 4
"""Instantaneous value, 4-byte signed integer on the wire."""

COUNTER: int = 8
"""Energy counter, 8-byte integer on the wire."""

VERSION: int = 0
"""Software version, 4 packed bytes on the wire."""

VALUE_WIDTHS: dict[int, int] = {
    ACTUAL: 4,
    COUNTER: 8,
    VERSION: 4,
}
"""Number of value bytes following the 4-byte OBIS header, per type."""

# ---------------------------------------------------------------------------
# Unit divisors
# ---------------------------------------------------------------------------

POWER_DIVISOR: int = 10  # 0.1 W
ENERGY_DIVISOR: int = 3_600_000  # kWh -> Ws
MILLI_DIVISOR: int = 1000  # mA, mV, mHz and power factor


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChannelDef:
    """Definition of a single emeter measurement channel.

    Attributes:
        name: Unique identifier used as snapshot key.
        channel: OBIS measurement channel (the B field). 0 for measurements,
            144 for the software version element.
        index: OBIS measurement index (the C field), e.g. 1 for positive
            active quantity, 21 for positive active quantity on L1.
        kind: One of ``"power"``, ``"energy"``, ``"current"``,
            ``"voltage"``, ``"power_factor"``, ``"frequency"``,
            ``"version"``.
        obis_type: OBIS value type (the D field): :data:`ACTUAL`,
            :data:`COUNTER` or :data:`VERSION`.
        unit: Engineering unit string (e.g. ``"W"``, ``"kWh"``).
        divisor: Multiplier from engineering value to wire integer.  The
            receiver divides by it again.  ``1`` for the version element.
        tariff: OBIS tariff (the E field), always 0 for SMA meters.
        description: Free-text description.
    """

    name: str
    channel: int
    index: int
    kind: str
    obis_type: int
    unit: str
    divisor: int = 1
    tariff: int = 0
    description: str = ""

    @property
    def obis(self) -> tuple[int, int, int, int]:
        """The four OBIS header bytes ``(B, C, D, E)``."""
        return (self.channel, self.index, self.obis_type, self.tariff)

    @property
    def is_numeric(self) -> bool:
        return self.obis_type != VERSION


# ---------------------------------------------------------------------------
# Channel generation helpers
# ---------------------------------------------------------------------------

_QUANTITIES: list[tuple[str, int, str, str]] = [
    # (quantity, index offset, power unit, energy unit)
    ("positive_active", 1, "W", "kWh"),
    ("negative_active", 2, "W", "kWh"),
    ("positive_reactive", 3, "var", "kvarh"),
    ("negative_reactive", 4, "var", "kvarh"),
    ("positive_apparent", 9, "VA", "kVAh"),
    ("negative_apparent", 10, "VA", "kVAh"),
]
"""Power / energy quantities in emission order; each yields a power then an
energy channel."""


def _power_energy_channels(suffix: str, base: int) -> list[ChannelDef]:
    """Return the 12 power/energy channels for totals or one phase."""
    channels: list[ChannelDef] = []
    scope = "total" if suffix == "total" else suffix.upper()
    for quantity, offset, power_unit, energy_unit in _QUANTITIES:
        label = quantity.replace("_", " ")
        channels.append(
            ChannelDef(
                name=f"{quantity}_power_{suffix}",
                channel=0,
                index=base + offset,
                kind="power",
                obis_type=ACTUAL,
                unit=power_unit,
                divisor=POWER_DIVISOR,
                description=f"{label} power, {scope}",
            )
        )
        channels.append(
            ChannelDef(
                name=f"{quantity}_energy_{suffix}",
                channel=0,
                index=base + offset,
                kind="energy",
                obis_type=COUNTER,
                unit=energy_unit,
                divisor=ENERGY_DIVISOR,
                description=f"{label} energy counter, {scope}",
            )
        )
    return channels


def _phase_channels(phase: int) -> list[ChannelDef]:
    """Return the 15 channels of phase *phase* (1..3) in emission order."""
    base = 20 * phase
    suffix = f"l{phase}"
    return [
        *_power_energy_channels(suffix, base),
        ChannelDef(
            name=f"current_{suffix}",
            channel=0,
            index=base + 11,
            kind="current",
            obis_type=ACTUAL,
            unit="A",
            divisor=MILLI_DIVISOR,
            description=f"Current L{phase}",
        ),
        ChannelDef(
            name=f"voltage_{suffix}",
            channel=0,
            index=base + 12,
            kind="voltage",
            obis_type=ACTUAL,
            unit="V",
            divisor=MILLI_DIVISOR,
            description=f"Voltage L{phase}",
        ),
        ChannelDef(
            name=f"power_factor_{suffix}",
            channel=0,
            index=base + 13,
            kind="power_factor",
            obis_type=ACTUAL,
            unit="",
            divisor=MILLI_DIVISOR,
            description=f"Power factor L{phase}",
        ),
    ]


# ---------------------------------------------------------------------------
# Totals (13 channels + optional frequency)
# ---------------------------------------------------------------------------

POWER_FACTOR_TOTAL = ChannelDef(
    name="power_factor_total",
    channel=0,
    index=13,
    kind="power_factor",
    obis_type=ACTUAL,
    unit="",
    divisor=MILLI_DIVISOR,
    description="Power factor, total",
)

FREQUENCY = ChannelDef(
    name="frequency",
    channel=0,
    index=14,
    kind="frequency",
    obis_type=ACTUAL,
    unit="Hz",
    divisor=MILLI_DIVISOR,
    description="Grid frequency (firmware 2.03.4.R and later)",
)

SOFTWARE_VERSION = ChannelDef(
    name="software_version",
    channel=144,
    index=0,
    kind="version",
    obis_type=VERSION,
    unit="",
    description="Meter firmware version, e.g. 2.03.4.R",
)

_TOTAL_CHANNELS: list[ChannelDef] = [
    *_power_energy_channels("total", 0),
    POWER_FACTOR_TOTAL,
]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

ALL_CHANNELS: list[ChannelDef] = [
    *_TOTAL_CHANNELS,
    FREQUENCY,
    *_phase_channels(1),
    *_phase_channels(2),
    *_phase_channels(3),
    SOFTWARE_VERSION,
]
"""Every known channel in emission order (frequency included)."""

CHANNELS_BY_NAME: dict[str, ChannelDef] = {ch.name: ch for ch in ALL_CHANNELS}
"""Flat lookup of every channel by name."""

CHANNELS_BY_OBIS: dict[tuple[int, int, int, int], ChannelDef] = {
    ch.obis: ch for ch in ALL_CHANNELS
}
"""Lookup of every channel by its ``(B, C, D, E)`` header."""


def channel_layout(include_frequency: bool = True) -> list[ChannelDef]:
    """Return the ordered channels to emit for a packet variant.

    The frequency element was introduced with emeter firmware 2.03.4.R and
    sits directly after the total power factor.  Older firmware omits it.
    """
    if include_frequency:
        return list(ALL_CHANNELS)
    return [ch for ch in ALL_CHANNELS if ch is not FREQUENCY]


def wire_length(channel: ChannelDef) -> int:
    """Number of bytes *channel* occupies in the datagram (header + value)."""
    return 4 + VALUE_WIDTHS[channel.obis_type]
