"""
Measurement sources producing one MeasurementSnapshot per transmission cycle.

Two modes:

- **Static**: the same snapshot on every call (fixed reference scenario).
- **Feed**: one line of comma-separated decimal fields per cycle read from a
  text stream (stdin or a named pipe), in this order::

      active power import (W), active power export (W),
      active energy import (Wh), active energy export (Wh),
      voltage L1..L3 (V), current L1..L3 (A)

  A trailing comma is tolerated.  Lines that do not carry exactly ten
  finite decimal fields, each small enough for its wire field, are rejected with :class:`FeedLineError`; no value
  from a previous line is ever carried over.

:func:`parse_feed_line` is a pure function: no I/O, no state.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Reject feed values that overflow their wire field

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING

from emeter.src import codec
from emeter.src.models import MeasurementSnapshot
from emeter.src.obis import ALL_CHANNELS, CHANNELS_BY_NAME, SOFTWARE_VERSION

if TYPE_CHECKING:
    from typing import TextIO

logger = logging.getLogger(__name__)

FEED_FIELD_COUNT: int = 10

_FEED_FIELDS: tuple[str, ...] = (
    "positive_active_power_total",
    "negative_active_power_total",
    "positive_active_energy_total",
    "negative_active_energy_total",
    "voltage_l1",
    "voltage_l2",
    "voltage_l3",
    "current_l1",
    "current_l2",
    "current_l3",
)
"""Channel fed by each comma-separated field position."""

_WH_FIELDS: frozenset[str] = frozenset(
    {"positive_active_energy_total", "negative_active_energy_total"}
)
"""Fields delivered in Wh that must be converted to kWh."""

_POWER_FACTOR_CHANNELS: tuple[str, ...] = (
    "power_factor_total",
    "power_factor_l1",
    "power_factor_l2",
    "power_factor_l3",
)

# ---------------------------------------------------------------------------
# Reference scenario: values captured from a real Energy Meter 2.0
# ---------------------------------------------------------------------------

DEFAULT_SCENARIO: dict[str, float] = {
    # totals
    "positive_active_power_total": 121.60,
    "positive_active_energy_total": 1320.34,
    "negative_active_power_total": 0.00,
    "negative_active_energy_total": 305.03,
    "positive_reactive_power_total": 0.00,
    "positive_reactive_energy_total": 5.90,
    "negative_reactive_power_total": 188.90,
    "negative_reactive_energy_total": 949.68,
    "positive_apparent_power_total": 224.60,
    "positive_apparent_energy_total": 1757.41,
    "negative_apparent_power_total": 0.00,
    "negative_apparent_energy_total": 327.62,
    "power_factor_total": 0.54,
    "frequency": 50.16,
    # line 1
    "positive_active_power_l1": 0.00,
    "positive_active_energy_l1": 337.53,
    "negative_active_power_l1": 21.70,
    "negative_active_energy_l1": 141.54,
    "positive_reactive_power_l1": 0.00,
    "positive_reactive_energy_l1": 2.48,
    "negative_reactive_power_l1": 22.30,
    "negative_reactive_energy_l1": 176.48,
    "positive_apparent_power_l1": 0.00,
    "positive_apparent_energy_l1": 473.68,
    "negative_apparent_power_l1": 31.10,
    "negative_apparent_energy_l1": 144.26,
    "current_l1": 0.18,
    "voltage_l1": 231.97,
    "power_factor_l1": 0.70,
    # line 2
    "positive_active_power_l2": 160.80,
    "positive_active_energy_l2": 775.23,
    "negative_active_power_l2": 0.00,
    "negative_active_energy_l2": 77.80,
    "positive_reactive_power_l2": 0.00,
    "positive_reactive_energy_l2": 7.38,
    "negative_reactive_power_l2": 126.00,
    "negative_reactive_energy_l2": 535.19,
    "positive_apparent_power_l2": 204.30,
    "positive_apparent_energy_l2": 974.19,
    "negative_apparent_power_l2": 0.00,
    "negative_apparent_energy_l2": 89.10,
    "current_l2": 1.12,
    "voltage_l2": 230.66,
    "power_factor_l2": 0.79,
    # line 3
    "positive_active_power_l3": 0.00,
    "positive_active_energy_l3": 271.21,
    "negative_active_power_l3": 17.60,
    "negative_active_energy_l3": 149.31,
    "positive_reactive_power_l3": 0.00,
    "positive_reactive_energy_l3": 1.70,
    "negative_reactive_power_l3": 40.66,
    "negative_reactive_energy_l3": 243.67,
    "positive_apparent_power_l3": 0.00,
    "positive_apparent_energy_l3": 434.62,
    "negative_apparent_power_l3": 44.30,
    "negative_apparent_energy_l3": 156.83,
    "current_l3": 0.23,
    "voltage_l3": 230.09,
    "power_factor_l3": 0.40,
}
"""Engineering values of the reference scenario, firmware version excluded."""


def default_firmware_version(*, include_frequency: bool, extended: bool) -> str:
    """Firmware version a real meter reports for this packet variant.

    The frequency element was added in 2.03.4.R; the extended emeter
    protocol id appeared with Sunny Home Manager 2.07.x.
    """
    if include_frequency:
        return "2.03.4.R"
    if extended:
        return "2.07.4.R"
    return "2.0.18.R"


class FeedLineError(ValueError):
    """A live-feed line could not be turned into a complete snapshot."""


# ---------------------------------------------------------------------------
# Pure parser
# ---------------------------------------------------------------------------


def parse_feed_line(
    line: str,
    *,
    firmware_version: str,
    power_factor: float = 1.0,
    frequency: float = 50.0,
) -> MeasurementSnapshot:
    """Convert one comma-separated feed line into a complete snapshot.

    Channels the feed does not supply (reactive, apparent, per-phase power
    and energy) are set to ``0.0``.  Power factor channels get the constant
    *power_factor*, the frequency channel gets *frequency*.

    Args:
        line: Raw input line, e.g.
            ``"100.0,0.0,50000,0,230.1,229.8,230.5,1.5,1.2,1.3,"``.
        firmware_version: Dotted version for the software version channel.
        power_factor: Constant power factor to report.
        frequency: Grid frequency to report in Hz.

    Raises:
        FeedLineError: If the line does not hold exactly ten finite decimal
            fields, or a value does not fit its channel's wire field.
    """
    text = line.strip()
    if text.endswith(","):
        text = text[:-1]
    fields = [f.strip() for f in text.split(",")] if text else []

    if len(fields) != FEED_FIELD_COUNT:
        raise FeedLineError(
            f"Expected {FEED_FIELD_COUNT} comma-separated fields, got "
            f"{len(fields)}: {line.strip()!r}"
        )

    values: dict[str, float | str] = {ch.name: 0.0 for ch in ALL_CHANNELS}
    for position, (name, field) in enumerate(zip(_FEED_FIELDS, fields), start=1):
        try:
            number = float(field)
        except ValueError:
            raise FeedLineError(
                f"Field {position} ({name}) is not a decimal number: {field!r}"
            ) from None
        if not math.isfinite(number):
            raise FeedLineError(f"Field {position} ({name}) is not finite: {field!r}")
        value = number / 1000.0 if name in _WH_FIELDS else number
        try:
            codec.encode(CHANNELS_BY_NAME[name], value)
        except ValueError:
            raise FeedLineError(
                f"Field {position} ({name}) is out of range: {field!r}"
            ) from None
        values[name] = value

    for name in _POWER_FACTOR_CHANNELS:
        values[name] = power_factor
    values["frequency"] = frequency
    values[SOFTWARE_VERSION.name] = firmware_version

    return MeasurementSnapshot(values=values)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class StaticSource:
    """Returns the same snapshot on every call.

    Args:
        firmware_version: Dotted version for the software version channel.
        values: Engineering values; defaults to :data:`DEFAULT_SCENARIO`.
    """

    paced_by_input: bool = False

    def __init__(
        self,
        *,
        firmware_version: str,
        values: dict[str, float] | None = None,
    ) -> None:
        merged: dict[str, float | str] = dict(values or DEFAULT_SCENARIO)
        merged[SOFTWARE_VERSION.name] = firmware_version
        self._snapshot = MeasurementSnapshot(values=merged)

    async def next(self) -> MeasurementSnapshot:
        return self._snapshot


class FeedSource:
    """Reads one snapshot per line from a text stream.

    The blocking ``readline`` runs in a worker thread so the event loop
    keeps serving signal handlers while waiting for input.

    Args:
        stream: Text stream to read from (stdin, pipe, file).
        firmware_version: Dotted version for the software version channel.
        power_factor: Constant power factor to report.
        frequency: Grid frequency to report in Hz.
    """

    paced_by_input: bool = True

    def __init__(
        self,
        stream: TextIO,
        *,
        firmware_version: str,
        power_factor: float = 1.0,
        frequency: float = 50.0,
    ) -> None:
        self._stream = stream
        self._firmware_version = firmware_version
        self._power_factor = power_factor
        self._frequency = frequency
        self._lines_read = 0

    @property
    def lines_read(self) -> int:
        return self._lines_read

    async def next(self) -> MeasurementSnapshot | None:
        """Return the snapshot for the next input line.

        Returns:
            A snapshot, or ``None`` at end of input.

        Raises:
            FeedLineError: If the line is malformed.  The caller should skip
                the cycle and keep reading.
        """
        line = await asyncio.to_thread(self._stream.readline)
        if line == "":
            logger.info("Feed input closed after %d lines", self._lines_read)
            return None
        self._lines_read += 1
        return parse_feed_line(
            line,
            firmware_version=self._firmware_version,
            power_factor=self._power_factor,
            frequency=self._frequency,
        )
