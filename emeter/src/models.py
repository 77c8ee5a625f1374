"""
Pydantic models for measurement snapshots and device identity.

A MeasurementSnapshot is one complete, per-cycle set of channel values in
engineering units, ready to be encoded into an emeter datagram.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from emeter.src.obis import ALL_CHANNELS, CHANNELS_BY_NAME


class DeviceIdentity(BaseModel):
    """Identity fields written once per cycle ahead of the OBIS elements.

    The (susy_id, serial_number) pair must be unique on a Speedwire network.

    Attributes:
        susy_id: SMA SUSy id of the emulated device type (e.g. 349 for
            Energy Meter 2.0, 372 for Sunny Home Manager 2.0).
        serial_number: Device serial number.
    """

    model_config = {"frozen": True}

    susy_id: int = Field(ge=1, le=0xFFFF)
    serial_number: int = Field(ge=1, le=0xFFFFFFFE)


class MeasurementSnapshot(BaseModel):
    """A point-in-time mapping of channel name to engineering value.

    Snapshots must be total: every channel in
    :data:`~emeter.src.obis.ALL_CHANNELS` needs a value, including the
    frequency channel even when the packet layout does not emit it.  Channels
    a source cannot measure are set to ``0.0`` explicitly.

    Attributes:
        values: Channel name -> float (numeric channels) or dotted version
            string (software version channel).
    """

    model_config = {"frozen": True}

    values: dict[str, float | str]

    @model_validator(mode="after")
    def _must_be_total(self) -> MeasurementSnapshot:
        missing = [ch.name for ch in ALL_CHANNELS if ch.name not in self.values]
        if missing:
            raise ValueError(f"Snapshot is missing channels: {', '.join(missing)}")
        unknown = sorted(set(self.values) - set(CHANNELS_BY_NAME))
        if unknown:
            raise ValueError(f"Snapshot has unknown channels: {', '.join(unknown)}")
        for name, value in self.values.items():
            channel = CHANNELS_BY_NAME[name]
            if channel.is_numeric and isinstance(value, str):
                raise ValueError(f"Channel '{name}' needs a numeric value")
            if not channel.is_numeric and not isinstance(value, str):
                raise ValueError(f"Channel '{name}' needs a version string")
        return self

    def __getitem__(self, name: str) -> float | str:
        return self.values[name]
