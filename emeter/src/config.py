"""
Emeter emulator configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Everything that selects the packet variant is resolved once here, before the
transmission loop starts; an impossible packet size or a malformed firmware
version fails settings validation at startup.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Extended protocol only applies with the frequency element

TODO:
- None
"""

import logging
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from emeter.src.codec import pack_version
from emeter.src.frame import PacketFrame, ProtocolVariant, default_packet_size
from emeter.src.models import DeviceIdentity
from emeter.src.source import default_firmware_version
from emeter.src.transport import SocketStrategy

SUSY_ID_EMETER_10 = 270
SUSY_ID_EMETER_20 = 349
SUSY_ID_HOMEMANAGER_20 = 372


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class EmeterSettings(BaseSettings):
    """Emeter emulator configuration.

    All values are loaded from environment variables (or a ``.env`` file).
    Every variable is optional.

    Attributes:
        susy_id: SUSy id of the emulated device (270 Energy Meter 1.0,
            349 Energy Meter 2.0, 372 Sunny Home Manager 2.0).
        serial_number: Device serial number.  The (susy_id, serial_number)
            pair must be unique on the Speedwire network.
        include_frequency: Emit the grid frequency element (firmware
            2.03.4.R and later).
        extended_protocol: Use the extended emeter protocol id introduced
            with Sunny Home Manager 2.07.x.  Only takes effect together
            with *include_frequency*.
        packet_size: Datagram size override.  Defaults to the size a real
            meter uses for the selected variant (600/608/610).
        firmware_version: Dotted firmware version.  Defaults per variant.
        socket_strategy: ``multicast`` or ``unicast``.
        unicast_peers: Comma-separated peer addresses (unicast strategy).
        interfaces: Comma-separated local IPv4 addresses to send from.
            Empty means every non-loopback interface.
        interval_ms: Milliseconds between datagrams in static mode.
        input_mode: ``static`` (reference scenario) or ``feed`` (one CSV
            line per datagram).
        feed_path: Feed input path; ``-`` reads stdin.
        feed_power_factor: Constant power factor reported in feed mode.
        nominal_frequency: Grid frequency reported in feed mode, in Hz.
        log_level: Root log level name.
        health_path: Health JSON file path.  Empty disables the file.
    """

    susy_id: int = SUSY_ID_EMETER_20
    serial_number: int = 1901567274
    include_frequency: bool = True
    extended_protocol: bool = False
    packet_size: int | None = None
    firmware_version: str = ""
    socket_strategy: SocketStrategy = SocketStrategy.MULTICAST
    unicast_peers: str = ""
    interfaces: str = ""
    interval_ms: int = 1000
    input_mode: Literal["static", "feed"] = "static"
    feed_path: str = "-"
    feed_power_factor: float = 1.0
    nominal_frequency: float = 50.0
    log_level: str = "INFO"
    health_path: str = ""

    @field_validator("susy_id")
    @classmethod
    def susy_id_must_be_valid(cls, v: int) -> int:
        """Validate SUSy id fits the 16-bit field."""
        if v < 1 or v > 0xFFFF:
            raise ValueError("SUSY_ID must be between 1 and 65535")
        return v

    @field_validator("serial_number")
    @classmethod
    def serial_number_must_be_valid(cls, v: int) -> int:
        """Validate serial number fits the 32-bit field (0xFFFFFFFF is reserved)."""
        if v < 1 or v > 0xFFFFFFFE:
            raise ValueError("SERIAL_NUMBER must be between 1 and 4294967294")
        return v

    @field_validator("interval_ms")
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        """Validate send interval is at least 1 ms."""
        if v < 1:
            raise ValueError("INTERVAL_MS must be >= 1")
        return v

    @field_validator("feed_power_factor")
    @classmethod
    def power_factor_must_be_valid(cls, v: float) -> float:
        """Validate power factor is within [-1, 1]."""
        if not -1.0 <= v <= 1.0:
            raise ValueError("FEED_POWER_FACTOR must be between -1 and 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate log level is a standard logging level name."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL '{v}' is not a logging level name")
        return level

    @model_validator(mode="after")
    def _resolve_packet_variant(self) -> "EmeterSettings":
        """Fill variant defaults and validate the packet geometry.

        Raises a validation error (via FrameConfigError / ValueError) when
        the packet size cannot hold a valid emeter packet, the firmware
        version cannot be encoded, or unicast is selected without peers.
        """
        if not self.firmware_version:
            self.firmware_version = default_firmware_version(
                include_frequency=self.include_frequency,
                extended=self.extended_protocol,
            )
        pack_version(self.firmware_version)

        if self.packet_size is None:
            self.packet_size = default_packet_size(
                include_frequency=self.include_frequency,
                extended=self.extended_protocol,
            )
        PacketFrame.create(self.packet_size, self.variant)

        if self.socket_strategy is SocketStrategy.UNICAST and not self.peer_list:
            raise ValueError("UNICAST_PEERS is required for the unicast strategy")
        return self

    @property
    def variant(self) -> ProtocolVariant:
        return ProtocolVariant.select(self.extended_protocol, self.include_frequency)

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(susy_id=self.susy_id, serial_number=self.serial_number)

    @property
    def peer_list(self) -> list[str]:
        return _split_list(self.unicast_peers)

    @property
    def interface_list(self) -> list[str]:
        return _split_list(self.interfaces)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
