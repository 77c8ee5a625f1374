"""
Shared test fixtures for emeter emulator tests.

All emulator env vars are cleaned before each test to ensure isolation, and
the working directory is switched to a temporary path so no ``.env`` file is
picked up by Pydantic BaseSettings.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from emeter.src.assembler import EmeterPacketAssembler
from emeter.src.frame import PacketFrame, ProtocolVariant, default_packet_size
from emeter.src.main import reference_snapshot
from emeter.src.models import DeviceIdentity, MeasurementSnapshot
from emeter.src.obis import channel_layout

# All EmeterSettings environment variable names, used for cleanup.
_ALL_EMETER_ENV_VARS = (
    "SUSY_ID",
    "SERIAL_NUMBER",
    "INCLUDE_FREQUENCY",
    "EXTENDED_PROTOCOL",
    "PACKET_SIZE",
    "FIRMWARE_VERSION",
    "SOCKET_STRATEGY",
    "UNICAST_PEERS",
    "INTERFACES",
    "INTERVAL_MS",
    "INPUT_MODE",
    "FEED_PATH",
    "FEED_POWER_FACTOR",
    "NOMINAL_FREQUENCY",
    "LOG_LEVEL",
    "HEALTH_PATH",
)


@pytest.fixture(autouse=True)
def _clean_emeter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all emulator env vars and isolate from .env files before each test."""
    for var in _ALL_EMETER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def identity() -> DeviceIdentity:
    """Energy Meter 2.0 identity used by the reference captures."""
    return DeviceIdentity(susy_id=349, serial_number=1901567274)


@pytest.fixture()
def frequency_assembler() -> EmeterPacketAssembler:
    """Assembler for the 608-byte classic packet with frequency."""
    frame = PacketFrame.create(
        default_packet_size(include_frequency=True, extended=False),
        ProtocolVariant.EMETER,
    )
    return EmeterPacketAssembler(frame, channel_layout(include_frequency=True))


@pytest.fixture()
def reference() -> MeasurementSnapshot:
    """Reference scenario snapshot with firmware 2.03.4.R."""
    return reference_snapshot("2.03.4.R")
