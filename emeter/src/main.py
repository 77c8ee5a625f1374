"""
Emeter emulator entrypoint.

Loads configuration, resolves the packet frame, self-checks one reference
assembly, then runs the transmission loop until end of input (feed mode) or
SIGTERM/SIGINT.

Startup faults are fatal and exit with status 1 before any datagram is sent:
invalid settings (including an impossible packet size) and a channel layout
that does not end exactly at the end-of-data tag.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-18: Replace poll/upload loops with the emeter transmission loop
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TextIO

from pydantic import ValidationError

from emeter.src.assembler import AssemblyError, EmeterPacketAssembler
from emeter.src.frame import FrameConfigError, PacketFrame
from emeter.src.health import HealthWriter
from emeter.src.models import MeasurementSnapshot
from emeter.src.obis import SOFTWARE_VERSION, channel_layout
from emeter.src.scheduler import TransmissionScheduler
from emeter.src.source import DEFAULT_SCENARIO, FeedSource, StaticSource
from emeter.src.transport import SocketFactory, local_ipv4_addresses

if TYPE_CHECKING:
    from emeter.src.config import EmeterSettings
    from emeter.src.models import DeviceIdentity

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the emulator.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup.

    Args:
        settings: An EmeterSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Emeter emulator starting with config: "
        "susy_id=%s, serial_number=%s, include_frequency=%s, "
        "extended_protocol=%s, packet_size=%s, firmware_version=%s, "
        "socket_strategy=%s, unicast_peers=%s, interfaces=%s, "
        "interval_ms=%s, input_mode=%s, feed_path=%s, health_path=%s",
        settings.susy_id,  # type: ignore[attr-defined]
        settings.serial_number,  # type: ignore[attr-defined]
        settings.include_frequency,  # type: ignore[attr-defined]
        settings.extended_protocol,  # type: ignore[attr-defined]
        settings.packet_size,  # type: ignore[attr-defined]
        settings.firmware_version,  # type: ignore[attr-defined]
        settings.socket_strategy.value,  # type: ignore[attr-defined]
        settings.unicast_peers or "-",  # type: ignore[attr-defined]
        settings.interfaces or "all",  # type: ignore[attr-defined]
        settings.interval_ms,  # type: ignore[attr-defined]
        settings.input_mode,  # type: ignore[attr-defined]
        settings.feed_path,  # type: ignore[attr-defined]
        settings.health_path or "-",  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def reference_snapshot(firmware_version: str) -> MeasurementSnapshot:
    """Snapshot of the reference scenario with the given firmware version."""
    values: dict[str, float | str] = dict(DEFAULT_SCENARIO)
    values[SOFTWARE_VERSION.name] = firmware_version
    return MeasurementSnapshot(values=values)


def build_assembler(settings: EmeterSettings) -> EmeterPacketAssembler:
    """Resolve the frame and channel layout for *settings*.

    Raises:
        FrameConfigError: If the packet size is impossible.
    """
    frame = PacketFrame.create(settings.packet_size, settings.variant)  # type: ignore[arg-type]
    return EmeterPacketAssembler(
        frame,
        channel_layout(settings.include_frequency),
        logger=logging.getLogger("emeter.src.assembler"),
    )


def self_check(
    assembler: EmeterPacketAssembler,
    identity: DeviceIdentity,
    firmware_version: str,
) -> bytearray:
    """Assemble the reference snapshot once and verify it.

    Logs every decoded element at DEBUG level.

    Raises:
        AssemblyError: If the layout does not fill the frame exactly.
    """
    buffer = assembler.frame.allocate()
    assembler.assemble(buffer, reference_snapshot(firmware_version), identity, 0)
    assembler.verify()
    assembler.log_elements(buffer)
    logger.info(
        "Packet layout verified: %d bytes, %d elements, protocol id 0x%04x",
        assembler.frame.total_size,
        len(assembler.channels),
        assembler.frame.protocol_id,
    )
    return buffer


def build_source(
    settings: EmeterSettings, feed_stream: TextIO | None = None
) -> StaticSource | FeedSource:
    """Create the measurement source selected by ``input_mode``."""
    if settings.input_mode == "feed":
        if feed_stream is None:
            raise ValueError("Feed mode needs an input stream")
        return FeedSource(
            feed_stream,
            firmware_version=settings.firmware_version,
            power_factor=settings.feed_power_factor,
            frequency=settings.nominal_frequency,
        )
    return StaticSource(firmware_version=settings.firmware_version)


def build_scheduler(
    settings: EmeterSettings,
    *,
    sockets: SocketFactory,
    feed_stream: TextIO | None = None,
) -> TransmissionScheduler:
    """Wire source, assembler, sockets and health writer from *settings*.

    Raises:
        FrameConfigError: If the packet size is impossible.
        AssemblyError: If the reference assembly fails verification.
    """
    assembler = build_assembler(settings)
    self_check(assembler, settings.identity, settings.firmware_version)

    configured = settings.interface_list

    def _interfaces() -> list[str]:
        return configured or local_ipv4_addresses()

    health = HealthWriter(settings.health_path) if settings.health_path else None

    return TransmissionScheduler(
        source=build_source(settings, feed_stream),
        assembler=assembler,
        identity=settings.identity,
        sockets=sockets,
        interfaces=_interfaces,
        interval_ms=settings.interval_ms,
        health=health,
        logger=logging.getLogger("emeter.src.scheduler"),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main(settings: EmeterSettings) -> None:
    """Async entrypoint: build components and run the loop.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    sockets = SocketFactory(
        settings.socket_strategy,
        unicast_peers=settings.peer_list,
    )
    with contextlib.ExitStack() as stack:
        stack.callback(sockets.close)
        feed_stream: TextIO | None = None
        if settings.input_mode == "feed":
            if settings.feed_path == "-":
                feed_stream = sys.stdin
            else:
                feed_stream = stack.enter_context(
                    open(settings.feed_path, encoding="utf-8")  # noqa: SIM115
                )
        scheduler = build_scheduler(
            settings, sockets=sockets, feed_stream=feed_stream
        )
        await scheduler.run(shutdown_event)
    logger.info("Shutdown complete")


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the emulator."""
    from emeter.src.config import EmeterSettings

    configure_logging()
    try:
        settings = EmeterSettings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    log_config_summary(settings)

    try:
        asyncio.run(async_main(settings))
    except (FrameConfigError, AssemblyError) as exc:
        logger.error("Fatal packet configuration error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
