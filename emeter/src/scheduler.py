"""
Transmission scheduler: the emulator's main send loop.

Each cycle obtains a snapshot from the measurement source, stamps the current
time, assembles and verifies the datagram in the reusable buffer, and sends it
from every local interface to every destination of the socket strategy.

Failure policy per cycle:

- Malformed feed line: logged, cycle skipped, loop continues.
- Send error or short send: logged for that destination only; the other
  destinations and interfaces are still served.
- Assembly mismatch (:class:`~emeter.src.assembler.AssemblyError`): fatal,
  raised out of :meth:`TransmissionScheduler.run`.  It is deterministic and
  would corrupt every following datagram identically.
- Anything else: logged with traceback, loop continues.

Static sources are paced by ``interval_ms``; feed sources are paced by input
lines (no sleep).  Shutdown is checked between cycles.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol

from emeter.src.assembler import AssemblyError
from emeter.src.source import FeedLineError

if TYPE_CHECKING:
    from emeter.src.assembler import EmeterPacketAssembler
    from emeter.src.health import HealthWriter
    from emeter.src.models import DeviceIdentity, MeasurementSnapshot
    from emeter.src.transport import SocketFactory


class MeasurementSource(Protocol):
    """Anything that yields one snapshot per cycle."""

    paced_by_input: bool

    async def next(self) -> MeasurementSnapshot | None: ...


class TransmissionScheduler:
    """Periodic assemble-and-send loop.

    The packet buffer is allocated once here and overwritten in place by the
    assembler on every cycle.

    Args:
        source: Measurement source (static or feed).
        assembler: Packet assembler bound to the configured frame.
        identity: Device identity written into every datagram.
        sockets: Socket factory providing per-interface send sockets.
        interfaces: Callable returning the local IPv4 addresses to send from;
            called every cycle so interface changes are picked up.
        interval_ms: Pause between cycles for sources not paced by input.
        health: HealthWriter instance, or None to skip health writes.
        clock: Returns seconds since the epoch; injectable for tests.
        logger: Logger to report through; defaults to the module logger.
    """

    def __init__(
        self,
        *,
        source: MeasurementSource,
        assembler: EmeterPacketAssembler,
        identity: DeviceIdentity,
        sockets: SocketFactory,
        interfaces: Callable[[], Sequence[str]],
        interval_ms: int = 1000,
        health: HealthWriter | None = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._source = source
        self._assembler = assembler
        self._identity = identity
        self._sockets = sockets
        self._interfaces = interfaces
        self._interval_s = interval_ms / 1000.0
        self._health = health
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._buffer = assembler.frame.allocate()
        self._cycles = 0

    @property
    def buffer(self) -> bytes:
        """Copy of the current datagram."""
        return bytes(self._buffer)

    @property
    def cycles(self) -> int:
        """Number of datagrams assembled so far."""
        return self._cycles

    # ------------------------------------------------------------------
    # Single cycle
    # ------------------------------------------------------------------

    async def cycle_once(self) -> bool:
        """Run one read-assemble-send cycle.

        Returns:
            False when the source reports end of input, True otherwise
            (including skipped cycles).

        Raises:
            AssemblyError: If the assembled packet does not end at the
                expected offset.
        """
        try:
            snapshot = await self._source.next()
        except FeedLineError as exc:
            self._logger.warning("Skipping cycle, rejected feed line: %s", exc)
            if self._health is not None:
                self._health.record_skip()
            return True

        if snapshot is None:
            return False

        timestamp_ms = int(self._clock() * 1000)
        self._assembler.assemble(self._buffer, snapshot, self._identity, timestamp_ms)
        self._assembler.verify()
        self._cycles += 1

        sent, failed = self._send_all()
        if self._health is not None:
            try:
                self._health.record_cycle(sent=sent, failed=failed)
            except OSError:
                self._logger.warning("Failed to write health file", exc_info=True)
        return True

    def _send_all(self) -> tuple[int, int]:
        """Send the buffer from every interface to every destination.

        Returns:
            ``(sent, failed)`` counts.
        """
        # Sockets only ever see an immutable copy of the buffer.
        data = bytes(self._buffer)
        destinations = self._sockets.destinations()
        sent = failed = 0

        interfaces = list(self._interfaces())
        if not interfaces:
            self._logger.warning("No local IPv4 interface available, nothing sent")
            return sent, failed

        for interface in interfaces:
            try:
                sock = self._sockets.get_send_socket(interface)
            except OSError:
                self._logger.error(
                    "Cannot open send socket on interface %s",
                    interface,
                    exc_info=True,
                )
                failed += len(destinations)
                continue

            for destination in destinations:
                self._logger.debug(
                    "Broadcast sma emeter packet to %s:%d (via interface %s)",
                    destination[0],
                    destination[1],
                    interface,
                )
                try:
                    nbytes = sock.send(data, destination)
                except OSError as exc:
                    self._logger.error(
                        "Cannot send udp packet to %s via %s: %s",
                        destination[0],
                        interface,
                        exc,
                    )
                    failed += 1
                    continue
                if nbytes != len(data):
                    self._logger.warning(
                        "Short send to %s via %s: %d of %d bytes",
                        destination[0],
                        interface,
                        nbytes,
                        len(data),
                    )
                    failed += 1
                else:
                    sent += 1

        self._logger.info(
            "Cycle %d: sent %d datagram(s), %d failed", self._cycles, sent, failed
        )
        return sent, failed

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run cycles until end of input or until *shutdown_event* is set.

        In feed mode a pending line read is not interrupted; shutdown takes
        effect once that read returns.

        Raises:
            AssemblyError: Propagated from the first failing cycle.
        """
        self._logger.info(
            "Transmission loop started (%s)",
            "paced by input"
            if self._source.paced_by_input
            else f"interval={self._interval_s}s",
        )
        while not shutdown_event.is_set():
            try:
                more = await self.cycle_once()
            except AssemblyError:
                raise
            except Exception:
                self._logger.error("Transmission cycle error", exc_info=True)
                more = True

            if not more:
                self._logger.info("End of input reached")
                break

            if not self._source.paced_by_input:
                # Use wait with timeout so we can check shutdown between sleeps
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        shutdown_event.wait(),
                        timeout=self._interval_s,
                    )
        self._logger.info("Transmission loop stopped after %d cycles", self._cycles)
