"""
UDP transport for Speedwire datagrams.

Provides local IPv4 interface discovery and one send socket per interface.
Two socket strategies are supported:

- ``multicast``: each socket sends to the Speedwire multicast group
  239.12.255.254:9522 with ``IP_MULTICAST_IF`` pinned to its interface.  The
  group is never joined, so no IGMP membership is required.
- ``unicast``: each socket sends to every configured peer.  Peers are not
  mapped to interfaces; a peer unreachable from one interface shows up as a
  per-destination send error on that interface only.

Send errors are raised to the caller, which decides per destination whether
to log and continue.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-18: Discover interfaces with psutil instead of host name resolution

TODO:
- None
"""

from __future__ import annotations

import enum
import logging
import socket
from collections.abc import Iterable

import psutil

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MULTICAST_GROUP: str = "239.12.255.254"
SPEEDWIRE_PORT: int = 9522
MULTICAST_TTL: int = 1
LOOPBACK_PREFIX: str = "127."


class SocketStrategy(str, enum.Enum):
    """How datagrams are addressed."""

    MULTICAST = "multicast"
    UNICAST = "unicast"


# ---------------------------------------------------------------------------
# Interface discovery
# ---------------------------------------------------------------------------


def local_ipv4_addresses() -> list[str]:
    """Return the non-loopback IPv4 addresses of every network interface, sorted."""
    addresses: set[str] = set()
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith(LOOPBACK_PREFIX):
                continue
            addresses.add(addr.address)
    if not addresses:
        logger.warning("No non-loopback IPv4 interface found")
    return sorted(addresses)


# ---------------------------------------------------------------------------
# Sockets
# ---------------------------------------------------------------------------


class SpeedwireSocket:
    """Non-blocking UDP send socket bound to one local interface.

    Args:
        interface: Local IPv4 address to send from.
        strategy: Socket strategy; multicast sockets pin the outgoing
            interface and TTL.
    """

    def __init__(self, interface: str, strategy: SocketStrategy) -> None:
        self.interface = interface
        self.strategy = strategy
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if strategy is SocketStrategy.MULTICAST:
                sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL
                )
                sock.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_MULTICAST_IF,
                    socket.inet_aton(interface),
                )
            sock.bind((interface, 0))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        self._sock = sock

    def send(self, data: bytes, destination: tuple[str, int]) -> int:
        """Send *data* to *destination*; returns the number of bytes sent."""
        return self._sock.sendto(data, destination)

    def close(self) -> None:
        self._sock.close()


class SocketFactory:
    """Creates and caches one :class:`SpeedwireSocket` per interface.

    Args:
        strategy: Socket strategy for every socket.
        unicast_peers: Peer addresses used by the unicast strategy.
        port: Destination UDP port.
    """

    def __init__(
        self,
        strategy: SocketStrategy,
        *,
        unicast_peers: Iterable[str] = (),
        port: int = SPEEDWIRE_PORT,
    ) -> None:
        self.strategy = strategy
        self._peers = list(unicast_peers)
        self._port = port
        self._sockets: dict[str, SpeedwireSocket] = {}
        if strategy is SocketStrategy.UNICAST and not self._peers:
            raise ValueError("Unicast strategy needs at least one peer address")

    def destinations(self) -> list[tuple[str, int]]:
        """Destination addresses every interface sends to."""
        if self.strategy is SocketStrategy.MULTICAST:
            return [(MULTICAST_GROUP, self._port)]
        return [(peer, self._port) for peer in self._peers]

    def get_send_socket(self, interface: str) -> SpeedwireSocket:
        """Return the cached socket for *interface*, creating it on first use.

        Raises:
            OSError: If the socket cannot be created or bound.
        """
        sock = self._sockets.get(interface)
        if sock is None:
            sock = SpeedwireSocket(interface, self.strategy)
            self._sockets[interface] = sock
            logger.info(
                "Opened %s send socket on interface %s",
                self.strategy.value,
                interface,
            )
        return sock

    def close(self) -> None:
        for sock in self._sockets.values():
            sock.close()
        self._sockets.clear()
