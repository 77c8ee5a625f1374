"""
Health file writer for the emeter emulator.

Writes a JSON health file at a configurable path with four fields:
- last_send_ts: ISO timestamp of the most recent cycle with a successful send.
- packets_sent: Datagrams handed to the network since startup.
- send_failures: Failed or short sends since startup.
- skipped_cycles: Cycles skipped because of malformed feed input.

The file is rewritten after every cycle, providing a simple liveness signal
that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-18: Track send counters instead of poll/upload timestamps

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes emulator health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_send_ts: str | None = None
        self._packets_sent: int = 0
        self._send_failures: int = 0
        self._skipped_cycles: int = 0

    def record_cycle(self, *, sent: int, failed: int) -> None:
        """Record the outcome of one transmission cycle and write the file.

        Args:
            sent: Datagrams sent in full during the cycle.
            failed: Sends that raised or were short.
        """
        self._packets_sent += sent
        self._send_failures += failed
        if sent:
            self._last_send_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def record_skip(self) -> None:
        """Record a skipped cycle and write health file."""
        self._skipped_cycles += 1
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_send_ts": self._last_send_ts,
            "packets_sent": self._packets_sent,
            "send_failures": self._send_failures,
            "skipped_cycles": self._skipped_cycles,
        }
        self.path.write_text(json.dumps(data))
