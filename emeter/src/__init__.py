"""
Speedwire emeter emulator package.

Emulates a three-phase SMA Energy Meter: assembles Speedwire emeter datagrams
from static or live measurement values and sends them over UDP from every
local interface, so monitoring tools that expect real meter traffic can
consume them.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
