"""Interactive command shell for driving the mock device as a controller."""

from __future__ import annotations

import re
import string
import sys
from typing import IO, Iterable, Optional

from . import mock_ops
from .core import MAX_PAYLOAD, CrumbsError, Device
from .i2c import scan_for_crumbs

SCAN_START = 0x03
SCAN_END = 0x77
SCAN_TIMEOUT_US = 25000
SCAN_MAX_FOUND = 128
MAX_HEARTBEAT_MS = 0xFFFF
DEFAULT_PERIPHERAL_ADDR = 0x08

HELP_TEXT = """
=== Mock Controller Commands ===
  help                          - Show this help
  scan                          - Scan I2C bus for devices
  echo <hex bytes>              - Send echo data (e.g., 'echo DE AD BE EF')
  heartbeat <ms>                - Set heartbeat period in milliseconds
  toggle                        - Toggle heartbeat enable/disable
  status                        - Query heartbeat status and period
  getecho                       - Query stored echo data
  info                          - Query device info
  quit, exit                    - Exit the program
"""

_HEX_DIGITS = set(string.hexdigits)
_LEADING_NUMBER = re.compile(r"\s*([+-]?)(\d+)")


def parse_hex_bytes(text: str) -> bytes:
    """Parse whitespace-separated hex bytes, at most MAX_PAYLOAD of them.

    Each token contributes the value of its first one or two hex digits;
    the rest of the token is ignored. A token that does not start with a
    hex digit raises ValueError.
    """
    result = bytearray()
    for token in text.split():
        if len(result) >= MAX_PAYLOAD:
            break
        digits = ""
        for ch in token[:2]:
            if ch not in _HEX_DIGITS:
                break
            digits += ch
        if not digits:
            raise ValueError(f"Invalid hex byte at '{token}'")
        result.append(int(digits, 16))
    return bytes(result)


def _parse_period(text: str) -> int:
    """Read a leading decimal number the way an unsigned conversion would."""
    match = _LEADING_NUMBER.match(text)
    if match is None:
        return 0
    sign, digits = match.groups()
    value = int(digits)
    if sign == "-" and value:
        return MAX_HEARTBEAT_MS + 1
    return value


def _printable(data: bytes) -> str:
    return "".join(chr(b) if 32 <= b < 127 else f"<0x{b:02X}>" for b in data)


class MockShell:
    """Line-oriented shell that sends mock-device commands to ``dev``."""

    def __init__(
        self,
        dev: Device,
        out: Optional[IO[str]] = None,
        err: Optional[IO[str]] = None,
        peripheral_addr: int = DEFAULT_PERIPHERAL_ADDR,
    ) -> None:
        self.dev = dev
        self._out = out
        self._err = err
        self.peripheral_addr = peripheral_addr

    @property
    def out(self) -> IO[str]:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> IO[str]:
        return self._err if self._err is not None else sys.stderr

    def _say(self, text: str = "", end: str = "\n") -> None:
        print(text, end=end, file=self.out)

    def _fail(self, text: str) -> None:
        print(text, file=self.err)

    def execute(self, line: str) -> bool:
        """Run one command line; return False when the shell should stop."""
        line = line.strip()
        if not line:
            return True
        command, _, args = line.partition(" ")
        args = args.strip()

        if command == "help":
            self._say(HELP_TEXT)
        elif command in ("quit", "exit"):
            return False
        elif command == "scan":
            self._scan()
        elif command == "echo":
            self._echo(args)
        elif command == "heartbeat":
            self._heartbeat(args)
        elif command == "toggle":
            self._toggle()
        elif command == "status":
            self._query_and_print(mock_ops.OP_GET_STATUS, "Status")
        elif command == "getecho":
            self._query_and_print(mock_ops.OP_GET_ECHO, "Echo data")
        elif command == "info":
            self._query_and_print(mock_ops.OP_GET_INFO, "Device info")
        else:
            self._say(f"Unknown command: {command}")
            self._say("Type 'help' for available commands")
        return True

    def run(self, lines: Iterable[str]) -> None:
        """Show help, then execute lines until input ends or a quit command."""
        self._say(HELP_TEXT)
        for line in lines:
            self._say("> ", end="")
            if not self.execute(line):
                break
        self._say("\nExiting...")

    def _scan(self) -> None:
        self._say(f"Scanning for CRUMBS devices (0x{SCAN_START:02X}-0x{SCAN_END:02X})...")
        try:
            found = scan_for_crumbs(
                self.dev.ctx,
                SCAN_START,
                SCAN_END,
                False,
                self.dev.write_fn,
                self.dev.read_fn,
                self.dev.io,
                SCAN_MAX_FOUND,
                SCAN_TIMEOUT_US,
            )
        except CrumbsError as exc:
            self._fail(f"  ERROR: scan failed ({exc})")
            return
        if not found:
            self._say("  No CRUMBS devices found.")
            return
        self._say(f"  Found {len(found)} device(s):")
        for addr in found:
            suffix = " (Mock)" if addr == self.peripheral_addr else ""
            self._say(f"    0x{addr:02X}{suffix}")

    def _echo(self, args: str) -> None:
        try:
            data = parse_hex_bytes(args)
        except ValueError as exc:
            self._fail(f"Error: {exc}")
            return
        if not data:
            self._say("Usage: echo <hex bytes>  (e.g., 'echo DE AD BE EF')")
            return
        try:
            mock_ops.send_echo(self.dev, data)
        except CrumbsError as exc:
            self._fail(f"Error: Failed to send echo ({exc})")
            return
        self._say(f"OK: Sent echo data ({len(data)} bytes)")

    def _heartbeat(self, args: str) -> None:
        if not args:
            self._say("Usage: heartbeat <ms>  (e.g., 'heartbeat 500')")
            return
        period = _parse_period(args)
        if period > MAX_HEARTBEAT_MS:
            self._fail("Error: Period must be 0-65535 ms")
            return
        try:
            mock_ops.send_heartbeat(self.dev, period)
        except CrumbsError as exc:
            self._fail(f"Error: Failed to send heartbeat command ({exc})")
            return
        self._say(f"OK: Set heartbeat period to {period} ms")

    def _toggle(self) -> None:
        try:
            mock_ops.send_toggle(self.dev)
        except CrumbsError as exc:
            self._fail(f"Error: Failed to send toggle ({exc})")
            return
        self._say("OK: Sent toggle command")

    def _query_and_print(self, opcode: int, label: str) -> None:
        self._say(f"{label}: ", end="")
        try:
            if opcode == mock_ops.OP_GET_ECHO:
                data = mock_ops.get_echo(self.dev)
                self._say(_printable(data))
                if data:
                    self._say("  Hex: " + "".join(f"{b:02X} " for b in data))
            elif opcode == mock_ops.OP_GET_STATUS:
                status = mock_ops.get_status(self.dev)
                state = "ENABLED" if status.state else "DISABLED"
                self._say(f"Heartbeat: {state}, Period: {status.period_ms} ms")
            elif opcode == mock_ops.OP_GET_INFO:
                info = mock_ops.get_info(self.dev)
                self._say(_printable(info.encode("latin-1")))
            else:
                self._fail(f"Error: Unknown query opcode 0x{opcode:02X}")
        except CrumbsError as exc:
            what = {
                mock_ops.OP_GET_ECHO: "echo",
                mock_ops.OP_GET_STATUS: "status",
                mock_ops.OP_GET_INFO: "info",
            }[opcode]
            self._fail(f"Error: Failed to get {what} ({exc})")