"""Mock demonstration peripheral: handler-based SETs and SET_REPLY GETs."""

from __future__ import annotations

from typing import Any

from .core import MAX_PAYLOAD, Context, DecodeError, Message, Role, read_u16
from .mock_ops import (
    OP_ECHO,
    OP_GET_ECHO,
    OP_GET_INFO,
    OP_GET_STATUS,
    OP_SET_HEARTBEAT,
    OP_TOGGLE,
    TYPE_ID,
)

DEFAULT_ADDRESS = 0x08
DEFAULT_HEARTBEAT_MS = 500
PULSE_WIDTH_MS = 50
INFO = "MockDev v1.0"


class MockPeripheral:
    """State of the mock device, wired to a peripheral Context."""

    def __init__(self, address: int = DEFAULT_ADDRESS) -> None:
        self.ctx = Context(Role.PERIPHERAL, address)
        self.state = 0
        self.heartbeat_ms = DEFAULT_HEARTBEAT_MS
        self.echo = b""
        self._last_pulse = 0
        self._led = False
        self.ctx.register_handler(OP_ECHO, self._on_echo)
        self.ctx.register_handler(OP_SET_HEARTBEAT, self._on_set_heartbeat)
        self.ctx.register_handler(OP_TOGGLE, self._on_toggle)
        self.ctx.set_callbacks(None, self._on_request)

    @property
    def address(self) -> int:
        return self.ctx.address

    def _on_echo(self, ctx: Context, opcode: int, data: bytes, user_data: Any) -> None:
        self.echo = bytes(data[:MAX_PAYLOAD])

    def _on_set_heartbeat(self, ctx: Context, opcode: int, data: bytes, user_data: Any) -> None:
        try:
            self.heartbeat_ms = read_u16(data, 0)
        except DecodeError:
            pass

    def _on_toggle(self, ctx: Context, opcode: int, data: bytes, user_data: Any) -> None:
        self.state ^= 1

    def _on_request(self, ctx: Context) -> Message:
        opcode = ctx.requested_opcode
        if opcode in (0, OP_GET_INFO):
            return Message(type_id=TYPE_ID, opcode=OP_GET_INFO, data=bytearray(INFO.encode("ascii")))
        if opcode == OP_GET_ECHO:
            return Message(type_id=TYPE_ID, opcode=OP_GET_ECHO, data=bytearray(self.echo))
        if opcode == OP_GET_STATUS:
            return (
                Message(type_id=TYPE_ID, opcode=OP_GET_STATUS)
                .add_u8(self.state)
                .add_u16(self.heartbeat_ms)
            )
        return Message(type_id=TYPE_ID, opcode=opcode)

    def receive(self, frame: bytes) -> Message:
        """Handle a frame written by the controller; returns the decoded message."""
        return self.ctx.handle_receive(frame)

    def reply(self) -> bytes:
        """Return the encoded reply frame for the current requested opcode."""
        return self.ctx.build_reply()

    def led_on(self, now_ms: int) -> bool:
        """Advance the heartbeat LED to time ``now_ms`` and return whether it is lit."""
        if self.state and self.heartbeat_ms > 0:
            elapsed = now_ms - self._last_pulse
            if elapsed >= self.heartbeat_ms:
                self._last_pulse = now_ms
                self._led = True
            elif elapsed >= PULSE_WIDTH_MS:
                self._led = False
        else:
            self._led = False
        return self._led