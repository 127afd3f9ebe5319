"""Core CRUMBS protocol: messages, frame encoding, contexts and dispatch.

A frame on the wire is ``[type_id][opcode][data_len][data...][crc8]``.
The message address is never serialized.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional

MAX_PAYLOAD = 27
FRAME_OVERHEAD = 4
MESSAGE_MAX_SIZE = MAX_PAYLOAD + FRAME_OVERHEAD
CMD_SET_REPLY = 0xFE
MAX_HANDLERS = 16

_CRC8_POLY = 0x07


class Role(IntEnum):
    """Role of a CRUMBS endpoint on the I2C bus."""

    CONTROLLER = 0
    PERIPHERAL = 1


class CrumbsError(Exception):
    """Base class for CRUMBS errors."""


class DecodeError(CrumbsError):
    """A frame is too short, malformed or a field lies outside the payload."""


class CrcError(DecodeError):
    """A frame's CRC does not match its contents."""


class HandlerTableFull(CrumbsError):
    """No free slot is left in a handler table."""


def _check_range(value: int, bits: int) -> int:
    if not 0 <= value < (1 << bits):
        raise ValueError(f"value {value!r} does not fit in {bits} unsigned bits")
    return value


@dataclass
class Message:
    """A CRUMBS message; ``data`` holds at most MAX_PAYLOAD bytes."""

    type_id: int = 0
    opcode: int = 0
    data: bytearray = field(default_factory=bytearray)
    address: int = 0

    def __post_init__(self) -> None:
        _check_range(self.type_id, 8)
        _check_range(self.opcode, 8)
        self.data = bytearray(self.data)
        if len(self.data) > MAX_PAYLOAD:
            raise ValueError(f"payload longer than {MAX_PAYLOAD} bytes")

    @property
    def data_len(self) -> int:
        return len(self.data)

    def _append(self, raw: bytes) -> "Message":
        if len(self.data) + len(raw) > MAX_PAYLOAD:
            raise ValueError(f"payload would exceed {MAX_PAYLOAD} bytes")
        self.data.extend(raw)
        return self

    def add_u8(self, value: int) -> "Message":
        """Append one byte."""
        return self._append(struct.pack("<B", _check_range(value, 8)))

    def add_u16(self, value: int) -> "Message":
        """Append a little-endian 16-bit value."""
        return self._append(struct.pack("<H", _check_range(value, 16)))

    def add_u32(self, value: int) -> "Message":
        """Append a little-endian 32-bit value."""
        return self._append(struct.pack("<I", _check_range(value, 32)))


def _read(fmt: str, data: bytes, offset: int) -> int:
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        raise DecodeError(f"cannot read {size} byte(s) at offset {offset} of {len(data)}")
    return struct.unpack_from(fmt, data, offset)[0]


def read_u8(data: bytes, offset: int) -> int:
    """Read one byte at ``offset``."""
    return _read("<B", data, offset)


def read_u16(data: bytes, offset: int) -> int:
    """Read a little-endian 16-bit value at ``offset``."""
    return _read("<H", data, offset)


def read_u32(data: bytes, offset: int) -> int:
    """Read a little-endian 32-bit value at ``offset``."""
    return _read("<I", data, offset)


def crc8(data: bytes) -> int:
    """CRC-8 with polynomial 0x07 and initial value 0."""
    crc = 0
    for byte in data:
        crc ^= byte
        for _ in range(8):
            crc = ((crc << 1) ^ _CRC8_POLY) & 0xFF if crc & 0x80 else (crc << 1) & 0xFF
    return crc


def encode_message(msg: Message) -> bytes:
    """Serialize ``msg`` into a wire frame of 4 + data_len bytes."""
    if msg.data_len > MAX_PAYLOAD:
        raise ValueError(f"payload longer than {MAX_PAYLOAD} bytes")
    body = bytes((msg.type_id, msg.opcode, msg.data_len)) + bytes(msg.data)
    return body + bytes((crc8(body),))


def decode_message(buffer: bytes, ctx: Optional["Context"] = None) -> Message:
    """Parse a wire frame; bytes after the CRC are ignored.

    When ``ctx`` is given its CRC statistics are updated.
    """
    buffer = bytes(buffer)
    if len(buffer) < FRAME_OVERHEAD:
        raise DecodeError("frame shorter than the minimum of 4 bytes")
    data_len = buffer[2]
    if data_len > MAX_PAYLOAD:
        raise DecodeError(f"data length {data_len} exceeds {MAX_PAYLOAD}")
    frame_len = FRAME_OVERHEAD + data_len
    if len(buffer) < frame_len:
        raise DecodeError("frame shorter than its declared length")
    body = buffer[: frame_len - 1]
    ok = crc8(body) == buffer[frame_len - 1]
    if ctx is not None:
        ctx.last_crc_ok = ok
        if not ok:
            ctx.crc_error_count += 1
    if not ok:
        raise CrcError("CRC mismatch")
    return Message(type_id=buffer[0], opcode=buffer[1], data=bytearray(body[3:]))


MessageCallback = Callable[["Context", Message], None]
RequestCallback = Callable[["Context"], Optional[Message]]
Handler = Callable[["Context", int, bytes, Any], None]
ReplyHandler = Callable[["Context", Any], Optional[Message]]


class Context:
    """State and configuration for one CRUMBS endpoint.

    Command handlers are called as ``fn(ctx, opcode, data, user_data)``.
    Reply handlers are called as ``fn(ctx, user_data)`` and return the reply
    Message; ``on_request(ctx)`` does the same as a fallback.
    """

    def __init__(
        self,
        role: Role = Role.CONTROLLER,
        address: int = 0,
        max_handlers: int = MAX_HANDLERS,
    ) -> None:
        self.role = Role(role)
        self.address = _check_range(address, 8) if self.role is Role.PERIPHERAL else 0
        self.max_handlers = max_handlers
        self.crc_error_count = 0
        self.last_crc_ok = True
        self.on_message: Optional[MessageCallback] = None
        self.on_request: Optional[RequestCallback] = None
        self.user_data: Any = None
        self.requested_opcode = 0
        self._handlers: dict[int, tuple[Handler, Any]] = {}
        self._reply_handlers: dict[int, tuple[ReplyHandler, Any]] = {}

    def set_callbacks(
        self,
        on_message: Optional[MessageCallback],
        on_request: Optional[RequestCallback],
        user_data: Any = None,
    ) -> None:
        """Install callbacks and user data; pass None for unused callbacks."""
        self.on_message = on_message
        self.on_request = on_request
        self.user_data = user_data

    def _register(self, table: dict, opcode: int, fn: Optional[Callable], user_data: Any) -> None:
        _check_range(opcode, 8)
        if fn is None:
            table.pop(opcode, None)
            return
        if opcode not in table and len(table) >= self.max_handlers:
            raise HandlerTableFull(f"handler table holds at most {self.max_handlers} entries")
        table[opcode] = (fn, user_data)

    def register_handler(self, opcode: int, fn: Optional[Handler], user_data: Any = None) -> None:
        """Register (or with ``fn=None`` remove) the handler for ``opcode``."""
        self._register(self._handlers, opcode, fn, user_data)

    def unregister_handler(self, opcode: int) -> None:
        """Remove the handler for ``opcode`` if there is one."""
        self._register(self._handlers, opcode, None, None)

    def register_reply_handler(
        self, opcode: int, fn: Optional[ReplyHandler], user_data: Any = None
    ) -> None:
        """Register (or with ``fn=None`` remove) the reply builder for a GET opcode."""
        self._register(self._reply_handlers, opcode, fn, user_data)

    def handle_receive(self, buffer: bytes) -> Message:
        """Decode a received frame and dispatch it; returns the decoded message.

        SET_REPLY frames only update ``requested_opcode`` and are not dispatched.
        """
        msg = decode_message(buffer, self)
        if msg.opcode == CMD_SET_REPLY:
            if msg.data_len >= 1:
                self.requested_opcode = msg.data[0]
            return msg
        if self.on_message is not None:
            self.on_message(self, msg)
        entry = self._handlers.get(msg.opcode)
        if entry is not None:
            fn, user_data = entry
            fn(self, msg.opcode, bytes(msg.data), user_data)
        return msg

    def build_reply(self) -> bytes:
        """Build the encoded reply frame for the current ``requested_opcode``.

        A matching reply handler wins over ``on_request``; with neither, or
        when the callback produces no message, the result is empty.
        """
        entry = self._reply_handlers.get(self.requested_opcode)
        if entry is not None:
            fn, user_data = entry
            reply = fn(self, user_data)
        elif self.on_request is not None:
            reply = self.on_request(self)
        else:
            return b""
        return b"" if reply is None else encode_message(reply)

    def reset_crc_stats(self) -> None:
        """Clear the CRC error count and mark the last CRC as good."""
        self.crc_error_count = 0
        self.last_crc_ok = True


@dataclass
class Device:
    """Everything needed to talk to one CRUMBS device on the bus."""

    ctx: Context
    addr: int
    write_fn: Callable[..., Any]
    read_fn: Optional[Callable[..., Any]] = None
    delay_fn: Optional[Callable[[int], Any]] = None
    io: Any = None


def controller_send(
    ctx: Context,
    target_addr: int,
    msg: Message,
    write_fn: Callable[[Any, int, bytes], Any],
    write_ctx: Any = None,
) -> None:
    """Encode ``msg`` and write it to ``target_addr`` via ``write_fn(io, addr, frame)``.

    A non-zero integer status from ``write_fn`` raises CrumbsError.
    """
    if ctx is None or write_fn is None:
        raise CrumbsError("controller_send needs a context and a write function")
    _check_range(target_addr, 7)
    status = write_fn(write_ctx, target_addr, encode_message(msg))
    if isinstance(status, int) and status != 0:
        raise CrumbsError(f"I2C write to 0x{target_addr:02X} failed ({status})")


def controller_read(
    ctx: Context,
    target_addr: int,
    read_fn: Callable[[Any, int, int, int], Any],
    read_ctx: Any = None,
) -> Message:
    """Read and decode a reply frame via ``read_fn(io, addr, length, timeout_us)``."""
    if ctx is None or read_fn is None:
        raise CrumbsError("controller_read needs a context and a read function")
    _check_range(target_addr, 7)
    raw = read_fn(read_ctx, target_addr, MESSAGE_MAX_SIZE, 0)
    if isinstance(raw, int):
        raise CrumbsError(f"I2C read from 0x{target_addr:02X} failed ({raw})")
    raw = bytes(raw)
    if len(raw) < FRAME_OVERHEAD:
        raise DecodeError("short read")
    return decode_message(raw, ctx)