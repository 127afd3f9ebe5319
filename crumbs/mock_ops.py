"""Commands and queries for the mock demonstration device (type 0x10).

SET commands are fire-and-forget writes. GET values are fetched with the
SET_REPLY pattern: a SET_REPLY frame names the wanted opcode, then the
controller waits briefly and reads the reply frame.
"""

from __future__ import annotations

from dataclasses import dataclass

from .core import (
    CMD_SET_REPLY,
    CrumbsError,
    Device,
    Message,
    controller_read,
    controller_send,
    read_u8,
    read_u16,
)

TYPE_ID = 0x10

OP_ECHO = 0x01
OP_SET_HEARTBEAT = 0x02
OP_TOGGLE = 0x03
OP_GET_ECHO = 0x80
OP_GET_STATUS = 0x81
OP_GET_INFO = 0x82

QUERY_DELAY_US = 10_000
"""Time given to the peripheral to stage its reply after a SET_REPLY write."""


@dataclass(frozen=True)
class MockStatus:
    """Reply to OP_GET_STATUS."""

    state: int
    period_ms: int


def _send(dev: Device, msg: Message) -> None:
    controller_send(dev.ctx, dev.addr, msg, dev.write_fn, dev.io)


def send_echo(dev: Device, data: bytes) -> None:
    """Send bytes for the peripheral to store and echo back later."""
    _send(dev, Message(type_id=TYPE_ID, opcode=OP_ECHO, data=bytearray(data)))


def send_heartbeat(dev: Device, period_ms: int) -> None:
    """Set the LED heartbeat period in milliseconds (0-65535)."""
    _send(dev, Message(type_id=TYPE_ID, opcode=OP_SET_HEARTBEAT).add_u16(period_ms))


def send_toggle(dev: Device) -> None:
    """Flip the heartbeat enable flag."""
    _send(dev, Message(type_id=TYPE_ID, opcode=OP_TOGGLE))


def _query(dev: Device, opcode: int) -> None:
    _send(dev, Message(type_id=TYPE_ID, opcode=CMD_SET_REPLY).add_u8(opcode))


def query_echo(dev: Device) -> None:
    """Ask the peripheral to stage its stored echo data."""
    _query(dev, OP_GET_ECHO)


def query_status(dev: Device) -> None:
    """Ask the peripheral to stage its status."""
    _query(dev, OP_GET_STATUS)


def query_info(dev: Device) -> None:
    """Ask the peripheral to stage its device info."""
    _query(dev, OP_GET_INFO)


def _fetch(dev: Device, opcode: int) -> Message:
    _query(dev, opcode)
    if dev.delay_fn is not None:
        dev.delay_fn(QUERY_DELAY_US)
    reply = controller_read(dev.ctx, dev.addr, dev.read_fn, dev.io)
    if reply.type_id != TYPE_ID or reply.opcode != opcode:
        raise CrumbsError(
            f"unexpected reply type 0x{reply.type_id:02X} opcode 0x{reply.opcode:02X}"
        )
    return reply


def get_echo(dev: Device) -> bytes:
    """Query and return the stored echo data."""
    return bytes(_fetch(dev, OP_GET_ECHO).data)


def get_status(dev: Device) -> MockStatus:
    """Query and return the heartbeat state and period."""
    data = bytes(_fetch(dev, OP_GET_STATUS).data)
    return MockStatus(state=read_u8(data, 0), period_ms=read_u16(data, 1))


def get_info(dev: Device) -> str:
    """Query and return the device info string."""
    return bytes(_fetch(dev, OP_GET_INFO).data).decode("latin-1")