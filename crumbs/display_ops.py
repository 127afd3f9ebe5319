"""Commands and queries for the quad 7-segment display device (type 0x04).

SET operations show a number, raw segment patterns or a brightness level,
or clear the display. The displayed value is fetched with the SET_REPLY
pattern.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .core import (
    CMD_SET_REPLY,
    CrumbsError,
    DecodeError,
    Device,
    Message,
    controller_read,
    controller_send,
    read_u8,
    read_u16,
)
from .mock_ops import QUERY_DELAY_US

TYPE_ID = 0x04

MODULE_VER_MAJOR = 1
MODULE_VER_MINOR = 0
MODULE_VER_PATCH = 0

OP_SET_NUMBER = 0x01
OP_SET_SEGMENTS = 0x02
OP_SET_BRIGHTNESS = 0x03
OP_CLEAR = 0x04
OP_GET_VALUE = 0x80

DIGIT_COUNT = 4
VALUE_REPLY_LEN = 4


@dataclass(frozen=True)
class DisplayValue:
    """Reply to OP_GET_VALUE."""

    number: int
    decimal_pos: int
    brightness: int


def build_set_number(number: int, decimal_pos: int) -> Message:
    """Build a message showing ``number`` with a decimal point on digit ``decimal_pos`` (0 = none)."""
    return Message(type_id=TYPE_ID, opcode=OP_SET_NUMBER).add_u16(number).add_u8(decimal_pos)


def build_set_segments(segments: Iterable[int]) -> Message:
    """Build a message setting raw segment patterns for all four digits."""
    patterns = list(segments)
    if len(patterns) != DIGIT_COUNT:
        raise ValueError(f"exactly {DIGIT_COUNT} segment patterns are needed, got {len(patterns)}")
    msg = Message(type_id=TYPE_ID, opcode=OP_SET_SEGMENTS)
    for pattern in patterns:
        msg.add_u8(pattern)
    return msg


def build_set_brightness(level: int) -> Message:
    """Build a message setting the brightness level (0 = off, 1-10)."""
    return Message(type_id=TYPE_ID, opcode=OP_SET_BRIGHTNESS).add_u8(level)


def build_clear() -> Message:
    """Build a message clearing the display."""
    return Message(type_id=TYPE_ID, opcode=OP_CLEAR)


def build_get_value() -> Message:
    """Build a SET_REPLY message asking for the displayed value."""
    return Message(type_id=TYPE_ID, opcode=CMD_SET_REPLY).add_u8(OP_GET_VALUE)


def parse_get_value(data: bytes) -> DisplayValue:
    """Parse a GET_VALUE reply payload ``[number:u16][decimal_pos:u8][brightness:u8]``."""
    data = bytes(data)
    if len(data) < VALUE_REPLY_LEN:
        raise DecodeError(f"value reply needs {VALUE_REPLY_LEN} bytes, got {len(data)}")
    return DisplayValue(
        number=read_u16(data, 0),
        decimal_pos=read_u8(data, 2),
        brightness=read_u8(data, 3),
    )


def _send(dev: Device, msg: Message) -> None:
    controller_send(dev.ctx, dev.addr, msg, dev.write_fn, dev.io)


def send_set_number(dev: Device, number: int, decimal_pos: int) -> None:
    """Show ``number`` with an optional decimal point."""
    _send(dev, build_set_number(number, decimal_pos))


def send_set_segments(dev: Device, segments: Iterable[int]) -> None:
    """Set raw segment patterns for all four digits."""
    _send(dev, build_set_segments(segments))


def send_set_brightness(dev: Device, level: int) -> None:
    """Set the display brightness."""
    _send(dev, build_set_brightness(level))


def send_clear(dev: Device) -> None:
    """Turn all segments off."""
    _send(dev, build_clear())


def query_value(dev: Device) -> None:
    """Ask the peripheral to stage its displayed value."""
    _send(dev, Message(type_id=0, opcode=CMD_SET_REPLY).add_u8(OP_GET_VALUE))


def get_value(dev: Device) -> DisplayValue:
    """Query and return the displayed number, decimal position and brightness."""
    query_value(dev)
    if dev.delay_fn is not None:
        dev.delay_fn(QUERY_DELAY_US)
    reply = controller_read(dev.ctx, dev.addr, dev.read_fn, dev.io)
    if reply.type_id != TYPE_ID or reply.opcode != OP_GET_VALUE:
        raise CrumbsError(
            f"unexpected reply type 0x{reply.type_id:02X} opcode 0x{reply.opcode:02X}"
        )
    return parse_get_value(bytes(reply.data))