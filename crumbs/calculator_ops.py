"""Commands and queries for the 32-bit integer calculator device (type 0x03).

SET operations run a calculation on the peripheral. GET values (last
result, history metadata and the twelve history slots) are fetched with
the SET_REPLY pattern.
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
    read_u32,
)
from .mock_ops import QUERY_DELAY_US

TYPE_ID = 0x03

MODULE_VER_MAJOR = 1
MODULE_VER_MINOR = 0
MODULE_VER_PATCH = 0

OP_ADD = 0x01
OP_SUB = 0x02
OP_MUL = 0x03
OP_DIV = 0x04

OP_GET_RESULT = 0x80
OP_GET_HIST_META = 0x81
OP_GET_HIST_0 = 0x82
HISTORY_SIZE = 12
OP_GET_HIST_LAST = OP_GET_HIST_0 + HISTORY_SIZE - 1

DIV_BY_ZERO_RESULT = 0xFFFFFFFF
HIST_ENTRY_LEN = 16


@dataclass(frozen=True)
class HistMeta:
    """Reply to OP_GET_HIST_META."""

    count: int
    write_pos: int


@dataclass(frozen=True)
class HistEntry:
    """One history slot: operation name, operands and result."""

    op: str
    a: int
    b: int
    result: int


def _send(dev: Device, msg: Message) -> None:
    controller_send(dev.ctx, dev.addr, msg, dev.write_fn, dev.io)


def _send_binary(dev: Device, opcode: int, a: int, b: int) -> None:
    _send(dev, Message(type_id=TYPE_ID, opcode=opcode).add_u32(a).add_u32(b))


def send_add(dev: Device, a: int, b: int) -> None:
    """Ask the calculator to compute a + b."""
    _send_binary(dev, OP_ADD, a, b)


def send_sub(dev: Device, a: int, b: int) -> None:
    """Ask the calculator to compute a - b."""
    _send_binary(dev, OP_SUB, a, b)


def send_mul(dev: Device, a: int, b: int) -> None:
    """Ask the calculator to compute a * b."""
    _send_binary(dev, OP_MUL, a, b)


def send_div(dev: Device, a: int, b: int) -> None:
    """Ask the calculator to compute a / b (division by zero gives 0xFFFFFFFF)."""
    _send_binary(dev, OP_DIV, a, b)


def _query(dev: Device, opcode: int) -> None:
    _send(dev, Message(type_id=0, opcode=CMD_SET_REPLY).add_u8(opcode))


def _check_entry_index(entry_idx: int) -> int:
    if not 0 <= entry_idx < HISTORY_SIZE:
        raise ValueError(f"history index {entry_idx!r} is outside 0-{HISTORY_SIZE - 1}")
    return entry_idx


def query_result(dev: Device) -> None:
    """Ask the peripheral to stage the last result."""
    _query(dev, OP_GET_RESULT)


def query_hist_meta(dev: Device) -> None:
    """Ask the peripheral to stage the history metadata."""
    _query(dev, OP_GET_HIST_META)


def query_hist_entry(dev: Device, entry_idx: int) -> None:
    """Ask the peripheral to stage history slot ``entry_idx`` (0-11)."""
    _query(dev, OP_GET_HIST_0 + _check_entry_index(entry_idx))


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


def get_result(dev: Device) -> int:
    """Query and return the last calculation result."""
    return read_u32(bytes(_fetch(dev, OP_GET_RESULT).data), 0)


def get_hist_meta(dev: Device) -> HistMeta:
    """Query and return the history entry count and next write slot."""
    data = bytes(_fetch(dev, OP_GET_HIST_META).data)
    return HistMeta(count=read_u8(data, 0), write_pos=read_u8(data, 1))


def get_hist_entry(dev: Device, entry_idx: int) -> HistEntry:
    """Query and return history slot ``entry_idx``.

    An empty or malformed slot raises CrumbsError.
    """
    opcode = OP_GET_HIST_0 + _check_entry_index(entry_idx)
    data = bytes(_fetch(dev, opcode).data)
    if len(data) < HIST_ENTRY_LEN:
        raise CrumbsError(f"history slot {entry_idx} is empty or malformed")
    op = data[:4].decode("latin-1").split("\0", 1)[0]
    return HistEntry(
        op=op,
        a=read_u32(data, 4),
        b=read_u32(data, 8),
        result=read_u32(data, 12),
    )