import pytest

from crumbs import mock_ops
from crumbs.core import (
    Context,
    CrumbsError,
    DecodeError,
    Device,
    Message,
    decode_message,
    encode_message,
)
from crumbs.mock_ops import MockStatus
from crumbs.mock_peripheral import MockPeripheral


class Bus:
    def __init__(self):
        self.peripheral = MockPeripheral()
        self.writes = []
        self.delays = []


def bus_write(io, addr, frame):
    io.writes.append((addr, bytes(frame)))
    if addr != io.peripheral.address:
        return -1
    io.peripheral.receive(frame)
    return 0


def bus_read(io, addr, length, timeout_us):
    return io.peripheral.reply()[:length]


def make_dev(bus, addr=0x08, read_fn=bus_read):
    return Device(
        ctx=Context(),
        addr=addr,
        write_fn=bus_write,
        read_fn=read_fn,
        delay_fn=bus.delays.append,
        io=bus,
    )


def test_echo_round_trip():
    bus = Bus()
    dev = make_dev(bus)
    mock_ops.send_echo(dev, b"\xde\xad\xbe\xef")
    assert mock_ops.get_echo(dev) == b"\xde\xad\xbe\xef"


def test_echo_too_long_rejected():
    dev = make_dev(Bus())
    with pytest.raises(ValueError):
        mock_ops.send_echo(dev, bytes(28))


def test_default_status():
    dev = make_dev(Bus())
    assert mock_ops.get_status(dev) == MockStatus(state=0, period_ms=500)


def test_heartbeat_and_toggle_reflected_in_status():
    dev = make_dev(Bus())
    mock_ops.send_heartbeat(dev, 1234)
    mock_ops.send_toggle(dev)
    assert mock_ops.get_status(dev) == MockStatus(state=1, period_ms=1234)


def test_heartbeat_out_of_range():
    dev = make_dev(Bus())
    with pytest.raises(ValueError):
        mock_ops.send_heartbeat(dev, 65536)


def test_get_info():
    dev = make_dev(Bus())
    assert mock_ops.get_info(dev) == "MockDev v1.0"


def test_toggle_wire_frame():
    bus = Bus()
    dev = make_dev(bus)
    mock_ops.send_toggle(dev)
    addr, frame = bus.writes[-1]
    assert addr == 0x08
    assert frame[:3] == bytes([0x10, 0x03, 0x00])
    assert decode_message(frame).opcode == mock_ops.OP_TOGGLE


def test_query_status_wire_frame():
    bus = Bus()
    dev = make_dev(bus)
    mock_ops.query_status(dev)
    _, frame = bus.writes[-1]
    assert frame[:4] == bytes([0x10, 0xFE, 0x01, 0x81])
    assert bus.peripheral.ctx.requested_opcode == mock_ops.OP_GET_STATUS


def test_query_echo_and_info_set_requested_opcode():
    bus = Bus()
    dev = make_dev(bus)
    mock_ops.query_echo(dev)
    assert bus.peripheral.ctx.requested_opcode == mock_ops.OP_GET_ECHO
    mock_ops.query_info(dev)
    assert bus.peripheral.ctx.requested_opcode == mock_ops.OP_GET_INFO


def test_delay_used_between_query_and_read():
    bus = Bus()
    dev = make_dev(bus)
    mock_ops.get_info(dev)
    assert bus.delays == [mock_ops.QUERY_DELAY_US]


def test_write_failure_raises():
    dev = make_dev(Bus(), addr=0x09)
    with pytest.raises(CrumbsError):
        mock_ops.send_toggle(dev)


def test_wrong_reply_opcode_raises():
    def read(io, addr, length, timeout_us):
        return encode_message(Message(type_id=0x10, opcode=0x99))

    dev = make_dev(Bus(), read_fn=read)
    with pytest.raises(CrumbsError):
        mock_ops.get_status(dev)


def test_short_status_payload_raises():
    def read(io, addr, length, timeout_us):
        return encode_message(Message(type_id=0x10, opcode=0x81, data=bytearray(b"\x01")))

    dev = make_dev(Bus(), read_fn=read)
    with pytest.raises(DecodeError):
        mock_ops.get_status(dev)