import pytest

from crumbs import calculator_ops as calc
from crumbs.core import (
    CMD_SET_REPLY,
    Context,
    CrumbsError,
    DecodeError,
    Device,
    Message,
    crc8,
    decode_message,
    encode_message,
    read_u32,
)
from crumbs.mock_ops import QUERY_DELAY_US


class FakeBus:
    def __init__(self):
        self.writes = []
        self.replies = []
        self.delays = []
        self.write_status = 0

    def write(self, io, addr, data):
        self.writes.append((addr, bytes(data)))
        return self.write_status

    def read(self, io, addr, length, timeout_us):
        return self.replies.pop(0)

    def delay(self, us):
        self.delays.append(us)


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def dev(bus):
    return Device(
        ctx=Context(),
        addr=0x20,
        write_fn=bus.write,
        read_fn=bus.read,
        delay_fn=bus.delay,
        io=None,
    )


def _entry_payload(op, a, b, result):
    return op + a.to_bytes(4, "little") + b.to_bytes(4, "little") + result.to_bytes(4, "little")


def test_send_add_wire_frame(bus, dev):
    calc.send_add(dev, 1, 2)
    addr, frame = bus.writes[0]
    assert addr == 0x20
    assert frame[:-1] == bytes([0x03, 0x01, 0x08, 1, 0, 0, 0, 2, 0, 0, 0])
    assert frame[-1] == crc8(frame[:-1])


@pytest.mark.parametrize(
    "sender, opcode",
    [
        (calc.send_add, calc.OP_ADD),
        (calc.send_sub, calc.OP_SUB),
        (calc.send_mul, calc.OP_MUL),
        (calc.send_div, calc.OP_DIV),
    ],
)
def test_send_operations_round_trip(bus, dev, sender, opcode):
    sender(dev, 0xDEADBEEF, 0x12345678)
    msg = decode_message(bus.writes[0][1])
    assert msg.type_id == calc.TYPE_ID
    assert msg.opcode == opcode
    assert read_u32(bytes(msg.data), 0) == 0xDEADBEEF
    assert read_u32(bytes(msg.data), 4) == 0x12345678


def test_send_rejects_out_of_range_operand(bus, dev):
    with pytest.raises(ValueError):
        calc.send_add(dev, 1 << 32, 0)
    assert bus.writes == []


def test_send_write_failure_raises(bus, dev):
    bus.write_status = -1
    with pytest.raises(CrumbsError):
        calc.send_mul(dev, 3, 4)


def test_query_result_uses_set_reply(bus, dev):
    calc.query_result(dev)
    msg = decode_message(bus.writes[0][1])
    assert msg.type_id == 0
    assert msg.opcode == CMD_SET_REPLY
    assert bytes(msg.data) == bytes([calc.OP_GET_RESULT])


def test_query_hist_meta(bus, dev):
    calc.query_hist_meta(dev)
    msg = decode_message(bus.writes[0][1])
    assert bytes(msg.data) == bytes([calc.OP_GET_HIST_META])


@pytest.mark.parametrize("idx, opcode", [(0, 0x82), (11, 0x8D)])
def test_query_hist_entry_opcode(bus, dev, idx, opcode):
    calc.query_hist_entry(dev, idx)
    msg = decode_message(bus.writes[0][1])
    assert bytes(msg.data) == bytes([opcode])


@pytest.mark.parametrize("idx", [12, -1])
def test_query_hist_entry_rejects_bad_index(bus, dev, idx):
    with pytest.raises(ValueError):
        calc.query_hist_entry(dev, idx)
    assert bus.writes == []


def test_get_result(bus, dev):
    bus.replies.append(
        encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_RESULT).add_u32(calc.DIV_BY_ZERO_RESULT))
    )
    assert calc.get_result(dev) == 0xFFFFFFFF
    assert bus.delays == [QUERY_DELAY_US]
    assert bytes(decode_message(bus.writes[0][1]).data) == bytes([calc.OP_GET_RESULT])


def test_get_result_wrong_type_raises(bus, dev):
    bus.replies.append(encode_message(Message(type_id=0x10, opcode=calc.OP_GET_RESULT).add_u32(7)))
    with pytest.raises(CrumbsError):
        calc.get_result(dev)


def test_get_result_short_payload_raises(bus, dev):
    bus.replies.append(encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_RESULT).add_u8(7)))
    with pytest.raises(DecodeError):
        calc.get_result(dev)


def test_get_hist_meta(bus, dev):
    bus.replies.append(
        encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_HIST_META).add_u8(12).add_u8(4))
    )
    assert calc.get_hist_meta(dev) == calc.HistMeta(count=12, write_pos=4)


def test_get_hist_entry(bus, dev):
    payload = _entry_payload(b"DIV\0", 10, 0, 0xFFFFFFFF)
    bus.replies.append(
        encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_HIST_0 + 3, data=bytearray(payload)))
    )
    entry = calc.get_hist_entry(dev, 3)
    assert entry == calc.HistEntry(op="DIV", a=10, b=0, result=0xFFFFFFFF)
    assert bytes(decode_message(bus.writes[0][1]).data) == bytes([0x85])


def test_get_hist_entry_empty_raises(bus, dev):
    bus.replies.append(encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_HIST_0)))
    with pytest.raises(CrumbsError):
        calc.get_hist_entry(dev, 0)


def test_get_hist_entry_wrong_opcode_raises(bus, dev):
    payload = _entry_payload(b"ADD\0", 1, 2, 3)
    bus.replies.append(
        encode_message(Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_HIST_0, data=bytearray(payload)))
    )
    with pytest.raises(CrumbsError):
        calc.get_hist_entry(dev, 1)


def test_get_hist_entry_bad_index_sends_nothing(bus, dev):
    with pytest.raises(ValueError):
        calc.get_hist_entry(dev, 12)
    assert bus.writes == []


def test_against_context_peripheral(dev):
    peripheral = Context()
    peripheral.register_reply_handler(
        calc.OP_GET_RESULT,
        lambda ctx, ud: Message(type_id=calc.TYPE_ID, opcode=calc.OP_GET_RESULT).add_u32(ud),
        123456,
    )
    dev.write_fn = lambda io, addr, data: peripheral.handle_receive(data) and 0
    dev.read_fn = lambda io, addr, length, timeout: peripheral.build_reply()
    assert calc.get_result(dev) == 123456
    assert peripheral.requested_opcode == calc.OP_GET_RESULT