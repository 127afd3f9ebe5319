import io

import pytest

from crumbs.core import Context, Device, Role
from crumbs.mock_peripheral import MockPeripheral
from crumbs.mock_shell import MockShell, parse_hex_bytes


class Bus:
    def __init__(self, peripheral):
        self.peripheral = peripheral

    def write(self, io_ctx, addr, data):
        if addr != self.peripheral.address:
            return -1
        self.peripheral.receive(data)
        return 0

    def read(self, io_ctx, addr, length, timeout_us):
        if addr != self.peripheral.address:
            return b""
        return self.peripheral.reply()[:length]


@pytest.fixture
def setup():
    peripheral = MockPeripheral()
    bus = Bus(peripheral)
    dev = Device(
        ctx=Context(Role.CONTROLLER),
        addr=peripheral.address,
        write_fn=bus.write,
        read_fn=bus.read,
        delay_fn=lambda us: None,
    )
    out, err = io.StringIO(), io.StringIO()
    return MockShell(dev, out=out, err=err), peripheral, out, err


def test_parse_hex_bytes_example():
    assert parse_hex_bytes("DE AD BE EF") == bytes.fromhex("DEADBEEF")


def test_parse_hex_bytes_single_digits_and_spacing():
    assert parse_hex_bytes("  1 f ") == b"\x01\x0f"


def test_parse_hex_bytes_uses_first_two_digits_of_token():
    assert parse_hex_bytes("DEAD 01") == b"\xde\x01"


def test_parse_hex_bytes_empty():
    assert parse_hex_bytes("") == b""


def test_parse_hex_bytes_invalid():
    with pytest.raises(ValueError):
        parse_hex_bytes("01 zz")


def test_parse_hex_bytes_caps_length():
    assert len(parse_hex_bytes(" ".join(["AA"] * 40))) == 27


def test_echo_then_getecho(setup):
    shell, peripheral, out, _ = setup
    assert shell.execute("echo DE AD BE EF") is True
    assert peripheral.echo == bytes.fromhex("DEADBEEF")
    assert "OK: Sent echo data (4 bytes)" in out.getvalue()
    shell.execute("getecho")
    assert "Hex: DE AD BE EF" in out.getvalue()


def test_getecho_shows_nonprintable(setup):
    shell, _, out, _ = setup
    shell.execute("echo 41 00")
    shell.execute("getecho")
    assert "Echo data: A<0x00>" in out.getvalue()


def test_echo_invalid_hex_reports_error(setup):
    shell, peripheral, _, err = setup
    shell.execute("echo xy")
    assert "Invalid hex byte" in err.getvalue()
    assert peripheral.echo == b""


def test_echo_without_args_prints_usage(setup):
    shell, _, out, _ = setup
    shell.execute("echo")
    assert "Usage: echo" in out.getvalue()


def test_heartbeat_sets_period(setup):
    shell, peripheral, out, _ = setup
    shell.execute("heartbeat 1000")
    assert peripheral.heartbeat_ms == 1000
    assert "OK: Set heartbeat period to 1000 ms" in out.getvalue()


def test_heartbeat_out_of_range(setup):
    shell, peripheral, _, err = setup
    shell.execute("heartbeat 70000")
    assert "Period must be 0-65535 ms" in err.getvalue()
    assert peripheral.heartbeat_ms == 500


def test_heartbeat_without_args_prints_usage(setup):
    shell, _, out, _ = setup
    shell.execute("heartbeat")
    assert "Usage: heartbeat" in out.getvalue()


def test_toggle_and_status(setup):
    shell, peripheral, out, _ = setup
    shell.execute("toggle")
    assert peripheral.state == 1
    shell.execute("status")
    assert "Heartbeat: ENABLED, Period: 500 ms" in out.getvalue()


def test_info(setup):
    shell, _, out, _ = setup
    shell.execute("info")
    assert "Device info: MockDev v1.0" in out.getvalue()


def test_scan_finds_mock(setup):
    shell, _, out, _ = setup
    shell.execute("scan")
    text = out.getvalue()
    assert "Found 1 device(s):" in text
    assert "0x08 (Mock)" in text


def test_unknown_command(setup):
    shell, _, out, _ = setup
    assert shell.execute("foo bar") is True
    assert "Unknown command: foo" in out.getvalue()


def test_quit_and_exit_stop(setup):
    shell, _, _, _ = setup
    assert shell.execute("quit") is False
    assert shell.execute("  exit  ") is False


def test_help(setup):
    shell, _, out, _ = setup
    assert shell.execute("help") is True
    assert "Mock Controller Commands" in out.getvalue()


def test_run_stops_at_quit(setup):
    shell, peripheral, out, _ = setup
    shell.run(["toggle", "", "quit", "toggle"])
    assert peripheral.state == 1
    assert out.getvalue().endswith("Exiting...\n")


def test_failed_write_reports_error():
    dev = Device(ctx=Context(Role.CONTROLLER), addr=0x08, write_fn=lambda io_ctx, a, d: -1)
    out, err = io.StringIO(), io.StringIO()
    shell = MockShell(dev, out=out, err=err)
    shell.execute("toggle")
    assert "Error: Failed to send toggle" in err.getvalue()
    assert "OK" not in out.getvalue()