"""Raw I2C helpers bound to a Device, and scanning for CRUMBS devices.

Transport callbacks follow the conventions of :mod:`crumbs.core`:

* ``write_fn(io, addr, data)`` returns ``None`` or ``0`` on success, or a
  non-zero integer status on failure.
* ``read_fn(io, addr, length, timeout_us)`` returns the bytes read, or an
  integer status on failure.
* ``write_read_fn(io, addr, tx, rx_len, timeout_us, require_repeated_start)``
  performs a combined transfer and returns the bytes read, or an integer
  status on failure (``NoRepeatedStartError.code`` when a repeated start
  cannot be issued).
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from .core import (
    CMD_SET_REPLY,
    FRAME_OVERHEAD,
    MESSAGE_MAX_SIZE,
    Context,
    CrumbsError,
    DecodeError,
    Device,
    Message,
    decode_message,
    encode_message,
)

MAX_ADDRESS = 0x7F
MAX_REG_WRITE = 32
DEFAULT_SCAN_TIMEOUT_US = 25000

WriteFn = Callable[[Any, int, bytes], Any]
ReadFn = Callable[[Any, int, int, int], Any]
WriteReadFn = Callable[[Any, int, bytes, int, int, bool], Any]


class I2CDevError(CrumbsError):
    """Base class for raw I2C helper failures; ``code`` is the numeric status."""

    code = -1


class InvalidArgumentError(I2CDevError, ValueError):
    """A helper was called with missing or out-of-range arguments."""

    code = -1


class WriteError(I2CDevError):
    """The underlying I2C write failed."""

    code = -2


class ReadError(I2CDevError):
    """The underlying I2C read failed."""

    code = -3


class ShortReadError(I2CDevError):
    """Fewer bytes came back than were asked for."""

    code = -4


class NoRepeatedStartError(I2CDevError):
    """A repeated-start transfer was required but is not available."""

    code = -5


class SizeError(I2CDevError):
    """A transfer is larger than the helper supports."""

    code = -6


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def _try_read_frame(read_fn: ReadFn, io: Any, addr: int, timeout_us: int) -> Optional[int]:
    """Return the type_id of a valid frame read from ``addr``, or None."""
    try:
        raw = read_fn(io, addr, MESSAGE_MAX_SIZE, timeout_us)
    except OSError:
        return None
    if raw is None or isinstance(raw, int):
        return None
    raw = bytes(raw)
    if len(raw) < FRAME_OVERHEAD:
        return None
    try:
        return decode_message(raw).type_id
    except DecodeError:
        return None


def _probe_write(write_fn: WriteFn, io: Any, addr: int) -> bool:
    probe = Message(type_id=0, opcode=CMD_SET_REPLY)
    probe.add_u8(0)
    try:
        status = write_fn(io, addr, encode_message(probe))
    except OSError:
        return False
    return not (isinstance(status, int) and status != 0)


def _scan(
    ctx: Optional[Context],
    addresses: Iterable[int],
    strict: bool,
    write_fn: Optional[WriteFn],
    read_fn: Optional[ReadFn],
    io_ctx: Any,
    max_found: int,
    timeout_us: int,
) -> list[tuple[int, int]]:
    if read_fn is None:
        raise InvalidArgumentError("scan needs a read function")
    if not strict and (ctx is None or write_fn is None):
        raise InvalidArgumentError("non-strict scan needs a context and a write function")
    if max_found < 0:
        raise InvalidArgumentError("max_found must not be negative")

    found: list[tuple[int, int]] = []
    seen: set[int] = set()
    for addr in addresses:
        if len(found) >= max_found:
            break
        if addr in seen:
            continue
        seen.add(addr)
        type_id = _try_read_frame(read_fn, io_ctx, addr, timeout_us)
        if type_id is None and not strict:
            if _probe_write(write_fn, io_ctx, addr):
                type_id = _try_read_frame(read_fn, io_ctx, addr, timeout_us)
        if type_id is not None:
            found.append((addr, type_id))
    return found


def _check_address(addr: int) -> int:
    if not 0 <= addr <= MAX_ADDRESS:
        raise InvalidArgumentError(f"address 0x{addr:X} is not a 7-bit I2C address")
    return addr


def scan_for_crumbs_with_types(
    ctx: Optional[Context],
    start_addr: int,
    end_addr: int,
    strict: bool,
    write_fn: Optional[WriteFn],
    read_fn: ReadFn,
    io_ctx: Any = None,
    max_found: int = MAX_ADDRESS + 1,
    timeout_us: int = DEFAULT_SCAN_TIMEOUT_US,
) -> list[tuple[int, int]]:
    """Probe ``start_addr..end_addr`` (inclusive); return ``(address, type_id)`` pairs.

    In non-strict mode an address that gives no frame is sent a probe write
    and read once more.
    """
    _check_address(start_addr)
    _check_address(end_addr)
    if start_addr > end_addr:
        raise InvalidArgumentError("start address is above end address")
    return _scan(
        ctx, range(start_addr, end_addr + 1), strict, write_fn, read_fn, io_ctx, max_found, timeout_us
    )


def scan_for_crumbs(
    ctx: Optional[Context],
    start_addr: int,
    end_addr: int,
    strict: bool,
    write_fn: Optional[WriteFn],
    read_fn: ReadFn,
    io_ctx: Any = None,
    max_found: int = MAX_ADDRESS + 1,
    timeout_us: int = DEFAULT_SCAN_TIMEOUT_US,
) -> list[int]:
    """Probe an address range and return the addresses of CRUMBS devices."""
    pairs = scan_for_crumbs_with_types(
        ctx, start_addr, end_addr, strict, write_fn, read_fn, io_ctx, max_found, timeout_us
    )
    return [addr for addr, _ in pairs]


def scan_for_crumbs_candidates(
    ctx: Optional[Context],
    candidates: Iterable[int],
    strict: bool,
    write_fn: Optional[WriteFn],
    read_fn: ReadFn,
    io_ctx: Any = None,
    max_found: int = MAX_ADDRESS + 1,
    timeout_us: int = DEFAULT_SCAN_TIMEOUT_US,
) -> list[tuple[int, int]]:
    """Probe only the listed addresses (each once); return ``(address, type_id)`` pairs."""
    addresses = [_check_address(addr) for addr in candidates]
    return _scan(ctx, addresses, strict, write_fn, read_fn, io_ctx, max_found, timeout_us)


# ---------------------------------------------------------------------------
# Raw device helpers
# ---------------------------------------------------------------------------


def _require_device(dev: Optional[Device]) -> Device:
    if dev is None:
        raise InvalidArgumentError("no device given")
    return dev


def dev_write(dev: Device, data: bytes) -> None:
    """Write raw ``data`` to the device."""
    dev = _require_device(dev)
    if dev.write_fn is None:
        raise InvalidArgumentError("device has no write function")
    try:
        status = dev.write_fn(dev.io, dev.addr, bytes(data))
    except OSError as exc:
        raise WriteError(f"write to 0x{dev.addr:02X} failed: {exc}") from exc
    if isinstance(status, int) and status != 0:
        raise WriteError(f"write to 0x{dev.addr:02X} failed ({status})")


def dev_read(dev: Device, length: int, timeout_us: int = 0) -> bytes:
    """Read exactly ``length`` raw bytes from the device."""
    dev = _require_device(dev)
    if dev.read_fn is None:
        raise InvalidArgumentError("device has no read function")
    if length <= 0:
        raise InvalidArgumentError("read length must be positive")
    try:
        raw = dev.read_fn(dev.io, dev.addr, length, timeout_us)
    except OSError as exc:
        raise ReadError(f"read from 0x{dev.addr:02X} failed: {exc}") from exc
    if raw is None or isinstance(raw, int):
        raise ReadError(f"read from 0x{dev.addr:02X} failed ({raw})")
    raw = bytes(raw)
    if len(raw) < length:
        raise ShortReadError(f"read {len(raw)} of {length} byte(s) from 0x{dev.addr:02X}")
    return raw[:length]


def dev_write_then_read(
    dev: Device,
    tx: bytes,
    rx_len: int,
    timeout_us: int = 0,
    require_repeated_start: bool = False,
    write_read_fn: Optional[WriteReadFn] = None,
) -> bytes:
    """Write ``tx`` then read ``rx_len`` bytes.

    With ``write_read_fn`` the transfer is combined; without it, and when no
    repeated start is required, a separate write and read are used.
    """
    dev = _require_device(dev)
    if rx_len <= 0:
        raise InvalidArgumentError("read length must be positive")
    tx = bytes(tx)
    if write_read_fn is None:
        if require_repeated_start:
            raise NoRepeatedStartError("a repeated start is required but no combined transfer is given")
        dev_write(dev, tx)
        return dev_read(dev, rx_len, timeout_us)

    try:
        raw = write_read_fn(dev.io, dev.addr, tx, rx_len, timeout_us, bool(require_repeated_start))
    except OSError as exc:
        raise ReadError(f"combined transfer with 0x{dev.addr:02X} failed: {exc}") from exc
    if raw is None or isinstance(raw, int):
        if raw == NoRepeatedStartError.code:
            raise NoRepeatedStartError(f"0x{dev.addr:02X}: repeated start not supported")
        raise ReadError(f"combined transfer with 0x{dev.addr:02X} failed ({raw})")
    raw = bytes(raw)
    if len(raw) < rx_len:
        raise ShortReadError(f"read {len(raw)} of {rx_len} byte(s) from 0x{dev.addr:02X}")
    return raw[:rx_len]


def read_reg_ex(
    dev: Device,
    reg: bytes,
    out_len: int,
    timeout_us: int = 0,
    require_repeated_start: bool = False,
    write_read_fn: Optional[WriteReadFn] = None,
) -> bytes:
    """Read ``out_len`` bytes from the register addressed by the bytes ``reg``."""
    reg = bytes(reg)
    if not reg:
        raise InvalidArgumentError("register address must not be empty")
    return dev_write_then_read(dev, reg, out_len, timeout_us, require_repeated_start, write_read_fn)


def write_reg_ex(dev: Device, reg: bytes, data: bytes) -> None:
    """Write ``data`` to the register addressed by the bytes ``reg`` in one transfer."""
    reg = bytes(reg)
    data = bytes(data)
    if not reg:
        raise InvalidArgumentError("register address must not be empty")
    if len(reg) + len(data) > MAX_REG_WRITE:
        raise SizeError(f"register write longer than {MAX_REG_WRITE} bytes")
    dev_write(dev, reg + data)


def _reg_u8(reg: int) -> bytes:
    if not 0 <= reg <= 0xFF:
        raise InvalidArgumentError(f"register {reg!r} does not fit in 8 bits")
    return reg.to_bytes(1, "big")


def _reg_u16be(reg: int) -> bytes:
    if not 0 <= reg <= 0xFFFF:
        raise InvalidArgumentError(f"register {reg!r} does not fit in 16 bits")
    return reg.to_bytes(2, "big")


def read_reg_u8(
    dev: Device,
    reg: int,
    out_len: int,
    timeout_us: int = 0,
    require_repeated_start: bool = False,
    write_read_fn: Optional[WriteReadFn] = None,
) -> bytes:
    """Read from an 8-bit register."""
    return read_reg_ex(dev, _reg_u8(reg), out_len, timeout_us, require_repeated_start, write_read_fn)


def write_reg_u8(dev: Device, reg: int, data: bytes) -> None:
    """Write to an 8-bit register."""
    write_reg_ex(dev, _reg_u8(reg), data)


def read_reg_u16be(
    dev: Device,
    reg: int,
    out_len: int,
    timeout_us: int = 0,
    require_repeated_start: bool = False,
    write_read_fn: Optional[WriteReadFn] = None,
) -> bytes:
    """Read from a big-endian 16-bit register."""
    return read_reg_ex(dev, _reg_u16be(reg), out_len, timeout_us, require_repeated_start, write_read_fn)


def write_reg_u16be(dev: Device, reg: int, data: bytes) -> None:
    """Write to a big-endian 16-bit register."""
    write_reg_ex(dev, _reg_u16be(reg), data)