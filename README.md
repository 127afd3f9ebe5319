# crumbs

`crumbs` implements a compact, variable-length message protocol for I2C
buses. Every frame carries a device type id, an opcode, up to 27 payload
bytes and a CRC-8 checksum (polynomial 0x07, initial value 0). The package
covers both sides of the bus:

* **Controller side**: encode and send commands, read and decode replies,
  scan an address range or a candidate list for devices that speak the
  protocol, and issue raw register reads and writes to other I2C devices
  on the same bus.
* **Peripheral side**: decode incoming frames, dispatch them to per-opcode
  handlers, and build reply frames through per-opcode reply handlers or a
  general `on_request` callback.

The package does no bus I/O of its own. You pass in the functions that
read and write the bus, or a simulated bus in tests.

## Wire format

```
[type_id][opcode][data_len][data ...][crc8]
```

Opcode `0xFE` (`crumbs.core.CMD_SET_REPLY`) is reserved for *SET_REPLY*.
When a peripheral context receives it, the first payload byte becomes
`Context.requested_opcode`, and the next reply it builds answers that opcode.
That frame is never passed to `on_message` or to command handlers.

## Messages and frames

```python
from crumbs.core import Message, encode_message, decode_message, read_u16

msg = Message(type_id=0x10, opcode=0x02)
msg.add_u16(500)                # little-endian; add_u8 / add_u32 too
frame = encode_message(msg)     # bytes, 4 + payload length

decoded = decode_message(frame, None)
assert decoded.opcode == 0x02
assert read_u16(decoded.data, 0) == 500
```

`add_u8`, `add_u16` and `add_u32` return the message, so calls can be
chained. They raise `ValueError` for a value that does not fit or for a
payload that would grow past 27 bytes.

`decode_message` raises `DecodeError` for a malformed frame and `CrcError`
(a subclass of `DecodeError`) when the checksum does not match. Bytes after
the CRC are ignored. When a `Context` is given, its `crc_error_count` and
`last_crc_ok` are updated. `Context.reset_crc_stats()` clears them.

`read_u8`, `read_u16` and `read_u32` read little-endian values from a
payload at a given offset. They raise `DecodeError` when the value lies
outside the data.

## Peripheral: handlers and replies

```python
from crumbs.core import Context, Message, Role

ctx = Context(Role.PERIPHERAL, 0x08)

def on_set(ctx, opcode, data, user_data):
    print("opcode", opcode, "payload", data)

def reply_status(ctx, user_data):
    return Message(type_id=0x10, opcode=0x81).add_u8(1)

ctx.register_handler(0x01, on_set, None)
ctx.register_reply_handler(0x81, reply_status, None)

ctx.handle_receive(frame_from_bus)   # decodes, then dispatches
reply_frame = ctx.build_reply()      # b"" when nothing is configured
```

* Command handlers are called as `fn(ctx, opcode, data, user_data)`, after
  `on_message(ctx, msg)` if that is set.
* Reply handlers are called as `fn(ctx, user_data)` and return the reply
  `Message`. A reply handler for `requested_opcode` takes priority. The
  `on_request(ctx)` callback, set with `Context.set_callbacks`, answers every
  other opcode. When neither is configured, or the callback returns `None`,
  `build_reply` returns empty bytes.
* Registering an opcode again replaces the earlier handler. Registering
  `None`, or calling `unregister_handler`, removes it. Each table holds
  `max_handlers` entries (16 by default). One more raises `HandlerTableFull`.

## Controller: devices and command families

`controller_send(ctx, addr, msg, write_fn, io)` encodes a message and calls
`write_fn(io, addr, frame)`. A non-zero integer returned by `write_fn` raises
`CrumbsError`. `controller_read(ctx, addr, read_fn, io)` calls
`read_fn(io, addr, 31, 0)` and decodes the bytes it returns.

A `Device` binds a controller context, an address and the bus functions.
This example drives the bundled mock peripheral as a simulated bus:

```python
from crumbs.core import Context, Device, Role
from crumbs.mock_peripheral import MockPeripheral
from crumbs import mock_ops

periph = MockPeripheral()                    # address 0x08

dev = Device(
    ctx=Context(Role.CONTROLLER, 0),
    addr=periph.address,
    write_fn=lambda io, addr, frame: periph.receive(frame),
    read_fn=lambda io, addr, length, timeout_us: periph.reply(),
    delay_fn=None,
)

mock_ops.send_heartbeat(dev, 250)
mock_ops.send_toggle(dev)
status = mock_ops.get_status(dev)
print(status.state, status.period_ms)        # 1 250
print(mock_ops.get_info(dev))                # MockDev v1.0
```

The `get_*` functions send a SET_REPLY query, call `delay_fn(10000)` when a
delay function is given, read the reply, and raise `CrumbsError` when the
reply's type id or opcode is not the one asked for.

The bundled command families are:

* `crumbs.mock_ops`: a demonstration device (type id `0x10`).
  `send_echo`, `send_heartbeat`, `send_toggle`, the `query_*` senders, and
  `get_echo` (bytes), `get_status` (`MockStatus`) and `get_info` (str).
* `crumbs.calculator_ops`: a 32-bit integer calculator (type id `0x03`).
  `send_add`, `send_sub`, `send_mul`, `send_div`, and `get_result`,
  `get_hist_meta` (`HistMeta`) and `get_hist_entry` (`HistEntry`) for the
  12-slot history. A history index outside 0–11 raises `ValueError`. An
  empty slot raises `CrumbsError`.
* `crumbs.display_ops`: a four-digit seven-segment display (type id `0x04`).
  `build_*` functions return messages without sending them. The `send_*`
  functions send them, `parse_get_value` decodes a value payload, and
  `get_value` returns a `DisplayValue` (number, decimal position and
  brightness).

`crumbs.mock_peripheral.MockPeripheral` is the peripheral end of the
demonstration device. `receive(frame)` handles a written frame, `reply()`
returns the staged reply frame, and `led_on(now_ms)` steps the heartbeat
LED (a 50 ms pulse once per period while enabled).

## Interactive shell

`crumbs.mock_shell.MockShell(dev)` is a line-oriented shell for the mock
device. `execute(line)` runs one command and returns `False` for `quit` or
`exit`. `run(lines)` prints the help text, then runs lines from any iterable,
such as `sys.stdin`. The commands are `help`, `scan`, `echo DE AD BE EF`,
`heartbeat 500`, `toggle`, `status`, `getecho`, `info`, `quit` and `exit`.
`parse_hex_bytes(text)` turns whitespace-separated hex tokens into bytes,
at most 27 of them.

## Scanning and raw register access

`crumbs.i2c` provides:

* `scan_for_crumbs`, which returns addresses.
* `scan_for_crumbs_with_types`, which returns `(address, type_id)` pairs
  over an inclusive 7-bit address range.
* `scan_for_crumbs_candidates`, which probes only the listed addresses and
  skips duplicates.

In non-strict mode an address that gives no valid frame is sent a SET_REPLY
probe and read once more.

For devices that do not speak the protocol there are `dev_write`,
`dev_read`, `dev_write_then_read`, `read_reg_ex`, `write_reg_ex`,
`read_reg_u8`, `write_reg_u8`, `read_reg_u16be` and `write_reg_u16be`. A
combined transfer goes through an optional
`write_read_fn(io, addr, tx, rx_len, timeout_us, require_repeated_start)`.
Without one, a separate write and read are used, unless a repeated start is
required.

Failures raise subclasses of `I2CDevError`, each carrying a numeric `code`:

| Exception | Raised when |
| --- | --- |
| `InvalidArgumentError` | an argument is missing or invalid |
| `WriteError` | the write fails |
| `ReadError` | the read fails |
| `ShortReadError` | fewer bytes come back than were asked for |
| `NoRepeatedStartError` | a repeated start is required but not available |
| `SizeError` | a register write is longer than 32 bytes |

## What this package does not do

* It opens no I2C bus itself. There is no driver for a Linux `/dev/i2c-*`
  device or any other hardware. Every transfer goes through the functions
  you supply.
* It installs no command-line program. To use `MockShell` on a real bus,
  build a `Device` with your own bus functions and call `run`.