"""Variable-length I2C message protocol with CRC-8 framing, handler dispatch,
raw I2C helpers, device command families and a mock device shell."""

__version__ = "0.12.2"

__all__ = [
    "core",
    "i2c",
    "mock_ops",
    "mock_peripheral",
    "calculator_ops",
    "display_ops",
    "mock_shell",
]