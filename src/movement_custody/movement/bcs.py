"""Binary Canonical Serialization (BCS).

The canonical wire format of Move-based ledgers. Integers are fixed-width
little-endian, sequence and byte-string lengths are ULEB128 prefixed, and
enum variants are written as a ULEB128 variant index.

Reference: https://github.com/diem/bcs
"""

import struct
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1


class Serializer:
    """Accumulates BCS encoded values into a byte buffer."""

    def __init__(self):
        self._buffer = bytearray()

    def output(self) -> bytes:
        """Return the encoded bytes."""
        return bytes(self._buffer)

    def _check_range(self, value: int, maximum: int, name: str) -> None:
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{name} expects int, got {type(value).__name__}")
        if value < 0 or value > maximum:
            raise ValueError(f"{name} out of range: {value}")

    def bool(self, value: bool) -> None:
        self._buffer.append(1 if value else 0)

    def u8(self, value: int) -> None:
        self._check_range(value, MAX_U8, "u8")
        self._buffer.append(value)

    def u16(self, value: int) -> None:
        self._check_range(value, MAX_U16, "u16")
        self._buffer += struct.pack("<H", value)

    def u32(self, value: int) -> None:
        self._check_range(value, MAX_U32, "u32")
        self._buffer += struct.pack("<I", value)

    def u64(self, value: int) -> None:
        self._check_range(value, MAX_U64, "u64")
        self._buffer += struct.pack("<Q", value)

    def u128(self, value: int) -> None:
        self._check_range(value, MAX_U128, "u128")
        self._buffer += value.to_bytes(16, "little")

    def uleb128(self, value: int) -> None:
        """Write an unsigned LEB128 integer (lengths and variant indexes)."""
        self._check_range(value, MAX_U32, "uleb128")
        while value >= 0x80:
            self._buffer.append((value & 0x7F) | 0x80)
            value >>= 7
        self._buffer.append(value)

    def fixed_bytes(self, value: bytes) -> None:
        """Write bytes without a length prefix."""
        self._buffer += value

    def bytes(self, value: bytes) -> None:
        """Write length prefixed bytes."""
        self.uleb128(len(value))
        self._buffer += value

    def str(self, value: str) -> None:
        self.bytes(value.encode("utf-8"))

    def sequence(self, values: Iterable[T], encoder: Callable[["Serializer", T], None]) -> None:
        """Write a length prefixed sequence using ``encoder`` for each item."""
        items = list(values)
        self.uleb128(len(items))
        for item in items:
            encoder(self, item)


def encode(value: T, encoder: Callable[[Serializer, T], None]) -> bytes:
    """Encode a single value with ``encoder`` and return its bytes."""
    serializer = Serializer()
    encoder(serializer, value)
    return serializer.output()
