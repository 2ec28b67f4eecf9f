"""The CARv2 pragma and fixed-size header.

A CARv2 file starts with an 11-byte pragma (itself a valid CARv1 header
declaring version 2), followed by a 40-byte header describing where the
inner CARv1 data payload and the optional index live.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import BinaryIO

from .errors import CarError

PRAGMA_SIZE = 11
HEADER_SIZE = 40
CHARACTERISTICS_SIZE = 16

PRAGMA = (
    bytes([0x0A])  # uint(10), length of what follows
    + bytes([0xA1])  # map(1)
    + bytes([0x67])  # string(7)
    + b"version"
    + bytes([0x02])  # uint(2)
)

_FULLY_INDEXED_BIT = 7
_INT64_LIMIT = 1 << 63
_CHARACTERISTICS = struct.Struct("<QQ")
_OFFSETS = struct.Struct("<QQQ")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        if not data:
            raise EOFError("end of stream")
        raise EOFError("unexpected end of stream")
    return data


@dataclass
class Characteristics:
    """128-bit field describing properties of a CARv2 such as its indexing."""

    hi: int = 0
    lo: int = 0

    @property
    def fully_indexed(self) -> bool:
        """Whether the index is a catalog of every CID, identity CIDs included."""
        return bool((self.hi >> _FULLY_INDEXED_BIT) & 1)

    @fully_indexed.setter
    def fully_indexed(self, value: bool) -> None:
        if value:
            self.hi |= 1 << _FULLY_INDEXED_BIT
        else:
            self.hi &= ~(1 << _FULLY_INDEXED_BIT)

    def to_bytes(self) -> bytes:
        return _CHARACTERISTICS.pack(self.hi, self.lo)

    def write_to(self, stream: BinaryIO) -> int:
        """Write the characteristics to ``stream`` and return the byte count."""
        data = self.to_bytes()
        stream.write(data)
        return len(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> Characteristics:
        if len(data) != CHARACTERISTICS_SIZE:
            raise CarError(
                f"characteristics must be {CHARACTERISTICS_SIZE} bytes, got {len(data)}"
            )
        hi, lo = _CHARACTERISTICS.unpack(data)
        return cls(hi, lo)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Characteristics:
        return cls.from_bytes(_read_exact(stream, CHARACTERISTICS_SIZE))


@dataclass
class Header:
    """The CARv2 header locating the data payload and the index."""

    characteristics: Characteristics = field(default_factory=Characteristics)
    data_offset: int = 0
    data_size: int = 0
    index_offset: int = 0

    @classmethod
    def new(cls, data_size: int) -> Header:
        """Create a header for a data payload of ``data_size`` bytes, unpadded."""
        data_offset = PRAGMA_SIZE + HEADER_SIZE
        return cls(
            data_offset=data_offset,
            data_size=data_size,
            index_offset=data_offset + data_size,
        )

    def _copy(self, **changes: int) -> Header:
        return replace(self, characteristics=replace(self.characteristics), **changes)

    def with_index_padding(self, padding: int) -> Header:
        """Return a copy with the index offset shifted forward by ``padding``."""
        return self._copy(index_offset=self.index_offset + padding)

    def with_data_padding(self, padding: int) -> Header:
        """Return a copy whose data payload starts ``padding`` bytes after the header.

        The index offset is shifted forward by the same amount.
        """
        return self._copy(
            data_offset=PRAGMA_SIZE + HEADER_SIZE + padding,
            index_offset=self.index_offset + padding,
        )

    def with_data_size(self, size: int) -> Header:
        """Return a copy with the given data size, shifting the index offset by it."""
        return self._copy(data_size=size, index_offset=self.index_offset + size)

    def has_index(self) -> bool:
        return self.index_offset != 0

    def to_bytes(self) -> bytes:
        return self.characteristics.to_bytes() + _OFFSETS.pack(
            self.data_offset, self.data_size, self.index_offset
        )

    def write_to(self, stream: BinaryIO) -> int:
        """Write the header to ``stream`` and return the byte count."""
        data = self.to_bytes()
        stream.write(data)
        return len(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> Header:
        if len(data) != HEADER_SIZE:
            raise CarError(f"header must be {HEADER_SIZE} bytes, got {len(data)}")
        characteristics = Characteristics.from_bytes(data[:CHARACTERISTICS_SIZE])
        data_offset, data_size, index_offset = _OFFSETS.unpack(
            data[CHARACTERISTICS_SIZE:]
        )
        if data_offset >= _INT64_LIMIT or data_offset < PRAGMA_SIZE + HEADER_SIZE:
            raise CarError(f"invalid data payload offset: {data_offset}")
        if data_size == 0 or data_size >= _INT64_LIMIT:
            raise CarError(f"invalid data payload size: {data_size}")
        if index_offset >= _INT64_LIMIT:
            raise CarError(f"invalid index offset: {index_offset}")
        return cls(characteristics, data_offset, data_size, index_offset)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Header:
        """Read and validate a header from ``stream``."""
        characteristics = Characteristics.read_from(stream)
        rest = _read_exact(stream, HEADER_SIZE - CHARACTERISTICS_SIZE)
        return cls.from_bytes(characteristics.to_bytes() + rest)