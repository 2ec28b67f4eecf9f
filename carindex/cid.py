"""Unsigned varints, multihashes and CIDs as used inside CAR files."""

from __future__ import annotations

import base64
import hashlib
import io
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Callable, Optional

from .errors import CarError

_MAX_UVARINT_LEN = 9
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class Multicodec(IntEnum):
    """Multicodec codes used by CIDs, multihashes and CAR indexes."""

    IDENTITY = 0x00
    CIDV1 = 0x01
    CIDV2 = 0x02
    SHA1 = 0x11
    SHA2_256 = 0x12
    SHA2_512 = 0x13
    SHA3_512 = 0x14
    SHA3_384 = 0x15
    SHA3_256 = 0x16
    SHA3_224 = 0x17
    SHA2_384 = 0x20
    RAW = 0x55
    DAG_PB = 0x70
    DAG_CBOR = 0x71
    CAR_INDEX_SORTED = 0x0400
    CAR_MULTIHASH_INDEX_SORTED = 0x0401
    BLAKE2B_256 = 0xB220
    BLAKE2B_512 = 0xB240


_HASHERS: dict[int, Callable[[bytes], bytes]] = {
    Multicodec.IDENTITY: bytes,
    Multicodec.SHA1: lambda d: hashlib.sha1(d).digest(),
    Multicodec.SHA2_256: lambda d: hashlib.sha256(d).digest(),
    Multicodec.SHA2_384: lambda d: hashlib.sha384(d).digest(),
    Multicodec.SHA2_512: lambda d: hashlib.sha512(d).digest(),
    Multicodec.SHA3_224: lambda d: hashlib.sha3_224(d).digest(),
    Multicodec.SHA3_256: lambda d: hashlib.sha3_256(d).digest(),
    Multicodec.SHA3_384: lambda d: hashlib.sha3_384(d).digest(),
    Multicodec.SHA3_512: lambda d: hashlib.sha3_512(d).digest(),
    Multicodec.BLAKE2B_256: lambda d: hashlib.blake2b(d, digest_size=32).digest(),
    Multicodec.BLAKE2B_512: lambda d: hashlib.blake2b(d, digest_size=64).digest(),
}


def _parse_uvarint(read_byte: Callable[[], Optional[int]]) -> int:
    value = 0
    shift = 0
    for position in range(_MAX_UVARINT_LEN):
        byte = read_byte()
        if byte is None:
            if position == 0:
                raise EOFError("end of stream")
            raise EOFError("unexpected end of stream in varint")
        if byte < 0x80:
            if byte == 0 and position > 0:
                raise CarError("varint not minimally encoded")
            return value | (byte << shift)
        value |= (byte & 0x7F) << shift
        shift += 7
    raise CarError("varints larger than uint63 not supported")


def encode_uvarint(value: int) -> bytes:
    """Encode a non-negative integer as an unsigned LEB128 varint."""
    if value < 0:
        raise ValueError(f"cannot encode negative value as uvarint: {value}")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def read_uvarint(stream: BinaryIO) -> int:
    """Read one varint from ``stream``, byte by byte.

    Raises EOFError when the stream ends before or within the varint.
    """

    def read_byte() -> Optional[int]:
        chunk = stream.read(1)
        return chunk[0] if chunk else None

    return _parse_uvarint(read_byte)


def decode_uvarint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a varint from ``data`` at ``offset``; return (value, next offset)."""
    view = memoryview(data)[offset:]
    position = 0

    def read_byte() -> Optional[int]:
        nonlocal position
        if position >= len(view):
            return None
        byte = view[position]
        position += 1
        return byte

    try:
        value = _parse_uvarint(read_byte)
    except EOFError as exc:
        raise CarError("varint truncated") from exc
    return value, offset + position


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected end of stream")
    return data


@dataclass(frozen=True)
class DecodedMultihash:
    """The parts of a multihash: hash function code, digest length and digest."""

    code: int
    length: int
    digest: bytes


def decode_multihash(mh: bytes) -> DecodedMultihash:
    """Split a multihash into its code and digest, checking its length."""
    mh = bytes(mh)
    if len(mh) < 2:
        raise CarError("multihash too short. must be >= 2 bytes")
    code, position = decode_uvarint(mh)
    length, position = decode_uvarint(mh, position)
    digest = mh[position:]
    if length > len(digest):
        raise CarError("length greater than remaining number of bytes in buffer")
    if length != len(digest):
        raise CarError("multihash length inconsistent")
    return DecodedMultihash(code, length, digest)


def encode_multihash(digest: bytes, code: int) -> bytes:
    """Build a multihash from a digest and the code of its hash function."""
    digest = bytes(digest)
    return encode_uvarint(code) + encode_uvarint(len(digest)) + digest


def multihash_sum(data: bytes, code: int) -> bytes:
    """Hash ``data`` with the function named by ``code`` and return the multihash."""
    try:
        hasher = _HASHERS[code]
    except KeyError:
        raise CarError(f"no hasher registered for multihash code {code:#x}") from None
    return encode_multihash(hasher(bytes(data)), code)


def _base58_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, rem = divmod(number, 58)
        chars.append(_BASE58_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return _BASE58_ALPHABET[0] * leading + "".join(reversed(chars))


@dataclass(frozen=True)
class Cid:
    """A content identifier: version, content codec and multihash."""

    version: int
    codec: int
    multihash: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "multihash", bytes(self.multihash))
        decoded = decode_multihash(self.multihash)
        if self.version == 0:
            if self.codec != Multicodec.DAG_PB:
                raise CarError("cidv0 requires the dag-pb codec")
            if decoded.code != Multicodec.SHA2_256 or decoded.length != 32:
                raise CarError("cidv0 requires a 32-byte sha2-256 multihash")
        elif self.version != 1:
            raise CarError(f"invalid cid version number: {self.version}")

    @classmethod
    def v1(cls, codec: int, mh: bytes) -> Cid:
        return cls(1, codec, mh)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Cid:
        """Read one CID from ``stream``, consuming exactly its bytes."""
        first = read_uvarint(stream)
        if first == Multicodec.SHA2_256:
            length = read_uvarint(stream)
            if length != 32:
                raise CarError(f"invalid cidv0 multihash length: {length}")
            digest = _read_exact(stream, 32)
            return cls(0, Multicodec.DAG_PB, encode_multihash(digest, first))
        if first != 1:
            raise CarError(f"expected 1 as the cid version number, got: {first}")
        codec = read_uvarint(stream)
        code = read_uvarint(stream)
        length = read_uvarint(stream)
        digest = _read_exact(stream, length)
        return cls(1, codec, encode_multihash(digest, code))

    @classmethod
    def from_bytes(cls, data: bytes) -> Cid:
        """Parse a CID that occupies the whole of ``data``."""
        data = bytes(data)
        stream = io.BytesIO(data)
        try:
            cid = cls.read_from(stream)
        except EOFError as exc:
            raise CarError("truncated cid") from exc
        if stream.tell() != len(data):
            raise CarError("trailing bytes in data buffer passed to cid Cast")
        return cid

    def to_bytes(self) -> bytes:
        if self.version == 0:
            return self.multihash
        return encode_uvarint(self.version) + encode_uvarint(self.codec) + self.multihash

    def hash(self) -> bytes:
        """Return the multihash of this CID."""
        return self.multihash

    def __str__(self) -> str:
        if self.version == 0:
            return _base58_encode(self.multihash)
        encoded = base64.b32encode(self.to_bytes()).decode("ascii")
        return "b" + encoded.lower().rstrip("=")