"""The sorted index: digests bucketed by width, sorted within each bucket."""

from __future__ import annotations

import struct
from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator

from .cid import Cid, Multicodec, decode_multihash
from .errors import CarError, NotFoundError
from .records import Index, Record

_OFFSET_SIZE = 8
_MAX_WIDTH = 32 << 20  # roughly the largest CID accepted anywhere else
_INT64_LIMIT = 1 << 63

_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected end of stream")
    return data


@dataclass
class SingleWidthIndex:
    """Fixed-width records of ``digest || little-endian offset``, sorted by digest."""

    width: int = 0
    length: int = 0
    index: bytes = b""

    def marshal(self, stream: BinaryIO) -> int:
        """Write width, byte length and records; return the number of bytes written."""
        stream.write(_U32.pack(self.width))
        stream.write(_I64.pack(len(self.index)))
        stream.write(self.index)
        return _U32.size + _I64.size + len(self.index)

    def unmarshal(self, stream: BinaryIO) -> None:
        width = _U32.unpack(_read_exact(stream, _U32.size))[0]
        data_len = _U64.unpack(_read_exact(stream, _U64.size))[0]
        length = self._checked_length(width, data_len)
        data = _read_exact(stream, data_len)
        self.width = width
        self.length = length
        self.index = data

    @staticmethod
    def _checked_length(width: int, data_len: int) -> int:
        if width < _OFFSET_SIZE:
            raise CarError("malformed index; width must be at least 8")
        if width > _MAX_WIDTH:
            raise CarError(
                "index too big; singleWidthIndex width is larger than allowed maximum"
            )
        if data_len >= _INT64_LIMIT:
            raise CarError("index too big; singleWidthIndex len is overflowing int64")
        return data_len // width

    def _digest_at(self, position: int) -> bytes:
        start = position * self.width
        return self.index[start : start + self.width - _OFFSET_SIZE]

    def _offset_at(self, position: int) -> int:
        return _U64.unpack_from(self.index, (position + 1) * self.width - _OFFSET_SIZE)[0]

    def get_all(self, key: Cid) -> Iterator[int]:
        """Return the offsets of every record whose digest matches ``key``'s."""
        return self.get_all_digest(decode_multihash(key.hash()).digest)

    def get_all_digest(self, digest: bytes) -> Iterator[int]:
        """Return the offsets of every record with exactly this digest.

        Raises NotFoundError when there is none.
        """
        digest = bytes(digest)
        start = bisect_left(range(self.length), digest, key=self._digest_at)
        if start >= self.length or self._digest_at(start) != digest:
            raise NotFoundError()
        return self._offsets_from(start, digest)

    def _offsets_from(self, start: int, digest: bytes) -> Iterator[int]:
        for position in range(start, self.length):
            if self._digest_at(position) != digest:
                return
            yield self._offset_at(position)

    def load(self, records: Iterable[Record]) -> None:
        """Replace the contents with ``records``, which must share one digest width."""
        multi = MultiWidthIndex()
        multi.load(records)
        if len(multi.buckets) != 1:
            raise CarError(f"unexpected number of cid widths: {len(multi.buckets)}")
        bucket = next(iter(multi.buckets.values()))
        self.width = bucket.width
        self.length = bucket.length
        self.index = bucket.index

    def iter_digests(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(digest, offset)`` for every record, in stored order."""
        if self.width == 0:
            return
        for position in range(len(self.index) // self.width):
            yield self._digest_at(position), self._offset_at(position)


@dataclass
class MultiWidthIndex(Index):
    """Sorted index holding one bucket per record width (digest length + 8)."""

    buckets: dict[int, SingleWidthIndex] = field(default_factory=dict)

    def codec(self) -> int:
        return Multicodec.CAR_INDEX_SORTED

    def marshal(self, stream: BinaryIO) -> int:
        """Write the bucket count and the buckets in ascending width order."""
        stream.write(_I32.pack(len(self.buckets)))
        written = _I32.size
        for width in sorted(self.buckets):
            written += self.buckets[width].marshal(stream)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        count = _I32.unpack(_read_exact(stream, _I32.size))[0]
        if count < 0:
            raise CarError("index too big; multiWidthIndex count is overflowing int32")
        for _ in range(count):
            bucket = SingleWidthIndex()
            bucket.unmarshal(stream)
            self.buckets[bucket.width] = bucket

    def load(self, records: Iterable[Record]) -> None:
        groups: defaultdict[int, list[tuple[bytes, int]]] = defaultdict(list)
        for record in records:
            digest = decode_multihash(record.cid.hash()).digest
            groups[len(digest)].append((digest, record.offset))
        for digest_len, entries in groups.items():
            entries.sort(key=lambda entry: entry[0])
            width = digest_len + _OFFSET_SIZE
            compact = b"".join(digest + _U64.pack(offset) for digest, offset in entries)
            self.buckets[width] = SingleWidthIndex(width, len(entries), compact)

    def get_all(self, key: Cid) -> Iterator[int]:
        digest = decode_multihash(key.hash()).digest
        bucket = self.buckets.get(len(digest) + _OFFSET_SIZE)
        if bucket is None:
            raise NotFoundError()
        return bucket.get_all_digest(digest)

    def iter_digests(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(digest, offset)`` for all buckets in ascending width order."""
        for width in sorted(self.buckets):
            yield from self.buckets[width].iter_digests()