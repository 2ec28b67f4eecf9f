"""The multihash-sorted index: sorted indexes grouped by multihash code."""

from __future__ import annotations

import struct
from collections import defaultdict
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator

from .cid import Cid, Multicodec, decode_multihash, encode_multihash
from .errors import CarError, NotFoundError
from .indexsorted import MultiWidthIndex
from .records import IterableIndex, Record

_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected end of stream")
    return data


@dataclass
class MultiWidthCodedIndex(MultiWidthIndex):
    """A sorted index whose digests all share one multihash code."""

    code: int = 0

    def marshal(self, stream: BinaryIO) -> int:
        """Write the multihash code followed by the sorted buckets."""
        stream.write(_U64.pack(self.code))
        return _U64.size + super().marshal(stream)

    def unmarshal(self, stream: BinaryIO) -> None:
        self.code = _U64.unpack(_read_exact(stream, _U64.size))[0]
        super().unmarshal(stream)

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(multihash, offset)`` for every entry, rebuilding each multihash."""
        for digest, offset in self.iter_digests():
            yield encode_multihash(digest, self.code), offset


@dataclass
class MultihashIndexSorted(IterableIndex):
    """Maps each multihash code to a sorted index of digests with that code."""

    indexes: dict[int, MultiWidthCodedIndex] = field(default_factory=dict)

    def codec(self) -> int:
        return Multicodec.CAR_MULTIHASH_INDEX_SORTED

    def marshal(self, stream: BinaryIO) -> int:
        """Write the group count and the groups in ascending code order."""
        stream.write(_I32.pack(len(self.indexes)))
        written = _I32.size
        for code in sorted(self.indexes):
            written += self.indexes[code].marshal(stream)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        count = _I32.unpack(_read_exact(stream, _I32.size))[0]
        if count < 0:
            raise CarError(
                "index too big; MultihashIndexSorted count is overflowing int32"
            )
        for _ in range(count):
            coded = MultiWidthCodedIndex()
            coded.unmarshal(stream)
            self.indexes[coded.code] = coded

    def load(self, records: Iterable[Record]) -> None:
        by_code: defaultdict[int, list[Record]] = defaultdict(list)
        for record in records:
            by_code[decode_multihash(record.cid.hash()).code].append(record)
        for code, group in by_code.items():
            coded = MultiWidthCodedIndex(code=code)
            coded.load(group)
            self.indexes[code] = coded

    def get_all(self, key: Cid) -> Iterator[int]:
        code = decode_multihash(key.hash()).code
        coded = self.indexes.get(code)
        if coded is None:
            raise NotFoundError()
        return coded.get_all(key)

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(multihash, offset)`` for every entry, ordered by code then width."""
        for code in sorted(self.indexes):
            yield from self.indexes[code].items()