"""An in-memory index tuned for random access while blocks are being written.

It is not a type attached to a CARv2; flatten it into one of the sorted
index types before writing it out.
"""

from __future__ import annotations

import struct
from bisect import bisect_left, bisect_right
from typing import BinaryIO, Iterable, Iterator

import cbor2

from .cid import Cid, decode_multihash
from .errors import CarError, NotFoundError
from .index import new_index
from .records import Index, IterableIndex, Record

INSERTION_INDEX_CODEC = 0x300003

_I64 = struct.Struct("<q")
_CID_TAG = 42


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected end of stream")
    return data


def _record_to_cbor(record: Record) -> bytes:
    return cbor2.dumps(
        {
            "Cid": cbor2.CBORTag(_CID_TAG, b"\x00" + record.cid.to_bytes()),
            "Offset": record.offset,
        }
    )


def _record_from_cbor(item: object) -> Record:
    if not isinstance(item, dict) or "Cid" not in item or "Offset" not in item:
        raise CarError(f"invalid insertion index entry: {item!r}")
    raw = item["Cid"]
    if isinstance(raw, cbor2.CBORTag):
        if raw.tag != _CID_TAG:
            raise CarError(f"unexpected cbor tag for cid: {raw.tag}")
        raw = raw.value
    if not isinstance(raw, bytes) or not raw or raw[0] != 0:
        raise CarError("invalid cid encoding in insertion index entry")
    offset = item["Offset"]
    if not isinstance(offset, int):
        raise CarError(f"invalid offset in insertion index entry: {offset!r}")
    try:
        return Record(Cid.from_bytes(raw[1:]), offset)
    except ValueError as exc:
        raise CarError(str(exc)) from exc


class InsertionIndex(IterableIndex):
    """Records kept sorted by multihash digest; equal digests keep insertion order."""

    def __init__(self) -> None:
        self._digests: list[bytes] = []
        self._records: list[Record] = []

    def __len__(self) -> int:
        return len(self._records)

    def _insert(self, record: Record) -> None:
        digest = decode_multihash(record.cid.hash()).digest
        position = bisect_right(self._digests, digest)
        self._digests.insert(position, digest)
        self._records.insert(position, record)

    def _matching(self, key: Cid) -> range:
        digest = decode_multihash(key.hash()).digest
        return range(
            bisect_left(self._digests, digest), bisect_right(self._digests, digest)
        )

    def insert_no_replace(self, key: Cid, offset: int) -> None:
        """Add ``key`` at ``offset``, keeping any existing entries for it."""
        self._insert(Record(key, offset))

    def get(self, key: Cid) -> int:
        """Return the offset of the first entry whose digest matches ``key``'s."""
        positions = self._matching(key)
        if not positions:
            raise NotFoundError()
        return self._records[positions[0]].offset

    def get_all(self, key: Cid) -> Iterator[int]:
        positions = self._matching(key)
        if not positions:
            raise NotFoundError()
        return iter([self._records[position].offset for position in positions])

    def marshal(self, stream: BinaryIO) -> int:
        """Write the entry count and one CBOR map per entry; return bytes written."""
        stream.write(_I64.pack(len(self._records)))
        written = _I64.size
        for record in self._records:
            encoded = _record_to_cbor(record)
            stream.write(encoded)
            written += len(encoded)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        count = _I64.unpack(_read_exact(stream, _I64.size))[0]
        decoder = cbor2.CBORDecoder(stream)
        for _ in range(count):
            try:
                item = decoder.decode()
            except cbor2.CBORDecodeError as exc:
                raise CarError(f"invalid insertion index entry: {exc}") from exc
            self._insert(_record_from_cbor(item))

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(multihash, offset)`` in ascending digest order."""
        for record in list(self._records):
            yield record.cid.hash(), record.offset

    def codec(self) -> int:
        return INSERTION_INDEX_CODEC

    def load(self, records: Iterable[Record]) -> None:
        for record in records:
            self._insert(record)

    def flatten(self, codec: int) -> Index:
        """Return an index of type ``codec`` holding the same records."""
        flat = new_index(codec)
        flat.load(list(self._records))
        return flat

    def has_exact_cid(self, key: Cid) -> bool:
        """Whether an entry exists for exactly ``key``, codec and version included."""
        return any(self._records[position].cid == key for position in self._matching(key))