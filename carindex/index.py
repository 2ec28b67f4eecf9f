"""Construction, serialisation and lookup helpers for CAR indexes.

A serialised index starts with the varint multicodec code of its type,
followed by the type-specific encoding.
"""

from __future__ import annotations

from typing import BinaryIO

from .cid import Cid, Multicodec, encode_uvarint, read_uvarint
from .errors import CarError, NotFoundError
from .indexsorted import MultiWidthIndex
from .mhindexsorted import MultihashIndexSorted
from .records import Index

CAR_INDEX_NONE = 0x300000


def get_first(idx: Index, key: Cid) -> int:
    """Return the offset of the first block matching ``key``.

    Raises NotFoundError when there is none.
    """
    for offset in idx.get_all(key):
        return offset
    raise NotFoundError()


def new_index(codec: int) -> Index:
    """Create an empty index of the type named by ``codec``."""
    if codec == Multicodec.CAR_INDEX_SORTED:
        return MultiWidthIndex()
    if codec == Multicodec.CAR_MULTIHASH_INDEX_SORTED:
        return MultihashIndexSorted()
    raise CarError(f"unknown index codec: {codec:#x}")


def write_to(idx: Index, stream: BinaryIO) -> int:
    """Write ``idx`` with its codec prefix; return the number of bytes written."""
    prefix = encode_uvarint(int(idx.codec()))
    stream.write(prefix)
    return len(prefix) + idx.marshal(stream)


def read_codec(stream: BinaryIO) -> int:
    """Read the varint codec code that prefixes a serialised index."""
    code = read_uvarint(stream)
    try:
        return Multicodec(code)
    except ValueError:
        return code


def read_from(stream: BinaryIO) -> Index:
    """Read an index of whatever type its codec prefix names.

    Indexes from untrusted sources should be regenerated rather than read.
    """
    idx = new_index(read_codec(stream))
    idx.unmarshal(stream)
    return idx