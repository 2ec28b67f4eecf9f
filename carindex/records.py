"""Index records and the interfaces every CAR index implements.

An index maps the CIDs of blocks in a CARv1 data payload to the byte offset
of their sections. This allows random access over a CARv1.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator

from .cid import Cid

_UINT64_LIMIT = 1 << 64


@dataclass(frozen=True)
class Record:
    """A CID together with the offset of its section in the data payload."""

    cid: Cid
    offset: int

    def __post_init__(self) -> None:
        if not 0 <= self.offset < _UINT64_LIMIT:
            raise ValueError(f"record offset out of range: {self.offset}")


class Index(ABC):
    """Looks up the byte offsets of blocks by CID.

    Each implementation is free to match CIDs as it sees fit; the sorted
    indexes, for example, only index multihash digests, so blocks are found
    even when the CID's content codec differs.
    """

    @abstractmethod
    def codec(self) -> int:
        """Return the multicodec code of this index type."""

    @abstractmethod
    def marshal(self, stream: BinaryIO) -> int:
        """Write the index in serial form and return the number of bytes written."""

    @abstractmethod
    def unmarshal(self, stream: BinaryIO) -> None:
        """Read the index from its serial form, copying it into memory.

        Indexes from untrusted files should be regenerated from the data
        payload rather than read.
        """

    @abstractmethod
    def load(self, records: Iterable[Record]) -> None:
        """Insert the given records; any filtering must happen beforehand."""

    @abstractmethod
    def get_all(self, key: Cid) -> Iterator[int]:
        """Return an iterator over the offsets of every block matching ``key``.

        Raises NotFoundError when no block matches.
        """


class IterableIndex(Index):
    """An index whose entries can be enumerated."""

    @abstractmethod
    def items(self) -> Iterator[tuple[bytes, int]]:
        """Yield ``(multihash, offset)`` for every entry in a deterministic order.

        A multihash may appear more than once when blocks are duplicated.
        """