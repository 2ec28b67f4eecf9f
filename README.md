# carindex

Building blocks for CARv2 content-addressed archives: the fixed-size CARv2
header, CIDs and multihashes, and the block indexes that map a CID to the
byte offset of its section inside the wrapped CARv1 data payload.

## Installation

```
pip install carindex
```

To run the test suite:

```
pip install "carindex[test]"
pytest
```

## The CARv2 header

`carindex.header` holds the 11-byte `PRAGMA` (a CARv1 header declaring
version 2) and `Header`, the 40-byte little-endian header that follows it.
The `with_*` methods return modified copies and leave the original alone.

```python
import io
from carindex.header import Header

header = Header.new(1413).with_data_padding(3).with_index_padding(7)
header.data_offset            # 54
header.index_offset           # 1474
header.has_index()            # True
raw = header.to_bytes()       # 40 bytes
same = Header.from_bytes(raw)

buf = io.BytesIO()
header.write_to(buf)          # returns 40
buf.seek(0)
Header.read_from(buf)
```

`Header.characteristics` is a `carindex.header.Characteristics`. Its
`fully_indexed` property (readable and settable) records whether identity
CIDs were indexed too. Reading a header whose data offset is below 51, whose
data size is zero, or whose values do not fit a signed 64-bit integer raises
`carindex.errors.CarError`; a stream that ends early raises `EOFError`.

## CIDs and multihashes

`carindex.cid` provides `Cid` (versions 0 and 1), `multihash_sum`,
`encode_multihash`, `decode_multihash` (returning a `DecodedMultihash`),
the unsigned varint helpers `encode_uvarint`, `decode_uvarint` and
`read_uvarint`, and the `Multicodec` enumeration of the codes used here.

```python
from carindex.cid import Cid, Multicodec, multihash_sum

key = Cid.v1(Multicodec.RAW, multihash_sum(b"fish", Multicodec.SHA2_256))
Cid.from_bytes(key.to_bytes()) == key   # True
str(key)                                # base32 "b..." form
```

`multihash_sum` supports identity, SHA-1, SHA-2, SHA-3 and BLAKE2b-256/512.

## Indexes

`carindex.records` defines `Record` (a CID and an offset) and the abstract
`Index` and `IterableIndex` classes. Two concrete formats exist, chosen by
their multicodec code:

* `carindex.indexsorted.MultiWidthIndex` (`0x0400`, CarIndexSorted) groups
  records by digest width and keys them by digest alone. Each bucket is a
  `SingleWidthIndex`; `iter_digests()` yields `(digest, offset)` pairs.
* `carindex.mhindexsorted.MultihashIndexSorted` (`0x0401`,
  CarMultihashIndexSorted) additionally groups by multihash code and yields
  its `(multihash, offset)` pairs from `items()`.

`carindex.index` builds, writes and reads them:

```python
import io
from carindex.records import Record
from carindex.index import new_index, write_to, read_from, get_first

idx = new_index(0x0401)
idx.load([Record(key, 61)])
get_first(idx, key)           # 61
list(idx.get_all(key))        # [61]

buf = io.BytesIO()
write_to(idx, buf)            # codec varint followed by the index body
buf.seek(0)
restored = read_from(buf)
```

A key with no entry raises `carindex.errors.NotFoundError` (also a
`LookupError`); an unknown codec passed to `new_index` or found by
`read_from` raises `CarError`.

## Building an index incrementally

`carindex.insertionindex.InsertionIndex` is an in-memory index kept sorted
by digest, for use while blocks are being written. Add entries with
`insert_no_replace`, look them up with `get`, `get_all` or `has_exact_cid`
(which also compares version and codec), and turn it into one of the sorted
formats with `flatten(codec)`. It can be marshalled to a count followed by
one CBOR map per entry and read back with `unmarshal`.

```python
from carindex.insertionindex import InsertionIndex

ii = InsertionIndex()
ii.insert_no_replace(key, 61)
ii.get(key)                   # 61
ii.has_exact_cid(key)         # True
sorted_idx = ii.flatten(0x0401)
```

`carindex.errors.CidTooLargeError` is available for reporting a CID too
large to place in an index; its message gives the CID's size and the limit.

## What this package does not do

It works on headers, CIDs and indexes only. It does not read or write whole
CAR files, parse the CARv1 header or its sections, generate an index by
scanning a data payload, or provide a blockstore over a CAR file. There is
no command-line tool.