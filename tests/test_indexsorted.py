import io
import struct

import pytest

from carindex.cid import Cid, Multicodec, multihash_sum
from carindex.errors import CarError, NotFoundError
from carindex.indexsorted import MultiWidthIndex, SingleWidthIndex
from carindex.records import Record


def make_cid(data: bytes, code: int = Multicodec.SHA2_256) -> Cid:
    return Cid.v1(Multicodec.RAW, multihash_sum(data, code))


def test_sorted_index_codec():
    assert MultiWidthIndex().codec() == Multicodec.CAR_INDEX_SORTED


def test_get_raises_not_found_when_cid_does_not_exist():
    missing = make_cid(b"lobstermuncher")
    with pytest.raises(NotFoundError):
        MultiWidthIndex().get_all(missing)


def test_single_width_index_get_all():
    count = 4
    width = 9
    buf = bytearray(width * count)
    for i in range(count):
        buf[i * width] = 1 if i < count - 1 else 2
        struct.pack_into("<Q", buf, i * width + 1, 14)
    subject = SingleWidthIndex(width=9, length=count, index=bytes(buf))

    found = list(subject.get_all_digest(b"\x01"))
    assert found == [14, 14, 14]


def test_single_width_index_missing_digest_raises():
    buf = b"\x01" + struct.pack("<Q", 5)
    subject = SingleWidthIndex(width=9, length=1, index=buf)
    with pytest.raises(NotFoundError):
        subject.get_all_digest(b"\x03")


def test_load_then_get_all_finds_offsets():
    records = [Record(make_cid(f"block-{i}".encode()), i * 100 + 1) for i in range(20)]
    subject = MultiWidthIndex()
    subject.load(records)
    for record in records:
        assert list(subject.get_all(record.cid)) == [record.offset]


def test_lookup_matches_by_digest_regardless_of_codec():
    mh = multihash_sum(b"fish", Multicodec.SHA2_256)
    subject = MultiWidthIndex()
    subject.load([Record(Cid.v1(Multicodec.RAW, mh), 9)])
    assert list(subject.get_all(Cid.v1(Multicodec.DAG_CBOR, mh))) == [9]


def test_duplicate_digests_yield_every_offset():
    cid = make_cid(b"fish")
    subject = MultiWidthIndex()
    subject.load([Record(cid, 3), Record(cid, 1), Record(cid, 2)])
    assert sorted(subject.get_all(cid)) == [1, 2, 3]
    assert next(subject.get_all(cid)) in {1, 2, 3}


def test_records_are_bucketed_by_width():
    records = [
        Record(make_cid(b"a", Multicodec.SHA2_512), 1),
        Record(make_cid(b"b", Multicodec.SHA2_256), 2),
        Record(make_cid(b"c", Multicodec.SHA2_256), 3),
    ]
    subject = MultiWidthIndex()
    subject.load(records)
    assert sorted(subject.buckets) == [40, 72]
    assert subject.buckets[40].length == 2
    assert subject.buckets[72].length == 1


def test_iter_digests_orders_by_width_then_digest():
    records = [Record(make_cid(f"x{i}".encode(), Multicodec.SHA2_512), i) for i in range(5)]
    records += [Record(make_cid(f"y{i}".encode()), 10 + i) for i in range(5)]
    subject = MultiWidthIndex()
    subject.load(records)
    entries = list(subject.iter_digests())
    assert len(entries) == len(records)
    lengths = [len(digest) for digest, _ in entries]
    assert lengths == sorted(lengths)
    short = [digest for digest, _ in entries if len(digest) == 32]
    assert short == sorted(short)
    assert {offset for _, offset in entries} == {r.offset for r in records}


def test_marshal_round_trip():
    records = [Record(make_cid(f"r{i}".encode()), i + 1) for i in range(10)]
    records.append(Record(make_cid(b"long", Multicodec.SHA2_512), 77))
    subject = MultiWidthIndex()
    subject.load(records)

    buf = io.BytesIO()
    written = subject.marshal(buf)
    assert written == len(buf.getvalue())

    buf.seek(0)
    restored = MultiWidthIndex()
    restored.unmarshal(buf)
    assert restored == subject
    for record in records:
        assert list(restored.get_all(record.cid)) == [record.offset]


def test_marshal_writes_buckets_in_ascending_width():
    subject = MultiWidthIndex()
    subject.load(
        [
            Record(make_cid(b"a", Multicodec.SHA2_512), 1),
            Record(make_cid(b"b", Multicodec.SHA2_256), 2),
        ]
    )
    data = io.BytesIO()
    subject.marshal(data)
    raw = data.getvalue()
    assert struct.unpack_from("<i", raw, 0)[0] == 2
    assert struct.unpack_from("<I", raw, 4)[0] == 40


def test_empty_index_marshals_to_zero_count():
    buf = io.BytesIO()
    assert MultiWidthIndex().marshal(buf) == 4
    assert buf.getvalue() == b"\x00\x00\x00\x00"


def test_single_width_marshal_layout():
    body = b"\x01" + struct.pack("<Q", 14)
    buf = io.BytesIO()
    written = SingleWidthIndex(width=9, length=1, index=body).marshal(buf)
    assert written == 12 + len(body)
    assert buf.getvalue() == struct.pack("<I", 9) + struct.pack("<q", len(body)) + body


def test_single_width_unmarshal_round_trip():
    body = b"\x01" + struct.pack("<Q", 14) + b"\x02" + struct.pack("<Q", 15)
    original = SingleWidthIndex(width=9, length=2, index=body)
    buf = io.BytesIO()
    original.marshal(buf)
    buf.seek(0)
    restored = SingleWidthIndex()
    restored.unmarshal(buf)
    assert restored == original
    assert list(restored.iter_digests()) == [(b"\x01", 14), (b"\x02", 15)]


def test_unmarshal_rejects_narrow_width():
    data = struct.pack("<I", 7) + struct.pack("<Q", 0)
    with pytest.raises(CarError, match="width must be at least 8"):
        SingleWidthIndex().unmarshal(io.BytesIO(data))


def test_unmarshal_rejects_too_wide_width():
    data = struct.pack("<I", (32 << 20) + 1) + struct.pack("<Q", 0)
    with pytest.raises(CarError, match="larger than allowed maximum"):
        SingleWidthIndex().unmarshal(io.BytesIO(data))


def test_unmarshal_rejects_length_overflowing_int64():
    data = struct.pack("<I", 9) + struct.pack("<Q", 1 << 63)
    with pytest.raises(CarError, match="overflowing int64"):
        SingleWidthIndex().unmarshal(io.BytesIO(data))


def test_unmarshal_negative_count_is_error():
    with pytest.raises(CarError, match="overflowing int32"):
        MultiWidthIndex().unmarshal(io.BytesIO(struct.pack("<i", -1)))


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x01\x00",
        struct.pack("<i", 1),
        struct.pack("<i", 1) + struct.pack("<I", 9),
        struct.pack("<i", 1) + struct.pack("<I", 9) + struct.pack("<Q", 9) + b"\x01",
    ],
)
def test_unmarshal_truncated_input_raises_eof(data):
    with pytest.raises(EOFError):
        MultiWidthIndex().unmarshal(io.BytesIO(data))


def test_single_width_load_uses_records():
    records = [Record(make_cid(f"s{i}".encode()), i + 5) for i in range(4)]
    subject = SingleWidthIndex()
    subject.load(records)
    assert subject.width == 40
    assert subject.length == 4
    for record in records:
        assert list(subject.get_all(record.cid)) == [record.offset]


def test_single_width_load_rejects_mixed_widths():
    records = [
        Record(make_cid(b"a"), 1),
        Record(make_cid(b"b", Multicodec.SHA2_512), 2),
    ]
    with pytest.raises(CarError, match="unexpected number of cid widths: 2"):
        SingleWidthIndex().load(records)


def test_lookup_in_missing_width_bucket_raises():
    subject = MultiWidthIndex()
    subject.load([Record(make_cid(b"a"), 1)])
    with pytest.raises(NotFoundError):
        subject.get_all(make_cid(b"a", Multicodec.SHA2_512))