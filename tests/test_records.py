import pytest

from carindex.cid import Cid, Multicodec, multihash_sum
from carindex.records import Index, IterableIndex, Record


def make_cid(data: bytes) -> Cid:
    return Cid.v1(Multicodec.RAW, multihash_sum(data, Multicodec.SHA2_256))


def test_record_holds_cid_and_offset():
    cid = make_cid(b"fish")
    record = Record(cid, 42)
    assert record.cid == cid
    assert record.offset == 42
    assert record.cid.hash() == multihash_sum(b"fish", Multicodec.SHA2_256)


def test_equal_records_are_equal_and_hash_alike():
    first = Record(make_cid(b"fish"), 7)
    second = Record(make_cid(b"fish"), 7)
    other = Record(make_cid(b"lobster"), 7)
    assert first == second
    assert len({first, second, other}) == 2


def test_record_is_immutable():
    record = Record(make_cid(b"fish"), 1)
    with pytest.raises(AttributeError):
        record.offset = 2
    assert record.offset == 1


@pytest.mark.parametrize("offset", [-1, 1 << 64])
def test_record_rejects_offsets_outside_uint64(offset):
    with pytest.raises(ValueError):
        Record(make_cid(b"fish"), offset)


def test_record_accepts_largest_uint64_offset():
    record = Record(make_cid(b"fish"), (1 << 64) - 1)
    assert record.offset == (1 << 64) - 1


def test_index_is_abstract():
    with pytest.raises(TypeError):
        Index()


class _Partial(IterableIndex):
    def codec(self):
        return 0

    def marshal(self, stream):
        return 0

    def unmarshal(self, stream):
        return None

    def load(self, records):
        self.records = list(records)

    def get_all(self, key):
        return (r.offset for r in self.records if r.cid == key)


class _Complete(_Partial):
    def items(self):
        return ((r.cid.hash(), r.offset) for r in self.records)


def test_iterable_index_requires_items():
    with pytest.raises(TypeError):
        _Partial()
    assert issubclass(IterableIndex, Index)

    record = Record(make_cid(b"fish"), 3)
    complete = _Complete()
    complete.load([record])
    assert list(complete.items()) == [(record.cid.hash(), 3)]
    assert list(complete.get_all(record.cid)) == [3]