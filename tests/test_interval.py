import numpy as np
import pytest
from blxcore.core.interval import Range, RangeError, Strand, UNSET


class TestStrand:
    def test_symbols(self):
        assert str(Strand.FORWARD) == '+'
        assert str(Strand.REVERSE) == '-'
        assert Strand.REVERSE.bytes == b'-'

    def test_from_symbol(self):
        assert Strand.from_symbol('+') is Strand.FORWARD
        assert Strand.from_symbol(b'-') is Strand.REVERSE
        assert Strand.from_symbol(-1) is Strand.REVERSE
        assert Strand.from_symbol(None) is Strand.UNSTRANDED
        assert Strand.from_symbol('?') is Strand.UNSTRANDED

    def test_opposite(self):
        assert Strand.FORWARD.opposite is Strand.REVERSE
        assert Strand.UNSTRANDED.opposite is Strand.UNSTRANDED


class TestRangeInit:
    def test_normalises_order(self):
        r = Range(200, 100)
        assert (r.min, r.max) == (100, 200)
        assert r == Range(100, 200)

    def test_length_is_inclusive(self):
        assert len(Range(5, 5)) == 1
        assert Range(100, 200).length == 101

    def test_unset(self):
        r = Range.unset()
        assert not r.is_set
        assert r.min == UNSET and r.max == UNSET
        assert len(r) == 0
        assert repr(r) == 'unset'

    def test_one_unset_end(self):
        with pytest.raises(RangeError, match="one unset end"):
            Range(UNSET, 10)

    def test_hash_and_iter(self):
        assert len({Range(1, 5), Range(5, 1)}) == 1
        assert tuple(Range(3, 7)) == (3, 7)
        np.testing.assert_array_equal(np.asarray(Range(3, 7)), [3, 7])


class TestRangeOps:
    def test_contains(self):
        r = Range(100, 200)
        assert 100 in r and 200 in r
        assert 201 not in r
        assert Range(120, 180) in r
        assert Range(90, 180) not in r
        assert Range.unset() not in r

    def test_overlaps_and_adjacent(self):
        a = Range(100, 200)
        assert a.overlaps(Range(200, 300))
        assert not a.overlaps(Range(201, 300))
        assert a.adjacent(Range(201, 300))
        assert Range(50, 99).adjacent(a)
        assert not a.adjacent(Range(200, 300))
        assert not a.overlaps(Range.unset())

    def test_union(self):
        assert Range(100, 200).union(Range(300, 400)) == Range(100, 400)
        assert (Range(100, 200) | Range.unset()) == Range(100, 200)
        assert Range.unset().union(Range(1, 2)) == Range(1, 2)

    def test_intersection(self):
        assert Range(100, 200).intersection(Range(150, 300)) == Range(150, 200)
        assert Range(100, 200).intersection(Range(201, 300)) is None

    def test_subtract(self):
        assert Range(100, 200).subtract(Range(120, 180)) == [Range(100, 119), Range(181, 200)]
        assert Range(100, 200).subtract(Range(50, 150)) == [Range(151, 200)]
        assert Range(100, 200).subtract(Range(50, 250)) == []
        assert Range(100, 200).subtract(Range(300, 400)) == [Range(100, 200)]

    def test_shift(self):
        assert Range(100, 200).shift(10) == Range(110, 210)
        assert not Range.unset().shift(10).is_set

    def test_clip(self):
        assert Range(90, 210).clip(Range(100, 200)) == Range(100, 200)
        assert Range(300, 400).clip(Range(100, 200)) is None

    def test_hull(self):
        assert Range.hull([Range(120, 180), Range(100, 110), Range(150, 220)]) == Range(100, 220)
        assert not Range.hull([]).is_set

    def test_ordering(self):
        assert Range(100, 200) < Range(100, 250) < Range(101, 150)
        assert Range(5, 10) <= Range(10, 5)
        assert sorted([Range(401, 410), Range(90, 99), Range(201, 299)]) == [
            Range(90, 99), Range(201, 299), Range(401, 410)]
