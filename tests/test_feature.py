import numpy as np
import pytest
from blxcore.core.interval import Range, Strand, UNSET
from blxcore.containers.feature import (Feature, FeatureKind, FeatureStore, GapRange, find_extent,
                                        find_match_extent)


def match(ref_min, ref_max, match_min=1, match_max=None, ref_strand=Strand.FORWARD, match_strand=Strand.FORWARD,
          **kwargs):
    if match_max is None: match_max = match_min + ref_max - ref_min
    return Feature(FeatureKind.MATCH, Range(ref_min, ref_max), ref_strand, Range(match_min, match_max), match_strand,
                   **kwargs)


class TestFeatureKind:
    def test_order(self):
        # CDS, UTR and intron pieces sort before the exon that starts at the same coordinate
        assert FeatureKind.CDS < FeatureKind.UTR < FeatureKind.INTRON < FeatureKind.EXON
        assert FeatureKind.MATCH < FeatureKind.SHORT_READ < FeatureKind.CDS

    def test_predicates(self):
        assert FeatureKind.CDS.is_exon_type and FeatureKind.UTR.is_exon_type and FeatureKind.EXON.is_exon_type
        assert not FeatureKind.INTRON.is_exon_type
        assert FeatureKind.SHORT_READ.is_match
        assert not FeatureKind.VARIATION.is_match

    def test_from_symbol(self):
        assert FeatureKind.from_symbol('exon') is FeatureKind.EXON
        assert FeatureKind.from_symbol(b'CDS') is FeatureKind.CDS
        assert FeatureKind.from_symbol('three_prime_UTR') is FeatureKind.UTR
        assert FeatureKind.from_symbol('nucleotide_match') is FeatureKind.MATCH
        assert FeatureKind.from_symbol('gene') is FeatureKind.OTHER
        assert str(FeatureKind.POLYA_SITE) == 'polyA_site'


class TestFeature:
    def test_exon_types_take_ref_strand(self):
        f = Feature(FeatureKind.EXON, Range(100, 200), Strand.REVERSE, match_strand=Strand.FORWARD)
        assert f.match_strand is Strand.REVERSE
        intron = Feature('intron', Range(201, 299), '-')
        assert intron.match_strand is Strand.REVERSE and intron.is_intron

    def test_defaults(self):
        f = Feature(FeatureKind.CDS, Range(120, 180))
        assert f.id is None and f.sequence_id is None
        assert f.identity == UNSET and f.ref_frame == UNSET and f.phase == UNSET
        assert not f.match_range.is_set
        assert f.children == []

    def test_sort_key(self):
        cds = Feature(FeatureKind.CDS, Range(100, 180))
        exon = Feature(FeatureKind.EXON, Range(100, 200))
        assert sorted([exon, cds], key=lambda f: f.sort_key) == [cds, exon]

    def test_ref_start_end(self):
        f = Feature(FeatureKind.EXON, Range(100, 200), Strand.REVERSE)
        assert (f.ref_start, f.ref_end) == (200, 100)
        f = Feature(FeatureKind.EXON, Range(100, 200), Strand.FORWARD)
        assert (f.ref_start, f.ref_end) == (100, 200)

    def test_coords_as_string(self):
        assert match(100, 150, 1).coords_as_string() == '100 - 150 [1 - 51]'
        assert Feature(FeatureKind.EXON, Range(100, 200)).coords_as_string() == '100 - 200'

    def test_shift(self):
        f = match(100, 150, gaps=[GapRange(Range(100, 120), Range(1, 21)), GapRange(Range(131, 150), Range(22, 41))])
        f.shift(10)
        assert f.ref_range == Range(110, 160)
        assert f.gaps[0].ref == Range(110, 130) and f.gaps[1].ref == Range(141, 160)
        # Match coordinates are unaffected
        assert f.match_range == Range(1, 51) and f.gaps[0].match == Range(1, 21)

    def test_copy(self):
        f = match(100, 150, name='EST1', id_tag='t1', identity=90.0, score=10.0, ref_frame=2)
        f.id, f.sequence_id, f.children = 4, 2, [7]
        c = f.copy()
        assert c is not f
        assert c.id is None and c.sequence_id is None and c.children == []
        assert c.identity == UNSET
        assert (c.ref_range, c.match_range, c.name, c.id_tag, c.ref_frame) == (f.ref_range, f.match_range, 'EST1',
                                                                               't1', 2)


class TestPolyATail:
    def test_forward(self):
        f = match(100, 104, 1, 5)
        assert f.has_polya_tail(b'ACGTCAAAA')
        assert not f.has_polya_tail(b'ACGTCAACA')

    def test_bases_to_check(self):
        f = match(100, 104, 1, 5)
        assert f.has_polya_tail(b'ACGTCAAAACG', bases_to_check=3)
        assert not f.has_polya_tail(b'ACGTCAAAACG')

    def test_too_short(self):
        assert not match(100, 104, 1, 5).has_polya_tail(b'ACGTCAA')

    def test_reverse(self):
        # Opposite strands: the tail is before the start of the match, read backwards
        f = match(100, 104, 4, 8, ref_strand=Strand.REVERSE, match_strand=Strand.FORWARD)
        assert f.has_polya_tail(b'TTTACGTC')

    def test_not_a_match(self):
        assert not Feature(FeatureKind.EXON, Range(100, 200)).has_polya_tail(b'AAAAAA')


class TestFeatureStore:
    def test_insert_assigns_ids(self):
        store = FeatureStore()
        ids = [store.insert(Feature(FeatureKind.EXON, Range(i, i + 10))) for i in range(1, 4)]
        assert ids == [0, 1, 2]
        assert len(store) == 3
        assert store[1].ref_range == Range(2, 12)

    def test_by_kind(self):
        store = FeatureStore([Feature(FeatureKind.EXON, Range(100, 200)), match(1, 10),
                              Feature(FeatureKind.EXON, Range(300, 400))])
        exons = list(store.by_kind(FeatureKind.EXON))
        assert [f.ref_range for f in exons] == [Range(100, 200), Range(300, 400)]
        # Each call is a fresh iteration
        assert len(list(store.by_kind(FeatureKind.EXON))) == 2
        assert store.count(FeatureKind.MATCH) == 1

    def test_ranges(self):
        store = FeatureStore([Feature(FeatureKind.EXON, Range(100, 200)), match(1, 10)])
        np.testing.assert_array_equal(store.ranges(), [[100, 200], [1, 10]])
        np.testing.assert_array_equal(store.ranges(FeatureKind.MATCH), [[1, 10]])
        assert store.ranges(FeatureKind.CDS).shape == (0, 2)

    def test_discard(self):
        store = FeatureStore()
        fid = store.insert(Feature(FeatureKind.CDS, Range(1, 10)))
        assert fid in store
        assert store.discard(fid).ref_range == Range(1, 10)
        assert fid not in store
        assert store.count(FeatureKind.CDS) == 0
        assert store.discard(fid) is None


class TestExtent:
    def test_find_extent(self):
        features = [Feature(FeatureKind.EXON, Range(100, 200)), Feature(FeatureKind.EXON, Range(300, 400)),
                    Feature(FeatureKind.EXON, Range(50, 500), Strand.REVERSE)]
        assert find_extent(features, True, Strand.FORWARD) == 100
        assert find_extent(features, False, Strand.FORWARD) == 400
        assert find_extent(features, True) == 50
        assert find_extent(features, False, Strand.REVERSE) == 500

    def test_empty(self):
        assert find_extent([], True) == UNSET
        assert find_extent([Feature(FeatureKind.EXON, Range(1, 2))], True, Strand.REVERSE) == UNSET

    def test_find_match_extent(self):
        features = [match(100, 150, 5), match(300, 320, 60), Feature(FeatureKind.EXON, Range(1, 2))]
        assert find_match_extent(features, True) == 5
        assert find_match_extent(features, False) == 80
