import warnings

import pytest
from blxcore.core.interval import Range, Strand, UNSET
from blxcore.containers.feature import Feature, FeatureKind
from blxcore.engines.frame import ReadingFrameWarning, base_number, offset_to_codon_start, reading_frame

REF = Range(1, 1000)


class TestCodonOffset:
    def test_forward(self):
        assert [offset_to_codon_start(c, 3, Strand.FORWARD) for c in range(1, 7)] == [0, 2, 1, 0, 2, 1]

    def test_reverse(self):
        assert [offset_to_codon_start(c, 3, Strand.REVERSE) for c in range(1, 4)] == [2, 0, 1]

    def test_single_frame(self):
        assert offset_to_codon_start(17, 1, Strand.FORWARD) == 0

    def test_base_number(self):
        assert [base_number(c, 3, False) for c in range(1, 5)] == [1, 2, 3, 1]
        assert base_number(3, 3, True) == 1
        assert base_number(200, 3, True) == 2
        assert base_number(200, 1, True) == 1


class TestReadingFrame:
    def test_forward_cds(self):
        cds = Feature(FeatureKind.CDS, Range(120, 180), Strand.FORWARD, phase=0)
        assert reading_frame(cds, 3, REF) == 3
        assert cds.ref_frame == 3

    def test_phase_moves_start(self):
        cds = Feature(FeatureKind.CDS, Range(120, 180), Strand.FORWARD, phase=1)
        assert reading_frame(cds, 3, REF) == 1

    def test_reverse_cds(self):
        cds = Feature(FeatureKind.CDS, Range(100, 200), Strand.REVERSE, phase=0)
        assert reading_frame(cds, 3, REF) == 2

    def test_nucleotide_display(self):
        match = Feature(FeatureKind.MATCH, Range(120, 180), Strand.FORWARD, Range(1, 61), Strand.FORWARD)
        assert reading_frame(match, 1, REF) == 1

    def test_intron_untouched(self):
        intron = Feature(FeatureKind.INTRON, Range(201, 299))
        assert reading_frame(intron, 3, REF) == UNSET

    def test_legacy_frame_disagrees(self):
        exon = Feature(FeatureKind.EXON, Range(100, 200), Strand.FORWARD, ref_frame=2)
        with pytest.warns(ReadingFrameWarning, match="calculated frame was '1'"):
            assert reading_frame(exon, 3, REF) == 2

    def test_legacy_frame_adjusted(self):
        # A reference starting at base 2 moves the given frame by two
        exon = Feature(FeatureKind.EXON, Range(100, 200), Strand.FORWARD, ref_frame=2)
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            assert reading_frame(exon, 3, Range(2, 1000)) == 1

    def test_unset_range_defaults_to_one(self):
        match = Feature(FeatureKind.MATCH, Range.unset(), Strand.FORWARD)
        with pytest.warns(ReadingFrameWarning, match="setting to 1"):
            assert reading_frame(match, 3, REF) == 1
