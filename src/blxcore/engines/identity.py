"""
Percent-identity scoring of alignment features against the reference sequence.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Iterable, Optional, Union
from warnings import warn

import numpy as np

from blxcore import BlxWarning
from blxcore.core.alphabet import Alphabet, GeneticCode
from blxcore.core.interval import Range, Strand, UNSET
from blxcore.containers.feature import Feature
from blxcore.utils.resources import jit


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class IdentityWarning(BlxWarning): pass
class MissingMatchResiduesWarning(IdentityWarning): pass
class ClippedReferenceWarning(IdentityWarning): pass
class UnsupportedScoringModeWarning(IdentityWarning): pass


# Classes --------------------------------------------------------------------------------------------------------------
class BlastMode(IntEnum):
    """
    The alignment program mode, which fixes the display sequence type.

    Examples:
        >>> BlastMode.BLASTX.frames
        3
        >>> BlastMode.from_symbol('blastn')
        <BlastMode.BLASTN: 0>
    """
    BLASTN = 0
    BLASTP = 1
    BLASTX = 2
    TBLASTN = 3
    TBLASTX = 4

    @property
    def is_peptide(self) -> bool:
        """Whether the reference is displayed (and compared) as peptide."""
        return self != BlastMode.BLASTN

    @property
    def frames(self) -> int: return 3 if self.is_peptide else 1

    @property
    def compares_by_position(self) -> bool:
        """Whether match residues are compared by alignment position rather than by match coordinate."""
        return self in (BlastMode.TBLASTN, BlastMode.TBLASTX)

    @classmethod
    def from_symbol(cls, s: Union['BlastMode', str, int]) -> 'BlastMode':
        if isinstance(s, cls): return s
        if isinstance(s, int): return cls(s)
        if isinstance(s, str): return cls[s.upper()]
        raise TypeError(f"Cannot coerce {type(s)} to BlastMode")


@dataclass(slots=True)
class ScoringReport:
    """
    Summary of a scoring run.

    Attributes:
        scored: Features that received an identity.
        unscored: Features that could not be scored (no residues, unsupported mode, or outside the reference).
        clipped: Features whose range extended beyond the reference and was clipped.
        lowest_identity: The lowest identity assigned (None if nothing was scored).
    """
    scored: int = 0
    unscored: int = 0
    clipped: int = 0
    lowest_identity: Optional[float] = None

    def add(self, identity: float):
        self.scored += 1
        if self.lowest_identity is None or identity < self.lowest_identity: self.lowest_identity = identity


class IdentityScorer:
    """
    Calculates the percent identity of Match and ShortRead features.

    The reference segment under a feature is extracted in the orientation of the
    feature's reference strand (complemented, reversed and translated as the mode
    requires) and compared residue by residue against the match sequence.

    Args:
        reference: The reference residues (forward strand, nucleotide).
        ref_range: The coordinates of ``reference`` (defaults to ``1..len(reference)``).
        mode: The alignment program mode.
        code: The genetic code used in peptide modes.

    Examples:
        >>> scorer = IdentityScorer(b'ACGTACGT')
        >>> f = Feature(FeatureKind.MATCH, Range(1, 8), Strand.FORWARD, Range(1, 8), Strand.FORWARD)
        >>> scorer.score(f, b'ACGAACGT')
        87.5
    """
    __slots__ = ('_reference', 'ref_range', 'mode', 'code', 'report', '_clip_warned')

    def __init__(self, reference: Union[bytes, str], ref_range: Range = None,
                 mode: Union[BlastMode, str] = BlastMode.BLASTN, code: GeneticCode = GeneticCode.STANDARD):
        if isinstance(reference, str): reference = reference.encode(Alphabet.ENCODING)
        self._reference = reference
        self.ref_range = ref_range if ref_range is not None else Range(1, len(reference))
        self.mode = BlastMode.from_symbol(mode)
        self.code = code
        self.report = ScoringReport()
        self._clip_warned = False

    @property
    def frames(self) -> int: return self.mode.frames

    @property
    def reference(self) -> bytes: return self._reference

    def extract_segment(self, ref_range: Range, strand: Strand) -> Optional[tuple[bytes, Range]]:
        """
        Extracts the reference residues under a range, oriented to the given strand.

        Args:
            ref_range: The nucleotide range to extract.
            strand: The reference strand of the feature.

        Returns:
            The segment and the (possibly clipped) range it was taken from, or None if
            the range lies entirely outside the reference.
        """
        if (clipped := ref_range.clip(self.ref_range)) is None: return None
        # Partial codons at the ends are expected, anything further out is not
        margin = self.frames + 1
        if ref_range.min < self.ref_range.min - margin or ref_range.max > self.ref_range.max + margin:
            self.report.clipped += 1
            if not self._clip_warned:
                warn('There were errors calculating the percent ID for some sequences because the match extends '
                     'out of the reference sequence range; some IDs may be incorrect', ClippedReferenceWarning)
                self._clip_warned = True
        segment = self._reference[clipped.min - self.ref_range.min:clipped.max - self.ref_range.min + 1]
        if strand == Strand.REVERSE:
            # Peptide references are reversed without complementing
            if self.mode in (BlastMode.TBLASTN, BlastMode.BLASTP): segment = segment[::-1]
            else: segment = Alphabet.IUPAC.reverse_complement(segment)
        if self.mode.is_peptide: segment = self.code.translate(segment)
        return segment, clipped

    def score(self, feature: Feature, match_residues: Union[bytes, str, None]) -> Optional[float]:
        """
        Calculates and stores the identity of one feature.

        Only Match/ShortRead features without an identity are scored, so scoring
        the same feature twice leaves the first result in place.

        Args:
            feature: The alignment feature.
            match_residues: The full match sequence (forward strand).

        Returns:
            The new identity, or None if the feature was skipped or could not be scored.
        """
        if not feature.is_match or feature.identity != UNSET: return None
        feature.identity = 0.0
        if not match_residues:
            warn(f"No sequence data for '{feature.name}' ({feature.coords_as_string()}); identity set to 0",
                 MissingMatchResiduesWarning)
            self.report.unscored += 1
            return None
        if isinstance(match_residues, str): match_residues = match_residues.encode(Alphabet.ENCODING)

        if (extracted := self.extract_segment(feature.ref_range, feature.ref_strand)) is None:
            self.report.unscored += 1
            return None
        segment, clipped = extracted
        ref = np.frombuffer(segment.upper(), dtype=Alphabet.DTYPE)
        match = np.frombuffer(match_residues.upper(), dtype=Alphabet.DTYPE)
        step = -1 if feature.match_strand == Strand.REVERSE else 1

        if not feature.is_gapped:
            total = len(clipped) // self.frames
            if self.mode.compares_by_position: start, step = 0, 1
            elif step == 1: start = feature.match_range.min - 1
            else: start = feature.match_range.max - 1
            matching = _count_matches(ref, 0, match, start, step, total)
        elif self.mode.compares_by_position:
            warn(f"Identity of gapped {self.mode.name.lower()} alignments is not implemented "
                 f"('{feature.name}' {feature.coords_as_string()})", UnsupportedScoringModeWarning)
            feature.identity = UNSET
            self.report.unscored += 1
            return None
        else:
            total, matching = 0, 0
            for gap in feature.gaps:
                total += len(gap.match)
                if feature.ref_strand == Strand.REVERSE: q_start = (clipped.max - gap.ref.max) // self.frames
                else: q_start = (gap.ref.min - clipped.min) // self.frames
                s_start = gap.match.min - 1 if step == 1 else gap.match.max - 1
                matching += _count_matches(ref, q_start, match, s_start, step, len(gap.match))

        feature.identity = 100.0 * matching / total if total > 0 else 0.0
        self.report.add(feature.identity)
        return feature.identity

    def score_all(self, features: Iterable[Feature],
                  residues: Callable[[Feature], Optional[bytes]]) -> ScoringReport:
        """
        Scores every unscored alignment feature.

        Args:
            features: The features to consider (non-alignment kinds are skipped).
            residues: Returns the match residues for a feature.

        Returns:
            The scorer's cumulative ``ScoringReport``.
        """
        for feature in features:
            if feature.is_match and feature.identity == UNSET: self.score(feature, residues(feature))
        return self.report


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _count_matches(ref, ref_start, match, match_start, match_step, n):
    """
    Counts equal residues walking ``ref`` forwards and ``match`` in ``match_step`` direction.
    Stops at the end of ``ref``; positions outside either array are skipped.
    """
    count = 0
    n_ref, n_match = len(ref), len(match)
    for i in range(n):
        q = ref_start + i
        if q >= n_ref: break
        s = match_start + match_step * i
        if q < 0 or s < 0 or s >= n_match: continue
        if ref[q] == match[s]: count += 1
    return count
