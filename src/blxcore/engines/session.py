"""
Load sessions: the entry point that ingests raw feature records, then finalises them in one pass.

Examples:
    >>> session = LoadSession(reference=b'ACGTACGT')
    >>> session.create_feature('match', 50.0, UNSET, UNSET, 'chr1', 1, 8, '+', UNSET, 'EST1', 1, 8, '+',
    ...                        residues=b'ACGAACGT')
    >>> report = session.finalise()
    >>> report.lowest_identity
    87.5
"""
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union, Generator
from warnings import warn

from blxcore import BlxWarning
from blxcore.core.alphabet import Alphabet, GeneticCode
from blxcore.core.interval import Range, RangeError, Strand, UNSET
from blxcore.containers.feature import Feature, FeatureKind, FeatureStore, GapRange
from blxcore.containers.sequence import (Sequence, SequenceKind, SequenceRegistry, InvalidKeyError,
                                         SequenceDataMismatchError)
from blxcore.engines.frame import reading_frame
from blxcore.engines.identity import BlastMode, IdentityScorer, ScoringReport
from blxcore.engines.transcript import TranscriptBuilder
from blxcore.utils import Config


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class InvalidRecordWarning(BlxWarning): pass


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True, slots=True, kw_only=True)
class SessionConfig(Config):
    """
    Policy for loading and finalising a data set.

    Attributes:
        mode: The alignment program mode (sets nucleotide or peptide display).
        offset: Added to every reference coordinate, once per record.
        calc_frame: Whether to calculate the reference reading frame of each feature.
        link_by_name: Whether features sharing a name (but no id tag) join the same aggregate.
        strip_legacy_suffixes: Whether to drop the ``x``/``i`` suffix of legacy exon/intron names.
        split_cds_variants: Whether to split transcripts with several CDS names into one copy per name.
        complement_reverse_residues: Whether to complement the residues of reverse-strand matches (blastn only).
        polya_bases_to_check: Tail bases checked by ``LoadSession.polya_tails`` (-1 for the whole tail).
    """
    mode: BlastMode = BlastMode.BLASTN
    offset: int = 0
    calc_frame: bool = True
    link_by_name: bool = True
    strip_legacy_suffixes: bool = True
    split_cds_variants: bool = True
    complement_reverse_residues: bool = True
    polya_bases_to_check: int = -1

    def __post_init__(self):
        # Accept mode names from the command line
        object.__setattr__(self, "mode", BlastMode.from_symbol(self.mode))


@dataclass(slots=True)
class LoadReport:
    """
    Summary of one ``LoadSession.finalise`` call.

    Attributes:
        sequences: Aggregates finalised (after CDS-variant splitting).
        features: Features finalised, including those created by reconstruction.
        unscored: Alignments whose identity could not be calculated.
        clipped: Alignments that extended beyond the reference and were clipped for scoring.
        lowest_identity: The lowest identity calculated (None if nothing was scored).
    """
    sequences: int = 0
    features: int = 0
    unscored: int = 0
    clipped: int = 0
    lowest_identity: Optional[float] = None


class LoadSession:
    """
    Owns the feature store, the sequence registry and the per-load state of a data set.

    Records are ingested with ``create_feature`` and ``add_transcript``; ``finalise``
    then applies the coordinate offset, calculates reading frames, reconstructs
    transcripts and scores alignments. Only aggregates touched since the previous
    finalisation are processed, so ``merge`` can add batches to a loaded session.

    Args:
        reference: The reference residues (forward strand, nucleotide). Without it no identities are scored.
        ref_range: The coordinates of ``reference`` (defaults to ``1..len(reference)``).
        config: Loading policy.
        code: The genetic code used in peptide modes.
    """
    def __init__(self, reference: Union[bytes, str] = None, ref_range: Range = None, config: SessionConfig = None,
                 code: GeneticCode = GeneticCode.STANDARD):
        self.config = config or SessionConfig()
        self.store = FeatureStore()
        self.registry = SequenceRegistry(self.store, link_by_name=self.config.link_by_name,
                                         strip_legacy_suffixes=self.config.strip_legacy_suffixes)
        self.builder = TranscriptBuilder(self.registry)
        self.scorer = IdentityScorer(reference, ref_range, self.config.mode, code) if reference is not None else None
        if ref_range is not None: self.ref_range = ref_range
        elif reference is not None: self.ref_range = self.scorer.ref_range
        else: self.ref_range = Range.unset()
        self.max_feature_length = 0
        self._pending_sequences: set[int] = set()
        self._pending_features: dict[int, None] = {}

    def __repr__(self): return f"LoadSession({len(self.registry)} sequences, {len(self.store)} features)"

    @property
    def frames(self) -> int: return self.config.mode.frames

    @property
    def pending(self) -> frozenset[int]:
        """Ids of aggregates awaiting finalisation."""
        return frozenset(self._pending_sequences)

    def create_feature(self, kind: Union[FeatureKind, str], score: float, identity: float, phase: int,
                       ref_name: Optional[str], ref_start: int, ref_end: int, ref_strand: Any, ref_frame: int,
                       name: Optional[str], match_start: int, match_end: int, match_strand: Any,
                       residues: Union[bytes, str] = None, id_tag: str = None, gaps: Iterable = None,
                       source: str = None) -> Optional[Feature]:
        """
        Creates a feature from a raw record, stores it and attaches it to its aggregate(s).

        Args:
            kind: The feature kind (a ``FeatureKind`` or a feature-type term such as ``'exon'``).
            score: The alignment score.
            identity: The percent identity, or ``UNSET`` to have it calculated.
            phase: The CDS phase (0..2) or ``UNSET``.
            ref_name: The reference sequence name.
            ref_start: Start coordinate on the reference (either end; the range is normalised).
            ref_end: End coordinate on the reference.
            ref_strand: Reference strand (a ``Strand`` or symbol).
            ref_frame: The given reading frame or ``UNSET``.
            name: The match or feature name.
            match_start: Start coordinate on the match (``UNSET`` for annotations).
            match_end: End coordinate on the match.
            match_strand: Match strand.
            residues: Match residues (forward strand).
            id_tag: Parent id tag; comma-separated for several parents.
            gaps: Ungapped blocks, as ``GapRange`` objects or ``(ref_start, ref_end, match_start, match_end)`` tuples.
            source: The data source.

        Returns:
            The stored feature, or None if the record was rejected.
        """
        try:
            feature = Feature(kind, Range(ref_start, ref_end), ref_strand, Range(match_start, match_end), match_strand,
                              ref_frame=ref_frame, phase=phase, score=score, identity=identity, ref_name=ref_name,
                              name=name, id_tag=id_tag, source=source, gaps=[self._gap(g) for g in gaps or ()])
        except RangeError as e:
            warn(f"Skipping {kind} record for '{name}': {e}", InvalidRecordWarning)
            return None
        self.store.insert(feature)
        try:
            attached = self._attach(feature, residues)
        except InvalidKeyError as e:
            self.store.discard(feature.id)
            warn(f"Skipping {feature.kind} record at {feature.coords_as_string()}: {e}", InvalidRecordWarning)
            return None
        self.max_feature_length = max(self.max_feature_length, len(feature))
        self._pending_sequences.update(seq.id for seq in attached)
        self._pending_features[feature.id] = None
        # Copies made for further parents are stored after the feature itself
        self._pending_features.update((fid, None) for seq in attached[1:] for fid in seq.feature_ids
                                      if fid > feature.id)
        return feature

    def _attach(self, feature: Feature, residues) -> list[Sequence]:
        try:
            return self.registry.add_feature(feature, residues)
        except SequenceDataMismatchError as e:
            # The record is kept without its conflicting residues
            warn(str(e), InvalidRecordWarning)
            return self.registry.add_feature(feature)

    @staticmethod
    def _gap(gap) -> GapRange:
        if isinstance(gap, GapRange): return gap
        if len(gap) == 4: return GapRange(Range(gap[0], gap[1]), Range(gap[2], gap[3]))
        return GapRange(*gap)

    def add_transcript(self, name: Optional[str], id_tag: Optional[str], start: int, end: int, strand: Any,
                       source: str = None) -> Optional[Sequence]:
        """
        Records a parent transcript: creates (or finds) its aggregate and declares its span.

        Returns:
            The transcript aggregate, or None if the record has neither a name nor an id tag.
        """
        try:
            seq = self.registry.find_or_create(name, id_tag, strand, source=source)
        except InvalidKeyError as e:
            warn(f"Skipping transcript record at {start} - {end}: {e}", InvalidRecordWarning)
            return None
        if seq.kind == SequenceKind.UNSET: seq.kind = SequenceKind.TRANSCRIPT
        # Spans are declared once, so they are offset here rather than at finalisation
        seq.declare_span(Range(start, end).shift(self.config.offset))
        self._pending_sequences.add(seq.id)
        return seq

    def finalise(self) -> LoadReport:
        """
        Finalises everything ingested since the last call.

        Returns:
            A ``LoadReport`` for this batch.
        """
        features = [self.store[fid] for fid in self._pending_features if fid in self.store]
        sequences = [self.registry[sid] for sid in sorted(self._pending_sequences) if sid in self.registry]
        self._pending_features = {}
        self._pending_sequences = set()

        if self.config.offset:
            for feature in features: feature.shift(self.config.offset)
            for seq in sequences: seq.resort()

        if self.config.calc_frame:
            for feature in features: reading_frame(feature, self.frames, self.ref_range)

        if self.config.complement_reverse_residues and self.config.mode == BlastMode.BLASTN:
            for seq in sequences:
                if seq.kind in (SequenceKind.MATCH, SequenceKind.READ_PAIR) and seq.strand == Strand.REVERSE:
                    seq.complement_residues()

        finalised = []
        for seq in sequences:
            if seq.kind == SequenceKind.TRANSCRIPT:
                finalised.extend(self.builder.reconstruct(seq, split_variants=self.config.split_cds_variants))
            else:
                seq.find_extents()
                finalised.append(seq)

        report = LoadReport(sequences=len(finalised), features=sum(len(seq) for seq in finalised))
        scoring = self._score(feature for seq in finalised for feature in seq)
        report.unscored, report.clipped, report.lowest_identity = (scoring.unscored, scoring.clipped,
                                                                   scoring.lowest_identity)
        return report

    def _score(self, features: Iterable[Feature]) -> ScoringReport:
        if self.scorer is None:
            return ScoringReport(unscored=sum(1 for f in features if f.is_match and f.identity == UNSET))
        self.scorer.report = ScoringReport()
        return self.scorer.score_all(features, self._residues)

    def _residues(self, feature: Feature) -> Optional[bytes]:
        return owner.residues if (owner := self.registry.owner(feature)) is not None else None

    def merge(self, records: Iterable[tuple], transcripts: Iterable[tuple] = ()) -> LoadReport:
        """
        Adds a new batch to a loaded session and finalises only the new data.

        Args:
            records: ``create_feature`` argument tuples.
            transcripts: ``add_transcript`` argument tuples.

        Returns:
            The ``LoadReport`` for the new batch.
        """
        for record in transcripts: self.add_transcript(*record)
        for record in records: self.create_feature(*record)
        return self.finalise()

    def sequences(self, kind: SequenceKind = None) -> Generator[Sequence, None, None]:
        """Yields the aggregates, optionally of one kind."""
        if kind is None: yield from self.registry
        else: yield from self.registry.by_kind(kind)

    def polya_tails(self) -> Generator[Feature, None, None]:
        """Yields the alignments whose unaligned match tail is poly-A (nucleotide matches only)."""
        if self.config.mode.is_peptide: return
        for feature in self.store:
            if not feature.is_match or (owner := self.registry.owner(feature)) is None: continue
            residues = owner.residues
            if residues and owner.is_complemented: residues = Alphabet.IUPAC.complement(residues)
            if feature.has_polya_tail(residues, self.config.polya_bases_to_check): yield feature

