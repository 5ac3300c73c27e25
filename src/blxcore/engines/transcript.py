"""
Transcript reconstruction: infers missing exon/CDS/UTR pieces and the introns between exons.
"""
from typing import Optional

from blxcore.core.interval import Range, UNSET
from blxcore.containers.feature import Feature, FeatureKind
from blxcore.containers.sequence import Sequence, SequenceKind, SequenceRegistry


# Classes --------------------------------------------------------------------------------------------------------------
class TranscriptBuilder:
    """
    Completes the structure of transcript aggregates.

    After reconstruction every exon has CDS/UTR children covering it, every gap
    between exons has an intron, and leading/trailing introns reach out to the
    transcript's extent. All created features are inserted into the store and
    attached to the transcript exactly like parsed features.

    Args:
        registry: The registry (and through it, the feature store) that owns the transcripts.

    Examples:
        >>> builder = TranscriptBuilder(registry)
        >>> for transcript in builder.reconstruct(seq):
        ...     print([f.coords_as_string() for f in transcript])
    """
    __slots__ = ('_registry',)

    def __init__(self, registry: SequenceRegistry):
        self._registry = registry

    @property
    def registry(self) -> SequenceRegistry: return self._registry

    def reconstruct(self, sequence: Sequence, split_variants: bool = True) -> list[Sequence]:
        """
        Splits a transcript into its CDS variants (if requested), then builds each result.

        Args:
            sequence: A transcript aggregate.
            split_variants: Whether to make one copy per distinct CDS name.

        Returns:
            The transcripts that now hold the reconstructed data (the input itself
            unless it was split).
        """
        if sequence.kind != SequenceKind.TRANSCRIPT: return [sequence]
        transcripts = self.split_variants(sequence) if split_variants else [sequence]
        for transcript in transcripts: self.build(transcript)
        return transcripts

    def split_variants(self, sequence: Sequence) -> list[Sequence]:
        """
        Copies a transcript once per distinct CDS name.

        Each copy holds all the non-CDS features plus the CDSs of one name, and is
        keyed on that CDS name. The original transcript and its features are then
        discarded.

        Args:
            sequence: A transcript aggregate.

        Returns:
            The copies, or ``[sequence]`` if it has at most one CDS name.
        """
        names = sequence.cds_names()
        if len(names) <= 1: return [sequence]
        store = self._registry.store
        features = tuple(sequence)
        # Unregister first so the copies cannot resolve back to the original by name
        self._registry.discard(sequence, features=False)
        copies = []
        for cds_name in names:
            copy = self._registry.create(sequence.name, cds_name if cds_name is not None else sequence.id_tag,
                                         sequence.strand, SequenceKind.TRANSCRIPT, sequence.source)
            copy.declare_span(sequence.span)
            for feature in features:
                if feature.kind != FeatureKind.CDS or feature.name == cds_name:
                    new = feature.copy()
                    store.insert(new)
                    self._registry.attach(copy, new)
            copies.append(copy)
        for fid in sequence.feature_ids: store.discard(fid)
        return copies

    def build(self, sequence: Sequence) -> list[Feature]:
        """
        Creates the missing exon, CDS, UTR and intron features of one transcript.

        Features inferred by an earlier build are discarded first, so a transcript
        that gained features through a merge is rebuilt from its records alone. The
        extents are then recomputed; they bound the leading and trailing introns.

        Args:
            sequence: A transcript aggregate.

        Returns:
            The newly created features.
        """
        for feature in tuple(sequence):
            if feature.inferred:
                sequence.remove_feature(feature)
                self._registry.store.discard(feature.id)
        sequence.find_extents()
        walk = _ExonWalk(self._registry, sequence)
        for feature in tuple(sequence):
            if feature.is_intron: walk.intron()
            elif feature.is_exon_type: walk.add(feature)
        walk.finish()
        return walk.created


class _ExonWalk:
    """
    State for one pass over a transcript's sorted features.

    A segment is the exon being assembled plus its CDS/UTR children. It closes at
    an intron, at a positional gap to the next piece, or at the end of the list.
    """
    __slots__ = ('registry', 'sequence', 'created', 'exon', 'children', 'segment_end', 'prev_exon', 'intron_seen',
                 'spanning_cds')

    def __init__(self, registry: SequenceRegistry, sequence: Sequence):
        self.registry = registry
        self.sequence = sequence
        self.created: list[Feature] = []
        self.exon: Optional[Feature] = None
        self.children: list[Feature] = []
        self.segment_end = UNSET
        self.prev_exon: Optional[Feature] = None
        self.intron_seen = False
        # A single CDS spanning several exons (one CDS for the whole transcript)
        self.spanning_cds: Optional[Feature] = None

    @property
    def is_open(self) -> bool: return self.exon is not None or len(self.children) > 0

    def intron(self):
        if self.is_open: self.close()
        self.intron_seen = True

    def add(self, feature: Feature):
        # Touching ranges are not a gap
        if self.is_open and feature.ref_range.min > self.segment_end + 1: self.close()
        if feature.kind == FeatureKind.EXON:
            if self.exon is not None: self.close()
            self.exon = feature
            if self.spanning_cds is not None: self.children.append(self.spanning_cds)
            self.segment_end = feature.ref_range.max
        else:
            self.children.append(feature)
            if self.exon is None: self.segment_end = max(self.segment_end, feature.ref_range.max)

    def finish(self):
        if self.is_open: self.close()
        end = self.sequence.end()
        if self.prev_exon is not None and not self.intron_seen and end != UNSET and end > self.prev_exon.ref_range.max:
            self._create(FeatureKind.INTRON, Range(self.prev_exon.ref_range.max + 1, end), self.prev_exon)
        if self.spanning_cds is not None:
            self.sequence.remove_feature(self.spanning_cds)
            self.registry.store.discard(self.spanning_cds.id)

    def close(self):
        exon = self.exon
        if exon is not None:
            if self.children: self._clip_children(exon)
            if self.children: self._fill_gaps(exon)
            # Nothing says this exon is coding
            else: self._create_child(FeatureKind.UTR, exon.ref_range, exon)
        else:
            first = min(self.children, key=lambda f: f.sort_key)
            exon = self._create(FeatureKind.EXON, Range.hull(c.ref_range for c in self.children), first)

        if not self.intron_seen:
            if self.prev_exon is None:
                start = self.sequence.start()
                if start != UNSET and start < exon.ref_range.min:
                    self._create(FeatureKind.INTRON, Range(start, exon.ref_range.min - 1), exon)
            elif self.prev_exon.ref_range.max + 1 <= exon.ref_range.min - 1:
                self._create(FeatureKind.INTRON, Range(self.prev_exon.ref_range.max + 1, exon.ref_range.min - 1), exon)

        self._set_children(exon)
        self.prev_exon = exon
        self.intron_seen = False
        self.exon = None
        self.children = []
        self.segment_end = UNSET

    def _clip_children(self, exon: Feature):
        children = []
        for child in self.children:
            if child is self.spanning_cds and not child.ref_range.overlaps(exon.ref_range): continue
            if child.kind == FeatureKind.CDS and child.ref_range.overlaps(exon.ref_range) and \
                    child.ref_range not in exon.ref_range:
                # The clipped pieces replace the record, so they are kept on a rebuild
                clipped = self._create(FeatureKind.CDS, child.ref_range.intersection(exon.ref_range), child,
                                       name=child.name, inferred=False)
                self.spanning_cds = child
                child = clipped
            children.append(child)
        self.children = children

    def _fill_gaps(self, exon: Feature):
        children = sorted(self.children, key=lambda f: f.ref_range.min)
        gaps = [exon.ref_range]
        for child in children: gaps = [piece for gap in gaps for piece in gap.subtract(child.ref_range)]
        for gap in gaps:
            before = next((c for c in children if c.ref_range.max == gap.min - 1), None)
            after = next((c for c in children if c.ref_range.min == gap.max + 1), None)
            self._create_child(self._gap_kind(before, after), gap, exon)

    def _set_children(self, exon: Feature):
        children = sorted(self.children, key=lambda f: f.sort_key)
        exon.children = [c.id for c in children]
        if (cds := next((c for c in children if c.kind == FeatureKind.CDS), None)) is not None:
            # Exon and UTR pieces are displayed in the reading frame of their CDS
            for feature in (exon, *children):
                feature.ref_frame = cds.ref_frame
                feature.phase = cds.phase

    @staticmethod
    def _gap_kind(before: Optional[Feature], after: Optional[Feature]) -> FeatureKind:
        # Only a stretch bounded by coding pieces alone is untranslated
        kinds = {c.kind for c in (before, after) if c is not None}
        return FeatureKind.UTR if kinds == {FeatureKind.CDS} else FeatureKind.CDS

    def _create_child(self, kind: FeatureKind, ref_range: Range, exon: Feature) -> Feature:
        child = self._create(kind, ref_range, exon)
        self.children.append(child)
        return child

    def _create(self, kind: FeatureKind, ref_range: Range, template: Feature, name: str = None,
                inferred: bool = True) -> Feature:
        sequence = self.sequence
        feature = Feature(kind, ref_range, sequence.strand, ref_frame=template.ref_frame, phase=template.phase,
                          ref_name=template.ref_name, name=name if name is not None else sequence.display_name,
                          id_tag=sequence.id_tag, source=sequence.source, inferred=inferred)
        if kind == FeatureKind.INTRON: feature.score = template.score
        self.registry.store.insert(feature)
        self.registry.attach(sequence, feature)
        self.created.append(feature)
        return feature
