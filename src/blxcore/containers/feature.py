"""Containers for alignment and annotation features, the feature arena and extent calculation."""
from typing import Generator, Union, Iterable, ClassVar, NamedTuple, Optional, Any
from enum import IntEnum, auto

import numpy as np

from blxcore.core.interval import Range, Strand, UNSET
from blxcore.utils.protocols import HasRange


# Classes --------------------------------------------------------------------------------------------------------------
class FeatureKind(IntEnum):
    """
    Kinds of alignment/annotation feature.

    The member order is significant: features starting at the same reference
    coordinate are ordered by kind, so CDS, UTR and intron pieces come before
    the exon that contains them.

    Examples:
        >>> FeatureKind.CDS
        <FeatureKind.CDS: 3>
        >>> str(FeatureKind.POLYA_SITE)
        'polyA_site'
        >>> FeatureKind.from_symbol('five_prime_UTR')
        <FeatureKind.UTR: 4>
    """
    MATCH = auto()
    SHORT_READ = auto()
    CDS = auto()
    UTR = auto()
    INTRON = auto()
    EXON = auto()
    POLYA_SITE = auto()
    VARIATION = auto()
    OTHER = auto()

    _STR_CACHE: ClassVar[dict]
    _BYTES_CACHE: ClassVar[dict]
    _FROM_BYTES_CACHE: ClassVar[dict]

    def __str__(self): return self._STR_CACHE[self]

    @property
    def bytes(self) -> bytes: return self._BYTES_CACHE[self]
    @property
    def is_exon_type(self) -> bool: return self in (FeatureKind.EXON, FeatureKind.CDS, FeatureKind.UTR)
    @property
    def is_match(self) -> bool: return self in (FeatureKind.MATCH, FeatureKind.SHORT_READ)

    @classmethod
    def from_bytes(cls, b: bytes) -> 'FeatureKind':
        """Looks up a FeatureKind by name or common feature-type term.

        Falls back to ``OTHER`` for unrecognised terms.

        Args:
            b: Kind name as bytes (e.g. ``b'CDS'``, ``b'exon'``).

        Returns:
            The matching FeatureKind member.
        """
        return cls._FROM_BYTES_CACHE.get(b, cls._FROM_BYTES_CACHE.get(b.lower(), cls.OTHER))

    @classmethod
    def from_symbol(cls, s: Any) -> 'FeatureKind':
        if isinstance(s, cls): return s
        if isinstance(s, int): return cls(s)
        if isinstance(s, str): s = s.encode('ascii')
        if isinstance(s, bytes): return cls.from_bytes(s)
        raise TypeError(f"Cannot coerce {type(s)} to FeatureKind")

    @classmethod
    def _init_caches(cls):
        cls._STR_CACHE = {}
        cls._BYTES_CACHE = {}
        cls._FROM_BYTES_CACHE = {}
        special = {cls.CDS: 'CDS', cls.UTR: 'UTR', cls.POLYA_SITE: 'polyA_site'}
        for k in cls:
            s = special.get(k, k.name.lower())
            cls._STR_CACHE[k] = s
            b = s.encode('ascii')
            cls._BYTES_CACHE[k] = b
            cls._FROM_BYTES_CACHE[b] = k
            cls._FROM_BYTES_CACHE[b.lower()] = k
        aliases = {
            b'nucleotide_match': cls.MATCH, b'protein_match': cls.MATCH, b'cdna_match': cls.MATCH,
            b'expressed_sequence_match': cls.MATCH, b'match_part': cls.MATCH, b'read': cls.SHORT_READ,
            b'read_pair': cls.SHORT_READ, b'five_prime_utr': cls.UTR, b'three_prime_utr': cls.UTR,
            b'polya_signal_sequence': cls.POLYA_SITE, b'sequence_alteration': cls.VARIATION,
            b'snp': cls.VARIATION, b'snv': cls.VARIATION, b'insertion': cls.VARIATION,
            b'deletion': cls.VARIATION, b'substitution': cls.VARIATION, b'coding_exon': cls.EXON,
        }
        cls._FROM_BYTES_CACHE.update(aliases)


FeatureKind._init_caches()


class GapRange(NamedTuple):
    """One ungapped block of a gapped alignment: a reference sub-range and its matching sub-range."""
    ref: Range
    match: Range


class Feature:
    """
    A single alignment or annotation record on the reference sequence.

    Features are owned by a ``FeatureStore``, which assigns each one a stable integer
    ``id``. Relationships to other objects are held as ids: ``children`` lists the ids
    of child features (an exon's CDS/UTR pieces) and ``sequence_id`` refers to the
    owning ``Sequence`` aggregate.

    Args:
        kind: The feature kind. Accepts a ``FeatureKind`` or a kind name.
        ref_range: Coordinates on the reference sequence.
        ref_strand: Strand on the reference sequence.
        match_range: Coordinates on the match sequence (unset for annotations).
        match_strand: Strand on the match sequence. Ignored for exon-type and intron
            features, which always take the reference strand.
        inferred: Whether the feature was created by transcript reconstruction.

    Examples:
        >>> f = Feature(FeatureKind.MATCH, Range(100, 150), Strand.FORWARD, Range(1, 51), Strand.FORWARD)
        >>> f.coords_as_string()
        '100 - 150 [1 - 51]'
    """
    Kind = FeatureKind  # Alias for convenience (e.g. Feature.Kind.CDS)
    __slots__ = ('id', 'kind', 'ref_range', 'match_range', 'ref_strand', 'match_strand', 'ref_frame', 'phase',
                 'score', 'identity', 'ref_name', 'name', 'id_tag', 'source', 'gaps', 'children', 'sequence_id',
                 'inferred')

    def __init__(self, kind: Union[FeatureKind, str, bytes], ref_range: Range, ref_strand: Any = Strand.FORWARD,
                 match_range: Range = None, match_strand: Any = None, *, ref_frame: int = UNSET, phase: int = UNSET,
                 score: float = UNSET, identity: float = UNSET, ref_name: str = None, name: str = None,
                 id_tag: str = None, source: str = None, gaps: Iterable[GapRange] = (), inferred: bool = False):
        self.id: Optional[int] = None
        self.kind: FeatureKind = FeatureKind.from_symbol(kind)
        self.ref_range: Range = ref_range
        self.match_range: Range = match_range if match_range is not None else Range.unset()
        self.ref_strand: Strand = Strand.from_symbol(ref_strand)
        # Exon-type and intron features are drawn in the direction of the reference
        if self.kind.is_exon_type or self.kind == FeatureKind.INTRON: self.match_strand = self.ref_strand
        else: self.match_strand = Strand.from_symbol(match_strand)
        self.ref_frame: int = ref_frame
        self.phase: int = phase
        self.score: float = score
        self.identity: float = identity
        self.ref_name = ref_name
        self.name = name
        self.id_tag = id_tag
        self.source = source
        self.gaps: tuple[GapRange, ...] = tuple(gaps)
        self.children: list[int] = []
        self.sequence_id: Optional[int] = None
        self.inferred = inferred

    def __len__(self) -> int: return len(self.ref_range)
    def __repr__(self): return f"Feature({self.kind.name}, {self.ref_range}({self.ref_strand}), id={self.id})"

    @property
    def sort_key(self) -> tuple[int, int]:
        """The ordering key within a sequence: reference start, then kind ordinal."""
        return self.ref_range.min, self.kind.value

    @property
    def is_exon_type(self) -> bool: return self.kind.is_exon_type
    @property
    def is_intron(self) -> bool: return self.kind == FeatureKind.INTRON
    @property
    def is_match(self) -> bool: return self.kind.is_match
    @property
    def is_variation(self) -> bool: return self.kind == FeatureKind.VARIATION
    @property
    def is_gapped(self) -> bool: return len(self.gaps) > 0

    @property
    def ref_start(self) -> int:
        """The 5' reference coordinate: the lowest coordinate on the forward strand, the highest on the reverse."""
        return self.ref_range.max if self.ref_strand == Strand.REVERSE else self.ref_range.min

    @property
    def ref_end(self) -> int:
        """The 3' reference coordinate."""
        return self.ref_range.min if self.ref_strand == Strand.REVERSE else self.ref_range.max

    def coords_as_string(self) -> str:
        """
        Formats the coordinates for display.

        Returns:
            ``"{qmin} - {qmax} [{smin} - {smax}]"``, or ``"{qmin} - {qmax}"`` when the
            feature has no match coordinates.
        """
        text = f"{self.ref_range.min} - {self.ref_range.max}"
        if self.match_range.is_set: text += f" [{self.match_range.min} - {self.match_range.max}]"
        return text

    def shift(self, offset: int):
        """Moves the reference coordinates (including gap blocks) by ``offset`` in place."""
        if offset == 0: return
        self.ref_range = self.ref_range.shift(offset)
        self.gaps = tuple(GapRange(g.ref.shift(offset), g.match) for g in self.gaps)

    def copy(self) -> 'Feature':
        """Creates a copy that is not yet stored, attached or scored.

        Returns:
            A new ``Feature`` with the same coordinates, names and frame.
        """
        return Feature(self.kind, self.ref_range, self.ref_strand, self.match_range, self.match_strand,
                       ref_frame=self.ref_frame, phase=self.phase, ref_name=self.ref_name, name=self.name,
                       id_tag=self.id_tag, source=self.source, gaps=self.gaps, inferred=self.inferred)

    def has_polya_tail(self, match_residues: Optional[bytes], bases_to_check: int = -1) -> bool:
        """
        Checks whether the unaligned part of the match sequence after the 3' end of
        the alignment is a poly-A tail.

        Args:
            match_residues: The full (forward) match sequence.
            bases_to_check: How many tail bases must be poly-A; -1 checks the whole tail.

        Returns:
            True if at least three tail bases were checked and all of them are ``A``
            (``T`` when the reference strand is reverse).
        """
        if not self.is_match or not match_residues or not self.match_range.is_set: return False
        if self.match_strand == self.ref_strand:
            tail = match_residues[self.match_range.max:]
            if bases_to_check > 0: tail = tail[:bases_to_check]
        else:
            tail = match_residues[:self.match_range.min - 1][::-1]
            if bases_to_check > 0: tail = tail[:bases_to_check]
        if len(tail) < max(3, bases_to_check): return False
        base = b'T' if self.ref_strand == Strand.REVERSE else b'A'
        return tail.upper() == base * len(tail)


class FeatureStore:
    """
    Arena owning every Feature of a data set.

    Features are appended in insertion order and addressed by the integer id the
    store assigns; a per-kind index gives typed iteration without scanning.

    Examples:
        >>> store = FeatureStore()
        >>> fid = store.insert(Feature(FeatureKind.EXON, Range(100, 200)))
        >>> [f.ref_range for f in store.by_kind(FeatureKind.EXON)]
        [100-200]
    """
    __slots__ = ('_features', '_by_kind', '_next_id')

    def __init__(self, features: Iterable[Feature] = None):
        self._features: dict[int, Feature] = {}
        self._by_kind: dict[FeatureKind, list[int]] = {k: [] for k in FeatureKind}
        self._next_id = 0
        for feature in features or (): self.insert(feature)

    def __len__(self): return len(self._features)
    def __iter__(self): return iter(tuple(self._features.values()))
    def __contains__(self, item: Union[int, Feature]):
        if isinstance(item, Feature): item = item.id
        return item in self._features
    def __getitem__(self, item: int) -> Feature: return self._features[item]
    def __repr__(self): return f"FeatureStore({len(self)} features)"

    def insert(self, feature: Feature) -> int:
        """
        Takes ownership of a feature and assigns its id.

        Args:
            feature: The feature to store.

        Returns:
            The feature's new id.
        """
        fid = self._next_id
        self._next_id += 1
        feature.id = fid
        self._features[fid] = feature
        self._by_kind[feature.kind].append(fid)
        return fid

    def by_kind(self, kind: FeatureKind) -> Generator[Feature, None, None]:
        """Yields the features of one kind in insertion order. Each call starts a fresh iteration."""
        for fid in tuple(self._by_kind[kind]):
            if (feature := self._features.get(fid)) is not None: yield feature

    def count(self, kind: FeatureKind) -> int: return len(self._by_kind[kind])

    def ranges(self, kind: FeatureKind = None) -> np.ndarray:
        """
        Returns reference coordinates as an ``(n, 2)`` array of ``(min, max)`` rows.

        Args:
            kind: Restrict to features of this kind (all features if None).
        """
        features = self._features.values() if kind is None else self.by_kind(kind)
        coords = [(f.ref_range.min, f.ref_range.max) for f in features]
        return np.array(coords, dtype=np.int64).reshape(-1, 2)

    def discard(self, fid: int) -> Optional[Feature]:
        """Removes a feature from the store and returns it (None if absent)."""
        if (feature := self._features.pop(fid, None)) is not None: self._by_kind[feature.kind].remove(fid)
        return feature

    def clear(self):
        self._features.clear()
        for ids in self._by_kind.values(): ids.clear()


# Functions ------------------------------------------------------------------------------------------------------------
def find_extent(features: Iterable[HasRange], find_min: bool, strand: Optional[Strand] = None) -> int:
    """
    Finds the lowest start or highest end reference coordinate over a set of features.

    Args:
        features: The features to scan.
        find_min: If True return the minimum ``ref_range.min``, else the maximum ``ref_range.max``.
        strand: Only consider features on this reference strand (None for both strands).

    Returns:
        The extent coordinate, or ``UNSET`` if no feature passes the strand filter.

    Examples:
        >>> find_extent([exon_a, exon_b], find_min=True, strand=Strand.FORWARD)
        100
    """
    result = UNSET
    for feature in features:
        if strand is not None and feature.ref_strand != strand: continue
        value = feature.ref_range.min if find_min else feature.ref_range.max
        if result == UNSET or (value < result if find_min else value > result): result = value
    return result


def find_match_extent(features: Iterable[Feature], find_min: bool) -> int:
    """Finds the lowest start or highest end match coordinate over a set of features (``UNSET`` if none)."""
    result = UNSET
    for feature in features:
        if not feature.match_range.is_set: continue
        value = feature.match_range.min if find_min else feature.match_range.max
        if result == UNSET or (value < result if find_min else value > result): result = value
    return result
