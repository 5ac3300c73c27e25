"""Match-sequence aggregates (one logical sequence per strand) and the registry that resolves them by name or id."""
from bisect import bisect_right
from typing import Generator, Optional, Union, Any
from enum import IntEnum
from warnings import warn
import re

from blxcore import BlxWarning
from blxcore.core.alphabet import Alphabet
from blxcore.core.interval import Range, Strand, UNSET
from blxcore.containers.feature import Feature, FeatureKind, FeatureStore, find_extent


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class SequenceError(Exception):
    """Base class for errors raised while building sequence aggregates."""


class InvalidKeyError(SequenceError):
    """Raised when a sequence is referenced with neither a name nor an id tag."""


class SequenceDataMismatchError(SequenceError):
    """Raised when residue data conflicts with the data already held by a sequence."""


class SequenceWarning(BlxWarning): pass
class AggregateKindWarning(SequenceWarning): pass


# Classes --------------------------------------------------------------------------------------------------------------
class SequenceKind(IntEnum):
    """The kind of a Sequence aggregate, which determines the feature kinds it holds."""
    UNSET = 0
    MATCH = 1
    TRANSCRIPT = 2
    VARIATION = 3
    READ_PAIR = 4

    @classmethod
    def for_feature(cls, kind: FeatureKind) -> 'SequenceKind':
        """Returns the aggregate kind a feature of the given kind belongs to."""
        if kind == FeatureKind.MATCH: return cls.MATCH
        if kind == FeatureKind.SHORT_READ: return cls.READ_PAIR
        if kind.is_exon_type or kind == FeatureKind.INTRON: return cls.TRANSCRIPT
        if kind == FeatureKind.VARIATION: return cls.VARIATION
        return cls.UNSET


class Sequence:
    """
    All features belonging to one logical match sequence on one strand.

    The aggregate does not own its features: it holds their ids, kept sorted by
    reference start and then kind ordinal, and resolves them through the
    ``FeatureStore`` it was created against. Iterating yields ``Feature`` objects
    in that order.

    Attributes:
        id: Registry-assigned id.
        name: Full sequence name (may be None if only an id tag is known).
        id_tag: Opaque id tag (e.g. a parent transcript id).
        strand: The strand this aggregate represents.
        kind: The ``SequenceKind``, set from the first attached feature.
        extent_forward: Reference extent on the forward strand (unset until computed).
        extent_reverse: Reference extent on the reverse strand (unset until computed).
        span: Declared reference span from a parent transcript record.
    """
    __slots__ = ('id', 'name', 'id_tag', 'source', 'strand', 'kind', 'extent_forward', 'extent_reverse', 'span',
                 '_store', '_ids', '_keys', '_residues', '_complemented')
    _VARIANT_SUFFIX = re.compile(r'-\d+$')

    def __init__(self, store: FeatureStore, name: str = None, id_tag: str = None, strand: Any = Strand.FORWARD,
                 kind: SequenceKind = SequenceKind.UNSET, source: str = None):
        self.id: Optional[int] = None
        self.name = name
        self.id_tag = id_tag
        self.source = source
        self.strand: Strand = Strand.from_symbol(strand)
        self.kind = kind
        self.extent_forward: Range = Range.unset()
        self.extent_reverse: Range = Range.unset()
        self.span: Range = Range.unset()
        self._store = store
        self._ids: list[int] = []
        self._keys: list[tuple[int, int]] = []
        self._residues: Optional[bytes] = None
        self._complemented = False

    def __len__(self): return len(self._ids)
    def __iter__(self) -> Generator[Feature, None, None]:
        for fid in tuple(self._ids):
            if fid in self._store: yield self._store[fid]
    def __contains__(self, item: Union[int, Feature]):
        if isinstance(item, Feature): item = item.id
        return item in self._ids
    def __repr__(self): return f"Sequence({self.display_name}{self.strand}, {self.kind.name}, {len(self)} features)"

    @property
    def feature_ids(self) -> tuple[int, ...]: return tuple(self._ids)

    @property
    def display_name(self) -> Optional[str]:
        """The name, falling back to the id tag for sequences created from a nameless child feature."""
        return self.name if self.name is not None else self.id_tag

    @property
    def variant_name(self) -> Optional[str]:
        """The name with any database prefix removed (``SW:P51531-2.2`` -> ``P51531-2.2``)."""
        if (name := self.display_name) is None: return None
        return name.split(':', 1)[1] if ':' in name else name

    @property
    def short_name(self) -> Optional[str]:
        """The variant name without its version and isoform suffixes (``SW:P51531-2.2`` -> ``P51531``)."""
        if (name := self.variant_name) is None: return None
        return self._VARIANT_SUFFIX.sub('', name.partition('.')[0])

    @property
    def residues(self) -> Optional[bytes]: return self._residues

    @property
    def length(self) -> int: return len(self._residues) if self._residues else 0

    @property
    def is_complemented(self) -> bool: return self._complemented

    def set_residues(self, data: Union[bytes, str, None]):
        """
        Supplies residue data for this sequence.

        Once the sequence is complemented, later data is complemented before it is
        stored or compared.

        Args:
            data: The residues (forward strand). None is ignored.

        Raises:
            SequenceDataMismatchError: If different residues are already set.
        """
        self.check_residues(data)
        if data is None or self._residues is not None: return
        if isinstance(data, str): data = data.encode(Alphabet.ENCODING)
        self._residues = Alphabet.IUPAC.complement(data) if self._complemented else data

    def check_residues(self, data: Union[bytes, str, None]):
        """
        Raises:
            SequenceDataMismatchError: If ``data`` differs from the residues already set.
        """
        if data is None or self._residues is None: return
        if isinstance(data, str): data = data.encode(Alphabet.ENCODING)
        if self._complemented: data = Alphabet.IUPAC.complement(data)
        if self._residues.upper() != data.upper():
            raise SequenceDataMismatchError(
                f"Sequence data for '{self.display_name}' does not match previously-found data")

    def complement_residues(self):
        """
        Complements (without reversing) the residues, for reverse-strand matches.

        Applies once; later calls leave the residues as they are.
        """
        if self._complemented: return
        self._complemented = True
        if self._residues is not None: self._residues = Alphabet.IUPAC.complement(self._residues)

    def add_feature(self, feature: Feature):
        """Inserts a stored feature in sorted position and points it back at this sequence."""
        if feature.id is None: raise SequenceError(f'{feature!r} must be inserted into a FeatureStore first')
        key = feature.sort_key
        idx = bisect_right(self._keys, key)
        self._keys.insert(idx, key)
        self._ids.insert(idx, feature.id)
        feature.sequence_id = self.id

    def remove_feature(self, feature: Feature):
        idx = self._ids.index(feature.id)
        del self._ids[idx]
        del self._keys[idx]
        if feature.sequence_id == self.id: feature.sequence_id = None

    def resort(self):
        """Re-establishes the ordering after features have been moved (e.g. by a coordinate offset)."""
        features = sorted(self, key=lambda f: f.sort_key)
        self._ids = [f.id for f in features]
        self._keys = [f.sort_key for f in features]

    def declare_span(self, span: Range):
        """Records the reference span given by a parent transcript record."""
        self.span = self.span.union(span)

    def find_extents(self):
        """Computes the per-strand reference extents from the features and any declared span."""
        features = tuple(self)
        for strand in (Strand.FORWARD, Strand.REVERSE):
            start, end = find_extent(features, True, strand), find_extent(features, False, strand)
            extent = Range(start, end) if start != UNSET else Range.unset()
            if strand == self.strand: extent = extent.union(self.span)
            if strand == Strand.FORWARD: self.extent_forward = extent
            else: self.extent_reverse = extent

    def extent(self, strand: Strand = None) -> Range:
        if strand is None: strand = self.strand
        return self.extent_reverse if strand == Strand.REVERSE else self.extent_forward

    def start(self, strand: Strand = None) -> int:
        """The lowest reference coordinate on the given strand (defaults to this sequence's strand)."""
        return self.extent(strand).min

    def end(self, strand: Strand = None) -> int:
        """The highest reference coordinate on the given strand (defaults to this sequence's strand)."""
        return self.extent(strand).max

    def cds_names(self) -> list[Optional[str]]:
        """Distinct names of the CDS features, in feature order (unnamed CDSs share the name None)."""
        names = []
        for feature in self:
            if feature.kind == FeatureKind.CDS and feature.name not in names: names.append(feature.name)
        return names

    def fasta(self) -> Optional[str]:
        if self.display_name is None or self._residues is None: return None
        return f">{self.display_name}\n{self._residues.decode(Alphabet.ENCODING)}"

    def info(self) -> str:
        """One-line summary: name and strand followed by the coordinates of every non-exon feature."""
        coords = '  '.join(f.coords_as_string() for f in self if f.kind != FeatureKind.EXON)
        return f"{self.display_name}{self.strand}\t{coords}"


class SequenceRegistry:
    """
    Resolves sequence names and id tags to Sequence aggregates, creating them on first reference.

    Lookup keys combine the name or id tag with the strand, so the forward and
    reverse strand of the same sequence are separate aggregates. The id tag is
    tried first, then the name (when ``link_by_name`` is set).

    Args:
        store: The feature store the aggregates resolve their features through.
        link_by_name: Whether features that share a name (but no id tag) join the same aggregate.
        strip_legacy_suffixes: Whether to drop the trailing ``x``/``i`` of legacy exon/intron names.

    Examples:
        >>> registry = SequenceRegistry(FeatureStore())
        >>> seq = registry.find_or_create('SW:P51531-2.2', strand=Strand.FORWARD)
        >>> seq.variant_name, seq.short_name
        ('P51531-2.2', 'P51531')
    """
    __slots__ = ('_store', '_sequences', '_lookup', '_next_id', 'link_by_name', 'strip_legacy_suffixes')
    _LEGACY_SUFFIXES = {FeatureKind.EXON: 'xX', FeatureKind.INTRON: 'iI'}

    def __init__(self, store: FeatureStore, link_by_name: bool = True, strip_legacy_suffixes: bool = True):
        self._store = store
        self._sequences: dict[int, Sequence] = {}
        self._lookup: dict[str, Sequence] = {}
        self._next_id = 0
        self.link_by_name = link_by_name
        self.strip_legacy_suffixes = strip_legacy_suffixes

    def __len__(self): return len(self._sequences)
    def __iter__(self): return iter(tuple(self._sequences.values()))
    def __getitem__(self, item: int) -> Sequence: return self._sequences[item]
    def __contains__(self, item: Union[int, Sequence]):
        if isinstance(item, Sequence): item = item.id
        return item in self._sequences
    def __repr__(self): return f"SequenceRegistry({len(self)} sequences)"

    @property
    def store(self) -> FeatureStore: return self._store

    @staticmethod
    def _key(text: str, strand: Strand) -> str:
        return f"{text}{'-' if strand == Strand.REVERSE else '+'}"

    def by_kind(self, kind: SequenceKind) -> Generator[Sequence, None, None]:
        for seq in tuple(self._sequences.values()):
            if seq.kind == kind: yield seq

    def owner(self, feature: Feature) -> Optional[Sequence]:
        """Returns the aggregate a feature is attached to, if any."""
        return self._sequences.get(feature.sequence_id) if feature.sequence_id is not None else None

    def find(self, name: str = None, id_tag: str = None, strand: Any = Strand.FORWARD) -> Optional[Sequence]:
        """Looks up an existing aggregate by id tag, then by name, on the given strand."""
        strand = Strand.from_symbol(strand)
        result = None
        if id_tag: result = self._lookup.get(self._key(id_tag, strand))
        if result is None and name and self.link_by_name: result = self._lookup.get(self._key(name, strand))
        return result

    def create(self, name: str = None, id_tag: str = None, strand: Any = Strand.FORWARD,
               kind: SequenceKind = SequenceKind.UNSET, source: str = None) -> Sequence:
        """
        Creates and registers a new aggregate without looking for an existing one.

        The aggregate is keyed on its id tag and, if that key is free, on its name.

        Raises:
            InvalidKeyError: If neither name nor id tag is given.
        """
        if not name and not id_tag: raise InvalidKeyError('Sequence name or parent id must be set')
        seq = Sequence(self._store, name, id_tag, strand, kind, source)
        seq.id = self._next_id
        self._next_id += 1
        self._sequences[seq.id] = seq
        if id_tag: self._lookup[self._key(id_tag, seq.strand)] = seq
        if name and self.link_by_name: self._lookup.setdefault(self._key(name, seq.strand), seq)
        return seq

    def find_or_create(self, name: str = None, id_tag: str = None, strand: Any = Strand.FORWARD,
                       source: str = None) -> Sequence:
        """
        Returns the aggregate matching the name or id tag on the given strand, creating it if needed.

        Args:
            name: The sequence name.
            id_tag: The id tag.
            strand: The strand of the aggregate.
            source: Data source, recorded on the aggregate if it has none yet.

        Returns:
            The matching or newly created ``Sequence``.

        Raises:
            InvalidKeyError: If neither name nor id tag is given.
        """
        if not name and not id_tag: raise InvalidKeyError('Sequence name or parent id must be set')
        if (seq := self.find(name, id_tag, strand)) is None:
            return self.create(name, id_tag, strand, source=source)
        if name and seq.name is None:
            # Created from a nameless child before its parent was seen
            seq.name = name
            if self.link_by_name: self._lookup.setdefault(self._key(name, seq.strand), seq)
        if source and not seq.source: seq.source = source
        elif source and seq.source.lower() != source.lower():
            warn(f"Duplicate sequences have different sources [name={name}, id={id_tag}, strand={seq.strand}, "
                 f"original={seq.source}, new={source}]", SequenceWarning)
        return seq

    def attach(self, sequence: Sequence, feature: Feature):
        """Inserts a stored feature into an aggregate, setting the aggregate kind from the first feature."""
        expected = SequenceKind.for_feature(feature.kind)
        if sequence.kind == SequenceKind.UNSET: sequence.kind = expected
        elif expected != sequence.kind:
            warn(f"Adding {feature.kind.name} feature to {sequence.kind.name} sequence '{sequence.display_name}' "
                 f"(expected a {expected.name} sequence)", AggregateKindWarning)
        sequence.add_feature(feature)

    def lookup_name(self, feature: Feature) -> Optional[str]:
        """The aggregate name for a feature, without the legacy exon/intron suffix if configured."""
        name = feature.name
        if name and self.strip_legacy_suffixes and name[-1] in self._LEGACY_SUFFIXES.get(feature.kind, ''):
            name = name[:-1]
        return name

    def add_feature(self, feature: Feature, residues: Union[bytes, str] = None) -> list[Sequence]:
        """
        Attaches a stored feature to its aggregate(s), creating them as needed.

        A comma-separated id tag names several parents: the first receives the
        feature itself and each further parent receives a stored copy.

        Args:
            feature: A feature already inserted into the store.
            residues: Optional match residues for the aggregate.

        Returns:
            The aggregates the feature (or its copies) was attached to. Poly-A sites
            and other kinds are not attached, giving an empty list.

        Raises:
            InvalidKeyError: If the feature has neither a name nor an id tag.
            SequenceDataMismatchError: If ``residues`` conflict with the data of any of
                the aggregates. Nothing is attached in that case.
        """
        if SequenceKind.for_feature(feature.kind) == SequenceKind.UNSET: return []
        strand = feature.ref_strand if feature.is_exon_type or feature.is_intron else feature.match_strand
        name = self.lookup_name(feature)
        tags = [t for t in feature.id_tag.split(',') if t] if feature.id_tag else [None]
        for tag in tags:
            if (existing := self.find(name, tag, strand)) is not None: existing.check_residues(residues)
        attached = []
        for i, tag in enumerate(tags):
            if i == 0: target = feature
            else:
                target = feature.copy()
                self._store.insert(target)
            seq = self.find_or_create(name, tag, strand, source=feature.source)
            self.attach(seq, target)
            seq.set_residues(residues)
            attached.append(seq)
        return attached

    def variant_parent(self, variant: Sequence) -> Optional[Sequence]:
        """
        Finds the parent of a protein variant.

        The variant number is the text from the first ``-`` up to the next ``.`` (or
        the end of the name); the parent is the sequence whose name (compared
        case-insensitively) is the variant name with that part removed.

        Examples:
            >>> registry.variant_parent(registry.find('SW:P51531-2.2')).name
            'SW:P51531.2'
        """
        if (name := variant.display_name) is None or '-' not in name: return None
        head, _, tail = name.partition('-')
        dot = tail.find('.')
        parent_name = (head + tail[dot:] if dot >= 0 else head).lower()
        for seq in self._sequences.values():
            if seq is not variant and seq.display_name and seq.display_name.lower() == parent_name: return seq
        return None

    def discard(self, sequence: Sequence, features: bool = True):
        """
        Removes an aggregate and its lookup keys.

        Args:
            sequence: The aggregate to remove.
            features: Also remove its features from the store.
        """
        self._sequences.pop(sequence.id, None)
        for key in [k for k, v in self._lookup.items() if v is sequence]: del self._lookup[key]
        if features:
            for fid in sequence.feature_ids: self._store.discard(fid)

    def clear(self):
        self._sequences.clear()
        self._lookup.clear()
