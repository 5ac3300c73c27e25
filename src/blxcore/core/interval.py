"""Reference-sequence coordinate ranges (1-based, inclusive) with strand handling."""
from typing import Union, Any, Iterable, ClassVar, Final, Optional
from enum import IntEnum

import numpy as np


# Constants ------------------------------------------------------------------------------------------------------------
UNSET: Final = -1  # Sentinel for unset integer/float values (coords, frames, phases, identity)


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class RangeError(Exception):
    """Raised when a Range cannot be constructed from the given coordinates."""


# Classes --------------------------------------------------------------------------------------------------------------
class Strand(IntEnum):
    """
    Enumeration for genomic strands.
    """
    FORWARD = 1
    REVERSE = -1
    UNSTRANDED = 0
    _STR_CACHE: ClassVar[dict]
    _BYTES_CACHE: ClassVar[dict]
    _FROM_BYTES_CACHE: ClassVar[dict]

    def __str__(self): return self._STR_CACHE[self]
    @property
    def bytes(self) -> bytes: return self._BYTES_CACHE[self]

    @property
    def opposite(self) -> 'Strand':
        return Strand(-self.value)

    @classmethod
    def from_bytes(cls, b: bytes) -> 'Strand':
        return cls._FROM_BYTES_CACHE.get(b, cls.UNSTRANDED)

    @classmethod
    def from_symbol(cls, s: Any) -> 'Strand':
        if s is None: return cls.UNSTRANDED
        if isinstance(s, cls): return s
        if isinstance(s, int):
            try: return cls(s)
            except ValueError: return cls.UNSTRANDED
        if isinstance(s, bytes): return cls.from_bytes(s)
        if isinstance(s, str): return cls.from_bytes(s.encode('ascii'))
        return cls.UNSTRANDED

    @classmethod
    def _init_caches(cls):
        cls._STR_CACHE = {cls.FORWARD: '+', cls.REVERSE: '-', cls.UNSTRANDED: '.'}
        cls._BYTES_CACHE = {cls.FORWARD: b'+', cls.REVERSE: b'-', cls.UNSTRANDED: b'.'}
        cls._FROM_BYTES_CACHE = {b'+': cls.FORWARD, b'-': cls.REVERSE, b'.': cls.UNSTRANDED}


Strand._init_caches()


class Range:
    """
    Immutable coordinate range on a sequence. Safe for hashing and use in sets/dicts.

    Coordinates are 1-based and both ends are inclusive, so ``Range(5, 5)`` covers
    exactly one base. The ends are normalised on construction so that ``min <= max``.
    A range with both ends equal to ``UNSET`` represents "not yet known".

    Attributes:
        min: The lowest coordinate covered.
        max: The highest coordinate covered.

    Examples:
        >>> r = Range(200, 100)
        >>> r
        100-200
        >>> len(r)
        101
        >>> 150 in r
        True
    """
    __slots__ = ('_min', '_max')

    def __init__(self, start: int, end: int):
        """
        Initializes a Range.

        Args:
            start: One end of the range.
            end: The other end of the range.

        Raises:
            RangeError: If exactly one of the two ends is ``UNSET``.
        """
        start, end = int(start), int(end)
        if (start == UNSET) != (end == UNSET):
            raise RangeError(f'Cannot create a range with one unset end ({start}, {end})')
        self._min: int = start if start < end else end
        self._max: int = end if start < end else start

    @property
    def min(self) -> int: return self._min
    @property
    def max(self) -> int: return self._max
    @property
    def is_set(self) -> bool: return self._min != UNSET
    @property
    def length(self) -> int: return self._max - self._min + 1 if self.is_set else 0
    def __len__(self): return self.length
    def __hash__(self): return hash((self._min, self._max))
    def __repr__(self): return f"{self._min}-{self._max}" if self.is_set else "unset"
    def __iter__(self): return iter((self._min, self._max))

    def __array__(self, dtype=None, copy=None):
        """Allows the Range to be treated as a numpy array (e.g. np.array(r))."""
        return np.array([self._min, self._max], dtype=dtype or np.int64)

    def __eq__(self, other):
        if not isinstance(other, Range): return False
        return self._min == other._min and self._max == other._max

    # Ordered by start, then end
    def __lt__(self, other):
        if not isinstance(other, Range): return NotImplemented
        return (self._min, self._max) < (other._min, other._max)

    def __le__(self, other):
        if not isinstance(other, Range): return NotImplemented
        return (self._min, self._max) <= (other._min, other._max)

    def __contains__(self, item: Union[int, 'Range']):
        if not self.is_set: return False
        if isinstance(item, Range): return item.is_set and self._min <= item.min and item.max <= self._max
        return self._min <= item <= self._max

    def overlaps(self, other: 'Range') -> bool:
        """Returns True if the two ranges share at least one coordinate."""
        if not (self.is_set and other.is_set): return False
        return self._min <= other.max and self._max >= other.min

    def adjacent(self, other: 'Range') -> bool:
        """Returns True if the two ranges touch end-to-end without overlapping."""
        if not (self.is_set and other.is_set): return False
        return self._min == other.max + 1 or other.min == self._max + 1

    def union(self, other: 'Range') -> 'Range':
        """Returns the convex hull of the two ranges. Unset ranges are ignored.

        Args:
            other: The other range.

        Returns:
            A new ``Range`` spanning both inputs.
        """
        if not other.is_set: return self
        if not self.is_set: return other
        return Range(min(self._min, other.min), max(self._max, other.max))

    def __or__(self, other: 'Range') -> 'Range': return self.union(other)

    def intersection(self, other: 'Range') -> Optional['Range']:
        """Returns the overlapping part of the two ranges, or None if they are disjoint."""
        if not self.overlaps(other): return None
        return Range(max(self._min, other.min), min(self._max, other.max))

    def subtract(self, other: 'Range') -> list['Range']:
        """Returns the parts of this range not covered by another.

        Args:
            other: The range to remove.

        Returns:
            A list of 0, 1 or 2 ranges in ascending order.

        Examples:
            >>> Range(100, 200).subtract(Range(120, 180))
            [100-119, 181-200]
        """
        if not self.overlaps(other): return [self]
        pieces = []
        if self._min < other.min: pieces.append(Range(self._min, other.min - 1))
        if self._max > other.max: pieces.append(Range(other.max + 1, self._max))
        return pieces

    def shift(self, offset: int) -> 'Range':
        """Returns the range moved by ``offset`` bases. Unset ranges stay unset."""
        if not self.is_set or offset == 0: return self
        return Range(self._min + offset, self._max + offset)

    def clip(self, bounds: 'Range') -> Optional['Range']:
        """Returns the range limited to ``bounds``, or None if it lies entirely outside."""
        return self.intersection(bounds)

    @classmethod
    def unset(cls) -> 'Range':
        return cls(UNSET, UNSET)

    @classmethod
    def hull(cls, ranges: Iterable['Range']) -> 'Range':
        """Returns the union extent of an iterable of ranges (unset if empty)."""
        result = cls.unset()
        for r in ranges: result = result.union(r)
        return result
