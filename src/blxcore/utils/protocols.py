"""Structural types shared between containers."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class HasRange(Protocol):
    """Protocol for objects that sit on the reference sequence (e.g. Feature)."""
    ref_strand: 'Strand'

    @property
    def ref_range(self) -> 'Range': ...
