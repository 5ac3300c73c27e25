"""
Reference reading-frame calculation for features.
"""
from warnings import warn

from blxcore import BlxWarning
from blxcore.core.interval import Range, Strand, UNSET
from blxcore.containers.feature import Feature


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class ReadingFrameWarning(BlxWarning): pass


# Functions ------------------------------------------------------------------------------------------------------------
def offset_to_codon_start(coord: int, frames: int, strand: Strand) -> int:
    """
    Returns the offset from ``coord`` to the first base of a codon in reading frame 1.

    On the reverse strand the convention is that the first coordinate of the
    reversed sequence is the last base of the last frame.

    Args:
        coord: A 1-based reference coordinate.
        frames: The number of reading frames (1 or 3).
        strand: The reference strand.

    Returns:
        An offset in ``[0, frames)``.

    Examples:
        >>> [offset_to_codon_start(c, 3, Strand.FORWARD) for c in range(1, 7)]
        [0, 2, 1, 0, 2, 1]
    """
    if strand == Strand.REVERSE: return (coord + 1) % frames
    return (frames - (coord - 1) % frames) % frames


def base_number(coord: int, frames: int, reverse: bool) -> int:
    """Returns the base number (1..frames) of a coordinate within reading frame 1."""
    if frames == 1: return 1
    base = coord % frames
    if base < 1: base += frames
    return frames - base + 1 if reverse else base


def reading_frame(feature: Feature, frames: int, ref_range: Range) -> int:
    """
    Calculates (and stores) the reference reading frame of a feature.

    The frame is the base number of the first complete codon: the 5' coordinate
    moved by ``phase`` bases in the direction of the strand. Exon-type features
    that already carry a frame come from the legacy exon format, whose frame
    assumed the reference starts at base 1 of frame 1; that frame is corrected
    by the codon offset of the actual reference start.

    Args:
        feature: The feature to update. Introns are left untouched.
        frames: The number of reading frames (1 for nucleotide display, 3 for peptide).
        ref_range: The coordinate range of the reference sequence.

    Returns:
        The feature's reading frame afterwards.
    """
    if feature.is_intron: return feature.ref_frame
    direction = -1 if feature.ref_strand == Strand.REVERSE else 1
    phase = feature.phase if feature.phase != UNSET else 0
    coord = feature.ref_start + direction * phase
    frame = base_number(coord, frames, feature.ref_strand == Strand.REVERSE) if feature.ref_range.is_set else UNSET

    if feature.ref_frame > 0 and feature.is_exon_type:
        start = ref_range.max if feature.ref_strand == Strand.REVERSE else ref_range.min
        given = feature.ref_frame + offset_to_codon_start(start, frames, feature.ref_strand)
        if given > frames: given -= frames
        feature.ref_frame = given
        if given != frame and frames > 1:
            warn(f"Feature '{feature.name}' ({feature.coords_as_string()}) has reading frame '{given}' but "
                 f"calculated frame was '{frame}'", ReadingFrameWarning)
    else:
        feature.ref_frame = frame

    if feature.ref_frame == UNSET:
        warn(f"Reading frame could not be calculated for feature '{feature.name}' ({feature.coords_as_string()}) - "
             f"setting to 1", ReadingFrameWarning)
        feature.ref_frame = 1
    return feature.ref_frame
