"""
Module for representing ASCII biological alphabets, IUPAC complementing and codon translation
"""
from typing import Final, ClassVar, Union

import numpy as np

from blxcore.utils.resources import jit


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class AlphabetError(Exception):
    """Raised when an alphabet is invalid or an operation is incompatible with the alphabet."""


class TranslationError(AlphabetError):
    """Raised when nucleotide-to-amino-acid translation fails (e.g. malformed genetic code)."""


# Classes --------------------------------------------------------------------------------------------------------------
class Alphabet:
    """
    A class to represent an alphabet of ASCII symbols.

    Symbols are matched case-insensitively on encoding; complementing preserves the
    case of each input character and leaves characters outside the alphabet untouched.

    Examples:
        >>> Alphabet.IUPAC.complement(b'ACgtn')
        b'TGcan'
        >>> Alphabet.DNA.encode(b'TCAG')
        array([0, 1, 2, 3], dtype=uint8)
    """
    __slots__ = ('_data', '_lookup_table', '_complement_table')
    DTYPE: Final = np.uint8
    INVALID: Final = np.iinfo(DTYPE).max
    MAX_LEN: Final = INVALID
    ENCODING: Final = 'ascii'
    DNA: ClassVar['Alphabet']
    IUPAC: ClassVar['Alphabet']

    def __init__(self, symbols: bytes, complement: bytes = None, aliases: dict[bytes, bytes] = None):
        try: symbols.decode(self.ENCODING)
        except UnicodeDecodeError as e: raise AlphabetError('Alphabet symbols must be valid ASCII') from e
        if len(set(symbols.upper())) != len(symbols):
            raise AlphabetError(f'Alphabet {symbols!r} contains duplicate symbols')
        if len(symbols) > self.MAX_LEN: raise AlphabetError(f'Alphabet cannot exceed {self.MAX_LEN} symbols')
        self._data = symbols.upper()

        # Case-insensitive encoding table: byte -> index (INVALID for unknown bytes)
        self._lookup_table = np.full(256, self.INVALID, dtype=self.DTYPE)
        for i, s in enumerate(self._data):
            self._lookup_table[s] = i
            self._lookup_table[ord(chr(s).lower())] = i
        for alias, target in (aliases or {}).items():
            if target not in self: raise AlphabetError(f'Alias target {target!r} not in alphabet')
            idx = self._lookup_table[target[0]]
            self._lookup_table[alias.upper()[0]] = idx
            self._lookup_table[alias.lower()[0]] = idx

        self._complement_table = None
        if complement is not None:
            complement = complement.upper()
            if len(complement) != len(self._data):
                raise AlphabetError('Complement must be the same length as the alphabet')
            if any(c not in self._data for c in complement):
                raise AlphabetError(f'Complement {complement!r} contains symbols not in alphabet')
            self._complement_table = bytes.maketrans(self._data + self._data.lower(), complement + complement.lower())

    def __len__(self): return len(self._data)
    def __iter__(self): return iter(self._data)
    def __getitem__(self, item): return self._data[item]
    def __repr__(self): return f"Alphabet({self._data.decode(self.ENCODING)})"
    def __hash__(self): return hash(self._data)

    def __contains__(self, item):
        if isinstance(item, int): return self._lookup_table[item] != self.INVALID
        if isinstance(item, str): item = item.encode(self.ENCODING)
        return len(item) == 1 and self._lookup_table[item[0]] != self.INVALID

    def __eq__(self, other):
        if not isinstance(other, Alphabet): return False
        return self._data == other._data

    @property
    def has_complement(self) -> bool: return self._complement_table is not None

    def encode(self, text: bytes) -> np.ndarray:
        """
        Encodes ASCII text to symbol indices.

        Unlike a filtering encoder, unknown bytes are kept in place as ``INVALID`` so
        that positions in the output line up with positions in the input.

        Args:
            text: The ASCII text to encode.

        Returns:
            A ``uint8`` array of indices.
        """
        return self._lookup_table[np.frombuffer(text, dtype=self.DTYPE)]

    def complement(self, text: Union[bytes, str]) -> bytes:
        """
        Complements every residue of ``text`` without reversing it.

        Args:
            text: The residues to complement.

        Returns:
            The complemented residues, preserving case.

        Raises:
            AlphabetError: If this alphabet has no complement.
        """
        if self._complement_table is None: raise AlphabetError(f'{self!r} has no complement')
        if isinstance(text, str): text = text.encode(self.ENCODING)
        return text.translate(self._complement_table)

    def reverse_complement(self, text: Union[bytes, str]) -> bytes:
        return self.complement(text)[::-1]


class GeneticCode:
    """
    Represents a genetic code table for translation.

    The table is a 64-byte string indexed by codon, with bases ordered T, C, A, G
    (the order of ``Alphabet.DNA``). Codons containing anything other than
    ``ACGTU`` translate to the ``unknown`` residue.
    """
    __slots__ = ('_data',)
    STANDARD: ClassVar['GeneticCode']

    def __init__(self, table: bytes, unknown: bytes = b'X'):
        """Initializes a genetic code.

        Args:
            table: 64-byte ASCII string representing the translation table.
            unknown: The residue emitted for untranslatable codons.

        Raises:
            TranslationError: If the table is not 64 symbols long.
        """
        if len(table) != 64: raise TranslationError(f'Genetic code table must have 64 entries, got {len(table)}')
        # Index 64 holds the residue for codons with unknown bases
        self._data = np.frombuffer(table + unknown[:1], dtype=Alphabet.DTYPE).copy()

    def __getitem__(self, item): return self._data[item]
    def __repr__(self): return f"GeneticCode({self._data[:64].tobytes().decode(Alphabet.ENCODING)})"

    def translate(self, seq: Union[bytes, str]) -> bytes:
        """
        Translates a nucleotide sequence to amino acids from its first base.

        Trailing bases that do not make up a full codon are ignored, and stop codons
        are emitted as ``*`` rather than terminating the translation.

        Args:
            seq: The nucleotide residues.

        Returns:
            The translated residues as ASCII bytes.

        Examples:
            >>> GeneticCode.STANDARD.translate(b'ATGnnnTAA')
            b'MX*'
        """
        if isinstance(seq, str): seq = seq.encode(Alphabet.ENCODING)
        n_codons = len(seq) // 3
        if n_codons == 0: return b''
        encoded = Alphabet.DNA.encode(seq)
        return _translate_kernel(encoded, self._data, n_codons, Alphabet.INVALID).tobytes()


Alphabet.DNA = Alphabet(b'TCAG', b'AGTC', aliases={b'U': b'T'})
Alphabet.IUPAC = Alphabet(b'ACGTURYKMSWBDHVN', b'TGCAAYRMKSWVHDBN')
GeneticCode.STANDARD = GeneticCode(b'FFLLSSSSYY**CC*WLLLLPPPPHHQQRRRRIIIMTTTTNNKKSSRRVVVVAAAADDEEGGGG')


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _translate_kernel(encoded_seq, flat_table, n_codons, invalid):
    """
    Translates DNA -> Amino Acid using a flat lookup table and bitwise math.
    Assumes DNA encoding is 0=T, 1=C, 2=A, 3=G (2 bits); index 64 of the table is the unknown residue.
    """
    res = np.empty(n_codons, dtype=flat_table.dtype)
    for i in range(n_codons):
        base = i * 3
        a, b, c = encoded_seq[base], encoded_seq[base + 1], encoded_seq[base + 2]
        if a == invalid or b == invalid or c == invalid:
            res[i] = flat_table[64]
        else:
            res[i] = flat_table[(np.int64(a) << 4) | (np.int64(b) << 2) | np.int64(c)]
    return res
