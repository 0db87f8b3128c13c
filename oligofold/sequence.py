"""
Sequence helpers shared by the folding engine and the duplex functions.

Sequences are plain ``str`` objects over {A, C, G, T}. Cleaning upper-cases
and removes whitespace; anything else outside the alphabet makes the
sequence invalid. Energy functions treat an invalid sequence as having no
structure rather than raising.
"""

import logging
from typing import Dict

LOGGER = logging.getLogger(__name__)

DNA_BASES = frozenset("ACGT")

COMPLEMENT_MAP: Dict[str, str] = {'A': 'T', 'T': 'A', 'G': 'C', 'C': 'G'}


def clean_sequence(sequence: str) -> str:
    """Clean sequence (remove whitespace, convert to uppercase)"""
    return sequence.upper().replace(' ', '').replace('\n', '').replace('\t', '').replace('\r', '')


def validate_dna(sequence: str) -> None:
    """Validate DNA sequence (detect non-A/T/G/C characters)"""
    invalid = set(sequence) - DNA_BASES
    if invalid:
        raise ValueError(f"Invalid bases detected: {sorted(invalid)}")


def is_dna(sequence: str) -> bool:
    return not (set(sequence) - DNA_BASES)


def prepare(sequence: str, caller: str = "") -> str:
    """
    Clean a sequence for an energy calculation.

    Returns the cleaned sequence, or an empty string when the input
    contains characters outside A/C/G/T. The rejection is logged so that
    callers can see why a result came back empty.
    """
    if not sequence:
        return ""
    seq = clean_sequence(sequence)
    if not is_dna(seq):
        LOGGER.warning("%s: rejecting sequence with non-ACGT characters %s",
                       caller or "oligofold", sorted(set(seq) - DNA_BASES))
        return ""
    return seq


def is_complement(a: str, b: str) -> bool:
    """Strict Watson-Crick complementarity (A-T, G-C)."""
    return COMPLEMENT_MAP.get(a) == b


def complement(sequence: str) -> str:
    """Return the complement sequence (each base replaced with its complement, 5'->3' preserved)."""
    seq = clean_sequence(sequence)
    validate_dna(seq)
    return ''.join(COMPLEMENT_MAP[b] for b in seq)


def reverse_complement(sequence: str) -> str:
    """Return the reverse complement sequence."""
    return complement(sequence)[::-1]
