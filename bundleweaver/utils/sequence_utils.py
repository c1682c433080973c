"""
BundleWeaver v0.1.0

Sequence utility functions for BundleWeaver.

Provides common sequence manipulation helpers shared by the sampler, the
SV classifier and the tests.
"""

from typing import Iterable, List, Tuple

_COMPLEMENT = str.maketrans("ACGTNacgtn", "TGCANtgcan")


def reverse_complement(sequence: str) -> str:
    """
    Generate reverse complement of DNA sequence.

    Bases outside ACGTN are kept as-is.

    Example:
        >>> reverse_complement("ATCG")
        'CGAT'
    """
    return sequence.translate(_COMPLEMENT)[::-1]


def ambiguous_runs(sequence: str, min_length: int = 1) -> List[Tuple[int, int]]:
    """
    Return half-open intervals of non-ACGT bases.

    Example:
        >>> ambiguous_runs("ACNNGT")
        [(2, 4)]
    """
    runs = []
    start = None
    for i, base in enumerate(sequence.upper()):
        if base not in 'ACGT':
            if start is None:
                start = i
        elif start is not None:
            if i - start >= min_length:
                runs.append((start, i))
            start = None
    if start is not None and len(sequence) - start >= min_length:
        runs.append((start, len(sequence)))
    return runs


def interval_overlaps(intervals: Iterable[Tuple[int, int]], start: int, end: int) -> bool:
    """True if [start, end) intersects any half-open interval."""
    return any(s < end and start < e for s, e in intervals)
