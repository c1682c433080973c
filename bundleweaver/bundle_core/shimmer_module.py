#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BundleWeaver v0.1.0

Sparse minimizer ("shimmer") sampling.
- Strand-canonical 2-bit k-mer codes hashed with an invertible 64-bit mix
- First-pass window minimizers (leftmost wins ties)
- Secondary minimizer reduction over consecutive first-pass anchors
- Minimum-span thinning
- Parallel per-contig sampling with results kept in input order

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..exceptions import ParameterError

logger = logging.getLogger(__name__)

MASK64 = (1 << 64) - 1
MAX_K = 64

# A/C/G/T -> 0..3, everything else -> 4 (ambiguous)
_BASE_CODES = np.full(256, 4, dtype=np.uint8)
for _i, _b in enumerate(b"ACGT"):
    _BASE_CODES[_b] = _i
    _BASE_CODES[_b + 32] = _i


# ============================================================================
# Parameters and Records
# ============================================================================

@dataclass(frozen=True)
class ShimmerParams:
    """
    Sampling parameters. Fixed for a run and persisted with every output.

    Attributes:
        k: K-mer size in bases
        w: First-pass window size in k-mer start positions
        r: Reduction factor (window of the secondary minimizer pass)
        min_span: Minimum distance between consecutive kept anchors
    """
    k: int = 56
    w: int = 80
    r: int = 4
    min_span: int = 64

    def __post_init__(self):
        """Validate parameters."""
        for name in ('k', 'w', 'r', 'min_span'):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or isinstance(value, bool):
                raise ParameterError(f"{name} must be an integer, got {value!r}")
        if self.k < 1 or self.k > MAX_K:
            raise ParameterError(f"k must be in [1, {MAX_K}], got {self.k}")
        if self.k > self.w:
            raise ParameterError(f"k-mer size ({self.k}) must not exceed window size ({self.w})")
        if self.r <= 0:
            raise ParameterError(f"reduction factor must be > 0, got {self.r}")
        if self.min_span < 0:
            raise ParameterError(f"min_span must be >= 0, got {self.min_span}")

    def to_dict(self) -> Dict[str, int]:
        return {key: int(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> 'ShimmerParams':
        return cls(k=data['k'], w=data['w'], r=data['r'], min_span=data.get('min_span', 0))


@dataclass(frozen=True)
class Shimmer:
    """
    A sampled anchor on one contig.

    Attributes:
        hash: Canonical k-mer hash (anchor identity)
        position: 0-based start of the k-mer on the contig
        strand: 0 if the forward k-mer is the canonical one, 1 otherwise
    """
    hash: int
    position: int
    strand: int


# ============================================================================
# Hashing
# ============================================================================

def _mix64(key: int) -> int:
    """Invertible 64-bit integer mix."""
    key = (~key + (key << 21)) & MASK64
    key ^= key >> 24
    key = (key + (key << 3) + (key << 8)) & MASK64
    key ^= key >> 14
    key = (key + (key << 2) + (key << 4)) & MASK64
    key ^= key >> 28
    key = (key + (key << 31)) & MASK64
    return key


def canonical_hash(code: int) -> int:
    """Hash a canonical k-mer code of up to 128 bits to 64 bits."""
    if code > MASK64:
        code = (code & MASK64) ^ _mix64(code >> 64)
    return _mix64(code)


def encode_sequence(sequence: str) -> np.ndarray:
    """Encode bases as 0..3 (ACGT), 4 for anything else."""
    raw = np.frombuffer(sequence.encode('ascii', errors='replace'), dtype=np.uint8)
    return _BASE_CODES[raw]


def kmer_hashes(sequence: str, k: int) -> List[Optional[Tuple[int, int]]]:
    """
    Canonical (hash, strand) for every k-mer start position.

    Positions whose k-mer contains an ambiguous base, and palindromic
    k-mers, are None.
    """
    n = len(sequence) - k + 1
    if n <= 0:
        return []

    codes = encode_sequence(sequence).tolist()
    mask = (1 << (2 * k)) - 1
    shift = 2 * (k - 1)
    fwd = 0
    rev = 0
    run = 0
    out: List[Optional[Tuple[int, int]]] = [None] * n

    for i, c in enumerate(codes):
        if c > 3:
            run = 0
            fwd = 0
            rev = 0
            continue
        fwd = ((fwd << 2) | c) & mask
        rev = (rev >> 2) | ((3 - c) << shift)
        run += 1
        if run >= k:
            if fwd < rev:
                out[i - k + 1] = (canonical_hash(fwd), 0)
            elif rev < fwd:
                out[i - k + 1] = (canonical_hash(rev), 1)

    return out


# ============================================================================
# Window Minimizers
# ============================================================================

def _window_minima(
    items: Sequence[Optional[Tuple[int, int]]],
    window: int,
) -> List[int]:
    """
    Indices of the minimal-hash item in every full window of ``window``
    consecutive slots; equal hashes resolve to the leftmost slot. An index
    is reported once even when several consecutive windows select it.
    """
    picks: List[int] = []
    if len(items) < window:
        return picks

    dq: deque = deque()
    last = -1
    for i, item in enumerate(items):
        if item is not None:
            h = item[0]
            while dq and items[dq[-1]][0] > h:
                dq.pop()
            dq.append(i)
        while dq and dq[0] <= i - window:
            dq.popleft()
        if i >= window - 1 and dq and dq[0] != last:
            last = dq[0]
            picks.append(last)
    return picks


def sample_sequence(sequence: str, params: ShimmerParams) -> List[Shimmer]:
    """
    Reduce one sequence to its ordered shimmer series.

    Args:
        sequence: Upper- or lower-case base string
        params: Sampling parameters

    Returns:
        Anchors ordered by position. A sequence with fewer than ``w`` k-mer
        positions yields an empty list.
    """
    kmers = kmer_hashes(sequence, params.k)
    first = _window_minima(kmers, params.w)

    if params.r > 1:
        level1 = [kmers[i] for i in first]
        first = [first[j] for j in _window_minima(level1, params.r)]

    shimmers: List[Shimmer] = []
    prev = None
    for pos in first:
        if prev is not None and pos - prev < params.min_span:
            continue
        h, strand = kmers[pos]
        shimmers.append(Shimmer(hash=h, position=pos, strand=strand))
        prev = pos
    return shimmers


# ============================================================================
# Sampler
# ============================================================================

class ShimmerSampler:
    """
    Samples a collection of contigs.

    Contigs are independent, so they are sampled concurrently; output order
    always follows input order.
    """

    def __init__(self, params: ShimmerParams, threads: int = 1):
        self.params = params
        self.threads = max(1, threads)
        self.logger = logging.getLogger(f"{__name__}.ShimmerSampler")

    def sample_all(self, sequences: Sequence[str]) -> List[List[Shimmer]]:
        """Sample every sequence; element i belongs to sequences[i]."""
        self.logger.info(
            f"Sampling {len(sequences)} contigs (k={self.params.k}, w={self.params.w}, "
            f"r={self.params.r}, min_span={self.params.min_span}, threads={self.threads})"
        )

        if self.threads == 1 or len(sequences) < 2:
            results = [sample_sequence(s, self.params) for s in sequences]
        else:
            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                results = list(executor.map(lambda s: sample_sequence(s, self.params), sequences))

        total = sum(len(r) for r in results)
        empty = sum(1 for r in results if not r)
        self.logger.info(f"Sampled {total:,} anchors")
        if empty:
            self.logger.warning(f"{empty} contigs are too short or ambiguous to yield anchors")
        return results

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
