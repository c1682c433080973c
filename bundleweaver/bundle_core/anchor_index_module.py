#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BundleWeaver v0.1.0

Anchor Index: anchor hash -> every (contig, position, strand) occurrence.

The index is partitioned by hash into shards, each guarded by its own lock,
so contigs can be inserted from several threads. ``freeze()`` is the
barrier after which the index is read-only and occurrence lists are in
(contig, position) order regardless of insertion interleaving.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set
import logging
import threading

from ..exceptions import GraphConsistencyError
from .shimmer_module import Shimmer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Occurrence:
    """One sighting of an anchor."""
    contig_id: int
    position: int
    strand: int


class _Shard:
    """One hash partition of the index."""

    __slots__ = ('lock', 'occurrences')

    def __init__(self):
        self.lock = threading.Lock()
        self.occurrences: Dict[int, List[Occurrence]] = {}


class AnchorIndex:
    """
    Sharded anchor index.

    Anchors whose occurrence count exceeds ``occurrence_ceiling`` are flagged
    excluded at freeze time: they stay in the index (positions are still
    needed for coordinate bookkeeping) but are skipped by graph building.
    """

    def __init__(self, n_shards: int = 16, occurrence_ceiling: int = 1024):
        if n_shards < 1:
            raise ValueError(f"n_shards must be >= 1, got {n_shards}")
        if occurrence_ceiling < 1:
            raise ValueError(f"occurrence_ceiling must be >= 1, got {occurrence_ceiling}")
        self.n_shards = n_shards
        self.occurrence_ceiling = occurrence_ceiling
        self._shards = [_Shard() for _ in range(n_shards)]
        self._contig_anchors: Dict[int, List[Shimmer]] = {}
        self._position_lookup: Dict[int, Dict[int, int]] = {}
        self._contig_lock = threading.Lock()
        self._excluded: Set[int] = set()
        self.frozen = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _shard_of(self, anchor_hash: int) -> _Shard:
        return self._shards[anchor_hash % self.n_shards]

    def add_contig(self, contig_id: int, shimmers: Sequence[Shimmer]):
        """Record a contig's anchor series and its occurrences."""
        if self.frozen:
            raise GraphConsistencyError("AnchorIndex is frozen; cannot add contigs")

        with self._contig_lock:
            if contig_id in self._contig_anchors:
                raise GraphConsistencyError(f"Contig {contig_id} indexed twice")
            self._contig_anchors[contig_id] = list(shimmers)
            self._position_lookup[contig_id] = {s.position: i for i, s in enumerate(shimmers)}

        for s in shimmers:
            shard = self._shard_of(s.hash)
            with shard.lock:
                shard.occurrences.setdefault(s.hash, []).append(
                    Occurrence(contig_id, s.position, s.strand)
                )

    def add_contigs(self, series: Sequence[Sequence[Shimmer]], threads: int = 1):
        """Insert ``series[i]`` as contig ``i``, optionally from several threads."""
        if threads > 1 and len(series) > 1:
            with ThreadPoolExecutor(max_workers=threads) as executor:
                list(executor.map(lambda item: self.add_contig(*item), enumerate(series)))
        else:
            for contig_id, shimmers in enumerate(series):
                self.add_contig(contig_id, shimmers)

    def freeze(self) -> 'AnchorIndex':
        """Sort occurrence lists, flag hyper-repetitive anchors and lock the index."""
        if self.frozen:
            return self
        for shard in self._shards:
            for anchor_hash, occs in shard.occurrences.items():
                occs.sort(key=lambda o: (o.contig_id, o.position))
                if len(occs) > self.occurrence_ceiling:
                    self._excluded.add(anchor_hash)
        self.frozen = True

        stats = self.stats()
        logger.info(
            f"Anchor index frozen: {stats['anchors']:,} anchors, "
            f"{stats['occurrences']:,} occurrences over {stats['contigs']} contigs"
        )
        if self._excluded:
            logger.info(
                f"Excluded {len(self._excluded):,} anchors above the occurrence ceiling "
                f"({self.occurrence_ceiling})"
            )
        return self

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lookup(self, anchor_hash: int) -> List[Occurrence]:
        """All occurrences of an anchor (empty if unknown)."""
        return list(self._shard_of(anchor_hash).occurrences.get(anchor_hash, ()))

    def occurrence_count(self, anchor_hash: int) -> int:
        return len(self._shard_of(anchor_hash).occurrences.get(anchor_hash, ()))

    def is_excluded(self, anchor_hash: int) -> bool:
        return anchor_hash in self._excluded

    @property
    def excluded(self) -> Set[int]:
        return set(self._excluded)

    def contig_ids(self) -> List[int]:
        return sorted(self._contig_anchors)

    def contig_anchors(self, contig_id: int) -> List[Shimmer]:
        return self._contig_anchors.get(contig_id, [])

    def anchor_at(self, contig_id: int, position: int) -> Optional[Shimmer]:
        """The anchor starting at ``position`` on a contig, if any."""
        idx = self._position_lookup.get(contig_id, {}).get(position)
        if idx is None:
            return None
        return self._contig_anchors[contig_id][idx]

    def contigs_sharing(self, anchor_hash: int) -> List[int]:
        """Distinct contig ids carrying an anchor, ascending."""
        return sorted({o.contig_id for o in self.lookup(anchor_hash)})

    def shared_anchors(self, contig_a: int, contig_b: int) -> Set[int]:
        """Anchor hashes present on both contigs."""
        a = {s.hash for s in self.contig_anchors(contig_a)}
        b = {s.hash for s in self.contig_anchors(contig_b)}
        return a & b

    def iter_anchors(self):
        """Yield (hash, occurrences) over all shards, hash-ascending."""
        merged = {}
        for shard in self._shards:
            merged.update(shard.occurrences)
        for anchor_hash in sorted(merged):
            yield anchor_hash, merged[anchor_hash]

    def stats(self) -> Dict[str, int]:
        anchors = sum(len(s.occurrences) for s in self._shards)
        occurrences = sum(len(v) for s in self._shards for v in s.occurrences.values())
        return {
            'contigs': len(self._contig_anchors),
            'anchors': anchors,
            'occurrences': occurrences,
            'excluded': len(self._excluded),
        }


def build_anchor_index(
    series: Sequence[Sequence[Shimmer]],
    n_shards: int = 16,
    occurrence_ceiling: int = 1024,
    threads: int = 1,
) -> AnchorIndex:
    """Convenience wrapper: index per-contig shimmer series and freeze."""
    index = AnchorIndex(n_shards=n_shards, occurrence_ceiling=occurrence_ceiling)
    index.add_contigs(series, threads=threads)
    return index.freeze()

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
