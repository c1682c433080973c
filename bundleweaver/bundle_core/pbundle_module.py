#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BundleWeaver v0.1.0

Principal Bundle Extractor: collapses the MAP graph into bundles.

A bundle is a maximal chain of oriented anchors in which every link is the
single dominant successor of its source and the single dominant predecessor
of its target. Chains stop at branch points, at nodes already owned by a
bundle, and when they would revisit a node (which is how cycles from
repeats are broken). Every contig walk is then re-expressed as a list of
path entries, one per traversal of a bundle; a contig that passes through
the same bundle twice contributes two entries under the same bundle id.

Determinism: bundles are seeded from contigs in input order and, within a
contig, in position order; ids follow creation order. Successors with equal
support never win a tie. Neither qualifies, so the chain ends there.

Pruning: anchors visited fewer than ``min_cov`` times are left out before
chaining, and bundles of ``min_branch_size`` anchors or fewer are dropped
and chaining is repeated on the remaining anchors until nothing more is
dropped. Contig walks are re-linked across pruned anchors, so short
bubbles from point variants no longer split the bundles around them.
Pruned anchors belong to no bundle.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple
import logging

from ..exceptions import ParameterError
from .mapg_engine_module import MapGraph, Vertex

logger = logging.getLogger(__name__)


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class PrincipalBundle:
    """
    A collapsed chain of oriented anchors.

    Attributes:
        bundle_id: Stable id (creation order)
        vertices: (node_id, strand) in canonical order; a vertex's index is
            its bundle-internal coordinate
        size: Traversals (path entries) supporting the bundle
        contig_count: Distinct contigs supporting the bundle
        max_copies: Largest number of traversals by any single contig
        repeat: Repeat classification (set after projection)
    """
    bundle_id: int
    vertices: List[Vertex] = field(default_factory=list)
    size: int = 0
    contig_count: int = 0
    max_copies: int = 0
    repeat: bool = False

    @property
    def length(self) -> int:
        return len(self.vertices)

    @property
    def repeat_flag(self) -> str:
        return 'R' if self.repeat else 'U'


@dataclass
class PathEntry:
    """
    One traversal of a bundle by a contig.

    ``first_step``/``last_step`` index the contig's PathStep list
    (inclusive). ``bundle_start``/``bundle_end`` are the internal
    coordinates of those steps; they increase for direction 0 and
    decrease for direction 1.
    """
    contig_id: int
    bundle_id: int
    direction: int
    first_step: int
    last_step: int
    bundle_start: int
    bundle_end: int
    start_pos: int
    end_pos: int

    @property
    def anchor_count(self) -> int:
        return self.last_step - self.first_step + 1


@dataclass
class BundleTable:
    """Bundles, node ownership and per-contig bundle paths."""
    bundles: List[PrincipalBundle] = field(default_factory=list)
    assignment: Dict[int, Tuple[int, int, int]] = field(default_factory=dict)
    paths: Dict[int, List[PathEntry]] = field(default_factory=dict)
    empty_contigs: List[int] = field(default_factory=list)

    def bundle_of(self, node_id: int) -> Optional[Tuple[int, int, int]]:
        """(bundle_id, rank, canonical_strand) for a node."""
        return self.assignment.get(node_id)

    def locate(self, node_id: int, strand: int) -> Optional[Tuple[int, int, int]]:
        """(bundle_id, rank, direction) of an oriented visit to ``node_id``."""
        owner = self.assignment.get(node_id)
        if owner is None:
            return None
        bundle_id, rank, canonical = owner
        return bundle_id, rank, 0 if strand == canonical else 1

    def entries_for(self, bundle_id: int) -> List[PathEntry]:
        return [e for entries in self.paths.values() for e in entries if e.bundle_id == bundle_id]


# ============================================================================
# Extractor
# ============================================================================

class BundleExtractor:
    """
    Extract principal bundles from a frozen MAP graph.

    Args:
        branch_dominance: A successor (predecessor) qualifies when its share
            of the vertex's total out (in) multiplicity is strictly greater
            than this. A link is chainable only if exactly one candidate
            qualifies on both ends.
        min_branch_size: Bundles with this many anchors or fewer are pruned
            (0 keeps every bundle)
        min_cov: Anchors visited fewer times than this across all contigs
            are pruned before chaining (0 keeps every anchor)
    """

    def __init__(self, branch_dominance: float = 0.5, min_branch_size: int = 0, min_cov: int = 0):
        if not 0.0 <= branch_dominance < 1.0:
            raise ParameterError(f"branch_dominance must be in [0, 1), got {branch_dominance}")
        if min_branch_size < 0:
            raise ParameterError(f"min_branch_size must be >= 0, got {min_branch_size}")
        if min_cov < 0:
            raise ParameterError(f"min_cov must be >= 0, got {min_cov}")
        self.branch_dominance = branch_dominance
        self.min_branch_size = min_branch_size
        self.min_cov = min_cov
        self.logger = logging.getLogger(f"{__name__}.BundleExtractor")
        self._succ_cache: Dict[Vertex, Optional[Vertex]] = {}
        self._pred_cache: Dict[Vertex, Optional[Vertex]] = {}

    def extract(self, graph: MapGraph) -> BundleTable:
        if not graph.frozen:
            raise ParameterError("MAP graph must be frozen before bundle extraction")

        self.logger.info(f"Extracting principal bundles from {graph.node_count:,} nodes...")
        pruned = self._low_coverage(graph)
        if pruned:
            self.logger.info(f"  {len(pruned):,} anchors below coverage {self.min_cov}")

        rounds = 0
        while True:
            rounds += 1
            work = self._pruned_graph(graph, pruned) if pruned else graph
            table = self._chain_bundles(work)
            short = {
                node_id
                for bundle in table.bundles if bundle.length <= self.min_branch_size
                for node_id, _ in bundle.vertices
            }
            if not short:
                break
            pruned |= short
            self.logger.debug(f"  Round {rounds}: pruned {len(short):,} anchors in short branches")

        if pruned:
            self.logger.info(f"  {len(pruned):,} anchors left unbundled after {rounds} rounds")
        self._fill_paths(graph, table)
        return table

    def transfer(self, graph: MapGraph, reference: BundleTable) -> BundleTable:
        """
        Re-express the contig walks of ``graph`` through the bundles of an
        earlier run. Node ids of ``graph`` must agree with the reference's
        for every shared anchor.
        """
        if not graph.frozen:
            raise ParameterError("MAP graph must be frozen before bundle transfer")
        table = BundleTable(
            bundles=[PrincipalBundle(b.bundle_id, list(b.vertices)) for b in reference.bundles],
            assignment=dict(reference.assignment),
        )
        self.logger.info(f"Reusing {len(table.bundles):,} precomputed bundles")
        self._fill_paths(graph, table)
        return table

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def _low_coverage(self, graph: MapGraph) -> Set[int]:
        if self.min_cov <= 1:
            return set()
        coverage = Counter(step.node_id for steps in graph.contig_paths.values() for step in steps)
        return {node_id for node_id, count in coverage.items() if count < self.min_cov}

    @staticmethod
    def _pruned_graph(graph: MapGraph, pruned: Set[int]) -> MapGraph:
        """Same node ids; contig walks skip pruned anchors and link across them."""
        reduced = MapGraph()
        for node in graph.nodes:
            reduced.add_node(node.anchor_hash, node.occurrence_count)
        for contig_id in sorted(graph.contig_paths):
            kept = [s for s in graph.contig_paths[contig_id] if s.node_id not in pruned]
            for a, b in zip(kept, kept[1:]):
                reduced.add_edge(a.node_id, b.node_id, a.strand, b.strand, contig_id, a.position, b.position)
            reduced.contig_paths[contig_id] = kept
        return reduced.freeze()

    def _chain_bundles(self, graph: MapGraph) -> BundleTable:
        self._succ_cache.clear()
        self._pred_cache.clear()
        table = BundleTable()
        for contig_id in sorted(graph.contig_paths):
            for step in graph.contig_paths[contig_id]:
                if step.node_id in table.assignment:
                    continue
                chain = self._grow(graph, (step.node_id, step.strand), table.assignment)
                bundle = PrincipalBundle(bundle_id=len(table.bundles), vertices=chain)
                for rank, (node_id, strand) in enumerate(chain):
                    table.assignment[node_id] = (bundle.bundle_id, rank, strand)
                table.bundles.append(bundle)
        return table

    def _fill_paths(self, graph: MapGraph, table: BundleTable):
        for contig_id in sorted(graph.contig_paths):
            entries = self._contig_entries(graph, table, contig_id)
            table.paths[contig_id] = entries
            if not entries:
                table.empty_contigs.append(contig_id)

        if table.empty_contigs:
            self.logger.warning(
                f"{len(table.empty_contigs)} contigs have no qualifying anchors and no bundles"
            )
        self.logger.info(
            f"{len(table.bundles):,} bundles, "
            f"{sum(len(v) for v in table.paths.values()):,} path entries"
        )

    # ------------------------------------------------------------------
    # Chain growth
    # ------------------------------------------------------------------

    def _dominant(self, counts: Counter) -> Optional[Vertex]:
        total = sum(counts.values())
        if total == 0:
            return None
        qualifying = [v for v, c in counts.items() if c / total > self.branch_dominance]
        if len(qualifying) != 1:
            return None
        return qualifying[0]

    def _dominant_succ(self, graph: MapGraph, v: Vertex) -> Optional[Vertex]:
        if v not in self._succ_cache:
            self._succ_cache[v] = self._dominant(graph.successors(*v))
        return self._succ_cache[v]

    def _dominant_pred(self, graph: MapGraph, v: Vertex) -> Optional[Vertex]:
        if v not in self._pred_cache:
            self._pred_cache[v] = self._dominant(graph.predecessors(*v))
        return self._pred_cache[v]

    def _chain_next(self, graph: MapGraph, v: Vertex) -> Optional[Vertex]:
        u = self._dominant_succ(graph, v)
        if u is None or u[0] == v[0] or self._dominant_pred(graph, u) != v:
            return None
        return u

    def _chain_prev(self, graph: MapGraph, v: Vertex) -> Optional[Vertex]:
        u = self._dominant_pred(graph, v)
        if u is None or u[0] == v[0] or self._dominant_succ(graph, u) != v:
            return None
        return u

    def _grow(self, graph: MapGraph, seed: Vertex, assigned: Dict[int, Tuple[int, int, int]]) -> List[Vertex]:
        chain = deque([seed])
        members = {seed[0]}

        v = seed
        while True:
            u = self._chain_prev(graph, v)
            if u is None or u[0] in members or u[0] in assigned:
                break
            chain.appendleft(u)
            members.add(u[0])
            v = u

        v = seed
        while True:
            u = self._chain_next(graph, v)
            if u is None or u[0] in members or u[0] in assigned:
                break
            chain.append(u)
            members.add(u[0])
            v = u

        return list(chain)

    # ------------------------------------------------------------------
    # Contig paths
    # ------------------------------------------------------------------

    @staticmethod
    def _contig_entries(graph: MapGraph, table: BundleTable, contig_id: int) -> List[PathEntry]:
        steps = graph.contig_paths[contig_id]
        entries: List[PathEntry] = []
        current: Optional[PathEntry] = None

        for i, step in enumerate(steps):
            located = table.locate(step.node_id, step.strand)
            if located is None:
                continue
            bundle_id, rank, direction = located
            if current is not None and current.bundle_id == bundle_id and current.direction == direction:
                advancing = rank > current.bundle_end if direction == 0 else rank < current.bundle_end
                if advancing:
                    current.last_step = i
                    current.bundle_end = rank
                    current.end_pos = step.position
                    continue
            current = PathEntry(
                contig_id=contig_id,
                bundle_id=bundle_id,
                direction=direction,
                first_step=i,
                last_step=i,
                bundle_start=rank,
                bundle_end=rank,
                start_pos=step.position,
                end_pos=step.position,
            )
            entries.append(current)
        return entries


def bundle_links(table: BundleTable) -> List[Tuple[Tuple[int, int], Tuple[int, int], int]]:
    """
    Adjacent traversals along contigs as ((bid, dir), (bid, dir), count),
    in order of first observation.
    """
    counts: Dict[Tuple[Tuple[int, int], Tuple[int, int]], int] = {}
    for contig_id in sorted(table.paths):
        entries = table.paths[contig_id]
        for a, b in zip(entries, entries[1:]):
            key = ((a.bundle_id, a.direction), (b.bundle_id, b.direction))
            counts[key] = counts.get(key, 0) + 1
    return [(a, b, c) for (a, b), c in counts.items()]


def extract_principal_bundles(
    graph: MapGraph,
    branch_dominance: float = 0.5,
    min_branch_size: int = 0,
    min_cov: int = 0,
) -> BundleTable:
    """Convenience function around BundleExtractor."""
    return BundleExtractor(
        branch_dominance=branch_dominance,
        min_branch_size=min_branch_size,
        min_cov=min_cov,
    ).extract(graph)

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
