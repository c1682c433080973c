#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BundleWeaver v0.1.0

MAP Graph Engine: the directed anchor multigraph.
- One node per non-excluded anchor, addressed by a stable integer id
- One edge per consecutive anchor pair on every contig (parallel edges kept)
- Strand-aware traversal: each stored edge also reads as its
  reverse-complement twin, so a contig sampled from either strand supports
  the same adjacency
- Per-contig oriented paths for downstream bundle assignment

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
import logging

from ..exceptions import GraphConsistencyError
from .anchor_index_module import AnchorIndex

logger = logging.getLogger(__name__)

# (node_id, strand)
Vertex = Tuple[int, int]


def twin(vertex: Vertex) -> Vertex:
    """The same node read on the opposite strand."""
    return (vertex[0], 1 - vertex[1])


# ============================================================================
# Core Data Structures
# ============================================================================

@dataclass
class MapNode:
    """A graph node: one anchor."""
    node_id: int
    anchor_hash: int
    occurrence_count: int


@dataclass(frozen=True)
class MapEdge:
    """
    One observed adjacency: ``contig_id`` visits ``source`` then ``target``.

    ``excluded_span`` is the base distance bridged when excluded anchors were
    skipped between the two endpoints (0 when they were directly adjacent).
    """
    edge_id: int
    source: int
    target: int
    source_strand: int
    target_strand: int
    contig_id: int
    source_pos: int
    target_pos: int
    excluded_span: int = 0


@dataclass(frozen=True)
class PathStep:
    """One node visit along a contig."""
    node_id: int
    strand: int
    position: int


@dataclass
class MapGraph:
    """
    Arena-style multigraph. Nodes and edges live in lists indexed by id;
    adjacency is kept as per-node edge-id lists.
    """
    nodes: List[MapNode] = field(default_factory=list)
    edges: List[MapEdge] = field(default_factory=list)
    node_of_hash: Dict[int, int] = field(default_factory=dict)
    out_edges: List[List[int]] = field(default_factory=list)
    in_edges: List[List[int]] = field(default_factory=list)
    contig_paths: Dict[int, List[PathStep]] = field(default_factory=dict)
    frozen: bool = False

    def __post_init__(self):
        self._succ: Dict[Vertex, Counter] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _check_mutable(self):
        if self.frozen:
            raise GraphConsistencyError("MapGraph is frozen; no mutation after the bundling barrier")

    def add_node(self, anchor_hash: int, occurrence_count: int = 0) -> int:
        """Return the node id for an anchor, creating it on first sight."""
        self._check_mutable()
        node_id = self.node_of_hash.get(anchor_hash)
        if node_id is None:
            node_id = len(self.nodes)
            self.nodes.append(MapNode(node_id, anchor_hash, occurrence_count))
            self.node_of_hash[anchor_hash] = node_id
            self.out_edges.append([])
            self.in_edges.append([])
        return node_id

    def add_edge(
        self,
        source: int,
        target: int,
        source_strand: int,
        target_strand: int,
        contig_id: int,
        source_pos: int,
        target_pos: int,
        excluded_span: int = 0,
    ) -> int:
        """Append an edge; both endpoints must already exist."""
        self._check_mutable()
        if not (0 <= source < len(self.nodes)) or not (0 <= target < len(self.nodes)):
            raise GraphConsistencyError(
                f"Edge references unknown node: {source} -> {target} "
                f"(graph has {len(self.nodes)} nodes)"
            )
        edge_id = len(self.edges)
        self.edges.append(MapEdge(
            edge_id, source, target, source_strand, target_strand,
            contig_id, source_pos, target_pos, excluded_span,
        ))
        self.out_edges[source].append(edge_id)
        self.in_edges[target].append(edge_id)
        return edge_id

    def freeze(self) -> 'MapGraph':
        """Build the oriented adjacency view and forbid further mutation."""
        if self.frozen:
            return self
        succ: Dict[Vertex, Counter] = defaultdict(Counter)
        for e in self.edges:
            succ[(e.source, e.source_strand)][(e.target, e.target_strand)] += 1
            succ[(e.target, 1 - e.target_strand)][(e.source, 1 - e.source_strand)] += 1
        self._succ = dict(succ)
        self.frozen = True
        return self

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def out_degree(self, node_id: int) -> int:
        """Stored out-edges (with multiplicity)."""
        return len(self.out_edges[node_id])

    def in_degree(self, node_id: int) -> int:
        return len(self.in_edges[node_id])

    def successors(self, node_id: int, strand: int) -> Counter:
        """Oriented successors of (node, strand) with edge multiplicity."""
        if not self.frozen:
            raise GraphConsistencyError("Oriented adjacency is only available after freeze()")
        return Counter(self._succ.get((node_id, strand), ()))

    def predecessors(self, node_id: int, strand: int) -> Counter:
        """Oriented predecessors of (node, strand) with edge multiplicity."""
        if not self.frozen:
            raise GraphConsistencyError("Oriented adjacency is only available after freeze()")
        return Counter({twin(u): c for u, c in self._succ.get((node_id, 1 - strand), {}).items()})

    def multiplicity(self, source: Vertex, target: Vertex) -> int:
        """Number of contig visits supporting source -> target (either strand)."""
        return self._succ.get(source, {}).get(target, 0)

    def edges_between(self, source: int, target: int) -> List[MapEdge]:
        """Stored edges from node ``source`` to node ``target``."""
        return [self.edges[eid] for eid in self.out_edges[source] if self.edges[eid].target == target]

    def oriented_links(self) -> Iterator[Tuple[Vertex, Vertex, int]]:
        """
        Distinct oriented adjacencies with multiplicity, each reported once
        in its canonical reading (the lexicographically smaller of the link
        and its twin), in order of first observation.
        """
        counts: Dict[Tuple[Vertex, Vertex], int] = {}
        for e in self.edges:
            a = (e.source, e.source_strand)
            b = (e.target, e.target_strand)
            key = min((a, b), (twin(b), twin(a)))
            counts[key] = counts.get(key, 0) + 1
        for (a, b), count in counts.items():
            yield a, b, count

    def contig_path(self, contig_id: int) -> List[PathStep]:
        return self.contig_paths.get(contig_id, [])

    def stats(self) -> Dict[str, int]:
        self_loops = sum(1 for e in self.edges if e.source == e.target)
        return {
            'nodes': self.node_count,
            'edges': self.edge_count,
            'self_loops': self_loops,
            'contigs': len(self.contig_paths),
        }


# ============================================================================
# Builder
# ============================================================================

class MapGraphBuilder:
    """
    Builds a MapGraph from a frozen AnchorIndex.

    Per-contig step/edge generation runs in parallel; the results are then
    merged into the arena in contig order so node ids are reproducible.

    Args:
        threads: Worker threads for walk generation
        seed_hashes: Anchors that take node ids 0..n-1 in this order before
            any contig is merged, so ids line up with an earlier graph
    """

    def __init__(self, threads: int = 1, seed_hashes: Optional[Sequence[int]] = None):
        self.threads = max(1, threads)
        self.seed_hashes = list(seed_hashes or [])
        self.logger = logging.getLogger(f"{__name__}.MapGraphBuilder")

    def build(self, index: AnchorIndex) -> MapGraph:
        if not index.frozen:
            raise GraphConsistencyError("AnchorIndex must be frozen before graph construction")

        contig_ids = index.contig_ids()
        self.logger.info(f"Step 1: Generating anchor walks for {len(contig_ids)} contigs...")
        if self.threads > 1 and len(contig_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                walks = list(executor.map(lambda c: self._contig_walk(index, c), contig_ids))
        else:
            walks = [self._contig_walk(index, c) for c in contig_ids]

        self.logger.info("Step 2: Merging walks into the graph arena...")
        graph = MapGraph()
        for anchor_hash in self.seed_hashes:
            graph.add_node(anchor_hash, index.occurrence_count(anchor_hash))
        for contig_id, (walk, spans) in zip(contig_ids, walks):
            steps: List[PathStep] = []
            for anchor in walk:
                node_id = graph.add_node(anchor.hash, index.occurrence_count(anchor.hash))
                steps.append(PathStep(node_id, anchor.strand, anchor.position))
            for i in range(1, len(steps)):
                a, b = steps[i - 1], steps[i]
                graph.add_edge(
                    a.node_id, b.node_id, a.strand, b.strand,
                    contig_id, a.position, b.position, spans[i],
                )
            graph.contig_paths[contig_id] = steps
            if not steps:
                self.logger.warning(f"Contig {contig_id} contributes no graph anchors")

        graph.freeze()
        stats = graph.stats()
        self.logger.info(
            f"MAP graph: {stats['nodes']:,} nodes, {stats['edges']:,} edges "
            f"({stats['self_loops']} self-loops)"
        )
        return graph

    @staticmethod
    def _contig_walk(index: AnchorIndex, contig_id: int):
        """
        Non-excluded anchors of one contig, plus for each the span of
        excluded anchors bridged to reach it from its predecessor.
        """
        walk = []
        spans: List[int] = []
        skipped = False
        for anchor in index.contig_anchors(contig_id):
            if index.is_excluded(anchor.hash):
                skipped = True
                continue
            if walk and skipped:
                spans.append(anchor.position - walk[-1].position)
            else:
                spans.append(0)
            walk.append(anchor)
            skipped = False
        return walk, spans


def build_map_graph(
    index: AnchorIndex,
    threads: int = 1,
    seed_hashes: Optional[Sequence[int]] = None,
) -> MapGraph:
    """Convenience function: build and freeze the MAP graph for an index."""
    return MapGraphBuilder(threads=threads, seed_hashes=seed_hashes).build(index)

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
