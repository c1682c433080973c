"""
Bundle Core module for BundleWeaver.

This module provides the decomposition engine:
- Shimmer sampling (hierarchical sparse minimizers)
- Sharded anchor index with occurrence ceiling
- MAP graph construction over shared anchors
- Principal bundle extraction and contig path assignment
- Coordinate projection, repeat classification, contig summaries
- Structural variant classification between query and target contigs
"""

from .shimmer_module import (
    ShimmerParams,
    Shimmer,
    ShimmerSampler,
    sample_sequence,
    canonical_hash,
)

from .anchor_index_module import (
    AnchorIndex,
    Occurrence,
    build_anchor_index,
)

from .mapg_engine_module import (
    MapGraph,
    MapGraphBuilder,
    MapNode,
    MapEdge,
    PathStep,
    build_map_graph,
)

from .pbundle_module import (
    BundleExtractor,
    BundleTable,
    PathEntry,
    PrincipalBundle,
    bundle_links,
    extract_principal_bundles,
)

from .projection_module import (
    CoordinateProjector,
    ContigSegment,
    ContigSummary,
    ProjectionResult,
    SUMMARY_COLUMNS,
    repeat_policy,
    summarize_segments,
)

from .svscribe_module import (
    SVScribe,
    SVRecord,
    SVRecordType,
    DiffType,
    AlignmentBlock,
    ClassificationResult,
    PairwiseAlignerAdapter,
)

__all__ = [
    # Sampling and indexing
    "ShimmerParams",
    "Shimmer",
    "ShimmerSampler",
    "sample_sequence",
    "canonical_hash",
    "AnchorIndex",
    "Occurrence",
    "build_anchor_index",
    # Graph
    "MapGraph",
    "MapGraphBuilder",
    "MapNode",
    "MapEdge",
    "PathStep",
    "build_map_graph",
    # Bundles
    "BundleExtractor",
    "BundleTable",
    "PathEntry",
    "PrincipalBundle",
    "bundle_links",
    "extract_principal_bundles",
    # Projection
    "CoordinateProjector",
    "ContigSegment",
    "ContigSummary",
    "ProjectionResult",
    "SUMMARY_COLUMNS",
    "repeat_policy",
    "summarize_segments",
    # SV classification
    "SVScribe",
    "SVRecord",
    "SVRecordType",
    "DiffType",
    "AlignmentBlock",
    "ClassificationResult",
    "PairwiseAlignerAdapter",
]
