#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Binary decomposition artifact (.pdb).

Layout: magic ``BWPDB``, one format-version byte, then a pickled dict of
plain Python values (ints, strings, tuples, lists, dicts). The anchor table
is stored per contig, so loading rebuilds the anchor index and MAP graph
exactly; bundles, path entries and segments are restored as written so
re-emitted BED and summary files are byte-identical to the originals.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from __future__ import annotations
import logging
import pickle
from pathlib import Path
from typing import Any

from ..bundle_core.anchor_index_module import build_anchor_index
from ..bundle_core.mapg_engine_module import build_map_graph
from ..bundle_core.pbundle_module import BundleTable, PathEntry, PrincipalBundle
from ..bundle_core.projection_module import ContigSegment, summarize_segments
from ..bundle_core.shimmer_module import Shimmer, ShimmerParams
from ..exceptions import ArtifactFormatError, ArtifactMismatchError
from ..utils.pipeline import Decomposition

logger = logging.getLogger(__name__)

PDB_MAGIC = b"BWPDB"
PDB_VERSION = 1
PICKLE_PROTOCOL = 4


# ============================================================================
#                           ENCODE
# ============================================================================

def _encode(decomp: Decomposition) -> dict[str, Any]:
    if decomp.index is None:
        raise ArtifactFormatError("Cannot persist a decomposition without its anchor index")
    index = decomp.index
    table = decomp.table
    return {
        'params': decomp.params.to_dict(),
        'index_cfg': dict(decomp.index_cfg),
        'bundle_cfg': dict(decomp.bundle_cfg),
        'cmd': decomp.cmd,
        'contigs': {
            'names': list(decomp.contig_names),
            'lengths': list(decomp.contig_lengths),
        },
        'anchors': {
            contig_id: [(s.hash, s.position, s.strand) for s in index.contig_anchors(contig_id)]
            for contig_id in range(decomp.contig_count)
        },
        'excluded': sorted(index.excluded),
        'bundles': [
            (b.bundle_id, [tuple(v) for v in b.vertices], b.size, b.contig_count, b.max_copies, b.repeat)
            for b in table.bundles
        ],
        'paths': {
            contig_id: [
                (e.bundle_id, e.direction, e.first_step, e.last_step,
                 e.bundle_start, e.bundle_end, e.start_pos, e.end_pos)
                for e in entries
            ]
            for contig_id, entries in table.paths.items()
        },
        'empty_contigs': list(table.empty_contigs),
        'segments': {
            contig_id: [seg.to_tuple() for seg in segs]
            for contig_id, segs in decomp.segments.items()
        },
        'repeat_policy': dict(decomp.repeat_policy),
    }


def save_decomposition(decomp: Decomposition, output_path: str | Path) -> None:
    """Write a decomposition artifact."""
    output_path = Path(output_path)
    payload = pickle.dumps(_encode(decomp), protocol=PICKLE_PROTOCOL)
    with open(output_path, 'wb') as f:
        f.write(PDB_MAGIC)
        f.write(bytes([PDB_VERSION]))
        f.write(payload)
    logger.info(f"Saved decomposition artifact to {output_path} ({len(payload):,} bytes)")


# ============================================================================
#                           DECODE
# ============================================================================

def _decode_table(data: dict[str, Any]) -> BundleTable:
    table = BundleTable()
    for bundle_id, vertices, size, contig_count, max_copies, repeat in data['bundles']:
        bundle = PrincipalBundle(
            bundle_id=bundle_id,
            vertices=[tuple(v) for v in vertices],
            size=size,
            contig_count=contig_count,
            max_copies=max_copies,
            repeat=repeat,
        )
        for rank, (node_id, strand) in enumerate(bundle.vertices):
            table.assignment[node_id] = (bundle_id, rank, strand)
        table.bundles.append(bundle)
    for contig_id, entries in data['paths'].items():
        table.paths[contig_id] = [PathEntry(contig_id, *fields) for fields in entries]
    table.empty_contigs = list(data['empty_contigs'])
    return table


def load_decomposition(
    input_path: str | Path,
    expect_params: ShimmerParams | None = None,
) -> Decomposition:
    """
    Load a decomposition artifact.

    Raises:
        ArtifactFormatError: Bad magic, unknown version, or a payload that
            cannot be unpickled or lacks the expected fields
        ArtifactMismatchError: Stored shimmer parameters differ from ``expect_params``
    """
    input_path = Path(input_path)
    raw = input_path.read_bytes()
    if not raw.startswith(PDB_MAGIC):
        raise ArtifactFormatError(f"{input_path} is not a BundleWeaver decomposition artifact")
    version = raw[len(PDB_MAGIC)] if len(raw) > len(PDB_MAGIC) else None
    if version != PDB_VERSION:
        raise ArtifactFormatError(
            f"{input_path}: unsupported artifact version {version} (expected {PDB_VERSION})"
        )
    try:
        data = pickle.loads(raw[len(PDB_MAGIC) + 1:])
    except (pickle.UnpicklingError, EOFError, ValueError) as e:
        raise ArtifactFormatError(f"{input_path}: corrupt artifact payload: {e}") from e

    try:
        return _decode(data, input_path, expect_params)
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise ArtifactFormatError(
            f"{input_path}: malformed artifact payload ({type(e).__name__}: {e})"
        ) from e


def _decode(data: dict[str, Any], input_path: Path, expect_params: ShimmerParams | None) -> Decomposition:
    params = ShimmerParams.from_dict(data['params'])
    if expect_params is not None and params != expect_params:
        raise ArtifactMismatchError(
            f"{input_path} was built with {params.to_dict()}, expected {expect_params.to_dict()}",
            expected=expect_params.to_dict(),
            found=params.to_dict(),
        )

    names = list(data['contigs']['names'])
    lengths = list(data['contigs']['lengths'])
    index_cfg = dict(data['index_cfg'])

    series = [
        [Shimmer(h, p, s) for h, p, s in data['anchors'].get(contig_id, [])]
        for contig_id in range(len(names))
    ]
    index = build_anchor_index(
        series,
        n_shards=index_cfg.get('n_shards', 16),
        occurrence_ceiling=index_cfg.get('occurrence_ceiling', 1024),
    )
    if sorted(index.excluded) != list(data['excluded']):
        raise ArtifactFormatError(f"{input_path}: excluded anchor set does not match the stored index")
    graph = build_map_graph(index)

    table = _decode_table(data)
    segments = {
        contig_id: [ContigSegment(*fields) for fields in segs]
        for contig_id, segs in data['segments'].items()
    }

    logger.info(
        f"Loaded decomposition of {len(names)} contigs, {len(table.bundles):,} bundles from {input_path}"
    )
    return Decomposition(
        contig_names=names,
        contig_lengths=lengths,
        params=params,
        table=table,
        segments=segments,
        summaries=summarize_segments(names, lengths, segments),
        repeat_policy=dict(data['repeat_policy']),
        index_cfg=index_cfg,
        bundle_cfg=dict(data['bundle_cfg']),
        cmd=data['cmd'],
        index=index,
        graph=graph,
    )

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
