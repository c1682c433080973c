#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Bundle Export: contig BED, contig summary TSV, SV BED files, the alignment
map and contig map of an SV comparison, MAP/bundle graphs as GFA with
binary offset indexes, and the run parameter manifest.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Any, Sequence
from dataclasses import dataclass

import numpy as np
import yaml

from ..bundle_core.pbundle_module import bundle_links
from ..bundle_core.projection_module import SUMMARY_COLUMNS
from ..bundle_core.svscribe_module import AlignmentBlock, ClassificationResult, SVRecord
from ..utils.sequence_utils import reverse_complement
from ..exceptions import ArtifactFormatError
from ..version import __version__

if TYPE_CHECKING:
    from ..utils.pipeline import Decomposition

logger = logging.getLogger(__name__)

GFA_INDEX_MAGIC = b"BWGFAIDX\x01"

# Record kinds in the offset index
KIND_SEGMENT = 1
KIND_LINK = 2
KIND_PATH = 3
_KIND_CODES = {'S': KIND_SEGMENT, 'L': KIND_LINK, 'P': KIND_PATH}

GFA_INDEX_DTYPE = np.dtype([('kind', 'u1'), ('ident', '<u8'), ('offset', '<u8')])


def _orient(strand: int) -> str:
    return '+' if strand == 0 else '-'


def node_name(node_id: int) -> str:
    """External name of a MAP graph node."""
    return f"mg{node_id}"


def bundle_name(bundle_id: int) -> str:
    """External name of a principal bundle."""
    return f"pb{bundle_id}"


# ============================================================================
#                           TEXT TABLES
# ============================================================================

def write_bed(decomp: Decomposition, output_path: str | Path, cmd: str | None = None) -> None:
    """
    Write projected bundle segments as BED.

    Columns: contig, start, end, and
    ``bundle_id:bundle_size:direction:bundle_start:bundle_end:repeat_flag``.
    """
    output_path = Path(output_path)
    cmd = decomp.cmd if cmd is None else cmd
    n = 0
    with open(output_path, 'w', newline='\n') as f:
        f.write(f"# cmd: {cmd}\n")
        for seg in decomp.iter_segments():
            f.write(seg.to_bed_line() + "\n")
            n += 1
    logger.info(f"Wrote {n:,} segments to {output_path}")


def write_contig_summary(decomp: Decomposition, output_path: str | Path) -> None:
    """Write one tab-separated summary row per contig, in input order."""
    output_path = Path(output_path)
    with open(output_path, 'w', newline='\n') as f:
        f.write("\t".join(SUMMARY_COLUMNS) + "\n")
        for summary in decomp.summaries:
            f.write(summary.to_tsv_line() + "\n")
    logger.info(f"Wrote contig summary for {len(decomp.summaries)} contigs to {output_path}")


def write_sv_bed(records: Iterable[SVRecord], output_path: str | Path, cmd: str | None = None) -> int:
    """Write SV records as 4-column BED; returns the number written."""
    output_path = Path(output_path)
    n = 0
    with open(output_path, 'w', newline='\n') as f:
        if cmd is not None:
            f.write(f"# cmd: {cmd}\n")
        for rec in records:
            f.write(rec.to_bed_line() + "\n")
            n += 1
    logger.info(f"Wrote {n:,} SV records to {output_path}")
    return n


# ============================================================================
#                           ALIGNMENT MAP
# ============================================================================

def _flag(value: bool) -> int:
    return 1 if value else 0


def _block_fields(block: AlignmentBlock, names: Sequence[str]) -> str:
    return (
        f"{names[block.target_id]}\t{block.ts}\t{block.te}\t"
        f"{names[block.query_id]}\t{block.qs}\t{block.qe}\t{block.orientation}"
    )


def _candidate_row(
    result: ClassificationResult,
    aln_idx: int,
    block: AlignmentBlock,
    names: Sequence[str],
    pair: tuple[int, int, int, int, int],
) -> str:
    p, ts, te, qs, qe = pair
    tag = "S" + result.target_context(block.target_id, ts, te)
    ctg_orientation = result.contig_orientation[(block.query_id, block.target_id)]
    return (
        f"{aln_idx:06}\t{tag}\t{names[block.target_id]}\t{ts}\t{te}\t"
        f"{names[block.query_id]}\t{qs}\t{qe}\t{block.orientation}\t{ctg_orientation}\t"
        f"{block.diffs[p].value}"
    )


def write_alnmap(
    result: ClassificationResult,
    contig_names: Sequence[str],
    contig_lengths: Sequence[int],
    k: int,
    output_path: str | Path,
) -> int:
    """
    Write the alignment map: for every block a ``B`` row, one row per pair
    of consecutive hits (``M`` when the bases reconcile, ``S`` for an SV
    candidate, suffixed ``_D``/``_O`` inside target duplicate or overlap
    regions) and an ``E`` row. Rows start with the zero-padded block index.
    Returns the number of blocks written.
    """
    output_path = Path(output_path)
    with open(output_path, 'w', newline='\n') as f:
        for aln_idx, block in enumerate(result.blocks):
            q_len = contig_lengths[block.query_id]
            ctg_orientation = result.contig_orientation[(block.query_id, block.target_id)]
            f.write(
                f"{aln_idx:06}\tB\t{_block_fields(block, contig_names)}\t{q_len}\t{ctg_orientation}\t"
                f"{_flag(block.target_dup)}\t{_flag(block.target_overlap)}\t"
                f"{_flag(block.query_dup)}\t{_flag(block.query_overlap)}\n"
            )
            for pair in block.hit_pairs(k):
                p, ts, te, qs, qe = pair
                if p in block.diffs:
                    f.write(_candidate_row(result, aln_idx, block, contig_names, pair) + "\n")
                    continue
                tag = "M" + result.target_context(block.target_id, ts, te)
                f.write(
                    f"{aln_idx:06}\t{tag}\t{contig_names[block.target_id]}\t{ts}\t{te}\t"
                    f"{contig_names[block.query_id]}\t{qs}\t{qe}\t{block.orientation}\n"
                )
            f.write(f"{aln_idx:06}\tE\t{_block_fields(block, contig_names)}\t{q_len}\t{ctg_orientation}\n")
    logger.info(f"Wrote {len(result.blocks):,} alignment blocks to {output_path}")
    return len(result.blocks)


def ctgmap_records(
    result: ClassificationResult,
    contig_names: Sequence[str],
    contig_lengths: Sequence[int],
) -> list[dict[str, Any]]:
    """One record per alignment block, grouped by target in target order."""
    records = []
    for t in result.target_ids:
        for block in result.blocks:
            if block.target_id != t:
                continue
            records.append({
                't_name': contig_names[t],
                'ts': block.ts,
                'te': block.te,
                'q_name': contig_names[block.query_id],
                'qs': block.qs,
                'qe': block.qe,
                'ctg_len': contig_lengths[block.query_id],
                'orientation': block.orientation,
                'ctg_orientation': result.contig_orientation[(block.query_id, t)],
                't_dup': block.target_dup,
                't_ovlp': block.target_overlap,
                'q_dup': block.query_dup,
                'q_ovlp': block.query_overlap,
            })
    return records


def write_ctgmap_bed(
    result: ClassificationResult,
    contig_names: Sequence[str],
    contig_lengths: Sequence[int],
    output_path: str | Path,
) -> int:
    """
    Write the contig map as BED on the targets. The fourth column reads
    ``query:qs:qe:query_len:orientation:ctg_orientation:t_dup:t_ovlp:q_dup:q_ovlp``.
    """
    output_path = Path(output_path)
    records = ctgmap_records(result, contig_names, contig_lengths)
    with open(output_path, 'w', newline='\n') as f:
        for r in records:
            flags = ":".join(str(_flag(r[key])) for key in ('t_dup', 't_ovlp', 'q_dup', 'q_ovlp'))
            f.write(
                f"{r['t_name']}\t{r['ts']}\t{r['te']}\t{r['q_name']}:{r['qs']}:{r['qe']}:"
                f"{r['ctg_len']}:{r['orientation']}:{r['ctg_orientation']}:{flags}\n"
            )
    logger.info(f"Wrote {len(records):,} contig map records to {output_path}")
    return len(records)


def write_ctgmap_json(
    result: ClassificationResult,
    contig_names: Sequence[str],
    contig_lengths: Sequence[int],
    output_path: str | Path,
) -> None:
    """Write the contig map records plus query and target lengths as JSON."""
    output_path = Path(output_path)
    payload = {
        'records': ctgmap_records(result, contig_names, contig_lengths),
        'query_length': [[q, contig_names[q], contig_lengths[q]] for q in result.query_ids],
        'target_length': [[t, contig_names[t], contig_lengths[t]] for t in result.target_ids],
    }
    with open(output_path, 'w') as f:
        json.dump(payload, f)
        f.write("\n")
    logger.info(f"Wrote contig map JSON to {output_path}")


def write_sv_candidate_seqs(
    result: ClassificationResult,
    contig_names: Sequence[str],
    sequences: Sequence[str],
    k: int,
    output_path: str | Path,
) -> int:
    """
    Write every SV candidate with its bases: the ``S`` alignment-map row
    followed by the target and query subsequences. The query side is
    reverse-complemented for blocks in orientation 1.
    """
    output_path = Path(output_path)
    n = 0
    with open(output_path, 'w', newline='\n') as f:
        for aln_idx, block in enumerate(result.blocks):
            for pair in block.hit_pairs(k):
                p, ts, te, qs, qe = pair
                if p not in block.diffs:
                    continue
                t_seq = sequences[block.target_id][ts:te]
                q_seq = sequences[block.query_id][qs:qe]
                if block.orientation == 1:
                    q_seq = reverse_complement(q_seq)
                row = _candidate_row(result, aln_idx, block, contig_names, pair)
                f.write(f"{row}\t{t_seq}\t{q_seq}\n")
                n += 1
    logger.info(f"Wrote {n:,} SV candidate sequence pairs to {output_path}")
    return n


# ============================================================================
#                           GFA EXPORT
# ============================================================================

@dataclass
class GFASegment:
    """Represents a GFA S-line (segment) with no stored sequence."""
    name: str
    length: int
    tags: str = ""

    def to_gfa_line(self) -> str:
        line = f"S\t{self.name}\t*\tLN:i:{self.length}"
        return f"{line}\t{self.tags}" if self.tags else line


@dataclass
class GFALink:
    """Represents a GFA L-line with its support count."""
    from_name: str
    from_orient: str
    to_name: str
    to_orient: str
    support: int
    overlap: str = '0M'

    def to_gfa_line(self) -> str:
        return (
            f"L\t{self.from_name}\t{self.from_orient}\t{self.to_name}\t{self.to_orient}"
            f"\t{self.overlap}\tSC:i:{self.support}"
        )


@dataclass
class GFAPath:
    """Represents a GFA P-line: one contig's walk."""
    name: str
    steps: list[str]

    def to_gfa_line(self) -> str:
        return f"P\t{self.name}\t{','.join(self.steps)}\t*"


class _IndexedGFAWriter:
    """Writes GFA lines and records (kind, ident, byte offset) for each."""

    def __init__(self, handle):
        self.handle = handle
        self.offset = 0
        self.records: list[tuple[int, int, int]] = []

    def write(self, line: str, ident: int | None = None) -> None:
        if ident is not None:
            self.records.append((_KIND_CODES[line[0]], ident, self.offset))
        data = (line + "\n").encode('ascii')
        self.handle.write(data)
        self.offset += len(data)


def write_mapg_gfa(decomp: Decomposition, gfa_path: str | Path, idx_path: str | Path | None = None) -> None:
    """
    Export the MAP graph.

    - S lines per node (anchor footprint length, hash and occurrence tags)
    - L lines per distinct oriented adjacency with ``SC:i:`` multiplicity
    - P lines per contig with at least one anchor
    """
    graph = decomp.graph
    gfa_path = Path(gfa_path)
    logger.info(f"Exporting MAP graph to GFA: {gfa_path}")
    k = decomp.params.k

    with open(gfa_path, 'wb') as f:
        out = _IndexedGFAWriter(f)
        out.write(f"H\tVN:Z:1.0\tPG:Z:bundleweaver-{__version__}")
        for node in graph.nodes:
            seg = GFASegment(
                name=node_name(node.node_id),
                length=k,
                tags=f"AH:Z:{node.anchor_hash:016x}\tOC:i:{node.occurrence_count}",
            )
            out.write(seg.to_gfa_line(), node.node_id)
        for i, (a, b, count) in enumerate(graph.oriented_links()):
            link = GFALink(node_name(a[0]), _orient(a[1]), node_name(b[0]), _orient(b[1]), count)
            out.write(link.to_gfa_line(), i)
        for contig_id, name in enumerate(decomp.contig_names):
            steps = graph.contig_path(contig_id)
            if not steps:
                continue
            path = GFAPath(name, [f"{node_name(s.node_id)}{_orient(s.strand)}" for s in steps])
            out.write(path.to_gfa_line(), contig_id)

    logger.info(f"  Segments: {graph.node_count:,}")
    if idx_path is not None:
        write_gfa_index(out.records, idx_path)


def write_pmapg_gfa(decomp: Decomposition, gfa_path: str | Path, idx_path: str | Path | None = None) -> None:
    """
    Export the principal-bundle graph.

    - S lines per bundle (anchor count, support and repeat tags)
    - L lines between consecutive bundle traversals along contigs
    - P lines per contig as its bundle path
    """
    table = decomp.table
    gfa_path = Path(gfa_path)
    logger.info(f"Exporting bundle graph to GFA: {gfa_path}")

    with open(gfa_path, 'wb') as f:
        out = _IndexedGFAWriter(f)
        out.write(f"H\tVN:Z:1.0\tPG:Z:bundleweaver-{__version__}")
        for bundle in table.bundles:
            seg = GFASegment(
                name=bundle_name(bundle.bundle_id),
                length=bundle.length,
                tags=f"SZ:i:{bundle.size}\tNC:i:{bundle.contig_count}\tRP:Z:{bundle.repeat_flag}",
            )
            out.write(seg.to_gfa_line(), bundle.bundle_id)
        for i, (a, b, count) in enumerate(bundle_links(table)):
            link = GFALink(bundle_name(a[0]), _orient(a[1]), bundle_name(b[0]), _orient(b[1]), count)
            out.write(link.to_gfa_line(), i)
        for contig_id, name in enumerate(decomp.contig_names):
            entries = table.paths.get(contig_id, [])
            if not entries:
                continue
            path = GFAPath(name, [f"{bundle_name(e.bundle_id)}{_orient(e.direction)}" for e in entries])
            out.write(path.to_gfa_line(), contig_id)

    logger.info(f"  Bundles: {len(table.bundles):,}")
    if idx_path is not None:
        write_gfa_index(out.records, idx_path)


# ============================================================================
#                           GFA OFFSET INDEX
# ============================================================================

def write_gfa_index(records: list[tuple[int, int, int]], idx_path: str | Path) -> None:
    """Write (kind, ident, offset) records after a magic header."""
    idx_path = Path(idx_path)
    arr = np.array(records, dtype=GFA_INDEX_DTYPE)
    with open(idx_path, 'wb') as f:
        f.write(GFA_INDEX_MAGIC)
        f.write(arr.tobytes())
    logger.debug(f"Wrote {len(arr):,} offset records to {idx_path}")


class GFAOffsetIndex:
    """
    Random access into a GFA file written by this module.

    Example:
        >>> idx = GFAOffsetIndex.load("run.mapg.gfa", "run.mapg.idx")
        >>> idx.fetch_line('S', 42)
    """

    def __init__(self, gfa_path: Path, records: np.ndarray):
        self.gfa_path = Path(gfa_path)
        self.records = records
        self._lookup: dict[tuple[int, int], int] = {
            (int(r['kind']), int(r['ident'])): int(r['offset']) for r in records
        }

    @classmethod
    def load(cls, gfa_path: str | Path, idx_path: str | Path) -> 'GFAOffsetIndex':
        data = Path(idx_path).read_bytes()
        if not data.startswith(GFA_INDEX_MAGIC):
            raise ArtifactFormatError(f"{idx_path} is not a BundleWeaver GFA offset index")
        body = data[len(GFA_INDEX_MAGIC):]
        if len(body) % GFA_INDEX_DTYPE.itemsize:
            raise ArtifactFormatError(f"{idx_path} is truncated")
        return cls(gfa_path, np.frombuffer(body, dtype=GFA_INDEX_DTYPE))

    def __len__(self) -> int:
        return len(self.records)

    def count(self, kind: str) -> int:
        return int(np.count_nonzero(self.records['kind'] == _KIND_CODES[kind]))

    def fetch_line(self, kind: str, ident: int) -> str | None:
        """The GFA line of the given kind ('S', 'L' or 'P') and id, or None."""
        offset = self._lookup.get((_KIND_CODES[kind], ident))
        if offset is None:
            return None
        with open(self.gfa_path, 'rb') as f:
            f.seek(offset)
            return f.readline().decode('ascii').rstrip("\n")


# ============================================================================
#                           RUN MANIFEST
# ============================================================================

def run_manifest(decomp: Decomposition) -> dict[str, Any]:
    return {
        'bundleweaver_version': __version__,
        'cmd': decomp.cmd,
        'shimmer': decomp.params.to_dict(),
        'index': dict(decomp.index_cfg),
        'bundle': dict(decomp.bundle_cfg),
        'repeat_policy': dict(decomp.repeat_policy),
        'counts': decomp.counts(),
    }


def write_run_manifest(decomp: Decomposition, output_path: str | Path) -> None:
    """Write the run parameters and counts as YAML."""
    output_path = Path(output_path)
    with open(output_path, 'w') as f:
        yaml.safe_dump(run_manifest(decomp), f, default_flow_style=False, sort_keys=False)
    logger.info(f"Wrote run manifest to {output_path}")

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
