#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

SVScribe: structural-variant candidates between a query contig and target
contigs, read off their bundle paths.

Query anchors are matched to target anchors that sit at the same bundle
coordinate, hits are chained into collinear alignment blocks, and the blocks
are swept along each query (QG/QD/QO) and each target (TG/TD/TO). Inside a
block every pair of consecutive hits is compared at base level; pairs whose
sequences cannot be reconciled become SV candidates (SVC, or SVC_D/SVC_O
when they fall in a target region already flagged duplicate/overlap).

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple
import logging

from Bio.Align import PairwiseAligner

from ..utils.sequence_utils import interval_overlaps, reverse_complement
from .mapg_engine_module import MapGraph
from .pbundle_module import BundleTable

logger = logging.getLogger(__name__)

BEGIN_SENTINEL = "BGN"
END_SENTINEL = "END"


class SVRecordType(str, Enum):
    """Record tags written to the SV BED files."""
    QUERY_GAP = "QG"
    QUERY_DUP = "QD"
    QUERY_OVERLAP = "QO"
    TARGET_GAP = "TG"
    TARGET_DUP = "TD"
    TARGET_OVERLAP = "TO"
    CANDIDATE = "SVC"
    CANDIDATE_IN_DUP = "SVC_D"
    CANDIDATE_IN_OVERLAP = "SVC_O"


class DiffType(str, Enum):
    """Why a pair of chained anchors could not be reconciled."""
    ALIGNMENT_FAILURE = "A"
    END_MISMATCH = "E"
    SHORT_SEQUENCE = "S"
    LENGTH_DIFFERENCE = "L"


CANDIDATE_TYPES = {
    "": SVRecordType.CANDIDATE,
    "_D": SVRecordType.CANDIDATE_IN_DUP,
    "_O": SVRecordType.CANDIDATE_IN_OVERLAP,
}


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class AlignmentBlock:
    """
    A collinear run of anchor hits between one query and one target.

    ``hits`` holds (query_ordinal, target_ordinal, query_pos, target_pos).
    Target ordinals increase along the block for orientation 0 and decrease
    for orientation 1. ``diffs`` maps the index of an unreconciled hit pair
    to its difference type; the four flags record how the sweeps saw the
    block.
    """
    query_id: int
    target_id: int
    orientation: int
    hits: List[Tuple[int, int, int, int]] = field(default_factory=list)
    diffs: Dict[int, DiffType] = field(default_factory=dict)
    query_dup: bool = False
    query_overlap: bool = False
    target_dup: bool = False
    target_overlap: bool = False
    qs: int = 0
    qe: int = 0
    ts: int = 0
    te: int = 0
    q_ords: Tuple[int, int] = (0, 0)
    t_ords: Tuple[int, int] = (0, 0)

    @property
    def last(self) -> Tuple[int, int, int, int]:
        return self.hits[-1]

    def close(self, k: int) -> 'AlignmentBlock':
        """Fix base-pair and anchor-ordinal extents once chaining is done."""
        q_positions = [h[2] for h in self.hits]
        t_positions = [h[3] for h in self.hits]
        self.qs = min(q_positions)
        self.qe = max(q_positions) + k
        self.ts = min(t_positions)
        self.te = max(t_positions) + k
        self.q_ords = (self.hits[0][0], self.hits[-1][0])
        t_ordinals = [h[1] for h in self.hits]
        self.t_ords = (min(t_ordinals), max(t_ordinals))
        return self

    @property
    def query_span(self) -> int:
        return self.qe - self.qs

    def hit_pairs(self, k: int) -> Iterator[Tuple[int, int, int, int, int]]:
        """(pair index, ts, te, qs, qe) for each pair of consecutive hits."""
        for p, ((_, _, qa, ta), (_, _, qb, tb)) in enumerate(zip(self.hits, self.hits[1:])):
            if self.orientation == 0:
                yield p, ta, tb + k, qa, qb + k
            else:
                yield p, tb, ta + k, qa, qb + k


@dataclass(frozen=True)
class SVRecord:
    """
    One SV BED row.

    The annotation reads ``TYPE:linked:lstart-lend:orientation:ctg_orientation:extra``.
    A trailing gap to the contig end carries only ``TYPE:prev>END``.
    """
    name: str
    start: int
    end: int
    record_type: SVRecordType
    linked: str
    linked_start: int = -1
    linked_end: int = -1
    orientation: int = -1
    ctg_orientation: int = -1
    extra: str = ""

    @property
    def annotation(self) -> str:
        if self.linked_start < 0:
            return f"{self.record_type.value}:{self.linked}"
        return (
            f"{self.record_type.value}:{self.linked}:{self.linked_start}-{self.linked_end}:"
            f"{self.orientation}:{self.ctg_orientation}:{self.extra}"
        )

    def to_bed_line(self) -> str:
        return f"{self.name}\t{self.start}\t{self.end}\t{self.annotation}"


@dataclass
class ClassificationResult:
    """Everything produced by one comparison pass."""
    query_records: List[SVRecord] = field(default_factory=list)
    target_records: List[SVRecord] = field(default_factory=list)
    candidate_records: List[SVRecord] = field(default_factory=list)
    blocks: List[AlignmentBlock] = field(default_factory=list)
    contig_orientation: Dict[Tuple[int, int], int] = field(default_factory=dict)
    query_ids: List[int] = field(default_factory=list)
    target_ids: List[int] = field(default_factory=list)
    dup_intervals: Dict[int, List[Tuple[int, int]]] = field(default_factory=dict)
    overlap_intervals: Dict[int, List[Tuple[int, int]]] = field(default_factory=dict)

    def target_context(self, target_id: int, start: int, end: int) -> str:
        """'_D' or '_O' when a target interval falls in a duplicate or overlap region."""
        if interval_overlaps(self.dup_intervals.get(target_id, ()), start, end):
            return "_D"
        if end > start and interval_overlaps(self.overlap_intervals.get(target_id, ()), start, end):
            return "_O"
        return ""

    def records_of(self, record_type: SVRecordType) -> List[SVRecord]:
        pool = self.query_records + self.target_records + self.candidate_records
        return [r for r in pool if r.record_type == record_type]


# ============================================================================
# External Aligner
# ============================================================================

class PairwiseAlignerAdapter:
    """
    Base-level global aligner used as an opaque (seq, seq) -> score oracle.

    Returns the score normalised by the longer sequence, or None when that
    falls below ``min_score_ratio`` (an alignment failure).
    """

    def __init__(
        self,
        min_score_ratio: float = 0.7,
        match: float = 1.0,
        mismatch: float = -4.0,
        gap_open: float = -4.0,
        gap_extend: float = -1.0,
    ):
        self.min_score_ratio = min_score_ratio
        self.aligner = PairwiseAligner()
        self.aligner.mode = 'global'
        self.aligner.match_score = match
        self.aligner.mismatch_score = mismatch
        self.aligner.open_gap_score = gap_open
        self.aligner.extend_gap_score = gap_extend

    def __call__(self, seq_a: str, seq_b: str) -> Optional[float]:
        longest = max(len(seq_a), len(seq_b))
        if longest == 0:
            return 1.0
        ratio = self.aligner.score(seq_a, seq_b) / longest
        if ratio < self.min_score_ratio:
            return None
        return ratio


Aligner = Callable[[str, str], Optional[float]]


# ============================================================================
# Classifier
# ============================================================================

class SVScribe:
    """
    Compare query contigs against target contigs of one decomposition.

    Args:
        graph: Frozen MAP graph (contig anchor paths)
        table: Bundle table (anchor -> bundle coordinate)
        sequences: Contig sequences indexed by contig id
        contig_names: Contig names indexed by contig id
        k: K-mer size
        config: The ``svcall`` configuration section
        aligner: Optional replacement for the Biopython-backed aligner
        threads: Worker threads for per-query block building
    """

    def __init__(
        self,
        graph: MapGraph,
        table: BundleTable,
        sequences: Sequence[str],
        contig_names: Sequence[str],
        k: int,
        config: Optional[Dict] = None,
        aligner: Optional[Aligner] = None,
        threads: int = 1,
    ):
        config = config or {}
        self.graph = graph
        self.table = table
        self.sequences = sequences
        self.contig_names = contig_names
        self.k = k
        self.max_chain_span = config.get('max_chain_span', 8)
        self.max_gap = config.get('max_gap', 100000)
        self.min_block_anchors = config.get('min_block_anchors', 1)
        self.short_seq_len = config.get('short_seq_len', 16)
        self.end_check_len = config.get('end_check_len', 16)
        self.length_diff = config.get('length_diff', 128)
        self.max_aln_size = config.get('max_aln_size', 2048)
        self.aligner = aligner or PairwiseAlignerAdapter(
            min_score_ratio=config.get('min_aln_score_ratio', 0.7)
        )
        self.threads = max(1, threads)
        self.logger = logging.getLogger(f"{__name__}.SVScribe")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, query_id: int, target_ids: Sequence[int]) -> ClassificationResult:
        """Compare a single query contig against the targets."""
        return self.classify_all([query_id], target_ids)

    def classify_all(self, query_ids: Sequence[int], target_ids: Sequence[int]) -> ClassificationResult:
        """
        Compare every query against the targets.

        Block building and in-block diffs run per query in parallel; the
        target sweep needs every block, so it runs after the barrier.
        """
        targets = sorted(set(target_ids))
        self.logger.info(f"Classifying {len(query_ids)} queries against {len(targets)} targets")
        lookup = self._target_lookup(targets)

        def work(q):
            blocks = self._chain_blocks(q, [t for t in targets if t != q], lookup)
            return blocks, self._block_diffs(blocks)

        if self.threads > 1 and len(query_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                per_query = list(executor.map(work, query_ids))
        else:
            per_query = [work(q) for q in query_ids]

        result = ClassificationResult(query_ids=list(query_ids), target_ids=targets)
        for blocks, _ in per_query:
            result.blocks.extend(blocks)
        result.contig_orientation = self._contig_orientations(result.blocks)

        for q, (blocks, _) in zip(query_ids, per_query):
            result.query_records.extend(self._sweep(q, blocks, 'query', result.contig_orientation))

        for t in targets:
            t_blocks = [b for b in result.blocks if b.target_id == t]
            records = self._sweep(t, t_blocks, 'target', result.contig_orientation)
            for rec in records:
                if rec.record_type == SVRecordType.TARGET_DUP:
                    result.dup_intervals.setdefault(t, []).append((rec.start, rec.end))
                elif rec.record_type == SVRecordType.TARGET_OVERLAP:
                    result.overlap_intervals.setdefault(t, []).append((rec.start, rec.end))
            result.target_records.extend(records)

        candidates = []
        for _, diffs in per_query:
            for block, ts, te, qs, qe, diff in diffs:
                t = block.target_id
                rtype = CANDIDATE_TYPES[result.target_context(t, ts, te)]
                candidates.append((t, ts, te, block.query_id, qs, SVRecord(
                    name=self.contig_names[t],
                    start=ts,
                    end=te,
                    record_type=rtype,
                    linked=self.contig_names[block.query_id],
                    linked_start=qs,
                    linked_end=qe,
                    orientation=block.orientation,
                    ctg_orientation=result.contig_orientation[(block.query_id, t)],
                    extra=diff.value,
                )))
        candidates.sort(key=lambda c: c[:5])
        result.candidate_records = [c[5] for c in candidates]

        self.logger.info(
            f"SV classification: {len(result.blocks)} blocks, {len(result.query_records)} query records, "
            f"{len(result.target_records)} target records, {len(result.candidate_records)} candidates"
        )
        return result

    # ------------------------------------------------------------------
    # Hits and chaining
    # ------------------------------------------------------------------

    def _target_lookup(self, targets: Sequence[int]) -> Dict[Tuple[int, int], List[Tuple[int, int, int, int]]]:
        """(bundle_id, rank) -> [(target_id, ordinal, position, direction)]."""
        lookup: Dict[Tuple[int, int], List[Tuple[int, int, int, int]]] = defaultdict(list)
        for t in targets:
            for j, step in enumerate(self.graph.contig_path(t)):
                located = self.table.locate(step.node_id, step.strand)
                if located is None:
                    continue
                bundle_id, rank, direction = located
                lookup[(bundle_id, rank)].append((t, j, step.position, direction))
        return lookup

    def _chain_blocks(self, query_id: int, targets: Sequence[int], lookup) -> List[AlignmentBlock]:
        target_set = set(targets)
        span = self.max_chain_span
        blocks: List[AlignmentBlock] = []
        active: List[AlignmentBlock] = []

        for i, step in enumerate(self.graph.contig_path(query_id)):
            located = self.table.locate(step.node_id, step.strand)
            if located is None:
                continue
            bundle_id, rank, q_dir = located
            candidates = [
                (t, j, t_pos, q_dir ^ t_dir)
                for t, j, t_pos, t_dir in lookup.get((bundle_id, rank), ())
                if t in target_set
            ]
            active = [b for b in active if i - b.last[0] <= span]
            used = set()

            for block in active:
                best = None
                _, last_j, last_qpos, last_tpos = block.last
                for h, (t, j, t_pos, orientation) in enumerate(candidates):
                    if h in used or t != block.target_id or orientation != block.orientation:
                        continue
                    t_step = j - last_j if orientation == 0 else last_j - j
                    if not 1 <= t_step <= span:
                        continue
                    if abs(t_pos - last_tpos) > self.max_gap or step.position - last_qpos > self.max_gap:
                        continue
                    key = (t_step, t, j)
                    if best is None or key < best[0]:
                        best = (key, h)
                if best is not None:
                    h = best[1]
                    used.add(h)
                    _, j, t_pos, _ = candidates[h]
                    block.hits.append((i, j, step.position, t_pos))

            for h, (t, j, t_pos, orientation) in enumerate(candidates):
                if h in used:
                    continue
                block = AlignmentBlock(query_id=query_id, target_id=t, orientation=orientation)
                block.hits.append((i, j, step.position, t_pos))
                blocks.append(block)
                active.append(block)

        kept = [b.close(self.k) for b in blocks if len(b.hits) >= self.min_block_anchors]
        self.logger.debug(
            f"{self.contig_names[query_id]}: {len(kept)} alignment blocks "
            f"({len(blocks) - len(kept)} below {self.min_block_anchors} anchors)"
        )
        return kept

    @staticmethod
    def _contig_orientations(blocks: Sequence[AlignmentBlock]) -> Dict[Tuple[int, int], int]:
        """Dominant orientation per (query, target) by aligned query length; ties -> 0."""
        spans: Dict[Tuple[int, int], List[int]] = defaultdict(lambda: [0, 0])
        for b in blocks:
            spans[(b.query_id, b.target_id)][b.orientation] += b.query_span
        return {pair: (1 if s[1] > s[0] else 0) for pair, s in spans.items()}

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def _sweep(self, contig_id: int, blocks: List[AlignmentBlock], side: str, orient) -> List[SVRecord]:
        """
        Walk one contig's blocks in start order with a cursor on the last
        covered anchor ordinal.

        A block starting past the cursor is contiguous, or follows a gap when
        anchors were skipped and the base interval is non-empty. A block
        ending at or before the cursor is a duplicate; anything else
        overlaps. The contig end is checked the same way.
        """
        if side == 'query':
            gap_t, dup_t, ovl_t = SVRecordType.QUERY_GAP, SVRecordType.QUERY_DUP, SVRecordType.QUERY_OVERLAP
            dup_flag, ovl_flag = 'query_dup', 'query_overlap'

            def view(b):
                return b.q_ords, b.qs, b.qe, b.target_id, b.ts, b.te
        else:
            gap_t, dup_t, ovl_t = SVRecordType.TARGET_GAP, SVRecordType.TARGET_DUP, SVRecordType.TARGET_OVERLAP
            dup_flag, ovl_flag = 'target_dup', 'target_overlap'

            def view(b):
                return b.t_ords, b.ts, b.te, b.query_id, b.qs, b.qe

        name = self.contig_names[contig_id]
        length = len(self.sequences[contig_id])
        n_anchors = len(self.graph.contig_path(contig_id))
        ordered = sorted(blocks, key=lambda b: (view(b)[0], view(b)[3], view(b)[4]))

        records: List[SVRecord] = []
        c_last = -1
        c_end = 0
        prev = BEGIN_SENTINEL
        for b in ordered:
            (first, last), start, end, other, o_start, o_end = view(b)
            other_name = self.contig_names[other]
            pair = (contig_id, other) if side == 'query' else (other, contig_id)

            def record(rtype, r_start, r_end):
                return SVRecord(
                    name, r_start, r_end, rtype, f"{prev}>{other_name}",
                    o_start, o_end, b.orientation, orient[pair], str(length),
                )

            if first > c_last:
                if first > c_last + 1 and start > c_end:
                    records.append(record(gap_t, c_end, start))
                prev = other_name
                c_last, c_end = last, end
            elif last <= c_last:
                records.append(record(dup_t, start, end))
                setattr(b, dup_flag, True)
            else:
                records.append(record(ovl_t, start, min(c_end, end)))
                setattr(b, ovl_flag, True)
                prev = other_name
                c_last, c_end = last, max(c_end, end)

        if n_anchors - 1 > c_last and length > c_end:
            records.append(SVRecord(name, c_end, length, gap_t, f"{prev}>{END_SENTINEL}"))
        return records

    # ------------------------------------------------------------------
    # In-block diffs
    # ------------------------------------------------------------------

    def _block_diffs(self, blocks: Sequence[AlignmentBlock]):
        """(block, ts, te, qs, qe, diff) for every unreconciled hit pair."""
        k = self.k
        out = []
        for block in blocks:
            q_seq = self.sequences[block.query_id]
            t_seq = self.sequences[block.target_id]
            for p, ts, te, qs, qe in block.hit_pairs(k):
                q_sub = q_seq[qs:qe]
                if block.orientation == 1:
                    q_sub = reverse_complement(q_sub)
                t_sub = t_seq[ts:te]
                if q_sub == t_sub:
                    continue
                diff = self.diff_type(q_sub, t_sub)
                if diff is not None:
                    block.diffs[p] = diff
                    out.append((block, ts, te, qs, qe, diff))
        return out

    def diff_type(self, seq_a: str, seq_b: str) -> Optional[DiffType]:
        """
        Classify two differing subsequences. None means they reconcile
        (the aligner accepts them as a small-variant alignment).
        """
        if min(len(seq_a), len(seq_b)) <= self.short_seq_len:
            return DiffType.SHORT_SEQUENCE
        e = self.end_check_len
        if seq_a[:e] != seq_b[:e] or seq_a[-e:] != seq_b[-e:]:
            return DiffType.END_MISMATCH
        too_long = max(len(seq_a), len(seq_b)) > self.max_aln_size
        if abs(len(seq_a) - len(seq_b)) >= self.length_diff and too_long:
            return DiffType.LENGTH_DIFFERENCE
        if too_long or self.aligner(seq_a, seq_b) is None:
            return DiffType.ALIGNMENT_FAILURE
        return None

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
