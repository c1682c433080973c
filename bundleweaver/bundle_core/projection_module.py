#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BundleWeaver v0.1.0

Coordinate Projector: bundle paths -> base-pair segments on each contig.

Segment boundaries between two traversals fall midway between the end of
the last anchor k-mer of one traversal and the start of the first anchor of
the next, so boundaries interpolate across excluded anchors and segments on
a contig are contiguous. The first segment starts at the contig's first
anchor and the last ends at the end of its last anchor k-mer.

Bundle size, supporting-contig count and the repeat flag are computed here,
from the segments that are actually emitted, so the bundle table always
reconciles with the BED and summary outputs.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Sequence
import logging

import numpy as np

from ..exceptions import ParameterError
from .mapg_engine_module import MapGraph
from .pbundle_module import BundleTable, PathEntry

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "#ctg", "length",
    "repeat_bundle_count", "repeat_bundle_sum", "repeat_bundle_percentage",
    "repeat_bundle_mean", "repeat_bundle_min", "repeat_bundle_max",
    "non_repeat_bundle_count", "non_repeat_bundle_sum", "non_repeat_bundle_percentage",
    "non_repeat_bundle_mean", "non_repeat_bundle_min", "non_repeat_bundle_max",
    "total_bundle_count", "total_bundle_coverage_percentage",
]


# ============================================================================
# Records
# ============================================================================

@dataclass(frozen=True)
class ContigSegment:
    """One projected bundle traversal on a contig (0-based, half-open)."""
    contig: str
    start: int
    end: int
    bundle_id: int
    bundle_size: int
    direction: int
    bundle_start: int
    bundle_end: int
    repeat_flag: str

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_bed_line(self) -> str:
        annotation = (
            f"{self.bundle_id}:{self.bundle_size}:{self.direction}:"
            f"{self.bundle_start}:{self.bundle_end}:{self.repeat_flag}"
        )
        return f"{self.contig}\t{self.start}\t{self.end}\t{annotation}"

    def to_tuple(self):
        return (self.contig, self.start, self.end, self.bundle_id, self.bundle_size,
                self.direction, self.bundle_start, self.bundle_end, self.repeat_flag)


def _fmt_pct(value: float) -> str:
    return f"{value:.4f}"


@dataclass
class ContigSummary:
    """Per-contig segment statistics split by repeat classification."""
    contig: str
    length: int
    repeat_lengths: List[int] = field(default_factory=list)
    non_repeat_lengths: List[int] = field(default_factory=list)

    @staticmethod
    def _stats(lengths: List[int], contig_length: int) -> List[str]:
        arr = np.asarray(lengths, dtype=np.int64)
        total = int(arr.sum()) if arr.size else 0
        pct = 100.0 * total / contig_length if contig_length else 0.0
        if arr.size == 0:
            return ["0", "0", _fmt_pct(pct), "NA", "NA", "NA"]
        return [
            str(arr.size),
            str(total),
            _fmt_pct(pct),
            f"{arr.mean():.2f}",
            str(int(arr.min())),
            str(int(arr.max())),
        ]

    @property
    def repeat_sum(self) -> int:
        return sum(self.repeat_lengths)

    @property
    def non_repeat_sum(self) -> int:
        return sum(self.non_repeat_lengths)

    def to_tsv_line(self) -> str:
        total_count = len(self.repeat_lengths) + len(self.non_repeat_lengths)
        covered = self.repeat_sum + self.non_repeat_sum
        coverage = 100.0 * covered / self.length if self.length else 0.0
        fields = [self.contig, str(self.length)]
        fields += self._stats(self.repeat_lengths, self.length)
        fields += self._stats(self.non_repeat_lengths, self.length)
        fields += [str(total_count), _fmt_pct(coverage)]
        return "\t".join(fields)


def summarize_segments(
    contig_names: Sequence[str],
    contig_lengths: Sequence[int],
    segments: Dict[int, List[ContigSegment]],
) -> List[ContigSummary]:
    """Build one summary per contig (input order) from emitted segments."""
    summaries = []
    for contig_id, (name, length) in enumerate(zip(contig_names, contig_lengths)):
        summary = ContigSummary(contig=name, length=length)
        for seg in segments.get(contig_id, []):
            if seg.repeat_flag == 'R':
                summary.repeat_lengths.append(seg.length)
            else:
                summary.non_repeat_lengths.append(seg.length)
        summaries.append(summary)
    return summaries


# ============================================================================
# Projector
# ============================================================================

@dataclass
class _RawSegment:
    start: int
    end: int
    bundle_id: int
    direction: int
    bundle_start: int
    bundle_end: int


@dataclass
class ProjectionResult:
    segments: Dict[int, List[ContigSegment]]
    summaries: List[ContigSummary]


class CoordinateProjector:
    """
    Translate bundle paths into contig coordinates and classify bundles.

    Args:
        k: K-mer size (anchor footprint)
        repeat_threshold: A bundle is a repeat when any single contig
            traverses it more than this many times
        min_segment_length: Segments shorter than this are dropped
        merge_distance: Segments of the same bundle and direction, separated
            only by dropped segments and no more than this many bases, are
            merged when the bundle coordinate keeps advancing
    """

    def __init__(
        self,
        k: int,
        repeat_threshold: int = 1,
        min_segment_length: int = 0,
        merge_distance: int = 0,
    ):
        if repeat_threshold < 1:
            raise ParameterError(f"repeat_threshold must be >= 1, got {repeat_threshold}")
        self.k = k
        self.repeat_threshold = repeat_threshold
        self.min_segment_length = min_segment_length
        self.merge_distance = merge_distance
        self.logger = logging.getLogger(f"{__name__}.CoordinateProjector")

    def project(
        self,
        graph: MapGraph,
        table: BundleTable,
        contig_names: Sequence[str],
        contig_lengths: Sequence[int],
    ) -> ProjectionResult:
        raw: Dict[int, List[_RawSegment]] = {}
        dropped = 0
        for contig_id in range(len(contig_names)):
            entries = table.paths.get(contig_id, [])
            steps = graph.contig_path(contig_id)
            segs = self._raw_segments(entries, [s.position for s in steps], contig_lengths[contig_id])
            kept = [s for s in segs if s.end - s.start >= self.min_segment_length]
            dropped += len(segs) - len(kept)
            raw[contig_id] = self._merge(kept) if self.merge_distance > 0 else kept
        if dropped:
            self.logger.info(f"Dropped {dropped:,} segments shorter than {self.min_segment_length} bp")

        self._classify(table, raw)

        segments: Dict[int, List[ContigSegment]] = {}
        for contig_id, segs in raw.items():
            name = contig_names[contig_id]
            segments[contig_id] = [
                ContigSegment(
                    contig=name,
                    start=s.start,
                    end=s.end,
                    bundle_id=s.bundle_id,
                    bundle_size=table.bundles[s.bundle_id].size,
                    direction=s.direction,
                    bundle_start=s.bundle_start,
                    bundle_end=s.bundle_end,
                    repeat_flag=table.bundles[s.bundle_id].repeat_flag,
                )
                for s in segs
            ]

        summaries = summarize_segments(contig_names, contig_lengths, segments)
        n_repeat = sum(1 for b in table.bundles if b.repeat)
        self.logger.info(
            f"Projected {sum(len(v) for v in segments.values()):,} segments; "
            f"{n_repeat:,}/{len(table.bundles):,} bundles classified as repeats"
        )
        return ProjectionResult(segments=segments, summaries=summaries)

    def _raw_segments(
        self,
        entries: List[PathEntry],
        positions: List[int],
        contig_length: int,
    ) -> List[_RawSegment]:
        k = self.k
        out: List[_RawSegment] = []
        for i, entry in enumerate(entries):
            if i == 0:
                start = positions[entry.first_step]
            else:
                start = (positions[entries[i - 1].last_step] + k + positions[entry.first_step]) // 2
            if i == len(entries) - 1:
                end = positions[entry.last_step] + k
            else:
                end = (positions[entry.last_step] + k + positions[entries[i + 1].first_step]) // 2
            out.append(_RawSegment(
                start=max(0, start),
                end=min(contig_length, end),
                bundle_id=entry.bundle_id,
                direction=entry.direction,
                bundle_start=entry.bundle_start,
                bundle_end=entry.bundle_end,
            ))
        return out

    def _merge(self, segs: List[_RawSegment]) -> List[_RawSegment]:
        merged: List[_RawSegment] = []
        for seg in segs:
            if merged:
                prev = merged[-1]
                same = prev.bundle_id == seg.bundle_id and prev.direction == seg.direction
                if prev.direction == 0:
                    advancing = seg.bundle_start > prev.bundle_end
                else:
                    advancing = seg.bundle_start < prev.bundle_end
                if same and advancing and seg.start - prev.end <= self.merge_distance:
                    merged[-1] = replace(prev, end=seg.end, bundle_end=seg.bundle_end)
                    continue
            merged.append(seg)
        return merged

    def _classify(self, table: BundleTable, raw: Dict[int, List[_RawSegment]]):
        per_contig: Dict[int, Counter] = defaultdict(Counter)
        for contig_id, segs in raw.items():
            for s in segs:
                per_contig[s.bundle_id][contig_id] += 1
        for bundle in table.bundles:
            copies = per_contig.get(bundle.bundle_id, Counter())
            bundle.size = sum(copies.values())
            bundle.contig_count = len(copies)
            bundle.max_copies = max(copies.values()) if copies else 0
            bundle.repeat = bundle.max_copies > self.repeat_threshold


def repeat_policy(repeat_threshold: int) -> Dict[str, object]:
    """Machine-readable description of the repeat rule, for run manifests."""
    return {
        'rule': 'max_traversals_per_contig > threshold',
        'threshold': repeat_threshold,
        'size': 'number of emitted segments referencing the bundle',
        'contig_count': 'distinct contigs with an emitted segment of the bundle',
    }

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
