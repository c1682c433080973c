#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for coordinate projection, repeat classification and contig summaries.

Covers:
  - Identical contigs collapse to one unique bundle of size 2
  - Reverse-complement contigs traverse the bundle in direction 1
  - Tandem repeats: repeated unit is 'R', flanks are 'U'
  - SNP bubbles shorter than the branch cutoff do not split bundles
  - Segment tiling and summary reconciliation
  - Segment filtering, merging and repeat threshold
  - Summary line formatting
"""

import copy
from collections import defaultdict

import pytest

from bundleweaver.bundle_core.mapg_engine_module import MapGraph, PathStep
from bundleweaver.bundle_core.pbundle_module import extract_principal_bundles
from bundleweaver.bundle_core.projection_module import (
    SUMMARY_COLUMNS,
    ContigSummary,
    CoordinateProjector,
    repeat_policy,
)
from bundleweaver.exceptions import ParameterError
from bundleweaver.utils.sequence_utils import reverse_complement


# ============================================================================
# Helpers
# ============================================================================

def _detour_graph():
    """
    Contigs 0 and 2 walk anchors 1-2-3-4; contig 1 takes a detour through
    anchor 9 between 2 and 3. Anchors sit every 10 bp.
    """
    graph = MapGraph()
    for contig_id, walk in enumerate([[1, 2, 3, 4], [1, 2, 9, 3, 4], [1, 2, 3, 4]]):
        steps = [PathStep(graph.add_node(h), 0, i * 10) for i, h in enumerate(walk)]
        for a, b in zip(steps, steps[1:]):
            graph.add_edge(a.node_id, b.node_id, 0, 0, contig_id, a.position, b.position)
        graph.contig_paths[contig_id] = steps
    return graph.freeze()


def _project(graph, **kwargs):
    table = extract_principal_bundles(graph)
    result = CoordinateProjector(k=5, **kwargs).project(graph, table, ['c0', 'c1', 'c2'], [100, 100, 100])
    return table, result


# ============================================================================
# Scenarios
# ============================================================================

class TestProjectionScenarios:
    def test_identical_contigs_single_unique_bundle(self, decompose, random_sequence):
        seq = random_sequence(10000, seed=11)
        decomp = decompose([("ctgA", seq), ("ctgB", seq)])
        assert len(decomp.table.bundles) == 1
        bundle = decomp.table.bundles[0]
        assert bundle.size == 2
        assert bundle.contig_count == 2
        assert bundle.repeat_flag == 'U'
        for contig_id in (0, 1):
            (seg,) = decomp.segments[contig_id]
            assert seg.bundle_id == 0
            assert seg.repeat_flag == 'U'
            assert seg.length >= 9500

    def test_reverse_complement_contig_direction(self, decompose, random_sequence):
        seq = random_sequence(5000, seed=12)
        decomp = decompose([("fwd", seq), ("rev", reverse_complement(seq))])
        assert len(decomp.table.bundles) == 1
        (fwd,) = decomp.segments[0]
        (rev,) = decomp.segments[1]
        assert fwd.direction == 0
        assert rev.direction == 1
        assert rev.bundle_start == fwd.bundle_end
        assert rev.bundle_end == fwd.bundle_start

    def test_tandem_repeat_unit_is_repeat(self, decompose, random_sequence):
        left = random_sequence(2000, seed=21)
        unit = random_sequence(500, seed=22)
        right = random_sequence(2000, seed=23)
        seq = left + unit * 5 + right
        decomp = decompose([("tandem", seq)])

        repeats = [b for b in decomp.table.bundles if b.repeat]
        assert repeats
        assert max(b.size for b in repeats) >= 5

        segments = decomp.segments[0]
        for seg in segments:
            if seg.start < 1500 or seg.end > len(seq) - 1500:
                assert seg.repeat_flag == 'U'

        summary = decomp.summaries[0]
        assert len(summary.repeat_lengths) >= 5
        assert summary.non_repeat_lengths

    def test_snp_bubbles_do_not_split_bundles(self, decompose, random_sequence, small_config):
        hap0 = random_sequence(10000, seed=31)
        hap1 = list(hap0)
        for pos in (2000, 4000, 6000, 8000):
            hap1[pos] = {'A': 'C', 'C': 'G', 'G': 'T', 'T': 'A'}[hap1[pos]]
        hap1 = "".join(hap1)

        pruned = decompose([("hap0", hap0), ("hap1", hap1)])
        assert len(pruned.segments[0]) <= 5
        assert len(pruned.segments[1]) <= 5

        unpruned_config = copy.deepcopy(small_config)
        unpruned_config['bundle']['min_branch_size'] = 0
        unpruned = decompose([("hap0", hap0), ("hap1", hap1)], config=unpruned_config)
        assert len(unpruned.segments[0]) > len(pruned.segments[0])


# ============================================================================
# Invariants
# ============================================================================

class TestProjectionInvariants:
    def test_segments_tile_between_first_and_last_anchor(self, decompose, random_sequence):
        left = random_sequence(1500, seed=31)
        unit = random_sequence(400, seed=32)
        decomp = decompose([("a", left + unit * 3 + left[:700]), ("b", left)])
        for contig_id, segs in decomp.segments.items():
            assert all(a.end == b.start for a, b in zip(segs, segs[1:]))
            assert all(0 <= s.start < s.end <= decomp.contig_lengths[contig_id] for s in segs)

    def test_summary_reconciles_with_segments(self, decompose, random_sequence):
        left = random_sequence(1500, seed=33)
        unit = random_sequence(400, seed=34)
        decomp = decompose([("a", left + unit * 3), ("b", unit + left)])
        for contig_id, summary in enumerate(decomp.summaries):
            segs = decomp.segments[contig_id]
            assert summary.repeat_sum == sum(s.length for s in segs if s.repeat_flag == 'R')
            assert summary.non_repeat_sum == sum(s.length for s in segs if s.repeat_flag == 'U')
            assert len(summary.repeat_lengths) + len(summary.non_repeat_lengths) == len(segs)

    def test_bundle_counts_match_emitted_segments(self, decompose, random_sequence):
        shared = random_sequence(2000, seed=35)
        decomp = decompose([
            ("a", shared + random_sequence(800, seed=36)),
            ("b", random_sequence(800, seed=37) + shared),
            ("c", shared),
        ])
        contigs = defaultdict(set)
        sizes = defaultdict(int)
        for seg in decomp.iter_segments():
            contigs[seg.bundle_id].add(seg.contig)
            sizes[seg.bundle_id] += 1
        for bundle in decomp.table.bundles:
            assert bundle.contig_count == len(contigs[bundle.bundle_id])
            assert bundle.size == sizes[bundle.bundle_id]


class TestProjectionPolicy:
    def test_split_traversal_is_repeat_by_default(self):
        table, result = _project(_detour_graph())
        x = table.bundles[0]
        assert x.length == 4
        assert len(result.segments[1]) == 3
        assert x.max_copies == 2
        assert x.repeat_flag == 'R'

    def test_boundaries_fall_midway_between_anchors(self):
        _, result = _project(_detour_graph())
        assert [(s.start, s.end) for s in result.segments[1]] == [(0, 17), (17, 27), (27, 45)]
        assert [(s.start, s.end) for s in result.segments[0]] == [(0, 35)]

    def test_filter_and_merge(self):
        table, result = _project(_detour_graph(), min_segment_length=11, merge_distance=10)
        (seg,) = result.segments[1]
        assert (seg.start, seg.end) == (0, 45)
        assert (seg.bundle_start, seg.bundle_end) == (0, 3)
        x = table.bundles[0]
        assert x.size == 3
        assert x.repeat_flag == 'U'
        detour = table.bundles[1]
        assert detour.size == 0

    def test_repeat_threshold(self):
        table, _ = _project(_detour_graph(), repeat_threshold=2)
        assert table.bundles[0].repeat_flag == 'U'

    def test_invalid_threshold(self):
        with pytest.raises(ParameterError):
            CoordinateProjector(k=5, repeat_threshold=0)

    def test_repeat_policy_records_threshold(self):
        assert repeat_policy(3)['threshold'] == 3


# ============================================================================
# Summary Formatting
# ============================================================================

class TestContigSummary:
    def test_header(self):
        assert SUMMARY_COLUMNS[0] == "#ctg"
        assert len(SUMMARY_COLUMNS) == 16

    def test_line(self):
        line = ContigSummary("c", 1000, [100, 300], [600]).to_tsv_line()
        assert line == "\t".join([
            "c", "1000",
            "2", "400", "40.0000", "200.00", "100", "300",
            "1", "600", "60.0000", "600.00", "600", "600",
            "3", "100.0000",
        ])

    def test_empty_class_uses_na(self):
        fields = ContigSummary("c", 1000, [], [500]).to_tsv_line().split("\t")
        assert fields[2:8] == ["0", "0", "0.0000", "NA", "NA", "NA"]
        assert fields[-1] == "50.0000"
