#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the exporters: contig BED, summary TSV, SV BED, GFA graphs with
offset indexes, the run manifest, and the alignment and contig maps.
"""

import copy
import json

import pytest
import yaml

from bundleweaver.bundle_core.projection_module import SUMMARY_COLUMNS
from bundleweaver.bundle_core.svscribe_module import SVRecord, SVRecordType
from bundleweaver.exceptions import ArtifactFormatError
from bundleweaver.io.io_core_module import SequenceRecord
from bundleweaver.io_utils.bundle_export import (
    GFA_INDEX_MAGIC,
    GFAOffsetIndex,
    bundle_name,
    node_name,
    write_sv_bed,
)
from bundleweaver.utils.pipeline import (
    RunContext,
    output_paths,
    run_svcall,
    write_outputs,
    write_sv_outputs,
)


@pytest.fixture
def run_outputs(decompose, random_sequence, temp_output_dir):
    shared = random_sequence(2500, seed=91)
    decomp = decompose([
        ("a", shared + random_sequence(600, seed=92)),
        ("b", shared),
    ])
    written = write_outputs(decomp, temp_output_dir / "run")
    return decomp, written


# ============================================================================
# Text tables
# ============================================================================

class TestTextOutputs:
    def test_bed_header_and_rows(self, run_outputs):
        decomp, written = run_outputs
        lines = written['bed'].read_text().splitlines()
        assert lines[0] == "# cmd: bundleweaver test"
        assert len(lines) - 1 == sum(1 for _ in decomp.iter_segments())
        contig, start, end, annotation = lines[1].split("\t")
        assert contig == "a"
        assert int(start) < int(end)
        assert len(annotation.split(":")) == 6
        assert annotation.split(":")[-1] in ("R", "U")

    def test_summary_rows_in_input_order(self, run_outputs):
        _, written = run_outputs
        lines = written['summary'].read_text().splitlines()
        assert lines[0].split("\t") == list(SUMMARY_COLUMNS)
        assert [line.split("\t")[0] for line in lines[1:]] == ["a", "b"]

    def test_sv_bed(self, temp_output_dir):
        records = [
            SVRecord("q", 0, 100, SVRecordType.QUERY_GAP, "BGN>t", 5, 9, 0, 0, "1000"),
            SVRecord("q", 900, 1000, SVRecordType.QUERY_GAP, "t>END"),
        ]
        path = temp_output_dir / "sv.bed"
        assert write_sv_bed(records, path, cmd="svcall") == 2
        assert path.read_text().splitlines() == [
            "# cmd: svcall",
            "q\t0\t100\tQG:BGN>t:5-9:0:0:1000",
            "q\t900\t1000\tQG:t>END",
        ]

    def test_manifest(self, run_outputs):
        decomp, written = run_outputs
        manifest = yaml.safe_load(written['params'].read_text())
        assert manifest['shimmer'] == decomp.params.to_dict()
        assert manifest['cmd'] == "bundleweaver test"
        assert manifest['counts']['contigs'] == 2
        assert manifest['repeat_policy'] == decomp.repeat_policy


# ============================================================================
# GFA
# ============================================================================

class TestGFAOutputs:
    def test_all_files_written(self, run_outputs, temp_output_dir):
        _, written = run_outputs
        assert set(written) == set(output_paths(temp_output_dir / "run"))
        assert all(path.exists() for path in written.values())

    def test_mapg_segments_and_paths(self, run_outputs):
        decomp, written = run_outputs
        lines = written['mapg'].read_text().splitlines()
        assert lines[0].startswith("H\tVN:Z:1.0")
        segments = [l for l in lines if l.startswith("S\t")]
        paths = [l for l in lines if l.startswith("P\t")]
        assert len(segments) == decomp.graph.node_count
        assert f"LN:i:{decomp.params.k}" in segments[0]
        assert [p.split("\t")[1] for p in paths] == ["a", "b"]

    def test_offset_index_fetch(self, run_outputs):
        decomp, written = run_outputs
        idx = GFAOffsetIndex.load(written['mapg'], written['mapg_idx'])
        assert idx.count('S') == decomp.graph.node_count
        assert idx.count('P') == 2
        line = idx.fetch_line('S', 3)
        assert line.split("\t")[1] == node_name(3)
        assert idx.fetch_line('P', 1).startswith("P\tb\t")
        assert idx.fetch_line('S', 10 ** 9) is None

    def test_bundle_graph_index(self, run_outputs):
        decomp, written = run_outputs
        idx = GFAOffsetIndex.load(written['pmapg'], written['pmapg_idx'])
        assert idx.count('S') == len(decomp.table.bundles)
        line = idx.fetch_line('S', 0)
        fields = line.split("\t")
        assert fields[1] == bundle_name(0)
        assert any(f.startswith("RP:Z:") for f in fields)
        assert len(idx) == sum(1 for l in written['pmapg'].read_text().splitlines() if l[0] in "SLP")

    def test_bad_index_magic(self, run_outputs, temp_output_dir):
        _, written = run_outputs
        bogus = temp_output_dir / "bogus.idx"
        bogus.write_bytes(b"nope")
        with pytest.raises(ArtifactFormatError):
            GFAOffsetIndex.load(written['mapg'], bogus)

    def test_truncated_index(self, run_outputs, temp_output_dir):
        _, written = run_outputs
        truncated = temp_output_dir / "short.idx"
        truncated.write_bytes(GFA_INDEX_MAGIC + b"\x01\x02\x03")
        with pytest.raises(ArtifactFormatError):
            GFAOffsetIndex.load(written['mapg'], truncated)

    def test_graphs_optional(self, decompose, random_sequence, temp_output_dir):
        decomp = decompose([("a", random_sequence(1500, seed=93))])
        written = write_outputs(decomp, temp_output_dir / "lean", write_graphs=False, write_artifact=False)
        assert set(written) == {'bed', 'summary', 'params'}


# ============================================================================
# Alignment and contig maps
# ============================================================================

@pytest.fixture
def sv_outputs(small_config, random_sequence, temp_output_dir):
    cfg = copy.deepcopy(small_config)
    cfg['svcall']['max_chain_span'] = 16
    ctx = RunContext.from_config(cfg, cmd="bundleweaver test")
    base = random_sequence(6000, seed=95)
    query = base[:3000] + random_sequence(60, seed=96) + base[3060:]
    decomp, result = run_svcall([SequenceRecord("q", query)], [SequenceRecord("t", base)], ctx)
    paths = write_sv_outputs(decomp, result, [query, base], temp_output_dir / "sv")
    return result, paths, query, base


def _rows(path):
    return [line.split("\t") for line in path.read_text().splitlines()]


class TestAlignmentMapOutputs:
    def test_alnmap_row_layout(self, sv_outputs):
        result, paths, _, _ = sv_outputs
        rows = _rows(paths['alnmap'])
        assert rows[0][1] == "B" and rows[-1][1] == "E"
        assert sum(r[1] == "B" for r in rows) == len(result.blocks)
        assert sum(r[1] == "E" for r in rows) == len(result.blocks)

        widths = {"B": 15, "E": 11, "M": 9, "S": 11}
        for row in rows:
            assert len(row[0]) == 6
            assert len(row) == widths[row[1]]

        candidates = [r for r in rows if r[1] == "S"]
        assert len(candidates) == len(result.candidate_records)
        assert all(r[2] == "t" and r[5] == "q" and r[10] == "A" for r in candidates)

    def test_block_row_flags(self, sv_outputs):
        _, paths, query, _ = sv_outputs
        (block_row,) = [r for r in _rows(paths['alnmap']) if r[1] == "B"]
        assert block_row[9] == str(len(query))
        assert block_row[11:] == ["0", "0", "0", "0"]

    def test_candidate_seqs_carry_bases(self, sv_outputs):
        result, paths, query, base = sv_outputs
        rows = _rows(paths['svcnd_seqs'])
        assert len(rows) == len(result.candidate_records)
        for row in rows:
            ts, te, qs, qe = int(row[3]), int(row[4]), int(row[6]), int(row[7])
            assert row[11] == base[ts:te]
            assert row[12] == query[qs:qe]
            assert row[11] != row[12]

    def test_ctgmap_json(self, sv_outputs):
        result, paths, query, base = sv_outputs
        with open(paths['ctgmap_json']) as f:
            payload = json.load(f)
        assert set(payload) == {'records', 'query_length', 'target_length'}
        assert payload['query_length'] == [[0, "q", len(query)]]
        assert payload['target_length'] == [[1, "t", len(base)]]
        assert len(payload['records']) == len(result.blocks)
        assert payload['records'][0]['q_name'] == "q"

    def test_ctgmap_bed(self, sv_outputs):
        result, paths, _, _ = sv_outputs
        rows = _rows(paths['ctgmap_bed'])
        assert len(rows) == len(result.blocks)
        assert rows[0][0] == "t"
        assert len(rows[0][3].split(":")) == 10

    def test_candidate_seqs_optional(self, small_config, random_sequence, temp_output_dir):
        ctx = RunContext.from_config(small_config, cmd="bundleweaver test")
        seq = random_sequence(3000, seed=97)
        decomp, result = run_svcall([SequenceRecord("q", seq)], [SequenceRecord("t", seq)], ctx)
        paths = write_sv_outputs(decomp, result, [seq, seq], temp_output_dir / "lean", write_seqs=False)
        assert 'svcnd_seqs' not in paths
        assert not (temp_output_dir / "lean.svcnd.seqs").exists()
        assert paths['alnmap'].exists()
