#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Tests for FASTA input and output and contig include lists.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import gzip

import pytest

from bundleweaver.exceptions import InputError
from bundleweaver.io.io_core_module import (
    SequenceRecord,
    load_sequences,
    read_fasta,
    read_name_list,
    select_records,
    write_fasta,
)


class TestReadFasta:
    """Test FASTA parsing."""

    def test_read_plain(self, temp_output_dir):
        path = temp_output_dir / "a.fa"
        path.write_text(">ctg1 some description\nacgt\nACGT\n>ctg2\nTTTT\n")
        records = list(read_fasta(path))
        assert [r.name for r in records] == ["ctg1", "ctg2"]
        assert records[0].sequence == "ACGTACGT"
        assert len(records[1]) == 4

    def test_read_gzipped(self, temp_output_dir):
        path = temp_output_dir / "a.fa.gz"
        with gzip.open(path, 'wt') as f:
            f.write(">g\nACGTN\n")
        (record,) = read_fasta(path)
        assert record == SequenceRecord("g", "ACGTN")

    def test_missing_file(self, temp_output_dir):
        with pytest.raises(FileNotFoundError):
            list(read_fasta(temp_output_dir / "missing.fa"))


class TestWriteFasta:
    """Test FASTA writing."""

    def test_wrapped_output(self, temp_output_dir):
        path = temp_output_dir / "out" / "w.fa"
        n = write_fasta([SequenceRecord("x", "ACGTACGTAC")], path, line_width=4)
        assert n == 1
        assert path.read_text() == ">x\nACGT\nACGT\nAC\n"

    def test_written_records_read_back(self, temp_output_dir):
        path = temp_output_dir / "w.fa.gz"
        records = [SequenceRecord("a", "ACGT" * 30), SequenceRecord("b", "GGCC")]
        write_fasta(records, path)
        assert list(read_fasta(path)) == records


class TestLoadSequences:
    """Test multi-file loading and input validation."""

    def test_files_concatenated_in_order(self, temp_output_dir):
        a = temp_output_dir / "a.fa"
        b = temp_output_dir / "b.fa"
        a.write_text(">a1\nACGT\n>a2\nGGGG\n")
        b.write_text(">b1\nCCCC\n")
        assert [r.name for r in load_sequences([a, b])] == ["a1", "a2", "b1"]

    def test_duplicate_name_across_files(self, temp_output_dir):
        a = temp_output_dir / "a.fa"
        b = temp_output_dir / "b.fa"
        a.write_text(">x\nACGT\n")
        b.write_text(">x\nCCCC\n")
        with pytest.raises(InputError, match="Duplicate"):
            load_sequences([a, b])

    def test_empty_sequence(self, temp_output_dir):
        path = temp_output_dir / "e.fa"
        path.write_text(">empty\n>full\nACGT\n")
        with pytest.raises(InputError, match="Empty"):
            load_sequences([path])

    def test_no_records(self, temp_output_dir):
        path = temp_output_dir / "none.fa"
        path.write_text("")
        with pytest.raises(InputError):
            load_sequences([path])

    def test_no_files(self):
        with pytest.raises(InputError):
            load_sequences([])


class TestContigSelection:
    """Test include lists."""

    def test_name_list_skips_comments_and_blanks(self, temp_output_dir):
        path = temp_output_dir / "names.txt"
        path.write_text("# header\nctg1\n\nctg2\textra column\n")
        assert read_name_list(path) == ["ctg1", "ctg2"]

    def test_selection_keeps_input_order(self):
        records = [SequenceRecord("a", "ACGT"), SequenceRecord("b", "GG"), SequenceRecord("c", "T")]
        selected = select_records(records, ["c", "a"])
        assert [r.name for r in selected] == ["a", "c"]

    def test_unknown_name(self):
        with pytest.raises(InputError, match="zz"):
            select_records([SequenceRecord("a", "ACGT")], ["a", "zz"])

    def test_empty_selection(self):
        with pytest.raises(InputError):
            select_records([SequenceRecord("a", "ACGT")], [])
